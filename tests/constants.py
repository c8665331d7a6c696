from uuid import UUID

TEST_ADMIN_ID = UUID('3f1d0c52-6a8e-4f61-9a7e-2b9d7c1e4a10')
TEST_ADMIN_EMAIL = "tutor@example.com"

TEST_STUDENT_ID = UUID('e46d56d4-a856-49cc-b078-bffa79d9a142')
TEST_STUDENT_EMAIL = "family.one@example.com"

TEST_OTHER_STUDENT_ID = UUID('7accbce5-4cdd-4ca3-930f-b0042e035299')
TEST_OTHER_STUDENT_EMAIL = "family.two@example.com"

TEST_INACTIVE_STUDENT_ID = UUID('a6934e55-9538-4c06-a7b0-545fbd4d8cee')
TEST_INACTIVE_STUDENT_EMAIL = "former.family@example.com"

TEST_UNKNOWN_ID = UUID('00000000-0000-4000-8000-000000000000')

TEST_COST_PER_HOUR = "30.00"
TEST_WEBHOOK_SECRET = "whsec_test_secret"
TEST_CRON_SECRET = "cron-test-secret"
