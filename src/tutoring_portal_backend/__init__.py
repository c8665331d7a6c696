'''
Backend service for the tutoring portal: balances, lessons and payments.
'''
