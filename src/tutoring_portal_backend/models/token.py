'''
Payload of the session tokens issued by the identity provider.
'''
from pydantic import BaseModel, EmailStr
from datetime import datetime

class TokenPayload(BaseModel):
    sub: EmailStr # 'sub' is the standard JWT subject claim (the profile email)
    exp: datetime
