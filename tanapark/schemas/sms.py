# tanapark/schemas/sms.py
from pydantic import BaseModel, Field


class SmsRequest(BaseModel):
    phone_number: str = Field(min_length=1)
    message: str = Field(min_length=1, max_length=1000)
