# subscription_schema.py
from pydantic import BaseModel, Field


class UpgradeRequest(BaseModel):
    paymentMethod: str = Field(default="razorpay", max_length=30)


class VerifyPaymentRequest(BaseModel):
    razorpay_order_id: str = Field(..., min_length=1)
    razorpay_payment_id: str = Field(..., min_length=1)
    razorpay_signature: str = Field(..., min_length=1)
    paymentId: int
