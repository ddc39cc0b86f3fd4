from pydantic import BaseModel, field_validator


class VerifyRequest(BaseModel):
    reference: str

    @field_validator("reference")
    @classmethod
    def required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Payment reference is required")
        return v


class VerifyResponse(BaseModel):
    """`already_processed` is true when the reference was seen before.

    `email_sent` reports the customer's receipt separately from the
    payment, which is committed either way.
    """
    ok: bool = True
    already_processed: bool = False
    purpose: str
    token: str | None = None
    handoff_id: str | None = None
    conversation_id: str | None = None
    reorder_id: str | None = None
    status: str | None = None
    quote_token: str | None = None
    payment_id: str | None = None
    summary: dict | None = None
    email_sent: bool | None = None
