from datetime import datetime

from pydantic import BaseModel, field_validator


class ReorderOut(BaseModel):
    id: str
    user_id: str
    source_conversation_id: str | None = None
    source_handoff_id: str
    new_conversation_id: str | None = None
    new_handoff_id: str | None = None
    route_type: str
    status: str
    original_agent_id: str | None = None
    assigned_agent_id: str | None = None
    user_note: str | None = None
    admin_note: str | None = None
    paystack_ref: str | None = None
    amount_ngn: float | None = None
    paid_at: datetime | None = None
    assigned_at: datetime | None = None
    closed_at: datetime | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class ReorderAssign(BaseModel):
    agent_id: str
    admin_note: str | None = None

    @field_validator("agent_id")
    @classmethod
    def required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("agent_id is required")
        return v
