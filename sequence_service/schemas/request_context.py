from __future__ import annotations

from pydantic import BaseModel, Field


class RequestIdentity(BaseModel):
    subject: str | None = None
    email: str | None = None
    auth_source: str = "anonymous"
    claims: dict = Field(default_factory=dict)

    @property
    def actor(self) -> str:
        return self.email or self.subject or "system@local"


class SequenceRequestContext(BaseModel):
    tenant_id: str
    is_live: bool
    environment: str
    request_id: str
    identity: RequestIdentity
