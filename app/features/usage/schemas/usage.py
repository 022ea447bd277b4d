"""
Usage Schemas

Caller identity and the usage figures shown to callers ("x/y audits used").
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, model_validator


class Identity(BaseModel):
    """Who is being metered. Exactly one of user_id / guest_key is set."""
    user_id: Optional[str] = None
    guest_key: Optional[str] = None

    @model_validator(mode="after")
    def _exactly_one_key(self):
        if bool(self.user_id) == bool(self.guest_key):
            raise ValueError("Identity needs exactly one of user_id or guest_key")
        return self

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    @property
    def key(self) -> str:
        return self.user_id or self.guest_key

    @classmethod
    def user(cls, user_id: str) -> "Identity":
        return cls(user_id=user_id)

    @classmethod
    def guest(cls, guest_key: str) -> "Identity":
        return cls(guest_key=guest_key)


class UsageSnapshot(BaseModel):
    plan: str
    used: int
    limit: Optional[int] = None  # None = unlimited
    token_limit: int
    period_key: Optional[str] = None  # guests are metered for life, not per period
    plan_expires_at: Optional[datetime] = None

    class Config:
        json_schema_extra = {
            "example": {
                "plan": "free",
                "used": 2,
                "limit": 3,
                "token_limit": 2000,
                "period_key": "2026-10",
                "plan_expires_at": None,
            }
        }


class ReserveResult(BaseModel):
    allowed: bool
    usage: UsageSnapshot
