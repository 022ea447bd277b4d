from datetime import datetime

from sqlalchemy import CheckConstraint, Column, DateTime, Integer, String

from app.platform.db.base import Base


class UserUsage(Base):
    """
    Monthly audit counter for an authenticated user.

    Rows are normalized lazily on read: a stale `period_key` resets
    `audits_used`, and a paid plan past `plan_expires_at` falls back to free.
    See QuotaLedger for the statements that do this.
    """
    __tablename__ = "user_usage"

    user_id = Column(String(255), primary_key=True)
    plan = Column(String(20), nullable=False, default="free", server_default="free")
    audits_used = Column(Integer, nullable=False, default=0, server_default="0")
    period_key = Column(String(7), nullable=False)  # YYYY-MM (UTC)

    # Naive UTC, like the rest of the schema
    plan_expires_at = Column(DateTime, nullable=True)

    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("audits_used >= 0", name="check_audits_used_non_negative"),
    )

    def __repr__(self):
        return f"<UserUsage(user_id={self.user_id}, plan={self.plan}, used={self.audits_used}, period={self.period_key})>"
