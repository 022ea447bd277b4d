from sqlalchemy import JSON, CheckConstraint, Column, Float, Index, String

from app.platform.db.base import BaseModel


class AuditRecord(BaseModel):
    """
    History row written after a successful audit.

    Guest rows double as the guest meter: admission counts rows with a
    matching `guest_key` and no `user_id`.
    """
    __tablename__ = "audits"

    # Exactly one of user_id OR guest_key must be set
    user_id = Column(String(255), nullable=True, index=True)
    guest_key = Column(String(64), nullable=True, index=True)

    ui_title = Column(String(255), nullable=False, default="Untitled Audit")
    image_url = Column(String(1000), nullable=True)  # primary image, for list views
    image_urls = Column(JSON, nullable=False, default=list)

    framework = Column(String(50), nullable=False, default="nielsen")
    mode = Column(String(20), nullable=False, default="upload")

    score = Column(Float, nullable=True)
    analysis = Column(JSON, nullable=True)

    __table_args__ = (
        CheckConstraint(
            '(user_id IS NOT NULL AND guest_key IS NULL) OR (user_id IS NULL AND guest_key IS NOT NULL)',
            name='check_owner_exclusivity'
        ),
        Index('idx_audits_guest_owner', 'guest_key', 'user_id'),
    )

    def __repr__(self):
        return f"<AuditRecord(id={self.id}, user_id={self.user_id}, guest_key={self.guest_key}, mode={self.mode})>"
