from sqlalchemy import Column, DateTime, String, func
from sqlalchemy.orm import declarative_base
from uuid_extension import uuid7

Base = declarative_base()


def new_id() -> str:
    # uuid7 is time ordered, so ids sort in insertion order
    return str(uuid7())


class BaseModel(Base):
    """Abstract base: uuid7 string id plus server-side created/updated stamps."""
    __abstract__ = True

    id = Column(String(36), primary_key=True, default=new_id, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

# Models import this module, never the other way round.
# Tables are registered in app/platform/db/session.py::init_models.
