from datetime import datetime
from sqlalchemy import Column, String, DateTime
from .base import Base


class IdentityMapping(Base):
    """Append-only local id -> database id binding, written once per local id."""
    __tablename__ = "identity_mappings"

    local_id = Column(String(64), primary_key=True)
    database_id = Column(String(64), nullable=False, index=True)
    collection = Column(String(50), nullable=False, index=True)
    bound_at = Column(DateTime, default=datetime.utcnow, nullable=False)
