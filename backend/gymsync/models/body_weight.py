from datetime import datetime
from sqlalchemy import Column, String, Integer, Float, DateTime, UniqueConstraint
from .base import Base


class BodyWeightEntry(Base):
    """One weigh-in per user per local calendar day; a later entry replaces it."""
    __tablename__ = "body_weight_log"
    __table_args__ = (UniqueConstraint("user_id", "day", name="uq_body_weight_user_day"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, index=True)
    day = Column(String(10), nullable=False)  # YYYY-MM-DD
    weight = Column(Float, nullable=False)
    recorded_at = Column(DateTime, default=datetime.utcnow, nullable=False)
