from datetime import datetime
from sqlalchemy import Column, String, Text, Boolean, Integer, JSON, DateTime, UniqueConstraint
from .base import Base


class CalendarMarker(Base):
    __tablename__ = "calendar_markers"
    __table_args__ = (UniqueConstraint("user_id", "day", name="uq_marker_user_day"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, index=True)
    day = Column(String(10), nullable=False)  # YYYY-MM-DD, device local calendar
    is_rest_day = Column(Boolean, nullable=False, default=False)
    used_free_rest_day = Column(Boolean, nullable=False, default=False)
    recorded_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class RestDayLogEntry(Base):
    __tablename__ = "rest_day_log"

    seq = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, index=True)
    date = Column(DateTime, nullable=False)
    activities = Column(JSON, nullable=False, default=list)
    caption = Column(Text, nullable=True)
