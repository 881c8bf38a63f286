"""
Digest model — one row per outbound notification batch.
"""
from sqlalchemy import Column, Integer, Text, DateTime, JSON, Index
from sqlalchemy.sql import func

from pulse.database import Base


class Digest(Base):
    __tablename__ = 'digests'
    __table_args__ = (
        Index('idx_digests_sent', 'sent_at'),
        Index('idx_digests_status', 'status'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    sent_at = Column(DateTime, nullable=False)
    alert_ids = Column(JSON, nullable=False, default=list)
    alert_count = Column(Integer, nullable=False)
    digest_type = Column(Text, nullable=False)            # hourly/urgent
    status = Column(Text, nullable=False, default='pending')  # pending/sent/partial/failed
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
