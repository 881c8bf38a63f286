"""
Alert model — one row per (item, alert type), flipped to sent by the digest batcher.
"""
from sqlalchemy import Column, Integer, Text, Float, Boolean, DateTime, ForeignKey, Index, UniqueConstraint

from pulse.database import Base


class Alert(Base):
    __tablename__ = 'alerts'
    __table_args__ = (
        UniqueConstraint('item_id', 'alert_type', name='uq_alert_item_type'),
        Index('idx_alerts_detected', 'detected_at'),
        Index('idx_alerts_sent', 'is_sent', 'detected_at'),
        Index('idx_alerts_item', 'item_id'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    item_id = Column(Integer, ForeignKey('items.id'), nullable=False)
    alert_type = Column(Text, nullable=False)     # score_velocity/comment_velocity/breakthrough
    percentile = Column(Float, nullable=False)
    growth_rate = Column(Float, nullable=False)   # points/min or comments/min
    score_at_alert = Column(Integer, nullable=False)
    comments_at_alert = Column(Integer, nullable=False)
    item_age_minutes = Column(Integer, nullable=False)
    detected_at = Column(DateTime, nullable=False)
    is_sent = Column(Boolean, default=False, nullable=False)
