"""
Snapshot model — append-only time series of an item's score and comment count.
"""
from sqlalchemy import Column, Integer, DateTime, ForeignKey, Index, UniqueConstraint

from pulse.database import Base


class Snapshot(Base):
    __tablename__ = 'snapshots'
    __table_args__ = (
        UniqueConstraint('item_id', 'captured_at', name='uq_snapshot_item_capture'),
        Index('idx_snapshots_item', 'item_id', 'captured_at'),
        Index('idx_snapshots_captured', 'captured_at'),
        Index('idx_snapshots_age', 'minutes_since_creation'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    item_id = Column(Integer, ForeignKey('items.id'), nullable=False)
    score = Column(Integer, nullable=False)
    comment_count = Column(Integer, nullable=False, default=0)
    captured_at = Column(DateTime, nullable=False)
    minutes_since_creation = Column(Integer, nullable=False)  # item age at capture
