"""
Item model — one row per tracked upstream post, keyed by the upstream ID.

Created on first sighting, updated on later sightings, never deleted.
"""
from sqlalchemy import Column, Integer, Text, Boolean, DateTime, Index
from sqlalchemy.sql import func

from pulse.database import Base


class Item(Base):
    __tablename__ = 'items'
    __table_args__ = (
        Index('idx_items_first_seen', 'first_seen_at'),
        Index('idx_items_type', 'item_type'),
        Index('idx_items_author', 'author'),
    )

    id = Column(Integer, primary_key=True, autoincrement=False)  # upstream item ID
    title = Column(Text, nullable=False)
    url = Column(Text, nullable=True)
    author = Column(Text, nullable=False)
    item_type = Column(Text, nullable=False)  # story/ask/show/job/poll
    first_seen_at = Column(DateTime, nullable=False)
    last_updated_at = Column(DateTime, nullable=False)
    is_dead = Column(Boolean, default=False, nullable=False)
    is_deleted = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
