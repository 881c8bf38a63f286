"""
GrowthBenchmark model — cached percentile profile per (age bucket, metric).

Exactly one live row per key; recomputation overwrites in place.
"""
from sqlalchemy import Column, Integer, Text, Float, DateTime, Index, UniqueConstraint

from pulse.database import Base


class GrowthBenchmark(Base):
    __tablename__ = 'growth_benchmarks'
    __table_args__ = (
        UniqueConstraint('age_bucket', 'metric_type', name='uq_benchmark_bucket_metric'),
        Index('idx_benchmarks_calculated', 'calculated_at'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    age_bucket = Column(Text, nullable=False)    # new/young/mature
    metric_type = Column(Text, nullable=False)   # score_velocity/comment_velocity
    p50 = Column(Float, default=0.0)
    p75 = Column(Float, default=0.0)
    p90 = Column(Float, default=0.0)
    p95 = Column(Float, default=0.0)
    p99 = Column(Float, default=0.0)
    sample_size = Column(Integer, nullable=False)
    calculated_at = Column(DateTime, nullable=False)
