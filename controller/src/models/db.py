"""
Database models for run history (sync version, shared with the API).
"""

from sqlalchemy import Column, String, DateTime, ForeignKey, Integer, Text, JSON
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()

class PipelineRun(Base):
    __tablename__ = "pipeline_runs"

    id = Column(String(36), primary_key=True)
    pipeline = Column(String(255), nullable=False)
    revision = Column(String(64))
    status = Column(String(50), default="pending")
    failed_stage = Column(String(255))
    failed_action = Column(String(255))
    error_kind = Column(String(50))
    reason = Column(Text)
    started_at = Column(DateTime)
    finished_at = Column(DateTime)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    actions = relationship("ActionRun", back_populates="run", cascade="all, delete-orphan")

class ActionRun(Base):
    __tablename__ = "action_runs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    run_id = Column(String(36), ForeignKey("pipeline_runs.id", ondelete="CASCADE"), nullable=False)
    stage = Column(String(255), nullable=False)
    stage_order = Column(Integer, nullable=False)
    name = Column(String(255), nullable=False)
    action_order = Column(Integer, nullable=False)
    kind = Column(String(20), nullable=False)
    status = Column(String(50), default="pending")
    error_kind = Column(String(50))
    reason = Column(Text)
    outputs = Column(JSON)
    details = Column(JSON)
    logs = Column(Text)
    started_at = Column(DateTime)
    finished_at = Column(DateTime)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    run = relationship("PipelineRun", back_populates="actions")
