"""SQLAlchemy database models for stored workflows."""

from datetime import datetime
from sqlalchemy import Boolean, Column, String, DateTime, Text, JSON, Integer
from .database import Base


class WorkflowRecord(Base):
    """A stored workflow graph with its scheduling artifacts."""
    __tablename__ = "workflows"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    description = Column(Text)
    definition = Column(JSON, nullable=False)        # {"nodes": [...], "edges": [...]}
    execution_order = Column(JSON, nullable=False)   # list of node ids
    dag_structure = Column(JSON, nullable=False)     # list of lists of node ids
    quality_score = Column(Integer, default=0)
    is_valid = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
