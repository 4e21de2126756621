from __future__ import annotations

import uuid

from sqlalchemy import JSON, Column, DateTime, Integer, String, Text
from sqlalchemy.sql import func

from models.base import Base


class TimetableConflict(Base):
    __tablename__ = "timetable_conflicts"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    branch_id = Column(Text, nullable=False, index=True)
    semester = Column(Integer, nullable=False)
    severity = Column(String(8), nullable=False, default="CRITICAL")
    category = Column(String(8), nullable=False, default="BLOCKING")
    conflict_type = Column(Text, nullable=False)
    message = Column(Text, nullable=False)

    professor_id = Column(Text, nullable=True)
    subject_id = Column(Text, nullable=True)
    batch_label = Column(Text, nullable=True)

    metadata_json = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
