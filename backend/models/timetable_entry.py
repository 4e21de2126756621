from __future__ import annotations

import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, Index, Integer, String, Text
from sqlalchemy.sql import func

from models.base import Base


class TimetableEntry(Base):
    __tablename__ = "timetable_entries"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    branch_id = Column(Text, nullable=False)
    semester = Column(Integer, nullable=False)
    # NULL batch = COMMON (applies to every batch of the cohort).
    batch_id = Column(Text, nullable=True)
    batch_label = Column(String(8), nullable=False, default="COMMON")
    professor_id = Column(Text, nullable=True)
    subject_id = Column(Text, nullable=True)
    subject_code = Column(Text, nullable=True)
    day_of_week = Column(String(3), nullable=False)
    start_time = Column(String(5), nullable=False)
    end_time = Column(String(5), nullable=False)
    slot_type = Column(String(16), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        CheckConstraint(
            "day_of_week in ('MON', 'TUE', 'WED', 'THU', 'FRI')",
            name="ck_timetable_entries_day",
        ),
        CheckConstraint(
            "slot_type in ('THEORY', 'LAB', 'BREAK', 'RECESS', 'LIBRARY', 'PROJECT')",
            name="ck_timetable_entries_slot_type",
        ),
        CheckConstraint("start_time < end_time", name="ck_timetable_entries_window"),
        Index("ix_timetable_entries_cohort", "branch_id", "semester"),
        Index("ix_timetable_entries_lab_triple", "slot_type", "day_of_week", "start_time", "end_time"),
    )
