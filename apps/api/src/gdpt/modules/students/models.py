"""
Student Models

Students and their links to parent accounts.
"""

import uuid
from datetime import date
from enum import Enum

from sqlalchemy import Date, ForeignKey, String, Text, UniqueConstraint, Uuid
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from gdpt.modules.shared import BaseModel


class Gender(str, Enum):
    MALE = "MALE"
    FEMALE = "FEMALE"


PARENT_RELATION = "Parent"


class Student(BaseModel):
    """Enrolled student."""

    __tablename__ = "students"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    dharma_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    date_of_birth: Mapped[date] = mapped_column(Date, nullable=False)
    gender: Mapped[Gender] = mapped_column(SAEnum(Gender, name="gender"), nullable=False)
    # Units and classes are owned by the organization structure module.
    unit_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    class_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True, index=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Student(id={self.id}, name={self.name})>"


class ParentStudentLink(BaseModel):
    """Association between a parent account and a student."""

    __tablename__ = "parent_student_links"
    __table_args__ = (UniqueConstraint("parent_id", "student_id", name="uq_parent_student"),)

    parent_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    student_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("students.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    relation: Mapped[str] = mapped_column(String(50), nullable=False, default=PARENT_RELATION)
