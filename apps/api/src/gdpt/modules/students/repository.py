"""
Student Repository

Database operations for students and parent-student links.
"""

import logging
from datetime import date
from uuid import UUID

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from gdpt.modules.students.models import PARENT_RELATION, Gender, ParentStudentLink, Student

logger = logging.getLogger(__name__)


class StudentRepository:
    """Repository for students and their parent links."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_student(
        self,
        *,
        name: str,
        date_of_birth: date,
        gender: Gender,
        unit_id: UUID,
        dharma_name: str | None = None,
        class_id: UUID | None = None,
        notes: str | None = None,
    ) -> Student:
        student = Student(
            name=name,
            dharma_name=dharma_name,
            date_of_birth=date_of_birth,
            gender=gender,
            unit_id=unit_id,
            class_id=class_id,
            notes=notes,
        )
        self.db.add(student)
        await self.db.flush()
        await self.db.refresh(student)

        logger.info(f"Created student {student.id} in unit {unit_id}")
        return student

    async def create_link(
        self,
        *,
        parent_id: UUID,
        student_id: UUID,
        relation: str = PARENT_RELATION,
    ) -> ParentStudentLink:
        link = ParentStudentLink(parent_id=parent_id, student_id=student_id, relation=relation)
        self.db.add(link)
        await self.db.flush()
        return link

    async def delete_links_for_parent(self, parent_id: UUID) -> int:
        result = await self.db.execute(
            delete(ParentStudentLink).where(ParentStudentLink.parent_id == parent_id)
        )
        return result.rowcount
