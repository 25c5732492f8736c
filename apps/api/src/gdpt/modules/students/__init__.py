"""
Students module - enrolled students and parent links.
"""

from gdpt.modules.students.models import Gender, ParentStudentLink, Student
from gdpt.modules.students.repository import StudentRepository

__all__ = ["Gender", "ParentStudentLink", "Student", "StudentRepository"]
