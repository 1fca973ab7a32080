"""
Registry of the association's teachers and the courses they hold.

Teachers are not scoped by owner: every operator sees the same list, only
administrators change it.
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from gestionale.db.models import Teacher, translate_transport_errors

logger = logging.getLogger(__name__)


class InvalidTeacherPayloadError(ValueError):
    """Raised for a blank name or an update carrying neither a name nor a course list."""


def _clean_courses(courses: Optional[List[Any]]) -> List[str]:
    return [str(course).strip() for course in courses or [] if course is not None and str(course).strip()]


def teacher_update_payload(full_name: Optional[str] = None, courses: Optional[List[Any]] = None) -> Dict[str, Any]:
    updates: Dict[str, Any] = {}
    if full_name is not None:
        if not full_name.strip():
            raise InvalidTeacherPayloadError("Missing full_name")
        updates["full_name"] = full_name.strip()
    if courses is not None:
        updates["courses"] = _clean_courses(courses)
    if not updates:
        raise InvalidTeacherPayloadError("No fields to update")
    return updates


class TeacherStore:
    def __init__(self, db: Session):
        self.db = db

    def list_teachers(self) -> List[Teacher]:
        with translate_transport_errors():
            return list(self.db.scalars(select(Teacher).order_by(Teacher.full_name.asc(), Teacher.id.asc())))

    def create(self, full_name: str, courses: Optional[List[Any]] = None) -> Teacher:
        with translate_transport_errors():
            teacher = Teacher(full_name=full_name.strip(), courses=_clean_courses(courses))
            self.db.add(teacher)
            self.db.commit()
            self.db.refresh(teacher)
        logger.info("Registered teacher %s (%d course(s))", teacher.id, len(teacher.courses))
        return teacher

    def update(self, teacher_id: int, updates: Dict[str, Any]) -> Optional[Teacher]:
        """Apply ``updates`` (see ``teacher_update_payload``); None when the teacher does not exist."""
        with translate_transport_errors():
            teacher = self.db.get(Teacher, teacher_id)
            if teacher is None:
                return None
            for key, value in updates.items():
                setattr(teacher, key, value)
            self.db.commit()
            self.db.refresh(teacher)
            return teacher
