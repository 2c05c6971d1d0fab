"""
Assignment Schemas - college push, college decision, student targeting
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Literal
from datetime import datetime

from app.models.test_assignment import AssignmentStatus, CollegeAssignment
from app.models.test_attempt import StudentTestStatus, TestAttempt
from app.schemas.base import CamelModel
from app.schemas.test_catalog import TestSummary


class AssignCollegesRequest(CamelModel):
    college_ids: List[str] = Field(..., min_length=1)


class AssignCollegesResponse(BaseModel):
    message: str
    assignments: int


class CollegeDecisionRequest(BaseModel):
    status: Literal["accepted", "rejected"]


class StudentFilters(CamelModel):
    """Targeting criteria. Provided lists are OR-ed together."""
    branches: List[str] = Field(default_factory=list)
    batches: List[str] = Field(default_factory=list)
    sections: List[str] = Field(default_factory=list)
    specific_students: List[str] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.branches or self.batches or self.sections or self.specific_students)


class AssignStudentsResponse(CamelModel):
    message: str
    students_assigned: int


class CollegeAssignmentView(CamelModel):
    id: str
    test: TestSummary
    college_id: str
    college_name: Optional[str] = None
    assigned_by: str
    status: AssignmentStatus
    accepted_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_assignment(cls, assignment: CollegeAssignment) -> "CollegeAssignmentView":
        return cls(
            id=assignment.id,
            test=TestSummary.from_test(assignment.test),
            college_id=assignment.college_id,
            college_name=assignment.college.name if assignment.college else None,
            assigned_by=assignment.assigned_by,
            status=assignment.status,
            accepted_at=assignment.accepted_at,
            rejected_at=assignment.rejected_at,
            created_at=assignment.created_at,
        )


class CollegeDecisionResponse(BaseModel):
    message: str
    assignment: CollegeAssignmentView


class AttemptSummary(CamelModel):
    id: str
    marks_obtained: int
    total_marks: int
    percentage: float
    submitted_at: Optional[datetime] = None

    @classmethod
    def from_attempt(cls, attempt: TestAttempt) -> "AttemptSummary":
        return cls(
            id=attempt.id,
            marks_obtained=attempt.marks_obtained,
            total_marks=attempt.total_marks,
            percentage=attempt.percentage,
            submitted_at=attempt.end_time,
        )


class StudentAssignmentView(CamelModel):
    id: str
    test: TestSummary
    status: StudentTestStatus
    has_attempted: bool
    attempt: Optional[AttemptSummary] = None
    assigned_at: Optional[datetime] = None
