# Re-export all models for convenient imports
from app.models.user import User, UserRole
from app.models.college import College
from app.models.test_catalog import (
    TestDefinition,
    TestSection,
    TestQuestion,
    Subject,
    TestType,
    Difficulty,
    SourceType,
    OptionLabel,
)
from app.models.test_assignment import CollegeAssignment, StudentAssignment, AssignmentStatus
from app.models.test_attempt import (
    TestAttempt,
    AttemptAnswer,
    AttemptStatus,
    StudentTestStatus,
    derive_student_status,
)

__all__ = [
    # Users
    "User",
    "UserRole",
    "College",
    # Catalog
    "TestDefinition",
    "TestSection",
    "TestQuestion",
    "Subject",
    "TestType",
    "Difficulty",
    "SourceType",
    "OptionLabel",
    # Assignments
    "CollegeAssignment",
    "StudentAssignment",
    "AssignmentStatus",
    # Attempts
    "TestAttempt",
    "AttemptAnswer",
    "AttemptStatus",
    "StudentTestStatus",
    "derive_student_status",
]
