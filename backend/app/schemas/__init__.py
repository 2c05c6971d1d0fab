# Pydantic schemas
from app.schemas.test_catalog import (
    TestCreate,
    SectionCreate,
    QuestionCreate,
    TestSummary,
    TestDetail,
    StudentTestView,
)
from app.schemas.test_assignment import (
    AssignCollegesRequest,
    CollegeDecisionRequest,
    StudentFilters,
    CollegeAssignmentView,
    StudentAssignmentView,
)
from app.schemas.test_attempt import (
    AnswerSubmission,
    SubmitAttemptRequest,
    SubmitAttemptResponse,
    BeginAttemptResponse,
    AttemptDetail,
)
from app.schemas.reports import TestReport, CollegePerformance, StudentPerformance

__all__ = [
    "TestCreate",
    "SectionCreate",
    "QuestionCreate",
    "TestSummary",
    "TestDetail",
    "StudentTestView",
    "AssignCollegesRequest",
    "CollegeDecisionRequest",
    "StudentFilters",
    "CollegeAssignmentView",
    "StudentAssignmentView",
    "AnswerSubmission",
    "SubmitAttemptRequest",
    "SubmitAttemptResponse",
    "BeginAttemptResponse",
    "AttemptDetail",
    "TestReport",
    "CollegePerformance",
    "StudentPerformance",
]
