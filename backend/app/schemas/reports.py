"""
Report Schemas - read-only projections over the attempt ledger
"""

from pydantic import Field
from typing import Optional, List
from datetime import datetime

from app.models.test_catalog import Subject, TestType
from app.models.test_attempt import StudentTestStatus
from app.schemas.base import CamelModel
from app.schemas.test_catalog import TestSummary


# ============================================
# Per-test report
# ============================================

class ScoreStatistics(CamelModel):
    average_score: float = 0.0
    highest_score: float = 0.0
    lowest_score: float = 0.0
    pass_rate: float = 0.0
    passed_students: int = 0


class TestStatistics(ScoreStatistics):
    __test__ = False

    total_assigned: int = 0
    total_completed: int = 0
    completion_rate: float = 0.0
    pass_percentage: float


class StudentReportRow(CamelModel):
    student_id: str
    name: str
    email: Optional[str] = None
    id_number: Optional[str] = None
    branch: Optional[str] = None
    batch: Optional[str] = None
    section: Optional[str] = None
    status: StudentTestStatus
    marks_obtained: int = 0
    total_marks: int
    percentage: float = 0.0
    time_spent: int = 0  # minutes
    submitted_at: Optional[datetime] = None


class TestReport(CamelModel):
    __test__ = False

    test: TestSummary
    college_id: Optional[str] = None
    statistics: TestStatistics
    students: List[StudentReportRow] = Field(default_factory=list)


# ============================================
# College performance
# ============================================

class StudentPerformanceSummary(CamelModel):
    student_id: str
    name: str
    id_number: Optional[str] = None
    branch: Optional[str] = None
    batch: Optional[str] = None
    section: Optional[str] = None
    attempts: int = 0
    average_percentage: float = 0.0
    marks_obtained: int = 0
    total_marks: int = 0


class GroupSummary(CamelModel):
    """Aggregate over students sharing a branch, batch or section value"""
    name: str
    students: int = 0
    students_attempted: int = 0
    attempts: int = 0
    average_percentage: float = 0.0
    pass_rate: float = 0.0


class PerformanceOverview(CamelModel):
    total_students: int = 0
    students_attempted: int = 0
    total_attempts: int = 0
    average_percentage: float = 0.0
    pass_rate: float = 0.0


class CollegePerformance(CamelModel):
    college_id: str
    overall: PerformanceOverview
    students: List[StudentPerformanceSummary] = Field(default_factory=list)
    by_branch: List[GroupSummary] = Field(default_factory=list)
    by_batch: List[GroupSummary] = Field(default_factory=list)
    by_section: List[GroupSummary] = Field(default_factory=list)


# ============================================
# Student history
# ============================================

class AttemptHistoryItem(CamelModel):
    attempt_id: str
    test_id: str
    test_name: str
    subject: Subject
    test_type: TestType
    marks_obtained: int
    total_marks: int
    percentage: float
    time_spent: int
    submitted_at: datetime


class StudentPerformance(CamelModel):
    student_id: str
    total_attempts: int = 0
    average_percentage: float = 0.0
    highest_percentage: float = 0.0
    marks_obtained: int = 0
    total_marks: int = 0
    attempts: List[AttemptHistoryItem] = Field(default_factory=list)
