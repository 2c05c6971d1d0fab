"""
Tests API - authoring, assignment propagation and student attempts
"""

from fastapi import APIRouter, Depends, File, Query, UploadFile, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from app.core.clock import Clock, get_clock
from app.core.config import settings
from app.core.database import get_db
from app.core.exceptions import ExtractionError
from app.core.logging_config import logger
from app.models.test_assignment import AssignmentStatus
from app.models.test_catalog import Subject
from app.models.user import User
from app.modules.auth.dependencies import (
    get_current_master_admin,
    get_current_college_admin,
    get_current_student,
)
from app.schemas.test_assignment import (
    AssignCollegesRequest,
    AssignCollegesResponse,
    AssignStudentsResponse,
    CollegeAssignmentView,
    CollegeDecisionRequest,
    CollegeDecisionResponse,
    StudentAssignmentView,
    StudentFilters,
)
from app.schemas.test_attempt import AttemptDetail, BeginAttemptResponse, SubmitAttemptRequest
from app.schemas.test_catalog import (
    ExtractedQuestionsResponse,
    TestCreate,
    TestCreatedResponse,
    TestDetail,
    TestSummary,
)
from app.services.assignment_directory import AssignmentDirectoryService
from app.services.attempt_ledger import AttemptLedgerService
from app.services.notification_service import NotificationService, get_notification_service
from app.services.question_extractor import extract_from_file, generate_sample
from app.services.test_catalog import TestCatalogService

router = APIRouter(prefix="/tests", tags=["Tests"])


# ============================================
# Question helpers (Master Admin)
# ============================================

@router.get("/sample-questions/{subject}", response_model=ExtractedQuestionsResponse)
async def sample_questions(
    subject: Subject,
    count: int = Query(5),
    current_user: User = Depends(get_current_master_admin),
):
    """Generate placeholder questions for the authoring form"""
    questions = generate_sample(subject, count)
    return ExtractedQuestionsResponse(
        message=f"Generated {len(questions)} sample questions for {subject.value}",
        questions=questions,
    )


@router.post("/extract-file", response_model=ExtractedQuestionsResponse)
async def extract_questions_from_file(
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_master_admin),
):
    """Parse questions from an uploaded JSON or CSV file"""
    content = await file.read()
    if len(content) > settings.MAX_EXTRACT_FILE_SIZE:
        raise ExtractionError(
            f"File exceeds the {settings.MAX_EXTRACT_FILE_SIZE // (1024 * 1024)}MB limit",
            source=file.filename,
        )

    questions = extract_from_file(file.filename or "", content)
    logger.info(f"[Tests] {current_user.email} extracted {len(questions)} questions from {file.filename}")
    return ExtractedQuestionsResponse(
        message=f"Successfully extracted {len(questions)} questions",
        questions=questions,
    )


# ============================================
# College Admin
# ============================================

@router.get("/college/assigned", response_model=List[CollegeAssignmentView])
async def list_college_assignments(
    test_type: Optional[str] = Query(None, alias="testType"),
    subject: Optional[str] = Query(None),
    current_user: User = Depends(get_current_college_admin),
    db: AsyncSession = Depends(get_db),
):
    """Tests pushed to the admin's college"""
    directory = AssignmentDirectoryService(db)
    assignments = await directory.list_for_college(current_user.college_id, test_type, subject)
    return [CollegeAssignmentView.from_assignment(a) for a in assignments]


@router.put("/assignment/{assignment_id}/status", response_model=CollegeDecisionResponse)
async def decide_college_assignment(
    assignment_id: str,
    decision: CollegeDecisionRequest,
    current_user: User = Depends(get_current_college_admin),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Accept or reject a pending assignment"""
    directory = AssignmentDirectoryService(db, clock=clock)
    assignment = await directory.set_college_status(
        assignment_id,
        current_user.college_id,
        AssignmentStatus(decision.status),
    )
    return CollegeDecisionResponse(
        message=f"Test assignment {decision.status} successfully",
        assignment=CollegeAssignmentView.from_assignment(assignment),
    )


@router.post("/assignment/{assignment_id}/assign-students", response_model=AssignStudentsResponse)
async def assign_students(
    assignment_id: str,
    filters: StudentFilters,
    current_user: User = Depends(get_current_college_admin),
    db: AsyncSession = Depends(get_db),
    notifier: NotificationService = Depends(get_notification_service),
):
    """
    Target students of the college by branch, batch, section or id.
    Criteria are OR-ed; at least one student must match.
    """
    directory = AssignmentDirectoryService(db, notifier=notifier)
    count = await directory.resolve_students(
        assignment_id,
        current_user.college_id,
        filters,
        assigned_by=current_user.id,
    )
    return AssignStudentsResponse(
        message=f"Test assigned to {count} students successfully",
        students_assigned=count,
    )


# ============================================
# Student
# ============================================

@router.get("/student/assigned", response_model=List[StudentAssignmentView])
async def list_student_assignments(
    test_type: Optional[str] = Query(None, alias="testType"),
    subject: Optional[str] = Query(None),
    current_user: User = Depends(get_current_student),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Tests assigned to the current student with attempt state"""
    directory = AssignmentDirectoryService(db, clock=clock)
    return await directory.list_for_student(current_user.id, test_type, subject)


# ============================================
# Master Admin
# ============================================

@router.post("", response_model=TestCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_test(
    payload: TestCreate,
    current_user: User = Depends(get_current_master_admin),
    db: AsyncSession = Depends(get_db),
):
    """Create a test (flat or sectioned)"""
    catalog = TestCatalogService(db)
    test = await catalog.create_test(payload, creator_id=current_user.id)
    return TestCreatedResponse(message="Test created successfully", test=TestSummary.from_test(test))


@router.get("", response_model=List[TestSummary])
async def list_tests(
    test_type: Optional[str] = Query(None, alias="testType"),
    subject: Optional[str] = Query(None),
    current_user: User = Depends(get_current_master_admin),
    db: AsyncSession = Depends(get_db),
):
    """Active tests, newest first"""
    catalog = TestCatalogService(db)
    tests = await catalog.list_tests(test_type, subject)
    return [TestSummary.from_test(test) for test in tests]


@router.get("/{test_id}", response_model=TestDetail)
async def get_test(
    test_id: str,
    current_user: User = Depends(get_current_master_admin),
    db: AsyncSession = Depends(get_db),
):
    """Full test including correct answers"""
    return await TestCatalogService(db).get_test_detail(test_id)


@router.post("/{test_id}/deactivate", response_model=TestSummary)
async def deactivate_test(
    test_id: str,
    current_user: User = Depends(get_current_master_admin),
    db: AsyncSession = Depends(get_db),
):
    """Soft delete; existing assignments and attempts keep working"""
    test = await TestCatalogService(db).deactivate_test(test_id)
    return TestSummary.from_test(test)


@router.post("/{test_id}/assign-college", response_model=AssignCollegesResponse)
async def assign_to_colleges(
    test_id: str,
    payload: AssignCollegesRequest,
    current_user: User = Depends(get_current_master_admin),
    db: AsyncSession = Depends(get_db),
    notifier: NotificationService = Depends(get_notification_service),
):
    """Push a test to colleges; already-assigned colleges are skipped"""
    directory = AssignmentDirectoryService(db, notifier=notifier)
    created = await directory.assign_to_colleges(test_id, payload.college_ids, assigned_by=current_user.id)
    return AssignCollegesResponse(
        message=f"Test assigned to {created} colleges successfully",
        assignments=created,
    )


# ============================================
# Attempts (Student)
# ============================================

@router.post("/{test_id}/start", response_model=BeginAttemptResponse)
async def start_test(
    test_id: str,
    current_user: User = Depends(get_current_student),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Check eligibility and return the questions without answers"""
    ledger = AttemptLedgerService(db, clock=clock)
    return await ledger.begin_attempt(test_id, current_user.id)


@router.post("/{test_id}/submit")
async def submit_test(
    test_id: str,
    submission: SubmitAttemptRequest,
    current_user: User = Depends(get_current_student),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """
    Grade and record the attempt.
    Practice tests also return per-question instantFeedback.
    """
    ledger = AttemptLedgerService(db, clock=clock)
    response = await ledger.submit_attempt(
        test_id,
        current_user.id,
        current_user.college_id,
        submission.answers,
        submission.start_time,
        submission.time_spent,
    )
    return JSONResponse(content=response.to_payload())


@router.get("/{test_id}/results", response_model=AttemptDetail)
async def get_results(
    test_id: str,
    current_user: User = Depends(get_current_student),
    db: AsyncSession = Depends(get_db),
):
    """Per-question review of the student's own attempt"""
    return await AttemptLedgerService(db).get_results(test_id, current_user.id)
