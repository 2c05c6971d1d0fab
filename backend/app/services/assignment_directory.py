"""
Assignment Directory Service
Owns the two-tier propagation graph: test -> college -> students.

College assignments move pending -> accepted | rejected exactly once.
Student assignments are created per resolved student and never edited;
re-running the targeting step adds rows instead of changing old ones.
"""

from typing import List, Optional, Dict
from sqlalchemy import select, update, or_
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import Clock, utc_now
from app.core.database import commit_or_fail
from app.core.exceptions import (
    AssignmentNotFoundError,
    AssignmentNotAcceptedError,
    AssignmentStateError,
    NoMatchError,
    TestNotFoundError,
    ValidationError,
)
from app.core.logging_config import logger
from app.models.college import College
from app.models.test_assignment import CollegeAssignment, StudentAssignment, AssignmentStatus
from app.models.test_attempt import TestAttempt, derive_student_status
from app.models.test_catalog import TestDefinition, TestType, Subject
from app.models.user import User, UserRole
from app.schemas.test_assignment import StudentFilters, StudentAssignmentView, AttemptSummary
from app.schemas.test_catalog import TestSummary
from app.services.notification_service import NotificationService, NotificationIntent
from app.services.test_catalog import parse_enum_filter


def _dedupe(values: List[str]) -> List[str]:
    seen = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return seen


class AssignmentDirectoryService:
    """Service for college and student test assignments"""

    def __init__(
        self,
        db: AsyncSession,
        notifier: Optional[NotificationService] = None,
        clock: Clock = utc_now,
    ):
        self.db = db
        self.notifier = notifier
        self.clock = clock

    async def _notify(self, intents: List[NotificationIntent]) -> None:
        # Runs after commit; NotificationService.dispatch never raises
        if self.notifier and intents:
            await self.notifier.dispatch(intents)

    async def _get_active_test(self, test_id: str) -> TestDefinition:
        result = await self.db.execute(
            select(TestDefinition).where(TestDefinition.id == test_id, TestDefinition.is_active == True)
        )
        test = result.scalar_one_or_none()
        if not test:
            raise TestNotFoundError(test_id)
        return test

    async def _get_college_assignment(self, assignment_id: str, college_id: str) -> CollegeAssignment:
        """Assignments of other colleges are reported as missing"""
        result = await self.db.execute(
            select(CollegeAssignment).where(
                CollegeAssignment.id == assignment_id,
                CollegeAssignment.college_id == college_id,
                CollegeAssignment.is_active == True,
            )
        )
        assignment = result.scalar_one_or_none()
        if not assignment:
            raise AssignmentNotFoundError(assignment_id)
        return assignment

    # =====================================================
    # TEST -> COLLEGE
    # =====================================================

    async def assign_to_colleges(self, test_id: str, college_ids: List[str], assigned_by: str) -> int:
        """
        Push a test to colleges. Colleges that already hold an active
        assignment for the test are skipped.

        Returns the number of newly created assignments.
        """
        test = await self._get_active_test(test_id)
        college_ids = _dedupe(college_ids)

        result = await self.db.execute(
            select(College).where(College.id.in_(college_ids), College.is_active == True)
        )
        colleges = {college.id: college for college in result.scalars().all()}
        missing = [college_id for college_id in college_ids if college_id not in colleges]
        if missing:
            raise ValidationError(
                "Some colleges not found or inactive",
                errors=[
                    {"field": "collegeIds", "message": f"College {college_id} not found or inactive"}
                    for college_id in missing
                ],
            )

        existing_result = await self.db.execute(
            select(CollegeAssignment.college_id).where(
                CollegeAssignment.test_id == test_id,
                CollegeAssignment.college_id.in_(college_ids),
                CollegeAssignment.is_active == True,
            )
        )
        already_assigned = set(existing_result.scalars().all())

        created = []
        for college_id in college_ids:
            if college_id in already_assigned:
                continue
            assignment = CollegeAssignment(
                test_id=test_id,
                test=test,
                college_id=college_id,
                college=colleges[college_id],
                assigned_by=assigned_by,
                status=AssignmentStatus.PENDING,
                is_active=True,
            )
            self.db.add(assignment)
            created.append(assignment)

        if created:
            await commit_or_fail(self.db, "college assignment", test_id=test_id)

        logger.info(
            f"[Directory] Test {test_id} assigned to {len(created)} colleges "
            f"({len(already_assigned)} already assigned)"
        )
        await self._notify([NotificationIntent.for_college(colleges[a.college_id], test) for a in created])
        return len(created)

    async def set_college_status(
        self,
        assignment_id: str,
        college_id: str,
        decision: AssignmentStatus,
    ) -> CollegeAssignment:
        """
        Accept or reject a pending assignment. Decisions are final.

        The write is conditional on the row still being pending, so of two
        racing decisions only one lands.
        """
        if decision not in (AssignmentStatus.ACCEPTED, AssignmentStatus.REJECTED):
            raise ValidationError("Status must be accepted or rejected", field="status")

        assignment = await self._get_college_assignment(assignment_id, college_id)
        if assignment.status != AssignmentStatus.PENDING:
            raise AssignmentStateError(assignment_id, assignment.status.value)

        decided_at = "accepted_at" if decision == AssignmentStatus.ACCEPTED else "rejected_at"
        result = await self.db.execute(
            update(CollegeAssignment)
            .where(
                CollegeAssignment.id == assignment_id,
                CollegeAssignment.status == AssignmentStatus.PENDING,
            )
            .values(status=decision, **{decided_at: self.clock()})
        )
        if result.rowcount != 1:
            await self.db.rollback()
            current = await self.db.scalar(
                select(CollegeAssignment.status).where(CollegeAssignment.id == assignment_id)
            )
            raise AssignmentStateError(assignment_id, current.value)
        await commit_or_fail(self.db, "assignment decision", assignment_id=assignment_id)
        await self.db.refresh(assignment, ["status", "accepted_at", "rejected_at"])

        logger.info(f"[Directory] College {college_id} {decision.value} assignment {assignment_id}")
        return assignment

    # =====================================================
    # COLLEGE -> STUDENTS
    # =====================================================

    async def find_students(self, college_id: str, filters: StudentFilters) -> List[User]:
        """Active students of the college matching any provided criterion"""
        if filters.is_empty:
            return []

        criteria = []
        if filters.branches:
            criteria.append(User.branch.in_(filters.branches))
        if filters.batches:
            criteria.append(User.batch.in_(filters.batches))
        if filters.sections:
            criteria.append(User.section.in_(filters.sections))
        if filters.specific_students:
            criteria.append(User.id.in_(filters.specific_students))

        result = await self.db.execute(
            select(User)
            .where(
                User.college_id == college_id,
                User.role == UserRole.STUDENT,
                User.is_active == True,
                or_(*criteria),
            )
            .order_by(User.full_name)
        )
        return list(result.scalars().all())

    async def resolve_students(
        self,
        college_assignment_id: str,
        college_id: str,
        filters: StudentFilters,
        assigned_by: str,
    ) -> int:
        """
        Resolve filters to concrete students and record one assignment each.

        Raises NoMatchError (and writes nothing) when nobody matches.
        """
        college_assignment = await self._get_college_assignment(college_assignment_id, college_id)
        if college_assignment.status != AssignmentStatus.ACCEPTED:
            raise AssignmentNotAcceptedError(college_assignment_id, college_assignment.status.value)

        students = await self.find_students(college_id, filters)
        if not students:
            raise NoMatchError()

        for student in students:
            self.db.add(StudentAssignment(
                test_id=college_assignment.test_id,
                test=college_assignment.test,
                college_id=college_id,
                college_assignment_id=college_assignment.id,
                student_id=student.id,
                student=student,
                assigned_by=assigned_by,
                status=AssignmentStatus.ACCEPTED,
                is_active=True,
            ))
        await commit_or_fail(self.db, "student assignment", college_assignment_id=college_assignment.id)

        logger.info(
            f"[Directory] Test {college_assignment.test_id} assigned to {len(students)} students "
            f"of college {college_id}"
        )
        test = college_assignment.test
        await self._notify([NotificationIntent.for_student(student, test) for student in students])
        return len(students)

    # =====================================================
    # READS
    # =====================================================

    async def list_for_college(
        self,
        college_id: str,
        test_type: Optional[str] = None,
        subject: Optional[str] = None,
    ) -> List[CollegeAssignment]:
        query = (
            select(CollegeAssignment)
            .join(TestDefinition, TestDefinition.id == CollegeAssignment.test_id)
            .where(CollegeAssignment.college_id == college_id, CollegeAssignment.is_active == True)
        )
        type_filter = parse_enum_filter(TestType, test_type, "testType")
        if type_filter:
            query = query.where(TestDefinition.test_type == type_filter)
        subject_filter = parse_enum_filter(Subject, subject, "subject")
        if subject_filter:
            query = query.where(TestDefinition.subject == subject_filter)

        result = await self.db.execute(query.order_by(CollegeAssignment.created_at.desc()))
        return list(result.scalars().all())

    async def list_for_student(
        self,
        student_id: str,
        test_type: Optional[str] = None,
        subject: Optional[str] = None,
    ) -> List[StudentAssignmentView]:
        """One row per assigned test with the derived per-student status"""
        query = (
            select(StudentAssignment)
            .join(TestDefinition, TestDefinition.id == StudentAssignment.test_id)
            .where(
                StudentAssignment.student_id == student_id,
                StudentAssignment.status == AssignmentStatus.ACCEPTED,
                StudentAssignment.is_active == True,
            )
        )
        type_filter = parse_enum_filter(TestType, test_type, "testType")
        if type_filter:
            query = query.where(TestDefinition.test_type == type_filter)
        subject_filter = parse_enum_filter(Subject, subject, "subject")
        if subject_filter:
            query = query.where(TestDefinition.subject == subject_filter)

        result = await self.db.execute(query.order_by(StudentAssignment.created_at.desc()))

        # Newest assignment row wins when targeting ran more than once
        by_test: Dict[str, StudentAssignment] = {}
        for assignment in result.scalars().all():
            by_test.setdefault(assignment.test_id, assignment)
        if not by_test:
            return []

        attempt_result = await self.db.execute(
            select(TestAttempt).where(
                TestAttempt.student_id == student_id,
                TestAttempt.test_id.in_(list(by_test.keys())),
            )
        )
        attempts = {attempt.test_id: attempt for attempt in attempt_result.scalars().all()}

        now = self.clock()
        views = []
        for test_id, assignment in by_test.items():
            attempt = attempts.get(test_id)
            views.append(StudentAssignmentView(
                id=assignment.id,
                test=TestSummary.from_test(assignment.test),
                status=derive_student_status(True, attempt is not None, assignment.test.end_at, now),
                has_attempted=attempt is not None,
                attempt=AttemptSummary.from_attempt(attempt) if attempt else None,
                assigned_at=assignment.created_at,
            ))
        return views

    async def is_assigned(self, test_id: str, student_id: str) -> bool:
        result = await self.db.execute(
            select(StudentAssignment.id).where(
                StudentAssignment.test_id == test_id,
                StudentAssignment.student_id == student_id,
                StudentAssignment.status == AssignmentStatus.ACCEPTED,
                StudentAssignment.is_active == True,
            ).limit(1)
        )
        return result.scalar_one_or_none() is not None
