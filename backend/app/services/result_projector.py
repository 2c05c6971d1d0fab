"""
Result Projector Service
Builds per-test statistics and performance summaries from stored attempts.

Pure reads: nothing here writes to the database or caches results. The pass
threshold only exists for these aggregates and is not enforced anywhere else.
"""

from collections import defaultdict
from typing import List, Optional, Dict, Iterable
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import Clock, utc_now
from app.core.config import settings
from app.core.exceptions import TestNotFoundError
from app.models.test_assignment import CollegeAssignment, StudentAssignment
from app.models.test_attempt import TestAttempt, derive_student_status
from app.models.test_catalog import TestDefinition
from app.models.user import User, UserRole
from app.schemas.reports import (
    AttemptHistoryItem,
    CollegePerformance,
    GroupSummary,
    PerformanceOverview,
    ScoreStatistics,
    StudentPerformance,
    StudentPerformanceSummary,
    StudentReportRow,
    TestReport,
    TestStatistics,
)
from app.schemas.test_catalog import TestSummary

UNSPECIFIED_GROUP = "Unspecified"


def _rate(part: int, whole: int) -> float:
    return round(part / whole * 100, 2) if whole else 0.0


def _mean(values: List[float]) -> float:
    return round(sum(values) / len(values), 2) if values else 0.0


def score_statistics(percentages: Iterable[float], pass_percentage: float) -> ScoreStatistics:
    """Average / high / low / pass rate over a set of attempt percentages"""
    values = list(percentages)
    if not values:
        return ScoreStatistics()
    passed = sum(1 for value in values if value >= pass_percentage)
    return ScoreStatistics(
        average_score=_mean(values),
        highest_score=max(values),
        lowest_score=min(values),
        pass_rate=_rate(passed, len(values)),
        passed_students=passed,
    )


class ResultProjectorService:
    """Service for reports over tests, colleges and students"""

    def __init__(
        self,
        db: AsyncSession,
        clock: Clock = utc_now,
        pass_percentage: Optional[float] = None,
    ):
        self.db = db
        self.clock = clock
        self.pass_percentage = settings.REPORT_PASS_PERCENTAGE if pass_percentage is None else pass_percentage

    async def _attempts_by_student(self, student_ids: List[str], test_id: Optional[str] = None) -> Dict[str, List[TestAttempt]]:
        if not student_ids:
            return {}
        query = select(TestAttempt).where(TestAttempt.student_id.in_(student_ids))
        if test_id:
            query = query.where(TestAttempt.test_id == test_id)
        result = await self.db.execute(query.order_by(TestAttempt.end_time.desc()))

        grouped: Dict[str, List[TestAttempt]] = defaultdict(list)
        for attempt in result.scalars().all():
            grouped[attempt.student_id].append(attempt)
        return grouped

    # =====================================================
    # PER-TEST REPORT
    # =====================================================

    async def test_report(self, test_id: str, college_id: Optional[str] = None) -> TestReport:
        """
        Statistics and one row per assigned student.

        With ``college_id`` the report covers that college only, and the
        test must have been pushed to it.
        """
        result = await self.db.execute(select(TestDefinition).where(TestDefinition.id == test_id))
        test = result.scalar_one_or_none()
        if not test:
            raise TestNotFoundError(test_id)

        if college_id:
            pushed = await self.db.execute(
                select(CollegeAssignment.id).where(
                    CollegeAssignment.test_id == test_id,
                    CollegeAssignment.college_id == college_id,
                    CollegeAssignment.is_active == True,
                ).limit(1)
            )
            if pushed.scalar_one_or_none() is None:
                raise TestNotFoundError(test_id)

        query = select(StudentAssignment.student_id).where(
            StudentAssignment.test_id == test_id,
            StudentAssignment.is_active == True,
        )
        if college_id:
            query = query.where(StudentAssignment.college_id == college_id)
        student_ids = list((await self.db.execute(query.distinct())).scalars().all())

        students: List[User] = []
        if student_ids:
            student_result = await self.db.execute(
                select(User).where(User.id.in_(student_ids)).order_by(User.full_name)
            )
            students = list(student_result.scalars().all())
        attempts = await self._attempts_by_student(student_ids, test_id)

        now = self.clock()
        rows = []
        completed = []
        for student in students:
            attempt = attempts.get(student.id, [None])[0]
            if attempt:
                completed.append(attempt)
            rows.append(StudentReportRow(
                student_id=student.id,
                name=student.full_name,
                email=student.email,
                id_number=student.id_number,
                branch=student.branch,
                batch=student.batch,
                section=student.section,
                status=derive_student_status(True, attempt is not None, test.end_at, now),
                marks_obtained=attempt.marks_obtained if attempt else 0,
                total_marks=attempt.total_marks if attempt else test.total_marks,
                percentage=attempt.percentage if attempt else 0.0,
                time_spent=attempt.time_spent_minutes if attempt else 0,
                submitted_at=attempt.end_time if attempt else None,
            ))

        scores = score_statistics((a.percentage for a in completed), self.pass_percentage)
        statistics = TestStatistics(
            **scores.model_dump(),
            total_assigned=len(students),
            total_completed=len(completed),
            completion_rate=_rate(len(completed), len(students)),
            pass_percentage=self.pass_percentage,
        )
        return TestReport(
            test=TestSummary.from_test(test),
            college_id=college_id,
            statistics=statistics,
            students=rows,
        )

    # =====================================================
    # COLLEGE PERFORMANCE
    # =====================================================

    def _group(self, summaries: List[StudentPerformanceSummary], attribute: str,
               percentages: Dict[str, List[float]]) -> List[GroupSummary]:
        buckets: Dict[str, List[StudentPerformanceSummary]] = defaultdict(list)
        for summary in summaries:
            buckets[getattr(summary, attribute) or UNSPECIFIED_GROUP].append(summary)

        groups = []
        for name in sorted(buckets):
            members = buckets[name]
            values = [value for member in members for value in percentages[member.student_id]]
            groups.append(GroupSummary(
                name=name,
                students=len(members),
                students_attempted=sum(1 for member in members if member.attempts),
                attempts=len(values),
                average_percentage=_mean(values),
                pass_rate=score_statistics(values, self.pass_percentage).pass_rate,
            ))
        return groups

    async def college_performance(
        self,
        college_id: str,
        batch: Optional[str] = None,
        branch: Optional[str] = None,
        section: Optional[str] = None,
    ) -> CollegePerformance:
        """Per-student summaries of a college, grouped by branch, batch and section"""
        query = select(User).where(
            User.college_id == college_id,
            User.role == UserRole.STUDENT,
            User.is_active == True,
        )
        if batch:
            query = query.where(User.batch == batch)
        if branch:
            query = query.where(User.branch == branch)
        if section:
            query = query.where(User.section == section)
        students = list((await self.db.execute(query.order_by(User.full_name))).scalars().all())

        attempts = await self._attempts_by_student([student.id for student in students])

        summaries = []
        percentages: Dict[str, List[float]] = {}
        for student in students:
            student_attempts = attempts.get(student.id, [])
            percentages[student.id] = [attempt.percentage for attempt in student_attempts]
            summaries.append(StudentPerformanceSummary(
                student_id=student.id,
                name=student.full_name,
                id_number=student.id_number,
                branch=student.branch,
                batch=student.batch,
                section=student.section,
                attempts=len(student_attempts),
                average_percentage=_mean(percentages[student.id]),
                marks_obtained=sum(attempt.marks_obtained for attempt in student_attempts),
                total_marks=sum(attempt.total_marks for attempt in student_attempts),
            ))

        all_values = [value for values in percentages.values() for value in values]
        overview = PerformanceOverview(
            total_students=len(summaries),
            students_attempted=sum(1 for summary in summaries if summary.attempts),
            total_attempts=len(all_values),
            average_percentage=_mean(all_values),
            pass_rate=score_statistics(all_values, self.pass_percentage).pass_rate,
        )
        return CollegePerformance(
            college_id=college_id,
            overall=overview,
            students=summaries,
            by_branch=self._group(summaries, "branch", percentages),
            by_batch=self._group(summaries, "batch", percentages),
            by_section=self._group(summaries, "section", percentages),
        )

    # =====================================================
    # STUDENT HISTORY
    # =====================================================

    async def student_performance(self, student_id: str) -> StudentPerformance:
        attempts = (await self._attempts_by_student([student_id])).get(student_id, [])
        history = [
            AttemptHistoryItem(
                attempt_id=attempt.id,
                test_id=attempt.test_id,
                test_name=attempt.test.name,
                subject=attempt.test.subject,
                test_type=attempt.test.test_type,
                marks_obtained=attempt.marks_obtained,
                total_marks=attempt.total_marks,
                percentage=attempt.percentage,
                time_spent=attempt.time_spent_minutes,
                submitted_at=attempt.end_time,
            )
            for attempt in attempts
        ]
        values = [item.percentage for item in history]
        return StudentPerformance(
            student_id=student_id,
            total_attempts=len(history),
            average_percentage=_mean(values),
            highest_percentage=max(values) if values else 0.0,
            marks_obtained=sum(item.marks_obtained for item in history),
            total_marks=sum(item.total_marks for item in history),
            attempts=history,
        )
