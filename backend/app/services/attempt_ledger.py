"""
Attempt Ledger Service
======================
Owns the one-attempt-per-student rule, window enforcement and grading.

Beginning an attempt is a read-only eligibility check; nothing is stored
until submission. A submission is graded and persisted in one transaction,
and the UNIQUE(test_id, student_id) constraint on test_attempts settles
concurrent submissions for the same pair.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional, Dict
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import Clock, utc_now
from app.core.config import settings
from app.core.exceptions import (
    AlreadyAttemptedError,
    AttemptNotFoundError,
    DependencyFailure,
    NotAssignedError,
    TestNotFoundError,
    UnknownQuestionError,
    ValidationError,
    WindowError,
)
from app.core.logging_config import logger
from app.models.test_assignment import StudentAssignment, AssignmentStatus
from app.models.test_attempt import TestAttempt, AttemptAnswer, AttemptStatus
from app.models.test_catalog import TestDefinition, TestQuestion
from app.schemas.test_attempt import (
    AnswerSubmission,
    AttemptDetail,
    AttemptResults,
    AttemptSnapshot,
    BeginAttemptResponse,
    InstantFeedbackItem,
    QuestionAnalysis,
    SubmitAttemptResponse,
)
from app.schemas.test_catalog import StudentTestView

SELECTED_ANSWER_MAX_LENGTH = 16


# ============================================
# Grading (pure)
# ============================================

@dataclass
class GradedAnswer:
    question: TestQuestion
    selected_answer: Optional[str]
    is_correct: bool
    marks_obtained: int
    time_spent: int


def check_answer_set(test: TestDefinition, answers: List[AnswerSubmission]) -> Dict[str, TestQuestion]:
    """
    Reject answer arrays that cannot be graded as a whole submission.
    Returns the test's questions keyed by id.
    """
    if len(answers) != test.question_count:
        raise ValidationError(
            "All questions must be answered",
            field="answers",
            errors=[{
                "field": "answers",
                "message": f"Expected {test.question_count} answers, got {len(answers)}",
            }],
        )

    questions = {question.id: question for question in test.questions}
    seen = set()
    for answer in answers:
        if answer.question_id not in questions:
            raise UnknownQuestionError(answer.question_id)
        if answer.question_id in seen:
            raise ValidationError(f"Duplicate answer for question {answer.question_id}", field="answers")
        seen.add(answer.question_id)
    return questions


def grade_answers(questions: Dict[str, TestQuestion], answers: List[AnswerSubmission]) -> List[GradedAnswer]:
    """Compare each selection with the correct label. Unrecognised labels are simply wrong."""
    graded = []
    for answer in answers:
        question = questions[answer.question_id]
        is_correct = answer.selected_answer is not None and answer.selected_answer == question.correct_answer
        graded.append(GradedAnswer(
            question=question,
            selected_answer=answer.selected_answer,
            is_correct=is_correct,
            marks_obtained=question.marks if is_correct else 0,
            time_spent=answer.time_spent,
        ))
    return graded


def summarize(graded: List[GradedAnswer], total_marks: int) -> AttemptSnapshot:
    marks_obtained = sum(answer.marks_obtained for answer in graded)
    correct = sum(1 for answer in graded if answer.is_correct)
    percentage = round(marks_obtained / total_marks * 100, 2) if total_marks else 0.0
    return AttemptSnapshot(
        marks_obtained=marks_obtained,
        correct_answers=correct,
        incorrect_answers=len(graded) - correct,
        percentage=percentage,
    )


def explain(question: TestQuestion) -> str:
    return f"The correct answer is {question.correct_answer}: {question.option_text(question.correct_answer)}"


def build_feedback(graded: List[GradedAnswer]) -> List[InstantFeedbackItem]:
    return [
        InstantFeedbackItem(
            question_id=answer.question.id,
            question_text=answer.question.question_text,
            options=dict(answer.question.options),
            selected_answer=answer.selected_answer,
            correct_answer=answer.question.correct_answer,
            is_correct=answer.is_correct,
            explanation=explain(answer.question),
        )
        for answer in graded
    ]


# ============================================
# Ledger
# ============================================

class AttemptLedgerService:
    """Service for beginning, submitting and reviewing test attempts"""

    def __init__(
        self,
        db: AsyncSession,
        clock: Clock = utc_now,
        submission_grace_seconds: Optional[int] = None,
    ):
        self.db = db
        self.clock = clock
        if submission_grace_seconds is None:
            submission_grace_seconds = settings.SUBMISSION_GRACE_SECONDS
        self.submission_grace = timedelta(seconds=submission_grace_seconds)

    async def _find_attempt(self, test_id: str, student_id: str) -> Optional[TestAttempt]:
        result = await self.db.execute(
            select(TestAttempt).where(TestAttempt.test_id == test_id, TestAttempt.student_id == student_id)
        )
        return result.scalar_one_or_none()

    async def _authorize(self, test_id: str, student_id: str, already_message: str) -> TestDefinition:
        """Assignment, then idempotency, then existence"""
        assignment = await self.db.execute(
            select(StudentAssignment.id).where(
                StudentAssignment.test_id == test_id,
                StudentAssignment.student_id == student_id,
                StudentAssignment.status == AssignmentStatus.ACCEPTED,
                StudentAssignment.is_active == True,
            ).limit(1)
        )
        if assignment.scalar_one_or_none() is None:
            raise NotAssignedError(test_id)

        if await self._find_attempt(test_id, student_id):
            raise AlreadyAttemptedError(test_id, already_message)

        result = await self.db.execute(select(TestDefinition).where(TestDefinition.id == test_id))
        test = result.scalar_one_or_none()
        if not test:
            raise TestNotFoundError(test_id)
        return test

    @staticmethod
    def check_window(test: TestDefinition, now: datetime, grace: timedelta = timedelta(0)) -> None:
        """Open on [start_at, end_at + grace)"""
        if now < test.start_at:
            raise WindowError(WindowError.NOT_STARTED)
        if now >= test.end_at + grace:
            raise WindowError(WindowError.ENDED)

    async def begin_attempt(self, test_id: str, student_id: str) -> BeginAttemptResponse:
        """Eligibility check. Returns the questions without answers and the server start instant."""
        test = await self._authorize(test_id, student_id, "Test already attempted")
        now = self.clock()
        self.check_window(test, now)

        logger.info(f"[Ledger] Student {student_id} began test {test_id}")
        return BeginAttemptResponse(test=StudentTestView.from_test(test), start_time=now)

    async def submit_attempt(
        self,
        test_id: str,
        student_id: str,
        college_id: Optional[str],
        answers: List[AnswerSubmission],
        declared_start_time: datetime,
        declared_time_spent: int,
    ) -> SubmitAttemptResponse:
        """Grade and persist exactly one attempt for the pair, or nothing at all"""
        test = await self._authorize(test_id, student_id, "Test already submitted")
        now = self.clock()
        self.check_window(test, now, self.submission_grace)

        questions = check_answer_set(test, answers)
        graded = grade_answers(questions, answers)
        snapshot = summarize(graded, test.total_marks)

        attempt = TestAttempt(
            test_id=test_id,
            test=test,
            student_id=student_id,
            college_id=college_id,
            start_time=declared_start_time,
            time_spent_minutes=declared_time_spent,
            end_time=now,
            total_marks=test.total_marks,
            marks_obtained=snapshot.marks_obtained,
            percentage=snapshot.percentage,
            correct_answers=snapshot.correct_answers,
            incorrect_answers=snapshot.incorrect_answers,
            status=AttemptStatus.COMPLETED,
        )
        attempt.answers = [
            AttemptAnswer(
                question_id=answer.question.id,
                order_index=index,
                selected_answer=answer.selected_answer[:SELECTED_ANSWER_MAX_LENGTH] if answer.selected_answer else None,
                is_correct=answer.is_correct,
                marks_obtained=answer.marks_obtained,
                time_spent=answer.time_spent,
            )
            for index, answer in enumerate(graded)
        ]
        self.db.add(attempt)

        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            logger.warning(f"[Ledger] Concurrent submission rejected for test {test_id}, student {student_id}")
            raise AlreadyAttemptedError(test_id, "Test already submitted")
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.log_error_with_context(e, "attempt submission", test_id=test_id, student_id=student_id)
            raise DependencyFailure("database", "Could not record the attempt")

        logger.info(
            f"[Ledger] Attempt submitted: test {test_id}, student {student_id}, "
            f"{snapshot.marks_obtained}/{test.total_marks} ({snapshot.percentage}%)"
        )

        return SubmitAttemptResponse(
            test_type=test.test_type,
            results=AttemptResults(
                total_marks=attempt.total_marks,
                marks_obtained=attempt.marks_obtained,
                percentage=attempt.percentage,
                correct_answers=attempt.correct_answers,
                incorrect_answers=attempt.incorrect_answers,
                time_spent=attempt.time_spent_minutes,
                submitted_at=attempt.end_time,
            ),
            instant_feedback=build_feedback(graded) if test.is_practice else None,
        )

    async def get_results(self, test_id: str, student_id: str) -> AttemptDetail:
        """Full per-question breakdown of the student's own attempt"""
        attempt = await self._find_attempt(test_id, student_id)
        if not attempt:
            raise AttemptNotFoundError(test_id)

        test = attempt.test
        answers = {answer.question_id: answer for answer in attempt.answers}
        analysis = []
        for question in test.questions:
            answer = answers.get(question.id)
            analysis.append(QuestionAnalysis(
                question_id=question.id,
                question_text=question.question_text,
                options=dict(question.options),
                correct_answer=question.correct_answer,
                student_answer=answer.selected_answer if answer else None,
                is_correct=bool(answer and answer.is_correct),
                marks_obtained=answer.marks_obtained if answer else 0,
                marks=question.marks,
            ))

        return AttemptDetail(
            id=attempt.id,
            test_id=test.id,
            test_name=test.name,
            subject=test.subject.value,
            test_type=test.test_type,
            total_marks=attempt.total_marks,
            marks_obtained=attempt.marks_obtained,
            percentage=attempt.percentage,
            correct_answers=attempt.correct_answers,
            incorrect_answers=attempt.incorrect_answers,
            start_time=attempt.start_time,
            end_time=attempt.end_time,
            time_spent=attempt.time_spent_minutes,
            status=attempt.status.value,
            submitted_at=attempt.end_time,
            question_analysis=analysis,
        )
