"""
Reports API - test statistics and performance summaries
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from app.core.clock import Clock, get_clock
from app.core.database import get_db
from app.core.exceptions import AuthorizationError
from app.models.user import User, UserRole
from app.modules.auth.dependencies import (
    get_current_user,
    get_current_college_staff,
    get_current_student,
)
from app.schemas.reports import CollegePerformance, StudentPerformance, TestReport
from app.services.result_projector import ResultProjectorService

router = APIRouter(prefix="/reports", tags=["Reports"])


@router.get("/tests/{test_id}", response_model=TestReport)
async def test_report(
    test_id: str,
    college_id: Optional[str] = Query(None, alias="collegeId"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """
    Per-test statistics.
    Master admins see every college (or one via collegeId);
    college staff always see their own college only.
    """
    if current_user.role == UserRole.MASTER_ADMIN:
        scope = college_id
    elif current_user.role in (UserRole.COLLEGE_ADMIN, UserRole.FACULTY) and current_user.college_id:
        scope = current_user.college_id
    else:
        raise AuthorizationError("Reports are available to administrators and faculty")

    projector = ResultProjectorService(db, clock=clock)
    return await projector.test_report(test_id, college_id=scope)


@router.get("/college/performance", response_model=CollegePerformance)
async def college_performance(
    batch: Optional[str] = Query(None),
    branch: Optional[str] = Query(None),
    section: Optional[str] = Query(None),
    current_user: User = Depends(get_current_college_staff),
    db: AsyncSession = Depends(get_db),
):
    """Student performance across the college, grouped by branch, batch and section"""
    projector = ResultProjectorService(db)
    return await projector.college_performance(current_user.college_id, batch=batch, branch=branch, section=section)


@router.get("/student/performance", response_model=StudentPerformance)
async def student_performance(
    current_user: User = Depends(get_current_student),
    db: AsyncSession = Depends(get_db),
):
    """The current student's attempt history"""
    return await ResultProjectorService(db).student_performance(current_user.id)
