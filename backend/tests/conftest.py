"""
CollegeSync - Test Configuration and Fixtures
"""
import os
from datetime import datetime, timedelta
from typing import AsyncGenerator, Callable, List, Optional
import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool
from faker import Faker

# Set testing environment
os.environ['ENVIRONMENT'] = 'testing'
os.environ['DATABASE_URL'] = 'sqlite+aiosqlite:///./test.db'
os.environ['SECRET_KEY'] = 'test-secret-key-for-testing-only'
os.environ['JWT_SECRET_KEY'] = 'test-jwt-secret-key-for-testing'
os.environ['NOTIFICATIONS_ENABLED'] = 'false'

from app.main import app
from app.core.clock import get_clock
from app.core.database import Base, get_db
from app.core.security import create_access_token
from app.models.college import College
from app.models.test_assignment import AssignmentStatus
from app.models.test_catalog import TestDefinition, TestType
from app.models.user import User, UserRole
from app.schemas.test_assignment import StudentFilters
from app.schemas.test_catalog import TestCreate
from app.services.assignment_directory import AssignmentDirectoryService
from app.services.notification_service import NotificationService, get_notification_service
from app.services.test_catalog import TestCatalogService

fake = Faker()

# Test database setup
TEST_DATABASE_URL = 'sqlite+aiosqlite:///./test.db'
test_engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=NullPool)
TestSessionLocal = async_sessionmaker(
    bind=test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

NOW = datetime(2026, 3, 2, 10, 0, 0)


class FrozenClock:
    """Callable wall clock that only moves when told to"""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, value: datetime) -> None:
        self.now = value

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class RecordingNotifier(NotificationService):
    """Renders every intent like the real notifier but keeps the emails in memory"""

    def __init__(self, fail: bool = False):
        super().__init__()
        self.fail = fail
        self.sent: List[dict] = []

    async def send_email(self, to_email, subject, html_content, text_content=None) -> bool:
        if self.fail:
            raise ConnectionError("SMTP server unreachable")
        self.sent.append({'to': to_email, 'subject': subject, 'text': text_content})
        return True


def build_questions(count: int, correct: str = 'B') -> List[dict]:
    return [
        {
            'questionText': f'Question {index + 1}?',
            'options': {'A': f'a{index}', 'B': f'b{index}', 'C': f'c{index}', 'D': f'd{index}'},
            'correctAnswer': correct,
        }
        for index in range(count)
    ]


def build_test_payload(
    start: datetime,
    end: datetime,
    count: int = 2,
    marks: int = 5,
    test_type: str = 'Assessment',
    **overrides,
) -> dict:
    payload = {
        'testName': 'Aptitude Round 1',
        'testDescription': 'Quantitative aptitude screening test',
        'subject': 'Arithmetic',
        'testType': test_type,
        'topics': ['percentages', 'ratios'],
        'difficulty': 'Medium',
        'numberOfQuestions': count,
        'marksPerQuestion': marks,
        'duration': 30,
        'startDateTime': start.isoformat(),
        'endDateTime': end.isoformat(),
        'questions': build_questions(count),
    }
    payload.update(overrides)
    return payload


@pytest.fixture(scope='function')
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for each test"""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionLocal() as session:
        yield session
        await session.rollback()

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
async def client(
    db_session: AsyncSession,
    clock: FrozenClock,
    notifier: RecordingNotifier,
) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with database, clock and notifier overrides"""
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_notification_service] = lambda: notifier

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url='http://test') as ac:
        yield ac

    app.dependency_overrides.clear()


# ============================================
# Users and colleges
# ============================================

@pytest.fixture
def make_college(db_session: AsyncSession) -> Callable:
    async def factory(is_active: bool = True, email: Optional[str] = None) -> College:
        college = College(
            name=f'{fake.last_name()} Institute of Technology',
            code=fake.unique.bothify('COL-####'),
            email=email or fake.email(),
            is_active=is_active,
        )
        db_session.add(college)
        await db_session.commit()
        return college
    return factory


@pytest.fixture
def make_user(db_session: AsyncSession) -> Callable:
    async def factory(
        role: UserRole = UserRole.STUDENT,
        college: Optional[College] = None,
        branch: Optional[str] = None,
        batch: Optional[str] = None,
        section: Optional[str] = None,
        is_active: bool = True,
    ) -> User:
        user = User(
            email=fake.unique.email(),
            full_name=fake.name(),
            role=role,
            is_active=is_active,
            college_id=college.id if college else None,
            id_number=fake.unique.bothify('ROLL-#####') if role == UserRole.STUDENT else None,
            branch=branch,
            batch=batch,
            section=section,
        )
        db_session.add(user)
        await db_session.commit()
        return user
    return factory


@pytest.fixture
async def college(make_college) -> College:
    return await make_college()


@pytest.fixture
async def master_admin(make_user) -> User:
    return await make_user(role=UserRole.MASTER_ADMIN)


@pytest.fixture
async def college_admin(make_user, college: College) -> User:
    return await make_user(role=UserRole.COLLEGE_ADMIN, college=college)


@pytest.fixture
async def student(make_user, college: College) -> User:
    return await make_user(college=college, branch='CSE', batch='2026', section='A')


def headers_for(user: User) -> dict:
    token_data = {
        'sub': str(user.id),
        'email': user.email,
        'role': user.role.value
    }
    token = create_access_token(token_data)
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def master_headers(master_admin: User) -> dict:
    return headers_for(master_admin)


@pytest.fixture
def college_admin_headers(college_admin: User) -> dict:
    return headers_for(college_admin)


@pytest.fixture
def student_headers(student: User) -> dict:
    return headers_for(student)


# ============================================
# Tests and assignments
# ============================================

@pytest.fixture
def make_test(db_session: AsyncSession, master_admin: User, clock: FrozenClock) -> Callable:
    """Create a test whose window is open at the frozen clock by default"""
    async def factory(
        count: int = 2,
        marks: int = 5,
        test_type: TestType = TestType.ASSESSMENT,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        **overrides,
    ) -> TestDefinition:
        start = start or clock.now - timedelta(hours=1)
        end = end or clock.now + timedelta(hours=2)
        payload = TestCreate.model_validate(
            build_test_payload(start, end, count=count, marks=marks, test_type=test_type.value, **overrides)
        )
        return await TestCatalogService(db_session).create_test(payload, creator_id=master_admin.id)
    return factory


@pytest.fixture
def assign_test(db_session: AsyncSession, master_admin: User, clock: FrozenClock) -> Callable:
    """Push a test to the student's college, accept it and target the students"""
    async def assign(test: TestDefinition, *students: User) -> None:
        directory = AssignmentDirectoryService(db_session, clock=clock)
        college_id = students[0].college_id
        await directory.assign_to_colleges(test.id, [college_id], assigned_by=master_admin.id)
        assignments = await directory.list_for_college(college_id)
        college_assignment = next(a for a in assignments if a.test_id == test.id)
        await directory.set_college_status(college_assignment.id, college_id, AssignmentStatus.ACCEPTED)
        await directory.resolve_students(
            college_assignment.id,
            college_id,
            StudentFilters(specific_students=[s.id for s in students]),
            assigned_by=master_admin.id,
        )
    return assign


@pytest.fixture
async def assigned_test(make_test, assign_test, student: User) -> TestDefinition:
    test = await make_test()
    await assign_test(test, student)
    return test


@pytest.fixture
def payload_for(clock: FrozenClock) -> Callable:
    """camelCase authoring payload, open at the frozen clock unless start/end are given"""
    def factory(start: Optional[datetime] = None, end: Optional[datetime] = None, **kwargs) -> dict:
        return build_test_payload(
            start or clock.now - timedelta(hours=1),
            end or clock.now + timedelta(hours=2),
            **kwargs,
        )
    return factory


@pytest.fixture
def auth_headers_for() -> Callable:
    return headers_for
