"""
Unit Tests for the Test Catalog Service
"""
import pytest
from datetime import timedelta
from sqlalchemy import select, func

from app.core.exceptions import ValidationError, TestNotFoundError
from app.models.test_catalog import TestDefinition, TestQuestion, TestType, DEFAULT_SECTION_NAME
from app.schemas.test_catalog import TestCreate, StudentTestView
from app.services.test_catalog import TestCatalogService, validate_definition


def _payload(payload_for, **kwargs) -> TestCreate:
    return TestCreate.model_validate(payload_for(**kwargs))


def _error_fields(exc: ValidationError) -> set:
    return {error['field'] for error in exc.details['errors']}


class TestValidateDefinition:
    """Pure validation of authoring payloads"""

    def test_valid_flat_payload_has_no_errors(self, payload_for):
        assert validate_definition(_payload(payload_for)) == []

    def test_question_count_mismatch(self, payload_for):
        payload = _payload(payload_for, count=3)
        payload.questions = payload.questions[:2]

        errors = validate_definition(payload)

        assert [e['field'] for e in errors] == ['questions']

    def test_start_must_precede_end(self, payload_for, clock):
        errors = validate_definition(_payload(payload_for, start=clock.now, end=clock.now))

        assert any(e['field'] == 'endDateTime' for e in errors)

    def test_missing_option_and_bad_answer_are_reported_per_field(self, payload_for):
        raw = payload_for()
        raw['questions'][1]['options'].pop('C')
        raw['questions'][1]['correctAnswer'] = 'E'

        errors = validate_definition(TestCreate.model_validate(raw))

        fields = {e['field'] for e in errors}
        assert 'questions[1].options.C' in fields
        assert 'questions[1].correctAnswer' in fields

    def test_company_test_requires_company_name(self, payload_for):
        payload = _payload(payload_for, test_type=TestType.COMPANY_TEST.value)

        errors = validate_definition(payload)

        assert [e['field'] for e in errors] == ['companyName']


class TestCreateTest:
    """Persisting test definitions"""

    @pytest.mark.asyncio
    async def test_totals_are_computed(self, db_session, payload_for, master_admin):
        """totalMarks == questionCount x marksPerQuestion"""
        catalog = TestCatalogService(db_session)

        test = await catalog.create_test(_payload(payload_for, count=4, marks=3), master_admin.id)

        assert test.question_count == 4
        assert test.marks_per_question == 3
        assert test.total_marks == 12
        assert len(test.questions) == 4
        assert test.is_active is True
        assert [s.name for s in test.sections] == [DEFAULT_SECTION_NAME]
        assert all(q.marks == 3 for q in test.questions)

    @pytest.mark.asyncio
    async def test_invalid_definition_persists_nothing(self, db_session, payload_for, master_admin):
        catalog = TestCatalogService(db_session)
        raw = payload_for()
        raw['questions'][0]['correctAnswer'] = None

        with pytest.raises(ValidationError) as exc_info:
            await catalog.create_test(TestCreate.model_validate(raw), master_admin.id)

        assert _error_fields(exc_info.value) == {'questions[0].correctAnswer'}
        tests = await db_session.execute(select(func.count()).select_from(TestDefinition))
        questions = await db_session.execute(select(func.count()).select_from(TestQuestion))
        assert tests.scalar() == 0
        assert questions.scalar() == 0

    @pytest.mark.asyncio
    async def test_sectioned_totals_sum_over_sections(self, db_session, payload_for, master_admin):
        raw = payload_for()
        raw.update({
            'numberOfQuestions': None,
            'marksPerQuestion': None,
            'duration': None,
            'questions': [],
            'sections': [
                {
                    'sectionName': 'Quant',
                    'sectionDuration': 20,
                    'numberOfQuestions': 2,
                    'marksPerQuestion': 2,
                    'questions': payload_for(count=2)['questions'],
                },
                {
                    'sectionName': 'Verbal',
                    'sectionDuration': 10,
                    'numberOfQuestions': 3,
                    'marksPerQuestion': 4,
                    'questions': payload_for(count=3)['questions'],
                },
            ],
        })

        test = await TestCatalogService(db_session).create_test(TestCreate.model_validate(raw), master_admin.id)

        assert test.has_sections is True
        assert test.question_count == 5
        assert test.duration_minutes == 30
        assert test.total_marks == 2 * 2 + 3 * 4
        assert test.marks_per_question is None
        assert [s.name for s in test.sections] == ['Quant', 'Verbal']

    @pytest.mark.asyncio
    async def test_section_question_mismatch_is_rejected(self, db_session, payload_for, master_admin):
        raw = payload_for()
        raw['sections'] = [{
            'sectionName': 'Quant',
            'sectionDuration': 20,
            'numberOfQuestions': 3,
            'marksPerQuestion': 2,
            'questions': payload_for(count=2)['questions'],
        }]

        with pytest.raises(ValidationError) as exc_info:
            await TestCatalogService(db_session).create_test(TestCreate.model_validate(raw), master_admin.id)

        assert 'sections[0].questions' in _error_fields(exc_info.value)

    @pytest.mark.asyncio
    async def test_company_name_only_stored_for_company_tests(self, db_session, payload_for, master_admin):
        catalog = TestCatalogService(db_session)

        practice = await catalog.create_test(
            _payload(payload_for, test_type='Practice', companyName='Acme'), master_admin.id
        )
        company = await catalog.create_test(
            _payload(payload_for, test_type='Specific Company Test', companyName=' Acme '), master_admin.id
        )

        assert practice.company_name is None
        assert company.company_name == 'Acme'


class TestReadAndDeactivate:
    """Reads, listing filters and soft deactivation"""

    @pytest.mark.asyncio
    async def test_get_unknown_test_raises(self, db_session):
        with pytest.raises(TestNotFoundError):
            await TestCatalogService(db_session).get_test('00000000-0000-0000-0000-000000000000')

    @pytest.mark.asyncio
    async def test_list_filters_and_all_sentinel(self, db_session, make_test):
        await make_test(test_type=TestType.PRACTICE)
        await make_test(test_type=TestType.ASSESSMENT)
        catalog = TestCatalogService(db_session)

        assert len(await catalog.list_tests()) == 2
        assert len(await catalog.list_tests(test_type='all', subject='all')) == 2
        practice = await catalog.list_tests(test_type='Practice')
        assert [t.test_type for t in practice] == [TestType.PRACTICE]
        assert await catalog.list_tests(subject='Verbal') == []

    @pytest.mark.asyncio
    async def test_unknown_filter_value_is_a_validation_error(self, db_session):
        with pytest.raises(ValidationError):
            await TestCatalogService(db_session).list_tests(test_type='Quiz')

    @pytest.mark.asyncio
    async def test_deactivated_test_is_hidden_but_resolvable(self, db_session, make_test):
        test = await make_test()
        catalog = TestCatalogService(db_session)

        await catalog.deactivate_test(test.id)

        assert await catalog.list_tests() == []
        resolved = await catalog.get_test(test.id)
        assert resolved.is_active is False
        with pytest.raises(TestNotFoundError):
            await catalog.get_test(test.id, active_only=True)

    @pytest.mark.asyncio
    async def test_student_view_never_contains_answers(self, db_session, make_test):
        test = await make_test(count=3)

        view = await TestCatalogService(db_session).get_student_view(test.id)
        dumped = view.model_dump(by_alias=True)

        assert isinstance(view, StudentTestView)
        assert len(dumped['questions']) == 3
        assert all('correctAnswer' not in q for q in dumped['questions'])
        assert all('correctAnswer' not in q for s in dumped['sections'] for q in s['questions'])

    @pytest.mark.asyncio
    async def test_staff_detail_contains_answers(self, db_session, make_test):
        test = await make_test()

        detail = await TestCatalogService(db_session).get_test_detail(test.id)

        assert [q.correct_answer for q in detail.questions] == ['B', 'B']
        assert detail.end_date_time - detail.start_date_time == timedelta(hours=3)

        dumped = detail.model_dump(by_alias=True)
        assert [q['correctAnswer'] for q in dumped['sections'][0]['questions']] == ['B', 'B']
