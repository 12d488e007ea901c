"""
Test cases for the exam grading platform.
Covers the scoring engine, the grading orchestrators and the HTTP API.
"""
import uuid
from datetime import timedelta
from io import StringIO
from unittest.mock import patch

from django.test import TestCase, override_settings
from django.contrib.auth.models import User
from django.core.cache import cache
from django.core.management import call_command
from django.core.management.base import CommandError
from rest_framework.test import APITestCase
from rest_framework import status
from rest_framework.authtoken.models import Token

from .models import Exam, Question, Choice, ExamAttempt, Score, UserProfile
from .grading import (
    GradingOrchestrator, DjangoGradingStorage, get_grading_storage,
    NotFound, DependencyFailure, PersistenceFailure, StorageError,
)
from .grading.base import ChoiceRecord, QuestionRecord
from .grading.engine import generate_breakdown, round_half_up, score, weighted_score
from .grading.orchestrator import normalize_questions
from .api.serializers import DUPLICATE_ATTEMPT_MESSAGE, ExamAttemptSerializer


def mcq(question_id, correct='a', weight=None, question_type='mcq', choice_ids=('a', 'b', 'c')):
    """Build an in-memory question whose choice `correct` is the right one."""
    return QuestionRecord(
        id=question_id,
        question_text=f'Question {question_id}',
        weight=weight,
        question_type=question_type,
        choices=[
            ChoiceRecord(id=f'{question_id}-{c}', choice_text=f'Choice {c.upper()}', is_correct=(c == correct))
            for c in choice_ids
        ],
    )


def create_exam(title='Test Exam', weights=(1, 2), author=None):
    """Create an exam with one MCQ per weight; returns (exam, [(question, correct, wrong)])."""
    exam = Exam.objects.create(title=title, created_by=author)
    questions = []
    for position, weight in enumerate(weights, start=1):
        question = Question.objects.create(
            exam=exam, question_text=f'Question {position}', order_number=position,
            weight=weight, question_type=Question.QuestionType.MULTIPLE_CHOICE
        )
        correct = Choice.objects.create(question=question, choice_text='Right', is_correct=True)
        wrong = Choice.objects.create(question=question, choice_text='Wrong', is_correct=False)
        questions.append((question, correct, wrong))
    return exam, questions


class FailingStorage(DjangoGradingStorage):
    """ORM storage that fails on demand."""

    def __init__(self, fail_upsert_for=None, fail_legacy_for=None, fail_questions=False, fail_attempts=False,
                 error=None):
        self.fail_upsert_for = {str(a) for a in (fail_upsert_for or [])}
        self.fail_legacy_for = {str(a) for a in (fail_legacy_for or [])}
        self.fail_questions = fail_questions
        self.fail_attempts = fail_attempts
        self.error = error

    def get_attempt(self, attempt_id):
        if self.fail_attempts:
            raise StorageError('connection refused')
        return super().get_attempt(attempt_id)

    def list_attempts(self, exam_id):
        if self.fail_attempts:
            raise StorageError('connection refused')
        return super().list_attempts(exam_id)

    def get_questions_with_choices(self, exam_id):
        if self.fail_questions:
            raise StorageError('connection refused')
        return super().get_questions_with_choices(exam_id)

    def upsert_score(self, record):
        if record.attempt_id in self.fail_upsert_for:
            raise self.error or StorageError('write rejected')
        return super().upsert_score(record)

    def update_attempt_legacy_score(self, attempt_id, rounded_percentage):
        if str(attempt_id) in self.fail_legacy_for:
            raise StorageError('write rejected')
        return super().update_attempt_legacy_score(attempt_id, rounded_percentage)


# =============================================================================
# SCORING ENGINE
# =============================================================================

class ScoringEngineTests(TestCase):
    """Tests for the pure scoring functions."""

    def test_weighted_partial_score(self):
        """Test one of two weighted questions answered correctly."""
        questions = [mcq('q1', weight=1), mcq('q2', weight=2)]
        result = score({'q1': 'q1-a', 'q2': 'q2-b'}, questions)

        self.assertEqual(result.total_score, 1)
        self.assertEqual(result.max_score, 3)
        self.assertEqual(result.percentage, 33.33)
        self.assertEqual(len(result.breakdown), 2)
        self.assertTrue(result.is_passed)

    def test_unanswered_question_with_default_weight(self):
        """Test an unanswered question with no weight counts for 1 point."""
        result = score({}, [mcq('q1', weight=None)])

        self.assertEqual(result.total_score, 0)
        self.assertEqual(result.max_score, 1)
        self.assertEqual(result.percentage, 0)
        item = result.breakdown[0]
        self.assertIsNone(item.selected_choice_id)
        self.assertIsNone(item.selected_choice_text)
        self.assertFalse(item.is_correct)

    def test_essay_questions_are_skipped(self):
        """Test essay questions are left out of the breakdown and the max score."""
        questions = [mcq('essay', question_type='essay', weight=5), mcq('q1', weight=2)]
        result = score({'essay': 'essay-a', 'q1': 'q1-a'}, questions)

        self.assertEqual(len(result.breakdown), 1)
        self.assertEqual(result.breakdown[0].question_id, 'q1')
        self.assertEqual(result.max_score, 2)
        self.assertEqual(result.percentage, 100.0)

    def test_breakdown_fields(self):
        """Test breakdown items carry selected and correct choice details."""
        item = generate_breakdown({'q1': 'q1-b'}, [mcq('q1', weight=2)])[0]

        self.assertEqual(item.question_id, 'q1')
        self.assertEqual(item.question_text, 'Question q1')
        self.assertEqual(item.weight, 2)
        self.assertFalse(item.is_correct)
        self.assertEqual(item.selected_choice_id, 'q1-b')
        self.assertEqual(item.selected_choice_text, 'Choice B')
        self.assertEqual(item.correct_choice_id, 'q1-a')
        self.assertEqual(item.correct_choice_text, 'Choice A')

    def test_breakdown_keeps_question_order(self):
        """Test breakdown follows the order questions are given in."""
        questions = [mcq('q3'), mcq('q1'), mcq('q2')]
        breakdown = generate_breakdown({}, questions)
        self.assertEqual([item.question_id for item in breakdown], ['q3', 'q1', 'q2'])

    def test_unknown_choice_id_is_wrong(self):
        """Test a choice id that belongs to no choice grades as wrong."""
        item = generate_breakdown({'q1': 'deleted-choice'}, [mcq('q1')])[0]

        self.assertFalse(item.is_correct)
        self.assertEqual(item.selected_choice_id, 'deleted-choice')
        self.assertIsNone(item.selected_choice_text)

    def test_question_without_correct_choice(self):
        """Test a question with no correct choice can never be answered correctly."""
        question = mcq('q1', correct=None)
        item = generate_breakdown({'q1': 'q1-a'}, [question])[0]

        self.assertFalse(item.is_correct)
        self.assertEqual(item.correct_choice_id, '')
        self.assertEqual(item.correct_choice_text, '')

    def test_blank_choice_text_is_reported_as_none(self):
        """Test a selected choice with empty text reports no selected text."""
        question = QuestionRecord(
            id='q1', question_text='?', weight=1, question_type='mcq',
            choices=[ChoiceRecord(id='q1-a', choice_text='', is_correct=True)]
        )
        item = generate_breakdown({'q1': 'q1-a'}, [question])[0]

        self.assertTrue(item.is_correct)
        self.assertEqual(item.selected_choice_id, 'q1-a')
        self.assertIsNone(item.selected_choice_text)

    def test_empty_string_answer_is_unanswered(self):
        """Test an empty choice id is treated as no answer."""
        item = generate_breakdown({'q1': ''}, [mcq('q1')])[0]
        self.assertIsNone(item.selected_choice_id)
        self.assertFalse(item.is_correct)

    def test_no_gradable_questions(self):
        """Test an exam without MCQ questions scores 0 of 0 without dividing by zero."""
        result = score({'q1': 'q1-a'}, [mcq('q1', question_type='essay')])

        self.assertEqual(result.breakdown, [])
        self.assertEqual(result.max_score, 0)
        self.assertEqual(result.percentage, 0)
        self.assertTrue(result.is_passed)

    def test_none_answers(self):
        """Test missing answers grade like an empty submission."""
        result = score(None, [mcq('q1'), mcq('q2')])
        self.assertEqual(result.total_score, 0)
        self.assertEqual(result.max_score, 2)

    def test_max_score_is_sum_of_weights(self):
        """Test max score equals the sum of breakdown weights, rounded."""
        questions = [mcq('q1', weight=0.1), mcq('q2', weight=0.2), mcq('q3', weight=1.25)]
        breakdown = generate_breakdown({'q1': 'q1-a', 'q3': 'q3-a'}, questions)
        total_score, max_score = weighted_score(breakdown)

        self.assertEqual(max_score, 1.55)
        self.assertEqual(total_score, 1.35)
        self.assertLessEqual(total_score, max_score)

    def test_percentage_rounds_half_up(self):
        """Test two thirds rounds to 66.67."""
        result = score({'q2': 'q2-a'}, [mcq('q1', weight=1), mcq('q2', weight=2)])
        self.assertEqual(result.percentage, 66.67)

    def test_percentage_bounds(self):
        """Test percentage stays within 0 and 100."""
        questions = [mcq('q1', weight=3), mcq('q2', weight=0.5)]
        all_right = score({'q1': 'q1-a', 'q2': 'q2-a'}, questions)
        all_wrong = score({'q1': 'q1-b', 'q2': 'q2-c'}, questions)

        self.assertEqual(all_right.percentage, 100.0)
        self.assertEqual(all_wrong.percentage, 0)

    def test_deterministic(self):
        """Test identical inputs give identical results."""
        questions = [mcq('q1', weight=1.5), mcq('q2', weight=2.5)]
        answers = {'q1': 'q1-a', 'q2': 'q2-c'}
        self.assertEqual(score(answers, questions), score(answers, questions))

    def test_round_half_up(self):
        """Test halves round toward positive infinity."""
        self.assertEqual(round_half_up(0.125), 0.13)
        self.assertEqual(round_half_up(2.5, 0), 3)
        self.assertEqual(round_half_up(-2.5, 0), -2)
        self.assertIsInstance(round_half_up(66.67, 0), int)

    def test_normalize_questions_fills_defaults(self):
        """Test unset weight and type resolve to 1.0 and mcq."""
        question = QuestionRecord(id='q1', question_text='?', weight=None, question_type=None)
        normalized = normalize_questions([question])[0]

        self.assertEqual(normalized.weight, 1.0)
        self.assertEqual(normalized.question_type, 'mcq')
        self.assertIsNone(question.weight)


# =============================================================================
# ORCHESTRATORS
# =============================================================================

class GradeAttemptTests(TestCase):
    """Tests for grading a single attempt."""

    def setUp(self):
        self.student = User.objects.create_user('student', 'student@test.com', 'pass123')
        self.exam, self.questions = create_exam(weights=(1, 2))
        (_, self.q1_right, _), (_, self.q2_right, self.q2_wrong) = self.questions
        self.attempt = ExamAttempt.objects.create(
            user=self.student, exam=self.exam,
            answers={str(self.questions[0][0].id): str(self.q1_right.id),
                     str(self.questions[1][0].id): str(self.q2_wrong.id)}
        )

    def test_grade_attempt_persists_score(self):
        """Test grading stores a Score with totals and breakdown."""
        result = GradingOrchestrator().grade_attempt(self.attempt.id)

        self.assertEqual(result.total_score, 1)
        self.assertEqual(result.max_score, 3)
        self.assertEqual(result.percentage, 33.33)
        self.assertTrue(result.is_passed)
        self.assertEqual(result.grading_type, Score.GradingType.AUTO)

        stored = Score.objects.get(attempt=self.attempt)
        self.assertEqual(stored.exam_id, self.exam.id)
        self.assertEqual(stored.user_id, self.student.id)
        self.assertEqual(len(stored.breakdown), 2)
        self.assertEqual(stored.breakdown[0]['question_id'], str(self.questions[0][0].id))
        self.assertTrue(stored.breakdown[0]['is_correct'])

    def test_grade_attempt_updates_legacy_score(self):
        """Test the attempt's integer score mirrors the rounded percentage."""
        GradingOrchestrator().grade_attempt(self.attempt.id)
        self.attempt.refresh_from_db()
        self.assertEqual(self.attempt.score, 33)

    def test_regrade_overwrites_score(self):
        """Test grading twice keeps one Score reflecting the latest weights."""
        orchestrator = GradingOrchestrator()
        orchestrator.grade_attempt(self.attempt.id)

        question = self.questions[0][0]
        question.weight = 3
        question.save()
        orchestrator.grade_attempt(self.attempt.id)

        scores = Score.objects.filter(attempt=self.attempt)
        self.assertEqual(scores.count(), 1)
        self.assertEqual(scores[0].total_score, 3)
        self.assertEqual(scores[0].max_score, 5)
        self.assertEqual(scores[0].percentage, 60.0)
        self.attempt.refresh_from_db()
        self.assertEqual(self.attempt.score, 60)

    def test_unknown_attempt(self):
        """Test grading a missing attempt raises NotFound."""
        with self.assertRaises(NotFound) as ctx:
            GradingOrchestrator().grade_attempt(uuid.uuid4())
        self.assertEqual(ctx.exception.status_code, 404)
        self.assertEqual(ctx.exception.detail, 'Attempt not found.')

    def test_malformed_attempt_id(self):
        """Test a non-UUID attempt id is reported as not found."""
        with self.assertRaises(NotFound):
            GradingOrchestrator().grade_attempt('not-a-uuid')

    def test_question_lookup_failure(self):
        """Test a failed question read raises DependencyFailure and stores nothing."""
        orchestrator = GradingOrchestrator(storage=FailingStorage(fail_questions=True))
        with self.assertRaises(DependencyFailure) as ctx:
            orchestrator.grade_attempt(self.attempt.id)

        self.assertEqual(ctx.exception.status_code, 500)
        self.assertEqual(ctx.exception.detail, 'Failed to fetch questions.')
        self.assertFalse(Score.objects.exists())

    def test_attempt_lookup_failure(self):
        """Test a failed attempt read raises DependencyFailure."""
        orchestrator = GradingOrchestrator(storage=FailingStorage(fail_attempts=True))
        with self.assertRaises(DependencyFailure):
            orchestrator.grade_attempt(self.attempt.id)

    def test_legacy_score_failure(self):
        """Test a failed legacy score update raises PersistenceFailure."""
        orchestrator = GradingOrchestrator(storage=FailingStorage(fail_legacy_for=[self.attempt.id]))
        with self.assertRaises(PersistenceFailure) as ctx:
            orchestrator.grade_attempt(self.attempt.id)

        self.assertEqual(ctx.exception.status_code, 500)
        self.attempt.refresh_from_db()
        self.assertIsNone(self.attempt.score)

    def test_persistence_failure(self):
        """Test a failed score write raises PersistenceFailure."""
        orchestrator = GradingOrchestrator(storage=FailingStorage(fail_upsert_for=[self.attempt.id]))
        with self.assertRaises(PersistenceFailure) as ctx:
            orchestrator.grade_attempt(self.attempt.id)

        self.assertEqual(ctx.exception.detail, 'Failed to save score.')
        self.attempt.refresh_from_db()
        self.assertIsNone(self.attempt.score)

    def test_stale_answers_are_ignored(self):
        """Test answers for questions no longer on the exam do not count."""
        self.attempt.answers = {str(uuid.uuid4()): str(uuid.uuid4())}
        self.attempt.save()

        result = GradingOrchestrator().grade_attempt(self.attempt.id)
        self.assertEqual(result.total_score, 0)
        self.assertEqual(result.max_score, 3)

    def test_default_storage_from_settings(self):
        """Test the orchestrator uses the configured storage backend."""
        self.assertIsInstance(GradingOrchestrator().storage, DjangoGradingStorage)

    @override_settings(GRADING={'STORAGE_BACKEND': 'exams.tests.FailingStorage'})
    def test_storage_backend_setting(self):
        """Test GRADING['STORAGE_BACKEND'] selects the storage class."""
        self.assertIsInstance(get_grading_storage(), FailingStorage)


class GradeExamTests(TestCase):
    """Tests for bulk grading every attempt of an exam."""

    def setUp(self):
        self.exam, self.questions = create_exam(weights=(1, 1))
        (q1, q1_right, _), (q2, q2_right, q2_wrong) = self.questions
        answer_sets = [
            {str(q1.id): str(q1_right.id), str(q2.id): str(q2_right.id)},
            {str(q1.id): str(q1_right.id), str(q2.id): str(q2_wrong.id)},
            {str(q1.id): str(q1_right.id)},
            {},
            {str(q2.id): str(q2_right.id)},
        ]
        self.attempts = []
        for index, answers in enumerate(answer_sets):
            user = User.objects.create_user(f'student{index}', f's{index}@test.com', 'pass123')
            self.attempts.append(ExamAttempt.objects.create(user=user, exam=self.exam, answers=answers))

    def test_grades_every_attempt(self):
        """Test each attempt gets a Score and a result entry."""
        summary = GradingOrchestrator().grade_exam(self.exam.id)

        self.assertEqual((summary.total, summary.graded, summary.failed), (5, 5, 0))
        self.assertEqual(Score.objects.filter(exam=self.exam).count(), 5)
        percentages = {r.attempt_id: r.percentage for r in summary.results}
        self.assertEqual(percentages[str(self.attempts[0].id)], 100.0)
        self.assertEqual(percentages[str(self.attempts[3].id)], 0)

    def test_failed_attempt_does_not_stop_others(self):
        """Test a write failure on one attempt is counted and the rest are graded."""
        failing = self.attempts[2]
        orchestrator = GradingOrchestrator(storage=FailingStorage(fail_upsert_for=[failing.id]))

        with self.assertLogs('exams.grading.orchestrator', level='ERROR'):
            summary = orchestrator.grade_exam(self.exam.id)

        self.assertEqual(summary.to_dict()['summary'], {'total': 5, 'graded': 4, 'failed': 1})
        self.assertEqual(len(summary.results), 4)
        self.assertNotIn(str(failing.id), [r.attempt_id for r in summary.results])
        self.assertFalse(Score.objects.filter(attempt=failing).exists())
        self.assertEqual(Score.objects.filter(exam=self.exam).count(), 4)

    def test_legacy_score_failure_is_counted(self):
        """Test a failed legacy score update counts the attempt as failed."""
        failing = self.attempts[1]
        orchestrator = GradingOrchestrator(storage=FailingStorage(fail_legacy_for=[failing.id]))

        with self.assertLogs('exams.grading.orchestrator', level='ERROR'):
            summary = orchestrator.grade_exam(self.exam.id)

        self.assertEqual((summary.total, summary.graded, summary.failed), (5, 4, 1))
        self.assertEqual(summary.graded + summary.failed, summary.total)
        self.assertNotIn(str(failing.id), [r.attempt_id for r in summary.results])

    def test_unexpected_error_is_counted(self):
        """Test errors other than storage errors are also isolated per attempt."""
        failing = self.attempts[0]
        storage = FailingStorage(fail_upsert_for=[failing.id], error=RuntimeError('boom'))

        with self.assertLogs('exams.grading.orchestrator', level='ERROR'):
            summary = GradingOrchestrator(storage=storage).grade_exam(self.exam.id)

        self.assertEqual((summary.graded, summary.failed), (4, 1))

    def test_bulk_regrade_does_not_duplicate(self):
        """Test grading the exam twice keeps one Score per attempt."""
        orchestrator = GradingOrchestrator()
        orchestrator.grade_exam(self.exam.id)
        orchestrator.grade_exam(self.exam.id)
        self.assertEqual(Score.objects.filter(exam=self.exam).count(), 5)

    def test_exam_without_attempts(self):
        """Test grading an exam with no attempts raises NotFound."""
        empty_exam, _ = create_exam(title='Empty')
        with self.assertRaises(NotFound) as ctx:
            GradingOrchestrator().grade_exam(empty_exam.id)
        self.assertEqual(ctx.exception.detail, 'No attempts found for this exam.')

    def test_question_lookup_failure(self):
        """Test a failed question read aborts the whole run."""
        orchestrator = GradingOrchestrator(storage=FailingStorage(fail_questions=True))
        with self.assertRaises(DependencyFailure):
            orchestrator.grade_exam(self.exam.id)
        self.assertFalse(Score.objects.exists())

    def test_attempt_listing_failure(self):
        """Test a failed attempt listing raises DependencyFailure."""
        orchestrator = GradingOrchestrator(storage=FailingStorage(fail_attempts=True))
        with self.assertRaises(DependencyFailure) as ctx:
            orchestrator.grade_exam(self.exam.id)
        self.assertEqual(ctx.exception.detail, 'Failed to fetch attempts.')


class GradeExamCommandTests(TestCase):
    """Tests for the grade_exam management command."""

    def setUp(self):
        self.exam, questions = create_exam(weights=(1,))
        user = User.objects.create_user('student', 'student@test.com', 'pass123')
        question, right, _ = questions[0]
        self.attempt = ExamAttempt.objects.create(
            user=user, exam=self.exam, answers={str(question.id): str(right.id)}
        )

    def test_grade_exam(self):
        """Test the command grades the exam and prints a summary."""
        out = StringIO()
        call_command('grade_exam', str(self.exam.id), stdout=out)

        self.assertIn('Total: 1, graded: 1, failed: 0', out.getvalue())
        self.assertEqual(Score.objects.get(attempt=self.attempt).percentage, 100.0)

    def test_grade_single_attempt(self):
        """Test --attempt grades one attempt."""
        out = StringIO()
        call_command('grade_exam', attempt_id=str(self.attempt.id), stdout=out)
        self.assertIn('(100.0%)', out.getvalue())

    def test_missing_arguments(self):
        """Test the command requires an exam or an attempt."""
        with self.assertRaises(CommandError):
            call_command('grade_exam')

    def test_unknown_exam(self):
        """Test grading errors surface as CommandError."""
        with self.assertRaises(CommandError):
            call_command('grade_exam', str(uuid.uuid4()))

    def test_setup_demo(self):
        """Test demo data is created and graded, and reruns are harmless."""
        call_command('setup_demo', stdout=StringIO())
        call_command('setup_demo', stdout=StringIO())

        demo_score = Score.objects.get(user__username='student', exam__title='Backend Fundamentals Quiz')
        self.assertEqual(demo_score.percentage, 60.0)
        self.assertEqual(len(demo_score.breakdown), 3)


# =============================================================================
# API
# =============================================================================

class GradingAPITestBase(APITestCase):
    """Users, tokens and one exam shared by the API tests."""

    def setUp(self):
        cache.clear()

        self.student = User.objects.create_user('student', 'student@test.com', 'pass123')
        self.student_token = Token.objects.create(user=self.student)
        self.other = User.objects.create_user('other', 'other@test.com', 'pass123')
        self.other_token = Token.objects.create(user=self.other)

        self.admin = User.objects.create_user('admin', 'admin@test.com', 'pass123')
        self.admin.profile.role = UserProfile.Role.ADMIN
        self.admin.profile.save()
        self.admin_token = Token.objects.create(user=self.admin)

        self.exam, self.questions = create_exam(weights=(1, 2), author=self.admin)
        (self.q1, self.q1_right, self.q1_wrong), (self.q2, self.q2_right, self.q2_wrong) = self.questions

    def authenticate(self, token):
        self.client.credentials(HTTP_AUTHORIZATION=f'Token {token.key}')

    def submit(self, user, answers):
        return ExamAttempt.objects.create(user=user, exam=self.exam, answers=answers)


class AuthenticationTests(GradingAPITestBase):
    """Tests for token authentication."""

    def test_obtain_token(self):
        """Test username and password exchange for a token."""
        response = self.client.post('/api/auth/token/', {'username': 'student', 'password': 'pass123'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['token'], self.student_token.key)

    def test_protected_endpoint_without_auth(self):
        """Test grading without credentials is rejected."""
        response = self.client.post('/api/grade/attempt/', {'attempt_id': str(uuid.uuid4())})
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


class GradeAttemptAPITests(GradingAPITestBase):
    """Tests for POST /api/grade/attempt/."""

    def setUp(self):
        super().setUp()
        self.attempt = self.submit(self.student, {
            str(self.q1.id): str(self.q1_right.id),
            str(self.q2.id): str(self.q2_wrong.id),
        })

    def test_student_grades_own_attempt(self):
        """Test a student can grade their own attempt."""
        self.authenticate(self.student_token)
        response = self.client.post('/api/grade/attempt/', {'attempt_id': str(self.attempt.id)}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        data = response.data['score']
        self.assertEqual(data['attempt_id'], str(self.attempt.id))
        self.assertEqual(data['total_score'], 1)
        self.assertEqual(data['max_score'], 3)
        self.assertEqual(data['percentage'], 33.33)
        self.assertTrue(data['is_passed'])
        self.assertEqual(len(data['breakdown']), 2)

    def test_student_cannot_grade_others_attempt(self):
        """Test another student's attempt looks like a missing one."""
        self.authenticate(self.other_token)
        response = self.client.post('/api/grade/attempt/', {'attempt_id': str(self.attempt.id)}, format='json')

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertFalse(Score.objects.exists())

    def test_admin_grades_any_attempt(self):
        """Test admins can grade any attempt."""
        self.authenticate(self.admin_token)
        response = self.client.post('/api/grade/attempt/', {'attempt_id': str(self.attempt.id)}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_unknown_attempt(self):
        """Test grading a missing attempt returns 404 with a detail message."""
        self.authenticate(self.admin_token)
        response = self.client.post('/api/grade/attempt/', {'attempt_id': str(uuid.uuid4())}, format='json')

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['detail'], 'Attempt not found.')

    def test_missing_attempt_id(self):
        """Test the attempt id is required."""
        self.authenticate(self.admin_token)
        response = self.client.post('/api/grade/attempt/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_invalid_attempt_id(self):
        """Test a non-UUID attempt id is rejected."""
        self.authenticate(self.admin_token)
        response = self.client.post('/api/grade/attempt/', {'attempt_id': 'abc'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_regrade_returns_single_score(self):
        """Test grading twice through the API keeps one Score."""
        self.authenticate(self.student_token)
        self.client.post('/api/grade/attempt/', {'attempt_id': str(self.attempt.id)}, format='json')
        self.client.post('/api/grade/attempt/', {'attempt_id': str(self.attempt.id)}, format='json')
        self.assertEqual(Score.objects.filter(attempt=self.attempt).count(), 1)


class GradeExamAPITests(GradingAPITestBase):
    """Tests for POST /api/grade/exam/."""

    def setUp(self):
        super().setUp()
        self.submit(self.student, {str(self.q1.id): str(self.q1_right.id), str(self.q2.id): str(self.q2_right.id)})
        self.submit(self.other, {str(self.q1.id): str(self.q1_wrong.id)})

    def test_admin_grades_exam(self):
        """Test admins get a summary and per-attempt results."""
        self.authenticate(self.admin_token)
        response = self.client.post('/api/grade/exam/', {'exam_id': str(self.exam.id)}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['summary'], {'total': 2, 'graded': 2, 'failed': 0})
        self.assertEqual(len(response.data['results']), 2)
        by_user = {r['user_id']: r for r in response.data['results']}
        self.assertEqual(by_user[self.student.id]['percentage'], 100.0)
        self.assertEqual(by_user[self.other.id]['percentage'], 0)
        self.assertTrue(all(r['is_passed'] for r in response.data['results']))

    def test_student_cannot_grade_exam(self):
        """Test bulk grading requires the admin role."""
        self.authenticate(self.student_token)
        response = self.client.post('/api/grade/exam/', {'exam_id': str(self.exam.id)}, format='json')

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertFalse(Score.objects.exists())

    def test_staff_user_is_admin(self):
        """Test Django staff users count as admins."""
        self.student.is_staff = True
        self.student.save()
        self.authenticate(self.student_token)
        response = self.client.post('/api/grade/exam/', {'exam_id': str(self.exam.id)}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_exam_without_attempts(self):
        """Test an exam nobody took returns 404."""
        empty_exam, _ = create_exam(title='Empty')
        self.authenticate(self.admin_token)
        response = self.client.post('/api/grade/exam/', {'exam_id': str(empty_exam.id)}, format='json')

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['detail'], 'No attempts found for this exam.')


class ExamScoresAPITests(GradingAPITestBase):
    """Tests for GET /api/scores/<exam_id>/."""

    def setUp(self):
        super().setUp()
        self.own = self.submit(self.student, {str(self.q1.id): str(self.q1_right.id)})
        self.others = self.submit(self.other, {str(self.q2.id): str(self.q2_right.id)})
        GradingOrchestrator().grade_exam(self.exam.id)

    def test_student_sees_only_own_score(self):
        """Test students only get their own score back."""
        self.authenticate(self.student_token)
        response = self.client.get(f'/api/scores/{self.exam.id}/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['scores']), 1)
        self.assertEqual(response.data['scores'][0]['attempt_id'], str(self.own.id))
        self.assertNotIn('student_email', response.data['scores'][0])

    def test_student_cannot_filter_other_user(self):
        """Test the user_id filter does not expose other students."""
        self.authenticate(self.student_token)
        response = self.client.get(f'/api/scores/{self.exam.id}/', {'user_id': self.other.id})
        self.assertEqual([s['user_id'] for s in response.data['scores']], [self.student.id])

    def test_admin_sees_all_scores(self):
        """Test admins see every score with student details."""
        self.authenticate(self.admin_token)
        response = self.client.get(f'/api/scores/{self.exam.id}/')

        self.assertEqual(len(response.data['scores']), 2)
        self.assertIn('student_email', response.data['scores'][0])

    def test_admin_filters_by_user(self):
        """Test admins can narrow scores to one student."""
        self.authenticate(self.admin_token)
        response = self.client.get(f'/api/scores/{self.exam.id}/', {'user_id': self.other.id})

        self.assertEqual(len(response.data['scores']), 1)
        self.assertEqual(response.data['scores'][0]['student_email'], 'other@test.com')
        self.assertEqual(response.data['scores'][0]['percentage'], 66.67)

    def test_invalid_user_filter(self):
        """Test a non-numeric user_id is rejected."""
        self.authenticate(self.admin_token)
        response = self.client.get(f'/api/scores/{self.exam.id}/', {'user_id': 'abc'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class AttemptAPITests(GradingAPITestBase):
    """Tests for submitting, listing and retaking attempts."""

    def answers(self):
        return {str(self.q1.id): str(self.q1_right.id), str(self.q2.id): str(self.q2_wrong.id)}

    def test_submit_grades_attempt(self):
        """Test submitting answers grades the attempt right away."""
        self.authenticate(self.student_token)
        response = self.client.post('/api/attempts/', {
            'exam': str(self.exam.id),
            'answers': self.answers(),
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['score'], 33)
        self.assertEqual(response.data['grade']['percentage'], 33.33)
        attempt = ExamAttempt.objects.get(pk=response.data['id'])
        self.assertEqual(attempt.user, self.student)
        self.assertTrue(Score.objects.filter(attempt=attempt).exists())

    @override_settings(GRADING={'STORAGE_BACKEND': 'exams.grading.storage.DjangoGradingStorage',
                                'AUTO_GRADE_ON_SUBMIT': False})
    def test_submit_without_auto_grading(self):
        """Test auto grading on submit can be switched off."""
        self.authenticate(self.student_token)
        response = self.client.post('/api/attempts/', {
            'exam': str(self.exam.id),
            'answers': self.answers(),
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertIsNone(response.data['grade'])
        self.assertFalse(Score.objects.exists())

    def test_pdf_exam_is_not_auto_graded(self):
        """Test PDF exams are stored without a score."""
        pdf_exam = Exam.objects.create(
            title='Essay', exam_type=Exam.ExamType.PDF, pdf_url='https://example.com/exam.pdf'
        )
        self.authenticate(self.student_token)
        response = self.client.post('/api/attempts/', {'exam': str(pdf_exam.id), 'answers': {}}, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertIsNone(response.data['grade'])

    def test_duplicate_submission(self):
        """Test a second attempt at the same exam is rejected."""
        self.submit(self.student, self.answers())
        self.authenticate(self.student_token)
        response = self.client.post('/api/attempts/', {
            'exam': str(self.exam.id),
            'answers': self.answers(),
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(ExamAttempt.objects.filter(user=self.student).count(), 1)

    def test_concurrent_duplicate_submission(self):
        """Test a duplicate that slips past validation still gets a 400."""
        self.submit(self.student, self.answers())
        self.authenticate(self.student_token)

        # Validation already passed for the racing request
        with patch.object(ExamAttemptSerializer, 'validate', lambda serializer, attrs: attrs):
            response = self.client.post('/api/attempts/', {
                'exam': str(self.exam.id),
                'answers': self.answers(),
            }, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['exam'], [DUPLICATE_ATTEMPT_MESSAGE])
        self.assertEqual(ExamAttempt.objects.filter(user=self.student).count(), 1)

    def test_answers_must_be_a_mapping(self):
        """Test answers given as a list are rejected."""
        self.authenticate(self.student_token)
        response = self.client.post('/api/attempts/', {
            'exam': str(self.exam.id),
            'answers': [str(self.q1_right.id)],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_list_shows_only_own_attempts(self):
        """Test students only list their own attempts."""
        own = self.submit(self.student, self.answers())
        self.submit(self.other, self.answers())

        self.authenticate(self.student_token)
        response = self.client.get('/api/attempts/')
        self.assertEqual(len(response.data['results']), 1)
        self.assertEqual(response.data['results'][0]['id'], str(own.id))

    def test_cannot_see_others_attempt(self):
        """Test another student's attempt is hidden."""
        attempt = self.submit(self.other, self.answers())
        self.authenticate(self.student_token)
        response = self.client.get(f'/api/attempts/{attempt.id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_retake_deletes_score(self):
        """Test deleting an attempt removes its score so the exam can be retaken."""
        attempt = self.submit(self.student, self.answers())
        GradingOrchestrator().grade_attempt(attempt.id)

        self.authenticate(self.student_token)
        response = self.client.delete(f'/api/attempts/{attempt.id}/')

        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Score.objects.exists())
        response = self.client.post('/api/attempts/', {
            'exam': str(self.exam.id),
            'answers': self.answers(),
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)


class ExamAPITests(GradingAPITestBase):
    """Tests for exam authoring and visibility of correct answers."""

    def test_student_cannot_see_correct_answers(self):
        """Test is_correct is hidden from students."""
        self.authenticate(self.student_token)
        response = self.client.get(f'/api/exams/{self.exam.id}/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        choice = response.data['questions'][0]['choices'][0]
        self.assertNotIn('is_correct', choice)

    def test_admin_sees_correct_answers(self):
        """Test admins see which choice is correct."""
        self.authenticate(self.admin_token)
        response = self.client.get(f'/api/exams/{self.exam.id}/')
        choice = response.data['questions'][0]['choices'][0]
        self.assertIn('is_correct', choice)

    def test_student_cannot_create_exam(self):
        """Test exam authoring requires the admin role."""
        self.authenticate(self.student_token)
        response = self.client.post('/api/exams/', {'title': 'New'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_admin_creates_exam_with_questions(self):
        """Test admins create an exam with nested questions and choices."""
        self.authenticate(self.admin_token)
        response = self.client.post('/api/exams/', {
            'title': 'Networking Basics',
            'questions': [
                {
                    'question_text': 'Which layer routes packets?',
                    'weight': 2,
                    'question_type': 'mcq',
                    'choices': [
                        {'choice_text': 'Network', 'is_correct': True},
                        {'choice_text': 'Session', 'is_correct': False},
                    ],
                },
                {
                    'question_text': 'Name a transport protocol.',
                    'choices': [{'choice_text': 'TCP', 'is_correct': True}],
                },
            ],
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        exam = Exam.objects.get(pk=response.data['id'])
        self.assertEqual(exam.created_by, self.admin)
        self.assertEqual(exam.questions.count(), 2)
        self.assertEqual(list(exam.questions.values_list('order_number', flat=True)), [1, 2])

    def test_two_correct_choices_rejected(self):
        """Test a question may have at most one correct choice."""
        self.authenticate(self.admin_token)
        response = self.client.post('/api/questions/', {
            'exam': str(self.exam.id),
            'question_text': 'Pick one',
            'choices': [
                {'choice_text': 'A', 'is_correct': True},
                {'choice_text': 'B', 'is_correct': True},
            ],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_pdf_exam_requires_url(self):
        """Test PDF exams need a pdf_url."""
        self.authenticate(self.admin_token)
        response = self.client.post('/api/exams/', {'title': 'Scan', 'exam_type': 'pdf'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class QuestionEditAPITests(GradingAPITestBase):
    """Tests for editing questions after students have answered them."""

    def setUp(self):
        super().setUp()
        # Stored choice order is (right, wrong) for every question
        for _, right, wrong in self.questions:
            Choice.objects.filter(pk=wrong.pk).update(created_at=right.created_at + timedelta(seconds=1))

        self.attempt = self.submit(self.student, {
            str(self.q1.id): str(self.q1_right.id),
            str(self.q2.id): str(self.q2_right.id),
        })
        GradingOrchestrator().grade_attempt(self.attempt.id)
        self.authenticate(self.admin_token)

    def regrade(self):
        return GradingOrchestrator().grade_attempt(self.attempt.id)

    def test_fixing_choice_text_keeps_grade(self):
        """Test editing choice text by id keeps the attempt's answers valid."""
        response = self.client.patch(f'/api/questions/{self.q1.id}/', {
            'choices': [
                {'id': str(self.q1_right.id), 'choice_text': 'Right, fixed', 'is_correct': True},
                {'id': str(self.q1_wrong.id), 'choice_text': 'Wrong', 'is_correct': False},
            ],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

        result = self.regrade()
        self.assertEqual(result.percentage, 100.0)
        self.assertEqual(result.breakdown[0]['selected_choice_text'], 'Right, fixed')
        self.assertEqual(
            set(self.q1.choices.values_list('id', flat=True)),
            {self.q1_right.id, self.q1_wrong.id}
        )

    def test_choices_without_ids_keep_existing_ids(self):
        """Test choices resent without ids reuse the existing choices in order."""
        response = self.client.patch(f'/api/questions/{self.q1.id}/', {
            'choices': [
                {'choice_text': 'Right, fixed', 'is_correct': True},
                {'choice_text': 'Wrong', 'is_correct': False},
            ],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

        self.q1_right.refresh_from_db()
        self.assertEqual(self.q1_right.choice_text, 'Right, fixed')
        self.assertEqual(self.q1.choices.count(), 2)
        self.assertEqual(self.regrade().percentage, 100.0)

    def test_weight_edit_then_regrade(self):
        """Test a weight edit changes the re-graded score, not the answers."""
        response = self.client.patch(f'/api/questions/{self.q2.id}/', {'weight': 3}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

        result = self.regrade()
        self.assertEqual((result.total_score, result.max_score), (4, 4))
        self.assertEqual(Score.objects.filter(attempt=self.attempt).count(), 1)

    def test_omitted_choice_is_deleted(self):
        """Test a choice left out of the update is removed and the rest kept."""
        response = self.client.patch(f'/api/questions/{self.q1.id}/', {
            'choices': [{'id': str(self.q1_right.id), 'choice_text': 'Right', 'is_correct': True}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

        self.assertEqual(list(self.q1.choices.values_list('id', flat=True)), [self.q1_right.id])
        self.assertEqual(self.regrade().percentage, 100.0)

    def test_new_choice_is_added(self):
        """Test an extra choice without an id is created alongside the existing ones."""
        response = self.client.patch(f'/api/questions/{self.q1.id}/', {
            'choices': [
                {'id': str(self.q1_right.id), 'choice_text': 'Right', 'is_correct': True},
                {'id': str(self.q1_wrong.id), 'choice_text': 'Wrong', 'is_correct': False},
                {'choice_text': 'Also wrong', 'is_correct': False},
            ],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(self.q1.choices.count(), 3)

    def test_choice_from_another_question_rejected(self):
        """Test a choice id that belongs to a different question is rejected."""
        response = self.client.patch(f'/api/questions/{self.q1.id}/', {
            'choices': [{'id': str(self.q2_right.id), 'choice_text': 'Moved', 'is_correct': True}],
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.q2_right.refresh_from_db()
        self.assertEqual(self.q2_right.question_id, self.q2.id)
        self.assertEqual(self.q1.choices.count(), 2)

    def test_mcq_requires_choices(self):
        """Test a multiple choice question cannot be created without choices."""
        response = self.client.post('/api/questions/', {
            'exam': str(self.exam.id),
            'question_text': 'No options',
            'question_type': 'mcq',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_essay_without_choices_allowed(self):
        """Test essay questions need no choices."""
        response = self.client.post('/api/questions/', {
            'exam': str(self.exam.id),
            'question_text': 'Explain caching.',
            'question_type': 'essay',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

    def test_zero_weight_rejected(self):
        """Test question weights must be positive."""
        response = self.client.post('/api/questions/', {
            'exam': str(self.exam.id),
            'question_text': 'Free points?',
            'weight': 0,
            'choices': [{'choice_text': 'Yes', 'is_correct': True}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
