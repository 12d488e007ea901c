import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from django.core.exceptions import ValidationError
from django.db import DatabaseError, transaction
from django.db.models import Prefetch

from exams.models import Choice, ExamAttempt, Question, Score

from .base import AttemptRecord, ChoiceRecord, QuestionRecord, ScoreRecord
from .exceptions import StorageError

logger = logging.getLogger(__name__)


class GradingStorage(ABC):
    """Reads and writes the grading core needs from the data store."""

    @abstractmethod
    def get_attempt(self, attempt_id) -> Optional[AttemptRecord]:
        pass

    @abstractmethod
    def list_attempts(self, exam_id) -> List[AttemptRecord]:
        pass

    @abstractmethod
    def get_questions_with_choices(self, exam_id) -> List[QuestionRecord]:
        pass

    @abstractmethod
    def upsert_score(self, record: ScoreRecord):
        """Insert or replace the Score for record.attempt_id and return it."""
        pass

    @abstractmethod
    def update_attempt_legacy_score(self, attempt_id, rounded_percentage: int) -> None:
        pass


class DjangoGradingStorage(GradingStorage):
    """ORM-backed storage; database errors surface as StorageError."""

    def get_attempt(self, attempt_id):
        try:
            attempt = ExamAttempt.objects.filter(pk=attempt_id).first()
        except ValidationError:
            return None
        except DatabaseError as e:
            raise StorageError(f"Attempt lookup failed: {e}") from e
        return self._to_attempt_record(attempt) if attempt else None

    def list_attempts(self, exam_id):
        try:
            attempts = list(ExamAttempt.objects.filter(exam_id=exam_id).order_by('submitted_at'))
        except ValidationError:
            return []
        except DatabaseError as e:
            raise StorageError(f"Attempt listing failed: {e}") from e
        return [self._to_attempt_record(a) for a in attempts]

    def get_questions_with_choices(self, exam_id):
        try:
            questions = list(
                Question.objects.filter(exam_id=exam_id)
                .order_by('order_number', 'id')
                .prefetch_related(Prefetch('choices', queryset=Choice.objects.order_by('created_at', 'id')))
            )
        except DatabaseError as e:
            raise StorageError(f"Question lookup failed: {e}") from e

        return [
            QuestionRecord(
                id=str(q.id),
                question_text=q.question_text,
                order_number=q.order_number,
                weight=float(q.weight) if q.weight is not None else None,
                question_type=q.question_type,
                choices=[
                    ChoiceRecord(id=str(c.id), choice_text=c.choice_text, is_correct=c.is_correct)
                    for c in q.choices.all()
                ],
            )
            for q in questions
        ]

    def upsert_score(self, record):
        try:
            with transaction.atomic():
                score, created = Score.objects.update_or_create(
                    attempt_id=record.attempt_id,
                    defaults={
                        'exam_id': record.exam_id,
                        'user_id': record.user_id,
                        'total_score': record.total_score,
                        'max_score': record.max_score,
                        'percentage': record.percentage,
                        'is_passed': record.is_passed,
                        'grading_type': record.grading_type,
                        'graded_at': record.graded_at,
                        'breakdown': record.breakdown,
                    }
                )
        except DatabaseError as e:
            raise StorageError(f"Score upsert failed for attempt {record.attempt_id}: {e}") from e

        logger.debug(f"Score {'created' if created else 'updated'} for attempt {record.attempt_id}")
        return score

    def update_attempt_legacy_score(self, attempt_id, rounded_percentage):
        try:
            with transaction.atomic():
                ExamAttempt.objects.filter(pk=attempt_id).update(score=rounded_percentage)
        except DatabaseError as e:
            raise StorageError(f"Legacy score update failed for attempt {attempt_id}: {e}") from e

    @staticmethod
    def _to_attempt_record(attempt):
        answers = attempt.answers if isinstance(attempt.answers, dict) else {}
        return AttemptRecord(
            id=str(attempt.id),
            exam_id=str(attempt.exam_id),
            user_id=attempt.user_id,
            answers={str(k): str(v) for k, v in answers.items() if v},
        )
