"""
Grading orchestration: load attempts and questions through a storage
backend, score them with the engine and persist one Score per attempt.
"""
import logging
from dataclasses import replace
from typing import Iterable, List, Optional

from django.utils import timezone

from . import engine
from .base import AttemptGradeResult, AttemptRecord, BulkGradingSummary, QuestionRecord, ScoreRecord
from .exceptions import DependencyFailure, NotFound, PersistenceFailure, StorageError
from .factory import get_grading_storage
from .storage import GradingStorage

logger = logging.getLogger(__name__)

AUTO_GRADING = 'auto'


def normalize_questions(questions: Iterable[QuestionRecord]) -> List[QuestionRecord]:
    """Resolve unset weight (1.0) and question type (mcq) before scoring."""
    return [
        replace(
            q,
            weight=q.weight or engine.DEFAULT_WEIGHT,
            question_type=q.question_type or engine.MCQ,
        )
        for q in questions
    ]


class GradingOrchestrator:
    def __init__(self, storage: Optional[GradingStorage] = None):
        self.storage = storage or get_grading_storage()

    def grade_attempt(self, attempt_id):
        """Grade one attempt and return the persisted Score. Safe to repeat."""
        try:
            attempt = self.storage.get_attempt(attempt_id)
        except StorageError as e:
            logger.error(f"Attempt {attempt_id} lookup failed: {e}")
            raise DependencyFailure('Failed to fetch attempt.') from e
        if attempt is None:
            raise NotFound('Attempt not found.')

        questions = self._load_questions(attempt.exam_id)
        score, result = self._grade_and_persist(attempt, questions)

        logger.info(f"Graded attempt {attempt.id} for exam {attempt.exam_id}: {result.percentage}%")
        return score

    def grade_exam(self, exam_id) -> BulkGradingSummary:
        """
        Grade every attempt of an exam.

        Each attempt is its own unit of work: a failure is counted and logged
        and the remaining attempts are still graded. Only the upfront reads
        of attempts and questions raise.
        """
        try:
            attempts = self.storage.list_attempts(exam_id)
        except StorageError as e:
            logger.error(f"Attempt listing for exam {exam_id} failed: {e}")
            raise DependencyFailure('Failed to fetch attempts.') from e
        if not attempts:
            raise NotFound('No attempts found for this exam.')

        questions = self._load_questions(exam_id)
        summary = BulkGradingSummary(total=len(attempts))

        for attempt in attempts:
            try:
                _, result = self._grade_and_persist(attempt, questions)
            except Exception as e:
                logger.error(f"Grading failed for attempt {attempt.id}: {e}")
                summary.failed += 1
                continue

            summary.graded += 1
            summary.results.append(AttemptGradeResult(
                attempt_id=attempt.id,
                user_id=attempt.user_id,
                percentage=result.percentage,
                is_passed=result.is_passed,
            ))

        logger.info(
            f"Bulk grading for exam {exam_id}: "
            f"{summary.graded}/{summary.total} graded, {summary.failed} failed"
        )
        return summary

    def _load_questions(self, exam_id) -> List[QuestionRecord]:
        try:
            questions = self.storage.get_questions_with_choices(exam_id)
        except StorageError as e:
            logger.error(f"Question lookup for exam {exam_id} failed: {e}")
            raise DependencyFailure() from e
        return normalize_questions(questions)

    def _grade_and_persist(self, attempt: AttemptRecord, questions: List[QuestionRecord]):
        result = engine.score(attempt.answers or {}, questions)
        record = ScoreRecord.from_result(attempt, result, AUTO_GRADING, timezone.now())

        try:
            score = self.storage.upsert_score(record)
            self.storage.update_attempt_legacy_score(attempt.id, engine.round_half_up(result.percentage, 0))
        except StorageError as e:
            logger.error(f"Persisting score for attempt {attempt.id} failed: {e}")
            raise PersistenceFailure() from e

        return score, result
