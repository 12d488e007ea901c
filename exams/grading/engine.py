"""
Scoring engine for multiple-choice exams.

Pure functions only: answers (question id -> choice id) and question
definitions in, weighted score and per-question breakdown out. Malformed
input (no correct choice, unknown choice id, missing weight) degrades to a
wrong answer or the default weight instead of raising.
"""
import math
from typing import Dict, Iterable, List, Optional, Tuple

from .base import BreakdownItem, GradingResult, QuestionRecord

MCQ = 'mcq'
DEFAULT_WEIGHT = 1.0


def round_half_up(value: float, digits: int = 2):
    """Round half up (toward +inf), the same as JavaScript's Math.round."""
    if digits == 0:
        return int(math.floor(value + 0.5))
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def generate_breakdown(answers: Dict[str, str], questions: Iterable[QuestionRecord]) -> List[BreakdownItem]:
    """Build one breakdown item per MCQ question, keeping input order."""
    breakdown = []
    for question in questions:
        if question.question_type != MCQ:
            continue

        selected_choice_id = answers.get(question.id) or None
        correct_choice = next((c for c in question.choices if c.is_correct), None)
        selected_choice = None
        if selected_choice_id is not None:
            selected_choice = next((c for c in question.choices if c.id == selected_choice_id), None)

        breakdown.append(BreakdownItem(
            question_id=question.id,
            question_text=question.question_text,
            weight=question.weight or DEFAULT_WEIGHT,
            is_correct=(
                selected_choice_id is not None
                and correct_choice is not None
                and selected_choice_id == correct_choice.id
            ),
            selected_choice_id=selected_choice_id,
            correct_choice_id=correct_choice.id if correct_choice else '',
            selected_choice_text=(selected_choice.choice_text or None) if selected_choice else None,
            correct_choice_text=correct_choice.choice_text if correct_choice else '',
        ))
    return breakdown


def weighted_score(breakdown: Iterable[BreakdownItem]) -> Tuple[float, float]:
    """Return (total_score, max_score), each rounded to two decimals."""
    total_score = 0.0
    max_score = 0.0
    for item in breakdown:
        max_score += item.weight
        if item.is_correct:
            total_score += item.weight
    return round_half_up(total_score), round_half_up(max_score)


def determine_pass_status(percentage: float, passing_score: Optional[float] = None) -> bool:
    # No minimum passing score is enforced: every graded attempt passes.
    return True


def score(answers: Optional[Dict[str, str]], questions: Iterable[QuestionRecord]) -> GradingResult:
    breakdown = generate_breakdown(answers or {}, questions)
    total_score, max_score = weighted_score(breakdown)
    percentage = round_half_up((total_score / max_score) * 10000, 0) / 100 if max_score > 0 else 0.0
    return GradingResult(
        total_score=total_score,
        max_score=max_score,
        percentage=percentage,
        is_passed=determine_pass_status(percentage),
        breakdown=breakdown,
    )
