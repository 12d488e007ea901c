from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Dict, List, Optional


@dataclass(frozen=True)
class ChoiceRecord:
    id: str
    choice_text: str
    is_correct: bool


@dataclass(frozen=True)
class QuestionRecord:
    id: str
    question_text: str
    order_number: int = 0
    weight: Optional[float] = None
    question_type: Optional[str] = None
    choices: List[ChoiceRecord] = field(default_factory=list)


@dataclass(frozen=True)
class AttemptRecord:
    id: str
    exam_id: str
    user_id: int
    answers: Dict[str, str] = field(default_factory=dict)


@dataclass
class BreakdownItem:
    question_id: str
    question_text: str
    weight: float
    is_correct: bool
    selected_choice_id: Optional[str]
    correct_choice_id: str
    selected_choice_text: Optional[str]
    correct_choice_text: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class GradingResult:
    total_score: float
    max_score: float
    percentage: float
    is_passed: bool
    breakdown: List[BreakdownItem]


@dataclass
class ScoreRecord:
    """Row written by the orchestrators, keyed by attempt_id."""
    attempt_id: str
    exam_id: str
    user_id: int
    total_score: float
    max_score: float
    percentage: float
    is_passed: bool
    grading_type: str
    graded_at: datetime
    breakdown: List[dict]

    @classmethod
    def from_result(cls, attempt: AttemptRecord, result: GradingResult, grading_type: str, graded_at: datetime):
        return cls(
            attempt_id=attempt.id,
            exam_id=attempt.exam_id,
            user_id=attempt.user_id,
            total_score=result.total_score,
            max_score=result.max_score,
            percentage=result.percentage,
            is_passed=result.is_passed,
            grading_type=grading_type,
            graded_at=graded_at,
            breakdown=[item.to_dict() for item in result.breakdown],
        )


@dataclass
class AttemptGradeResult:
    attempt_id: str
    user_id: int
    percentage: float
    is_passed: bool


@dataclass
class BulkGradingSummary:
    total: int
    graded: int = 0
    failed: int = 0
    results: List[AttemptGradeResult] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            'summary': {
                'total': self.total,
                'graded': self.graded,
                'failed': self.failed,
            },
            'results': [asdict(r) for r in self.results],
        }
