from .base import BreakdownItem, GradingResult, ScoreRecord, BulkGradingSummary
from .engine import generate_breakdown, weighted_score, score
from .exceptions import GradingError, NotFound, DependencyFailure, PersistenceFailure, StorageError
from .storage import GradingStorage, DjangoGradingStorage
from .factory import get_grading_storage
from .orchestrator import GradingOrchestrator

__all__ = [
    'BreakdownItem', 'GradingResult', 'ScoreRecord', 'BulkGradingSummary',
    'generate_breakdown', 'weighted_score', 'score',
    'GradingError', 'NotFound', 'DependencyFailure', 'PersistenceFailure', 'StorageError',
    'GradingStorage', 'DjangoGradingStorage', 'get_grading_storage',
    'GradingOrchestrator',
]
