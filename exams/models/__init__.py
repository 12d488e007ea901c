from .exam import Exam
from .question import Question, Choice
from .attempt import ExamAttempt
from .score import Score
from .user_profile import UserProfile

__all__ = [
    'Exam', 'Question', 'Choice', 'ExamAttempt', 'Score', 'UserProfile'
]
