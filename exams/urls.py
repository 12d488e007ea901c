from django.urls import path, include
from rest_framework.authtoken.views import obtain_auth_token
from rest_framework.routers import DefaultRouter
from .api.views import (
    ExamViewSet, QuestionViewSet, ExamAttemptViewSet,
    GradeAttemptView, GradeExamView, ExamScoresView,
)

# Router for ViewSets
router = DefaultRouter()
router.register(r'exams', ExamViewSet, basename='exam')
router.register(r'questions', QuestionViewSet, basename='question')
router.register(r'attempts', ExamAttemptViewSet, basename='attempt')

urlpatterns = [
    # ============================================
    # AUTHENTICATION
    # ============================================
    path('auth/token/', obtain_auth_token, name='auth-token'),

    # ============================================
    # GRADING
    # ============================================
    path('grade/attempt/', GradeAttemptView.as_view(), name='grade-attempt'),
    path('grade/exam/', GradeExamView.as_view(), name='grade-exam'),

    # ============================================
    # SCORES
    # ============================================
    path('scores/<uuid:exam_id>/', ExamScoresView.as_view(), name='exam-scores'),

    # ============================================
    # CORE API ROUTES (ViewSets)
    # ============================================
    path('', include(router.urls)),
]
