"""
API Views for the exam grading platform.
Provides endpoints for exams, questions, attempts, grading and scores.
"""
import logging

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Count, Prefetch
from rest_framework import viewsets, mixins, status
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from rest_framework.views import APIView
from drf_spectacular.utils import (
    extend_schema, extend_schema_view, OpenApiParameter,
    OpenApiExample, OpenApiResponse
)

from exams.models import Exam, Question, ExamAttempt, Score
from exams.permissions import IsAdminUser, IsAdminOrReadOnly, IsOwnerOrAdmin, is_admin
from exams.throttling import GradingRateThrottle, SubmissionRateThrottle
from exams.grading import GradingOrchestrator, GradingError
from .serializers import (
    ExamListSerializer, ExamDetailSerializer, QuestionSerializer,
    ExamAttemptSerializer, ScoreSerializer, ScoreWithStudentSerializer,
    GradeAttemptSerializer, GradeExamSerializer, BulkGradingResponseSerializer,
    DUPLICATE_ATTEMPT_MESSAGE
)

logger = logging.getLogger(__name__)


# =============================================================================
# EXAMS
# =============================================================================

@extend_schema_view(
    list=extend_schema(
        summary="List exams",
        description="Returns a paginated list of exams with their question count."
    ),
    retrieve=extend_schema(
        summary="Get exam details",
        description="Returns the exam with its questions and choices. Correct answers are only shown to admins."
    ),
    create=extend_schema(
        summary="Create new exam",
        description="Create an exam together with its questions and choices. **Requires Admin role.**",
        examples=[
            OpenApiExample(
                'Request Example',
                value={
                    "title": "Networking Basics",
                    "exam_type": "questions",
                    "questions": [
                        {
                            "question_text": "Which layer routes packets?",
                            "weight": 2,
                            "question_type": "mcq",
                            "choices": [
                                {"choice_text": "Network", "is_correct": True},
                                {"choice_text": "Session", "is_correct": False}
                            ]
                        }
                    ]
                },
                request_only=True
            )
        ]
    ),
    update=extend_schema(summary="Update exam", description="**Requires Admin role.**"),
    destroy=extend_schema(summary="Delete exam", description="**Requires Admin role.**")
)
@extend_schema(tags=['Exams'])
class ExamViewSet(viewsets.ModelViewSet):
    """
    ViewSet for managing exams.

    Students have read-only access; admins author exams, including the
    nested question and choice definitions the grading engine scores against.
    """
    permission_classes = [IsAuthenticated, IsAdminOrReadOnly]
    filterset_fields = ['exam_type']
    search_fields = ['title', 'description']
    ordering_fields = ['title', 'created_at']

    def get_queryset(self):
        return Exam.objects.select_related('created_by').prefetch_related(
            Prefetch('questions', queryset=Question.objects.prefetch_related('choices').order_by('order_number'))
        ).annotate(question_count=Count('questions')).order_by('-created_at')

    def get_serializer_class(self):
        if self.action == 'list':
            return ExamListSerializer
        return ExamDetailSerializer

    def perform_create(self, serializer):
        serializer.save(created_by=self.request.user)


@extend_schema(tags=['Questions'])
class QuestionViewSet(viewsets.ModelViewSet):
    """
    ViewSet for exam questions.

    Editing weights or choices does not touch existing scores; re-grade the
    exam afterwards to bring them up to date.
    """
    serializer_class = QuestionSerializer
    permission_classes = [IsAuthenticated, IsAdminOrReadOnly]
    filterset_fields = ['exam', 'question_type']
    ordering_fields = ['order_number']

    def get_queryset(self):
        return Question.objects.select_related('exam').prefetch_related('choices').order_by('exam', 'order_number')


# =============================================================================
# ATTEMPTS
# =============================================================================

@extend_schema_view(
    list=extend_schema(
        summary="List attempts",
        description="""
List exam attempts.

**Students** see only their own attempts.
**Admins** see all attempts.
"""
    ),
    retrieve=extend_schema(summary="Get attempt details"),
    destroy=extend_schema(
        summary="Delete attempt (retake)",
        description="Deletes the attempt and its score so the exam can be taken again."
    )
)
@extend_schema(tags=['Attempts'])
class ExamAttemptViewSet(mixins.CreateModelMixin,
                         mixins.ListModelMixin,
                         mixins.RetrieveModelMixin,
                         mixins.DestroyModelMixin,
                         viewsets.GenericViewSet):
    """
    Exam submissions.

    One attempt per student and exam. Submitting grades the attempt right
    away for question exams when auto grading on submit is enabled.
    """
    serializer_class = ExamAttemptSerializer
    permission_classes = [IsAuthenticated, IsOwnerOrAdmin]
    filterset_fields = ['exam']
    ordering_fields = ['submitted_at', 'score']

    def get_queryset(self):
        if getattr(self, 'swagger_fake_view', False):
            return ExamAttempt.objects.none()

        queryset = ExamAttempt.objects.select_related('exam', 'user', 'grade')
        if not is_admin(self.request.user):
            queryset = queryset.filter(user=self.request.user)
        return queryset.order_by('-submitted_at')

    def get_throttles(self):
        if self.action == 'create':
            return [SubmissionRateThrottle()]
        return super().get_throttles()

    @extend_schema(
        summary="Submit exam answers",
        description="""
Submit answers for an exam as a map of question id to choice id.
Unanswered questions may be omitted.

**Returns:** the attempt, including its score when it was graded on submit.
""",
        examples=[
            OpenApiExample(
                'Request Example',
                value={
                    "exam": "3f1c2a7e-5b8d-4d9a-9a62-1f0c2e4b7d10",
                    "answers": {"9b2e...": "c41a..."}
                },
                request_only=True
            )
        ]
    )
    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            with transaction.atomic():
                attempt = serializer.save(user=request.user)
        except IntegrityError:
            # Lost a race with a concurrent submission for the same exam
            return Response({"exam": [DUPLICATE_ATTEMPT_MESSAGE]}, status=status.HTTP_400_BAD_REQUEST)
        logger.info(f"Attempt {attempt.id} submitted by {request.user.username} for exam {attempt.exam_id}")

        if settings.GRADING.get('AUTO_GRADE_ON_SUBMIT', True) and attempt.exam.is_gradable:
            try:
                GradingOrchestrator().grade_attempt(attempt.id)
            except GradingError as e:
                # The submission stands; an admin can re-grade it later.
                logger.error(f"Auto grading on submit failed for attempt {attempt.id}: {e.detail}")

        attempt = self.get_queryset().get(pk=attempt.pk)
        return Response(
            self.get_serializer(attempt).data,
            status=status.HTTP_201_CREATED
        )

    def perform_destroy(self, instance):
        logger.info(f"Attempt {instance.id} deleted by {self.request.user.username} (retake)")
        instance.delete()


# =============================================================================
# GRADING
# =============================================================================

@extend_schema(tags=['Grading'])
class GradeAttemptView(APIView):
    """Grade a single attempt, replacing any previous score for it."""
    permission_classes = [IsAuthenticated]
    throttle_classes = [GradingRateThrottle]

    @extend_schema(
        summary="Grade one attempt",
        description="""
Runs automatic grading for one attempt and stores the score.

Grading again (for example after editing question weights) overwrites the
existing score for the attempt instead of creating a second one.
Students can only grade their own attempts.
""",
        request=GradeAttemptSerializer,
        responses={
            200: OpenApiResponse(description="Score for the attempt"),
            400: OpenApiResponse(description="attempt_id missing or invalid"),
            404: OpenApiResponse(description="Attempt not found"),
            500: OpenApiResponse(description="Questions could not be loaded or the score could not be saved")
        },
        examples=[
            OpenApiExample(
                'Request Example',
                value={"attempt_id": "0d6c1b1e-8f4e-4a57-a0a4-7b7e6a2f9c11"},
                request_only=True
            )
        ]
    )
    def post(self, request):
        serializer = GradeAttemptSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        attempt_id = serializer.validated_data['attempt_id']

        if not is_admin(request.user) and not ExamAttempt.objects.filter(pk=attempt_id, user=request.user).exists():
            return Response({"detail": "Attempt not found."}, status=status.HTTP_404_NOT_FOUND)

        try:
            score = GradingOrchestrator().grade_attempt(attempt_id)
        except GradingError as e:
            return Response({"detail": e.detail}, status=e.status_code)

        return Response({"score": ScoreSerializer(score).data})


@extend_schema(tags=['Grading'])
class GradeExamView(APIView):
    """Grade every attempt of an exam. **Requires Admin role.**"""
    permission_classes = [IsAuthenticated, IsAdminUser]
    throttle_classes = [GradingRateThrottle]

    @extend_schema(
        summary="Grade all attempts of an exam",
        description="""
Grades every attempt for the exam. A failure on one attempt is counted in
`summary.failed` and does not stop the others, so the response is a
summary even when some attempts could not be saved.
""",
        request=GradeExamSerializer,
        responses={
            200: BulkGradingResponseSerializer,
            403: OpenApiResponse(description="Admin access required"),
            404: OpenApiResponse(description="No attempts found for this exam"),
            500: OpenApiResponse(description="Attempts or questions could not be loaded")
        },
        examples=[
            OpenApiExample(
                'Response Example',
                value={
                    "summary": {"total": 5, "graded": 4, "failed": 1},
                    "results": [
                        {"attempt_id": "0d6c1b1e-8f4e-4a57-a0a4-7b7e6a2f9c11", "user_id": 7, "percentage": 66.67, "is_passed": True}
                    ]
                },
                response_only=True
            )
        ]
    )
    def post(self, request):
        serializer = GradeExamSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            summary = GradingOrchestrator().grade_exam(serializer.validated_data['exam_id'])
        except GradingError as e:
            return Response({"detail": e.detail}, status=e.status_code)

        return Response(summary.to_dict())


# =============================================================================
# SCORES
# =============================================================================

@extend_schema(tags=['Scores'])
class ExamScoresView(APIView):
    """Scores recorded for an exam, newest first."""
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="List exam scores",
        description="""
**Admins** see every score for the exam, with student name and email,
optionally filtered by `user_id`.
**Students** only see their own score.
""",
        parameters=[
            OpenApiParameter(name='user_id', type=int, location='query', required=False, description='Filter by student (admin only)')
        ],
        responses={200: ScoreWithStudentSerializer(many=True)}
    )
    def get(self, request, exam_id):
        scores = Score.objects.filter(exam_id=exam_id).select_related('user').order_by('-graded_at')

        if not is_admin(request.user):
            scores = scores.filter(user=request.user)
            return Response({"scores": ScoreSerializer(scores, many=True).data})

        user_id = request.query_params.get('user_id')
        if user_id:
            if not user_id.isdigit():
                return Response({"detail": "user_id must be an integer."}, status=status.HTTP_400_BAD_REQUEST)
            scores = scores.filter(user_id=int(user_id))

        return Response({"scores": ScoreWithStudentSerializer(scores, many=True).data})
