from django.db import transaction
from rest_framework import serializers
from django.contrib.auth.models import User
from drf_spectacular.utils import extend_schema_field

from exams.models import Exam, Question, Choice, ExamAttempt, Score
from exams.permissions import is_admin

DUPLICATE_ATTEMPT_MESSAGE = "You have already submitted this exam. Delete the attempt to retake it."


def create_choices(question, choices):
    for choice in choices:
        choice = dict(choice)
        choice.pop('id', None)
        Choice.objects.create(question=question, **choice)


class UserSerializer(serializers.ModelSerializer):
    role = serializers.CharField(source='profile.role', read_only=True)

    class Meta:
        model = User
        fields = ['id', 'username', 'email', 'first_name', 'last_name', 'role']
        read_only_fields = fields


class ChoiceSerializer(serializers.ModelSerializer):
    # Sent back on question updates so the choice keeps the id attempts refer to.
    id = serializers.UUIDField(required=False)

    class Meta:
        model = Choice
        fields = ['id', 'choice_text', 'is_correct']

    def to_representation(self, instance):
        data = super().to_representation(instance)
        request = self.context.get('request')
        if not (request and is_admin(request.user)):
            data.pop('is_correct', None)
        return data


class QuestionSerializer(serializers.ModelSerializer):
    choices = ChoiceSerializer(many=True, required=False)

    class Meta:
        model = Question
        fields = [
            'id', 'exam', 'question_text', 'order_number', 'weight',
            'question_type', 'choices'
        ]
        read_only_fields = ['id']

    def validate_choices(self, value):
        if value and sum(1 for c in value if c.get('is_correct')) > 1:
            raise serializers.ValidationError("Only one choice can be marked correct.")
        return value

    def validate(self, attrs):
        question_type = (
            attrs.get('question_type', getattr(self.instance, 'question_type', None))
            or Question.QuestionType.MULTIPLE_CHOICE
        )
        if question_type == Question.QuestionType.MULTIPLE_CHOICE and (self.instance is None or 'choices' in attrs):
            if not attrs.get('choices'):
                raise serializers.ValidationError({'choices': "Multiple choice questions need at least one choice."})
        return attrs

    @transaction.atomic
    def create(self, validated_data):
        choices = validated_data.pop('choices', [])
        question = Question.objects.create(**validated_data)
        create_choices(question, choices)
        return question

    @transaction.atomic
    def update(self, instance, validated_data):
        choices = validated_data.pop('choices', None)
        instance = super().update(instance, validated_data)
        if choices is not None:
            self._sync_choices(instance, choices)
        return instance

    def _sync_choices(self, question, choices):
        """
        Update choices in place instead of recreating them.

        Submitted attempts store choice ids, so an existing choice must keep
        its id across edits. Entries with an `id` update that choice; entries
        without one take over the remaining existing choices in order, and
        any left over are created. Existing choices not claimed are deleted.
        """
        existing = list(question.choices.all())
        by_id = {choice.id: choice for choice in existing}

        claimed = set()
        for data in choices:
            choice_id = data.get('id')
            if choice_id is None:
                continue
            if choice_id not in by_id:
                raise serializers.ValidationError({'choices': f"Choice {choice_id} does not belong to this question."})
            claimed.add(choice_id)

        unclaimed = [choice for choice in existing if choice.id not in claimed]
        kept = set(claimed)
        for data in choices:
            data = dict(data)
            choice_id = data.pop('id', None)
            if choice_id is not None:
                choice = by_id[choice_id]
            elif unclaimed:
                choice = unclaimed.pop(0)
                kept.add(choice.id)
            else:
                Choice.objects.create(question=question, **data)
                continue
            for field, value in data.items():
                setattr(choice, field, value)
            choice.save()

        Choice.objects.filter(id__in=[c.id for c in existing if c.id not in kept]).delete()


class NestedQuestionSerializer(QuestionSerializer):
    class Meta(QuestionSerializer.Meta):
        fields = ['id', 'question_text', 'order_number', 'weight', 'question_type', 'choices']


class ExamListSerializer(serializers.ModelSerializer):
    question_count = serializers.IntegerField(read_only=True)

    class Meta:
        model = Exam
        fields = [
            'id', 'title', 'description', 'exam_type', 'pdf_url',
            'question_count', 'created_at'
        ]


class ExamDetailSerializer(serializers.ModelSerializer):
    questions = NestedQuestionSerializer(many=True, required=False)
    created_by = UserSerializer(read_only=True)

    class Meta:
        model = Exam
        fields = [
            'id', 'title', 'description', 'exam_type', 'pdf_url',
            'questions', 'created_by', 'created_at'
        ]
        read_only_fields = ['id', 'created_by', 'created_at']

    def validate(self, attrs):
        exam_type = attrs.get('exam_type', getattr(self.instance, 'exam_type', Exam.ExamType.QUESTIONS))
        pdf_url = attrs.get('pdf_url', getattr(self.instance, 'pdf_url', None))
        if exam_type == Exam.ExamType.PDF and not pdf_url:
            raise serializers.ValidationError({'pdf_url': "PDF exams require a pdf_url."})
        return attrs

    @transaction.atomic
    def create(self, validated_data):
        questions = validated_data.pop('questions', [])
        exam = Exam.objects.create(**validated_data)
        for position, question_data in enumerate(questions, start=1):
            choices = question_data.pop('choices', [])
            question_data.setdefault('order_number', position)
            question = Question.objects.create(exam=exam, **question_data)
            create_choices(question, choices)
        return exam

    def update(self, instance, validated_data):
        # Questions are edited through /questions/ so existing answers keep their ids.
        validated_data.pop('questions', None)
        return super().update(instance, validated_data)


class ScoreBreakdownItemSerializer(serializers.Serializer):
    question_id = serializers.CharField()
    question_text = serializers.CharField()
    weight = serializers.FloatField()
    is_correct = serializers.BooleanField()
    selected_choice_id = serializers.CharField(allow_null=True)
    correct_choice_id = serializers.CharField(allow_blank=True)
    selected_choice_text = serializers.CharField(allow_null=True)
    correct_choice_text = serializers.CharField(allow_blank=True)


class ScoreSerializer(serializers.ModelSerializer):
    attempt_id = serializers.UUIDField(read_only=True)
    exam_id = serializers.UUIDField(read_only=True)
    user_id = serializers.IntegerField(read_only=True)
    breakdown = ScoreBreakdownItemSerializer(many=True, read_only=True)

    class Meta:
        model = Score
        fields = [
            'id', 'attempt_id', 'exam_id', 'user_id', 'total_score', 'max_score',
            'percentage', 'is_passed', 'grading_type', 'graded_at', 'breakdown'
        ]
        read_only_fields = fields


class ScoreWithStudentSerializer(ScoreSerializer):
    student_name = serializers.SerializerMethodField()
    student_email = serializers.SerializerMethodField()

    class Meta(ScoreSerializer.Meta):
        fields = ScoreSerializer.Meta.fields + ['student_name', 'student_email']
        read_only_fields = fields

    @extend_schema_field(serializers.CharField())
    def get_student_name(self, obj):
        return obj.user.get_full_name() or obj.user.username if obj.user else 'Unknown'

    @extend_schema_field(serializers.CharField())
    def get_student_email(self, obj):
        return obj.user.email if obj.user else ''


class ExamAttemptSerializer(serializers.ModelSerializer):
    exam_title = serializers.CharField(source='exam.title', read_only=True)
    grade = serializers.SerializerMethodField()

    class Meta:
        model = ExamAttempt
        fields = ['id', 'user', 'exam', 'exam_title', 'answers', 'score', 'submitted_at', 'grade']
        read_only_fields = ['id', 'user', 'score', 'submitted_at']

    @extend_schema_field(ScoreSerializer(allow_null=True))
    def get_grade(self, obj):
        try:
            return ScoreSerializer(obj.grade).data
        except Score.DoesNotExist:
            return None

    def validate_answers(self, value):
        if not isinstance(value, dict):
            raise serializers.ValidationError("Answers must map question ids to choice ids.")
        for question_id, choice_id in value.items():
            if choice_id is not None and not isinstance(choice_id, str):
                raise serializers.ValidationError(f"Choice id for question {question_id} must be a string.")
        return {str(k): v for k, v in value.items() if v}

    def validate(self, attrs):
        request = self.context.get('request')
        exam = attrs.get('exam')
        if self.instance is None and request and exam:
            if ExamAttempt.objects.filter(user=request.user, exam=exam).exists():
                raise serializers.ValidationError({'exam': DUPLICATE_ATTEMPT_MESSAGE})
        return attrs


class GradeAttemptSerializer(serializers.Serializer):
    attempt_id = serializers.UUIDField()


class GradeExamSerializer(serializers.Serializer):
    exam_id = serializers.UUIDField()


class AttemptGradeResultSerializer(serializers.Serializer):
    attempt_id = serializers.UUIDField()
    user_id = serializers.IntegerField()
    percentage = serializers.FloatField()
    is_passed = serializers.BooleanField()


class BulkGradingSummarySerializer(serializers.Serializer):
    total = serializers.IntegerField()
    graded = serializers.IntegerField()
    failed = serializers.IntegerField()


class BulkGradingResponseSerializer(serializers.Serializer):
    summary = BulkGradingSummarySerializer()
    results = AttemptGradeResultSerializer(many=True)
