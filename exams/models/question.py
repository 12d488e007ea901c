import uuid
from decimal import Decimal

from django.db import models
from django.core.validators import MinValueValidator


class Question(models.Model):
    class QuestionType(models.TextChoices):
        MULTIPLE_CHOICE = 'mcq', 'Multiple Choice'
        ESSAY = 'essay', 'Essay'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    exam = models.ForeignKey(
        'Exam',
        on_delete=models.CASCADE,
        related_name='questions',
        db_index=True
    )
    question_text = models.TextField()
    order_number = models.PositiveIntegerField(default=0)
    # Unset weight/type are resolved at grading time (1.0 / mcq). Set weights are positive.
    weight = models.DecimalField(
        max_digits=6,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(Decimal('0.01'))]
    )
    question_type = models.CharField(
        max_length=10,
        choices=QuestionType.choices,
        null=True,
        blank=True
    )

    class Meta:
        ordering = ['order_number', 'id']
        indexes = [
            models.Index(fields=['exam', 'order_number'], name='question_exam_order_idx'),
        ]

    def __str__(self):
        return f"Q{self.order_number}: {self.question_text[:50]}"


class Choice(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    question = models.ForeignKey(
        'Question',
        on_delete=models.CASCADE,
        related_name='choices',
        db_index=True
    )
    choice_text = models.TextField()
    is_correct = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['created_at', 'id']

    def __str__(self):
        return self.choice_text[:50]
