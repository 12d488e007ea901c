import uuid

from django.db import models
from django.contrib.auth.models import User
from django.utils import timezone


class Score(models.Model):
    class GradingType(models.TextChoices):
        AUTO = 'auto', 'Automatic'
        MANUAL = 'manual', 'Manual'
        MIXED = 'mixed', 'Mixed'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    attempt = models.OneToOneField(
        'ExamAttempt',
        on_delete=models.CASCADE,
        related_name='grade'
    )
    exam = models.ForeignKey(
        'Exam',
        on_delete=models.CASCADE,
        related_name='scores',
        db_index=True
    )
    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='scores',
        db_index=True
    )

    total_score = models.FloatField(default=0)
    max_score = models.FloatField(default=0)
    percentage = models.FloatField(default=0)
    is_passed = models.BooleanField(default=True)
    grading_type = models.CharField(
        max_length=10,
        choices=GradingType.choices,
        default=GradingType.AUTO
    )
    graded_at = models.DateTimeField(default=timezone.now, db_index=True)
    breakdown = models.JSONField(default=list, blank=True)

    class Meta:
        ordering = ['-graded_at']
        indexes = [
            models.Index(fields=['exam', 'user'], name='score_exam_user_idx'),
        ]

    def __str__(self):
        return f"{self.attempt_id}: {self.total_score}/{self.max_score} ({self.percentage}%)"
