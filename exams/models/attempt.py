import uuid

from django.db import models
from django.contrib.auth.models import User


class ExamAttempt(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='exam_attempts',
        db_index=True
    )
    exam = models.ForeignKey(
        'Exam',
        on_delete=models.CASCADE,
        related_name='attempts',
        db_index=True
    )
    # question id -> choice id
    answers = models.JSONField(default=dict, blank=True)
    # Legacy mirror of round(Score.percentage) for older consumers.
    score = models.IntegerField(null=True, blank=True)
    submitted_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-submitted_at']
        indexes = [
            models.Index(fields=['user', 'exam'], name='attempt_user_exam_idx'),
            models.Index(fields=['submitted_at'], name='attempt_submitted_idx'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['user', 'exam'],
                name='unique_user_exam_attempt'
            )
        ]

    def __str__(self):
        return f"{self.user.username} - {self.exam.title}"
