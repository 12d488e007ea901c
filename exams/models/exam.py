import uuid

from django.db import models
from django.contrib.auth.models import User


class Exam(models.Model):
    class ExamType(models.TextChoices):
        PDF = 'pdf', 'PDF'
        QUESTIONS = 'questions', 'Questions'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    title = models.CharField(max_length=300)
    description = models.TextField(blank=True, null=True)
    exam_type = models.CharField(
        max_length=20,
        choices=ExamType.choices,
        default=ExamType.QUESTIONS,
        db_index=True
    )
    pdf_url = models.URLField(max_length=500, blank=True, null=True)
    created_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        related_name='created_exams'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['created_at'], name='exam_created_idx'),
        ]

    def __str__(self):
        return self.title

    @property
    def is_gradable(self):
        """PDF exams are reviewed outside the grading engine."""
        return self.exam_type == self.ExamType.QUESTIONS
