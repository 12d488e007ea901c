from django.conf import settings
from django.utils.module_loading import import_string

from .storage import GradingStorage


def get_grading_storage(backend: str = None) -> GradingStorage:
    if backend is None:
        backend = settings.GRADING.get('STORAGE_BACKEND', 'exams.grading.storage.DjangoGradingStorage')
    return import_string(backend)()
