"""
Management command to (re-)grade attempts from the command line.
"""
from django.core.management.base import BaseCommand, CommandError

from exams.grading import GradingOrchestrator, GradingError


class Command(BaseCommand):
    help = 'Grade every attempt of an exam, or a single attempt with --attempt'

    def add_arguments(self, parser):
        parser.add_argument('exam_id', nargs='?', help='Exam to grade')
        parser.add_argument('--attempt', dest='attempt_id', help='Grade only this attempt')

    def handle(self, *args, **options):
        exam_id = options['exam_id']
        attempt_id = options['attempt_id']
        if not exam_id and not attempt_id:
            raise CommandError('Provide an exam id or --attempt <attempt id>.')

        orchestrator = GradingOrchestrator()

        if attempt_id:
            try:
                score = orchestrator.grade_attempt(attempt_id)
            except GradingError as e:
                raise CommandError(e.detail)
            self.stdout.write(self.style.SUCCESS(
                f'Attempt {attempt_id}: {score.total_score}/{score.max_score} ({score.percentage}%)'
            ))
            return

        try:
            summary = orchestrator.grade_exam(exam_id)
        except GradingError as e:
            raise CommandError(e.detail)

        for result in summary.results:
            self.stdout.write(f'  {result.attempt_id}  user={result.user_id}  {result.percentage}%')

        style = self.style.SUCCESS if summary.failed == 0 else self.style.WARNING
        self.stdout.write(style(
            f'Total: {summary.total}, graded: {summary.graded}, failed: {summary.failed}'
        ))
