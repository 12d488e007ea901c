"""
Management command to set up demo data for the exam grading platform.
Creates demo users, an MCQ exam with choices, and a graded student attempt.
"""
from django.core.management.base import BaseCommand
from django.contrib.auth.models import User
from rest_framework.authtoken.models import Token
from exams.models import Exam, Question, Choice, ExamAttempt, UserProfile
from exams.grading import GradingOrchestrator


DEMO_QUESTIONS = [
    {
        'question_text': 'Which HTTP method is idempotent by definition?',
        'weight': 1,
        'question_type': 'mcq',
        'choices': [('PUT', True), ('POST', False), ('PATCH', False), ('CONNECT', False)],
    },
    {
        'question_text': 'Which SQL clause filters grouped rows?',
        'weight': 2,
        'question_type': 'mcq',
        'choices': [('WHERE', False), ('HAVING', True), ('ORDER BY', False), ('LIMIT', False)],
    },
    {
        'question_text': 'Which data structure gives O(1) average lookup by key?',
        'weight': 2,
        'question_type': 'mcq',
        'choices': [('Linked list', False), ('Binary heap', False), ('Hash table', True)],
    },
    {
        'question_text': 'Explain the difference between a process and a thread.',
        'weight': 5,
        'question_type': 'essay',
        'choices': [],
    },
]


class Command(BaseCommand):
    help = 'Set up demo data for testing'

    def handle(self, *args, **options):
        self.stdout.write(self.style.NOTICE('\nSetting up exam grading demo data...\n'))

        # Create student
        student, created = User.objects.get_or_create(
            username='student',
            defaults={
                'email': 'student@example.com',
                'first_name': 'Test',
                'last_name': 'Student',
                'is_active': True
            }
        )
        if created:
            student.set_password('student123')
            student.save()
            student.profile.role = UserProfile.Role.STUDENT
            student.profile.save()
            self.stdout.write(self.style.SUCCESS('✓ Created student: student / student123'))
        else:
            self.stdout.write('  Student user already exists')

        student_token, _ = Token.objects.get_or_create(user=student)

        # Create admin
        admin, created = User.objects.get_or_create(
            username='admin',
            defaults={
                'email': 'admin@example.com',
                'is_staff': True,
                'is_superuser': True,
                'is_active': True
            }
        )
        if created:
            admin.set_password('admin123')
            admin.save()
            admin.profile.role = UserProfile.Role.ADMIN
            admin.profile.save()
            self.stdout.write(self.style.SUCCESS('✓ Created admin: admin / admin123'))
        else:
            self.stdout.write('  Admin user already exists')

        admin_token, _ = Token.objects.get_or_create(user=admin)

        # Create exam
        exam, created = Exam.objects.get_or_create(
            title='Backend Fundamentals Quiz',
            defaults={
                'description': 'Weighted multiple-choice quiz with one essay question',
                'exam_type': Exam.ExamType.QUESTIONS,
                'created_by': admin
            }
        )

        if created:
            for position, data in enumerate(DEMO_QUESTIONS, start=1):
                question = Question.objects.create(
                    exam=exam,
                    question_text=data['question_text'],
                    weight=data['weight'],
                    question_type=data['question_type'],
                    order_number=position
                )
                for text, is_correct in data['choices']:
                    Choice.objects.create(question=question, choice_text=text, is_correct=is_correct)
            self.stdout.write(self.style.SUCCESS(f'✓ Exam: {exam.title} with {len(DEMO_QUESTIONS)} questions'))
        else:
            self.stdout.write(f'  Exam already exists: {exam.title}')

        # Create a student attempt: first two MCQs right, third left unanswered
        attempt = ExamAttempt.objects.filter(user=student, exam=exam).first()
        if attempt is None:
            answers = {}
            for question in exam.questions.filter(question_type='mcq').order_by('order_number')[:2]:
                correct = question.choices.filter(is_correct=True).first()
                answers[str(question.id)] = str(correct.id)
            attempt = ExamAttempt.objects.create(user=student, exam=exam, answers=answers)
            self.stdout.write(self.style.SUCCESS('✓ Created demo attempt for student'))
        else:
            self.stdout.write('  Demo attempt already exists')

        score = GradingOrchestrator().grade_attempt(attempt.id)
        self.stdout.write(self.style.SUCCESS(
            f'✓ Graded attempt: {score.total_score}/{score.max_score} ({score.percentage}%)'
        ))

        # Print summary
        self.stdout.write(self.style.SUCCESS('\n' + '='*60))
        self.stdout.write(self.style.SUCCESS('Demo Setup Complete!'))
        self.stdout.write(self.style.SUCCESS('='*60))

        self.stdout.write('\nDemo Accounts:')
        self.stdout.write('  ┌─────────────┬─────────────┬──────────────┐')
        self.stdout.write('  │ Role        │ Username    │ Password     │')
        self.stdout.write('  ├─────────────┼─────────────┼──────────────┤')
        self.stdout.write('  │ Student     │ student     │ student123   │')
        self.stdout.write('  │ Admin       │ admin       │ admin123     │')
        self.stdout.write('  └─────────────┴─────────────┴──────────────┘')

        self.stdout.write('\nAPI Tokens:')
        self.stdout.write(f'  Student:  {student_token.key}')
        self.stdout.write(f'  Admin:    {admin_token.key}')

        self.stdout.write('\nTry it:')
        self.stdout.write(
            f'  curl -X POST -H "Authorization: Token {admin_token.key}" -H "Content-Type: application/json" '
            f'-d \'{{"exam_id": "{exam.id}"}}\' http://localhost:8000/api/grade/exam/'
        )
        self.stdout.write('')
