from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.contrib.auth.models import User
from .models import Exam, Question, Choice, ExamAttempt, Score, UserProfile


class UserProfileInline(admin.StackedInline):
    model = UserProfile
    can_delete = False
    verbose_name_plural = 'Profile'


class UserAdmin(BaseUserAdmin):
    inlines = [UserProfileInline]
    list_display = ['username', 'email', 'first_name', 'last_name', 'get_role', 'is_staff']
    list_filter = ['is_staff', 'is_superuser', 'is_active', 'profile__role']

    def get_role(self, obj):
        return obj.profile.get_role_display() if hasattr(obj, 'profile') else '-'
    get_role.short_description = 'Role'


admin.site.unregister(User)
admin.site.register(User, UserAdmin)


class QuestionInline(admin.TabularInline):
    model = Question
    extra = 1
    fields = ['order_number', 'question_type', 'question_text', 'weight']


class ChoiceInline(admin.TabularInline):
    model = Choice
    extra = 2
    fields = ['choice_text', 'is_correct']


@admin.register(Exam)
class ExamAdmin(admin.ModelAdmin):
    list_display = ['title', 'exam_type', 'created_by', 'created_at']
    list_filter = ['exam_type']
    search_fields = ['title', 'description']
    inlines = [QuestionInline]
    readonly_fields = ['created_at']


@admin.register(Question)
class QuestionAdmin(admin.ModelAdmin):
    list_display = ['__str__', 'exam', 'question_type', 'weight', 'order_number']
    list_filter = ['question_type', 'exam']
    search_fields = ['question_text']
    inlines = [ChoiceInline]


@admin.register(ExamAttempt)
class ExamAttemptAdmin(admin.ModelAdmin):
    list_display = ['user', 'exam', 'score', 'submitted_at']
    list_filter = ['exam']
    search_fields = ['user__username', 'exam__title']
    readonly_fields = ['answers', 'score', 'submitted_at']


@admin.register(Score)
class ScoreAdmin(admin.ModelAdmin):
    list_display = ['attempt', 'user', 'exam', 'total_score', 'max_score', 'percentage', 'grading_type', 'graded_at']
    list_filter = ['grading_type', 'is_passed', 'exam']
    search_fields = ['user__username', 'exam__title']
    readonly_fields = [
        'attempt', 'exam', 'user', 'total_score', 'max_score', 'percentage',
        'is_passed', 'grading_type', 'graded_at', 'breakdown'
    ]

    def has_add_permission(self, request):
        # Scores only come from the grading orchestrators.
        return False
