from django.contrib import admin
from .models import (
    StudentProgress, UnitProgress, VideoWatch, QuizAttempt, QuizLock,
    UnlockGrant, QuizSecurityAudit, Certificate, AuditLog
)


class UnitProgressInline(admin.TabularInline):
    model = UnitProgress
    extra = 0
    fields = ('unit', 'status', 'unlocked', 'unit_quiz_passed', 'extra_attempts', 'pending_review_items')


@admin.register(StudentProgress)
class StudentProgressAdmin(admin.ModelAdmin):
    list_display = ('student', 'course', 'overall_progress', 'propagation_pending', 'last_activity')
    list_filter = ('propagation_pending',)
    inlines = [UnitProgressInline]


@admin.register(QuizAttempt)
class QuizAttemptAdmin(admin.ModelAdmin):
    list_display = ('student', 'unit', 'attempt_number', 'percentage', 'passed', 'is_auto_submit', 'completed_at')
    list_filter = ('passed', 'is_auto_submit')
    readonly_fields = ('questions', 'answers', 'security_violations')


class UnlockGrantInline(admin.TabularInline):
    model = UnlockGrant
    extra = 0
    readonly_fields = ('tier', 'granted_by', 'reason', 'attempts_taken', 'attempt_limit', 'created_at')


@admin.register(QuizLock)
class QuizLockAdmin(admin.ModelAdmin):
    list_display = ('student', 'quiz_pool', 'is_locked', 'failure_reason', 'violation_hold', 'unlock_authorization_level')
    list_filter = ('is_locked', 'failure_reason', 'unlock_authorization_level')
    inlines = [UnlockGrantInline]


@admin.register(QuizSecurityAudit)
class QuizSecurityAuditAdmin(admin.ModelAdmin):
    list_display = ('student', 'violation_type', 'severity', 'action_taken', 'created_at')
    list_filter = ('severity', 'violation_type')


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ('action_type', 'entity_type', 'entity_id', 'user', 'timestamp')
    list_filter = ('action_type',)


admin.site.register(VideoWatch)
admin.site.register(Certificate)
