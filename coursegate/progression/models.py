"""
Progression models - per student progress, quiz attempts, quiz locks and
their audit trails
"""
from django.db import models
from django.utils import timezone
from accounts.models import UserProfile
from courses.models import Course, Unit, Video, QuizPool
import uuid


class StudentProgress(models.Model):
    """
    One record per (student, course). ``unlocked_items`` is an ordered list of
    video/document ids; ``arrangement_version`` is the effective-order token
    the record was last reconciled against.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, db_column='progress_id')
    student = models.ForeignKey(UserProfile, on_delete=models.CASCADE, related_name='progress_records', db_column='student_id')
    course = models.ForeignKey(Course, on_delete=models.CASCADE, related_name='progress_records', db_column='course_id')
    unlocked_items = models.JSONField(default=list, db_column='unlocked_items')
    completed_documents = models.JSONField(default=list, db_column='completed_documents')
    arrangement_version = models.CharField(max_length=100, blank=True, default='', db_column='arrangement_version')
    overall_progress = models.IntegerField(default=0, db_column='overall_progress')
    propagation_pending = models.BooleanField(default=False, db_column='propagation_pending')
    last_activity = models.DateTimeField(blank=True, null=True, db_column='last_activity')
    created_at = models.DateTimeField(default=timezone.now, db_column='created_at')
    updated_at = models.DateTimeField(auto_now=True, db_column='updated_at')

    class Meta:
        db_table = 'student_progress'
        unique_together = ['student', 'course']

    def __str__(self):
        return f"{self.student} - {self.course} ({self.overall_progress}%)"


class UnitProgress(models.Model):
    STATUS_CHOICES = [
        ('locked', 'Locked'),
        ('in-progress', 'In Progress'),
        ('completed', 'Completed'),
        ('needs-review', 'Needs Review'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, db_column='unit_progress_id')
    progress = models.ForeignKey(StudentProgress, on_delete=models.CASCADE, related_name='units', db_column='progress_id')
    unit = models.ForeignKey(Unit, on_delete=models.CASCADE, related_name='student_progress', db_column='unit_id')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='locked', db_column='status')
    unlocked = models.BooleanField(default=False, db_column='unlocked')
    unlocked_at = models.DateTimeField(blank=True, null=True, db_column='unlocked_at')
    completed_at = models.DateTimeField(blank=True, null=True, db_column='completed_at')
    quiz_attempts = models.JSONField(default=list, db_column='quiz_attempts')
    unit_quiz_completed = models.BooleanField(default=False, db_column='unit_quiz_completed')
    unit_quiz_passed = models.BooleanField(default=False, db_column='unit_quiz_passed')
    extra_attempts = models.IntegerField(default=0, db_column='extra_attempts')
    pending_review_items = models.JSONField(default=list, db_column='pending_review_items')

    class Meta:
        db_table = 'unit_progress'
        unique_together = ['progress', 'unit']

    def __str__(self):
        return f"{self.unit} - {self.status}"


class VideoWatch(models.Model):
    """Watch entry; ``completed`` is monotonic and never reverts"""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, db_column='watch_id')
    unit_progress = models.ForeignKey(UnitProgress, on_delete=models.CASCADE, related_name='videos', db_column='unit_progress_id')
    video = models.ForeignKey(Video, on_delete=models.CASCADE, related_name='watches', db_column='video_id')
    time_spent = models.FloatField(default=0, db_column='time_spent')
    last_position = models.FloatField(default=0, db_column='last_position')
    completed = models.BooleanField(default=False, db_column='completed')
    completed_at = models.DateTimeField(blank=True, null=True, db_column='completed_at')
    last_watched_at = models.DateTimeField(default=timezone.now, db_column='last_watched_at')

    class Meta:
        db_table = 'video_watches'
        unique_together = ['unit_progress', 'video']


class QuizAttempt(models.Model):
    """
    Created on generation, graded once on submission, then frozen.
    ``questions`` keeps the exact question snapshot including correct options.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, db_column='attempt_id')
    student = models.ForeignKey(UserProfile, on_delete=models.CASCADE, related_name='quiz_attempts', db_column='student_id')
    course = models.ForeignKey(Course, on_delete=models.CASCADE, related_name='quiz_attempts', db_column='course_id')
    unit = models.ForeignKey(Unit, on_delete=models.CASCADE, related_name='quiz_attempts', db_column='unit_id')
    quiz_pool = models.ForeignKey(QuizPool, on_delete=models.CASCADE, related_name='attempts', db_column='quiz_pool_id')
    attempt_number = models.IntegerField(default=1, db_column='attempt_number')
    questions = models.JSONField(default=list, db_column='questions')
    answers = models.JSONField(default=list, db_column='answers')
    score = models.IntegerField(default=0, db_column='score')
    max_score = models.IntegerField(default=0, db_column='max_score')
    percentage = models.IntegerField(default=0, db_column='percentage')
    passed = models.BooleanField(default=False, db_column='passed')
    passing_percentage = models.IntegerField(default=70, db_column='passing_percentage')
    time_limit_minutes = models.IntegerField(default=30, db_column='time_limit_minutes')
    time_spent = models.IntegerField(default=0, db_column='time_spent_seconds')
    started_at = models.DateTimeField(default=timezone.now, db_column='started_at')
    completed_at = models.DateTimeField(blank=True, null=True, db_column='completed_at')
    security_violations = models.JSONField(default=list, db_column='security_violations')
    tab_switch_count = models.IntegerField(default=0, db_column='tab_switch_count')
    is_auto_submit = models.BooleanField(default=False, db_column='is_auto_submit')

    class Meta:
        db_table = 'quiz_attempts'
        ordering = ['-started_at']
        indexes = [
            models.Index(fields=['student', 'quiz_pool']),
            models.Index(fields=['student', 'course']),
        ]

    @property
    def is_completed(self):
        return self.completed_at is not None

    def __str__(self):
        return f"Attempt {self.attempt_number} - {self.student} ({self.percentage}%)"


class QuizLock(models.Model):
    """
    Lock record per (student, quiz pool). The four unlock counters only ever
    increase; total extra attempts granted is their sum.
    """
    FAILURE_REASON_CHOICES = [
        ('BELOW_PASSING_SCORE', 'Below passing score'),
        ('SECURITY_VIOLATION', 'Security violation'),
    ]
    AUTHORIZATION_LEVEL_CHOICES = [
        ('TEACHER', 'Teacher'),
        ('HOD', 'Head of Department'),
        ('DEAN', 'Dean'),
        ('ADMIN', 'Admin'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, db_column='lock_id')
    student = models.ForeignKey(UserProfile, on_delete=models.CASCADE, related_name='quiz_locks', db_column='student_id')
    quiz_pool = models.ForeignKey(QuizPool, on_delete=models.CASCADE, related_name='locks', db_column='quiz_pool_id')
    course = models.ForeignKey(Course, on_delete=models.CASCADE, related_name='quiz_locks', db_column='course_id')
    is_locked = models.BooleanField(default=False, db_column='is_locked')
    failure_reason = models.CharField(max_length=30, choices=FAILURE_REASON_CHOICES, blank=True, null=True, db_column='failure_reason')
    violation_hold = models.BooleanField(default=False, db_column='violation_hold')
    failed_score = models.IntegerField(blank=True, null=True, db_column='failed_score')
    passing_score = models.IntegerField(blank=True, null=True, db_column='passing_score')
    lock_timestamp = models.DateTimeField(blank=True, null=True, db_column='lock_timestamp')
    last_unlocked_at = models.DateTimeField(blank=True, null=True, db_column='last_unlocked_at')
    attempt_scores = models.JSONField(default=list, db_column='attempt_scores')
    teacher_unlock_count = models.IntegerField(default=0, db_column='teacher_unlock_count')
    hod_unlock_count = models.IntegerField(default=0, db_column='hod_unlock_count')
    dean_unlock_count = models.IntegerField(default=0, db_column='dean_unlock_count')
    admin_unlock_count = models.IntegerField(default=0, db_column='admin_unlock_count')
    unlock_authorization_level = models.CharField(
        max_length=10, choices=AUTHORIZATION_LEVEL_CHOICES, default='TEACHER',
        db_column='unlock_authorization_level'
    )
    security_violation_details = models.JSONField(default=list, db_column='security_violation_details')
    created_at = models.DateTimeField(default=timezone.now, db_column='created_at')
    updated_at = models.DateTimeField(auto_now=True, db_column='updated_at')

    class Meta:
        db_table = 'quiz_locks'
        unique_together = ['student', 'quiz_pool']

    @property
    def total_unlock_grants(self):
        return (
            self.teacher_unlock_count + self.hod_unlock_count
            + self.dean_unlock_count + self.admin_unlock_count
        )

    def unlock_count_for(self, tier):
        return getattr(self, f"{tier.lower()}_unlock_count")

    def __str__(self):
        state = 'locked' if self.is_locked else 'unlocked'
        return f"{self.student} - {self.quiz_pool} ({state})"


class UnlockGrant(models.Model):
    """One extra attempt granted by an authority tier"""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, db_column='grant_id')
    lock = models.ForeignKey(QuizLock, on_delete=models.CASCADE, related_name='grants', db_column='lock_id')
    tier = models.CharField(max_length=10, choices=QuizLock.AUTHORIZATION_LEVEL_CHOICES, db_column='tier')
    granted_by = models.ForeignKey(
        UserProfile, on_delete=models.SET_NULL, blank=True, null=True,
        related_name='unlock_grants', db_column='granted_by'
    )
    reason = models.TextField(blank=True, default='', db_column='reason')
    attempts_taken = models.IntegerField(default=0, db_column='attempts_taken')
    attempt_limit = models.IntegerField(default=0, db_column='attempt_limit')
    created_at = models.DateTimeField(default=timezone.now, db_column='created_at')

    class Meta:
        db_table = 'quiz_unlock_grants'
        ordering = ['created_at']


class QuizSecurityAudit(models.Model):
    SEVERITY_CHOICES = [
        ('LOW', 'Low'),
        ('MEDIUM', 'Medium'),
        ('HIGH', 'High'),
        ('CRITICAL', 'Critical'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, db_column='audit_id')
    attempt = models.ForeignKey(QuizAttempt, on_delete=models.CASCADE, related_name='security_audits', db_column='attempt_id')
    student = models.ForeignKey(UserProfile, on_delete=models.CASCADE, related_name='security_audits', db_column='student_id')
    violation_type = models.CharField(max_length=50, db_column='violation_type')
    severity = models.CharField(max_length=10, choices=SEVERITY_CHOICES, default='MEDIUM', db_column='severity')
    action_taken = models.CharField(max_length=30, default='PENALTY', db_column='action_taken')
    details = models.JSONField(default=dict, blank=True, db_column='details')
    created_at = models.DateTimeField(default=timezone.now, db_column='created_at')

    class Meta:
        db_table = 'quiz_security_audits'
        indexes = [
            models.Index(fields=['student', '-created_at']),
        ]


class Certificate(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, db_column='certificate_id')
    student = models.ForeignKey(UserProfile, on_delete=models.CASCADE, related_name='certificates', db_column='student_id')
    course = models.ForeignKey(Course, on_delete=models.CASCADE, related_name='certificates', db_column='course_id')
    certificate_number = models.CharField(max_length=100, unique=True, db_column='certificate_number')
    marks = models.IntegerField(default=0, db_column='marks')
    issue_date = models.DateTimeField(default=timezone.now, db_column='issue_date')
    verification_hash = models.CharField(max_length=64, blank=True, default='', db_column='verification_hash')
    is_active = models.BooleanField(default=True, db_column='is_active')
    updated_at = models.DateTimeField(auto_now=True, db_column='updated_at')

    class Meta:
        db_table = 'certificates'
        unique_together = ['student', 'course']

    def __str__(self):
        return self.certificate_number


class AuditLog(models.Model):
    """Audit logs for lock, unlock and revalidation events"""
    log_id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(UserProfile, on_delete=models.SET_NULL, null=True, blank=True, db_column='user_id')
    action_type = models.CharField(max_length=100)
    entity_type = models.CharField(max_length=100, blank=True, null=True)
    entity_id = models.UUIDField(blank=True, null=True)
    details = models.JSONField(blank=True, null=True)
    timestamp = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'audit_logs'
        indexes = [
            models.Index(fields=['user']),
            models.Index(fields=['-timestamp']),
            models.Index(fields=['entity_type', 'entity_id']),
        ]

    def __str__(self):
        return f"{self.action_type} - {self.entity_type}"
