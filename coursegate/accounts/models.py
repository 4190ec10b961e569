from django.db import models
import uuid


# User Profile model - identities are issued by the external identity service
class UserProfile(models.Model):
	ROLE_CHOICES = [
		('student', 'Student'),
		('teacher', 'Teacher'),
		('hod', 'Head of Department'),
		('dean', 'Dean'),
		('admin', 'Admin'),
		('coordinator', 'Course Coordinator'),
	]
	STATUS_CHOICES = [('active', 'active'), ('inactive', 'inactive'), ('archived', 'archived')]

	id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, db_column='user_id')
	first_name = models.CharField(max_length=100, db_column='first_name')
	last_name = models.CharField(max_length=100, blank=True, db_column='last_name')
	email = models.EmailField(unique=True, db_column='email')
	role = models.CharField(max_length=20, choices=ROLE_CHOICES, default='student', db_column='primary_role')
	status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='active', db_column='status')
	created_at = models.DateTimeField(auto_now_add=True, db_column='created_at')
	updated_at = models.DateTimeField(auto_now=True, db_column='updated_at')

	class Meta:
		db_table = 'users'
		managed = True

	@property
	def is_authenticated(self):
		"""Profiles resolved from a bearer token are always authenticated"""
		return True

	@property
	def is_anonymous(self):
		return False

	@property
	def full_name(self):
		return f"{self.first_name} {self.last_name}".strip()

	@property
	def is_staff_role(self):
		return self.role in ('teacher', 'hod', 'dean', 'admin')

	def __str__(self):
		return self.full_name or self.email
