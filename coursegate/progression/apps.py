from django.apps import AppConfig


class ProgressionConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'progression'
    verbose_name = 'Course Progression'

    def ready(self):
        from . import signals  # noqa: F401
