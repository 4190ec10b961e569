"""
Progression app URL configuration
"""
from django.urls import path
from . import views

urlpatterns = [
    # Student progression
    path('content/progress/', views.content_progress, name='content-progress'),
    path('courses/<uuid:course_id>/progression/', views.progression_status, name='progression-status'),
    path('courses/<uuid:course_id>/order/', views.effective_order, name='effective-order'),

    # Unit quizzes
    path('units/<uuid:unit_id>/quiz/availability/', views.quiz_availability, name='quiz-availability'),
    path('units/<uuid:unit_id>/quiz/generate/', views.generate_quiz, name='quiz-generate'),
    path('quiz/attempts/<uuid:attempt_id>/', views.quiz_attempt_detail, name='quiz-attempt-detail'),
    path('quiz/attempts/<uuid:attempt_id>/submit/', views.submit_quiz, name='quiz-submit'),
    path('quiz/attempts/<uuid:attempt_id>/results/', views.quiz_results, name='quiz-results'),

    # Staff
    path(
        'quiz-pools/<uuid:quiz_pool_id>/students/<uuid:student_id>/unlock/',
        views.grant_unlock,
        name='quiz-unlock',
    ),
    path('units/<uuid:unit_id>/content-added/', views.content_added, name='content-added'),

    # Coordinator arrangements
    path('courses/<uuid:course_id>/launch/', views.launch_course, name='course-launch'),
    path('courses/<uuid:course_id>/arrangements/', views.create_arrangement, name='arrangement-create'),
    path('arrangements/<uuid:arrangement_id>/items/', views.update_arrangement_items, name='arrangement-items'),
    path('arrangements/<uuid:arrangement_id>/submit/', views.arrangement_action, {'action': 'submit'}, name='arrangement-submit'),
    path('arrangements/<uuid:arrangement_id>/approve/', views.arrangement_action, {'action': 'approve'}, name='arrangement-approve'),
    path('arrangements/<uuid:arrangement_id>/reject/', views.arrangement_action, {'action': 'reject'}, name='arrangement-reject'),
]
