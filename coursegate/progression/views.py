"""
Progression API Views
Thin endpoints over the progression services
"""
from django.shortcuts import get_object_or_404
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework import status
from accounts.models import UserProfile
from accounts.permissions import IsCoordinatorOrAdmin, IsStaffMember, IsStudent, IsUnlockAuthority
from courses.models import ContentArrangement, Course, Document, QuizPool, Unit, Video
from .exceptions import ProgressionError
from .serializers import (
    ArrangementDecisionSerializer, ArrangementSerializer, ContentProgressSerializer,
    GenerateQuizSerializer, QuizSubmissionSerializer, UnlockGrantSerializer,
)
from .services.arrangement import ArrangementResolver, ArrangementWorkflow
from .services.lock_authority import LockAuthority
from .services.progress_tracker import ProgressTracker
from .services.quiz_engine import QuizAttemptEngine
from .services.revalidation import RevalidationService
import logging

logger = logging.getLogger(__name__)


def _error_response(exc):
    return Response(exc.to_dict(), status=exc.http_status)


def _server_error(tag, exc):
    logger.exception(f"[{tag}] Unexpected error: {str(exc)}")
    return Response({
        'success': False,
        'error': 'Internal server error',
    }, status=status.HTTP_500_INTERNAL_SERVER_ERROR)


def _invalid(serializer):
    return Response({
        'success': False,
        'error': 'Invalid request',
        'details': serializer.errors,
    }, status=status.HTTP_400_BAD_REQUEST)


# ----------------------------------------------------------------------
# Student endpoints
# ----------------------------------------------------------------------

@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStudent])
def quiz_availability(request, unit_id):
    """
    GET /api/progression/units/<unit_id>/quiz/availability/
    """
    unit = get_object_or_404(Unit, id=unit_id)
    try:
        availability = QuizAttemptEngine.get_availability(request.user, unit)
        return Response({'success': True, **availability}, status=status.HTTP_200_OK)
    except ProgressionError as e:
        return _error_response(e)
    except Exception as e:
        return _server_error('QUIZ_AVAILABILITY', e)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsStudent])
def generate_quiz(request, unit_id):
    """
    POST /api/progression/units/<unit_id>/quiz/generate/
    Body: { destroy_incomplete: bool (optional) }
    """
    unit = get_object_or_404(Unit, id=unit_id)
    serializer = GenerateQuizSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid(serializer)

    try:
        attempt = QuizAttemptEngine.generate_attempt(
            request.user,
            unit,
            destroy_incomplete=serializer.validated_data['destroy_incomplete'],
        )
        code = status.HTTP_200_OK if attempt['reused'] else status.HTTP_201_CREATED
        return Response({'success': True, 'attempt': attempt}, status=code)
    except ProgressionError as e:
        return _error_response(e)
    except Exception as e:
        return _server_error('START_QUIZ', e)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStudent])
def quiz_attempt_detail(request, attempt_id):
    """
    GET /api/progression/quiz/attempts/<attempt_id>/
    Resume an incomplete attempt
    """
    try:
        attempt = QuizAttemptEngine.get_attempt(attempt_id, request.user)
        return Response({'success': True, 'attempt': attempt}, status=status.HTTP_200_OK)
    except ProgressionError as e:
        return _error_response(e)
    except Exception as e:
        return _server_error('RESUME_QUIZ', e)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsStudent])
def submit_quiz(request, attempt_id):
    """
    POST /api/progression/quiz/attempts/<attempt_id>/submit/
    Body: {
        answers: {question_id: option} | [{question_id, selected_option}],
        security_violations: [{type, details, timestamp}],
        tab_switch_count: int,
        is_auto_submit: bool,
        time_spent: int (seconds, optional)
    }
    """
    serializer = QuizSubmissionSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid(serializer)

    data = serializer.validated_data
    try:
        result = QuizAttemptEngine.submit_attempt(
            attempt_id,
            request.user,
            answers=data.get('answers'),
            telemetry={
                'security_violations': [dict(v) for v in data.get('security_violations', [])],
                'tab_switch_count': data.get('tab_switch_count', 0),
                'is_auto_submit': data.get('is_auto_submit', False),
                'time_spent': data.get('time_spent'),
            },
        )
        return Response({'success': True, 'result': result}, status=status.HTTP_200_OK)
    except ProgressionError as e:
        return _error_response(e)
    except Exception as e:
        return _server_error('SUBMIT_QUIZ', e)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStudent])
def quiz_results(request, attempt_id):
    """
    GET /api/progression/quiz/attempts/<attempt_id>/results/
    """
    try:
        results = QuizAttemptEngine.get_results(attempt_id, request.user)
        return Response({'success': True, 'results': results}, status=status.HTTP_200_OK)
    except ProgressionError as e:
        return _error_response(e)
    except Exception as e:
        return _server_error('QUIZ_RESULTS', e)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsStudent])
def content_progress(request):
    """
    POST /api/progression/content/progress/
    Body: {
        content_id: UUID,
        content_type: 'video' | 'document',
        time_spent: float (seconds), position: float (seconds), completed: bool
    }
    """
    serializer = ContentProgressSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid(serializer)

    data = serializer.validated_data
    try:
        if data['content_type'] == 'video':
            video = get_object_or_404(Video.objects.select_related('unit__course'), id=data['content_id'])
            progress = ProgressTracker.record_video_progress(
                request.user,
                video,
                time_spent=data['time_spent'],
                position=data['position'],
                explicit_completed=data['completed'],
            )
        else:
            document = get_object_or_404(Document.objects.select_related('unit__course'), id=data['content_id'])
            progress = ProgressTracker.record_document_read(request.user, document)

        return Response({'success': True, 'progress': progress}, status=status.HTTP_200_OK)
    except ProgressionError as e:
        return _error_response(e)
    except Exception as e:
        return _server_error('CONTENT_PROGRESS', e)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStudent])
def progression_status(request, course_id):
    """
    GET /api/progression/courses/<course_id>/progression/
    """
    course = get_object_or_404(Course, id=course_id)
    try:
        result = ProgressTracker.get_progression_status(request.user, course)
        return Response({'success': True, **result}, status=status.HTTP_200_OK)
    except ProgressionError as e:
        return _error_response(e)
    except Exception as e:
        return _server_error('PROGRESSION_STATUS', e)


# ----------------------------------------------------------------------
# Staff endpoints
# ----------------------------------------------------------------------

@api_view(['POST'])
@permission_classes([IsAuthenticated, IsUnlockAuthority])
def grant_unlock(request, quiz_pool_id, student_id):
    """
    POST /api/progression/quiz-pools/<quiz_pool_id>/students/<student_id>/unlock/
    Body: { tier: TEACHER|HOD|DEAN|ADMIN, reason: str, expected_grants: int (optional) }
    """
    quiz_pool = get_object_or_404(QuizPool.objects.select_related('unit'), id=quiz_pool_id)
    student = get_object_or_404(UserProfile, id=student_id, role='student')
    serializer = UnlockGrantSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid(serializer)

    data = serializer.validated_data
    try:
        lock = LockAuthority.grant_unlock(
            student,
            quiz_pool,
            data['tier'],
            request.user,
            reason=data.get('reason', ''),
            expected_grants=data.get('expected_grants'),
        )
        taken = LockAuthority.attempts_taken(student, quiz_pool)
        limit = LockAuthority.effective_limit(student, quiz_pool, lock)
        return Response({
            'success': True,
            'attempts_taken': taken,
            'attempt_limit': limit,
            'remaining_attempts': max(0, limit - taken),
            'lock_info': LockAuthority.lock_info(lock, taken, limit),
        }, status=status.HTTP_200_OK)
    except ProgressionError as e:
        return _error_response(e)
    except Exception as e:
        return _server_error('UNLOCK', e)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsStaffMember])
def content_added(request, unit_id):
    """
    POST /api/progression/units/<unit_id>/content-added/
    Re-run revalidation for a unit of a launched course
    """
    unit = get_object_or_404(Unit.objects.select_related('course'), id=unit_id)
    try:
        summary = RevalidationService.handle_content_added(unit, actor=request.user)
        return Response({'success': True, **summary}, status=status.HTTP_200_OK)
    except ProgressionError as e:
        return _error_response(e)
    except Exception as e:
        return _server_error('REVALIDATE', e)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def effective_order(request, course_id):
    """
    GET /api/progression/courses/<course_id>/order/
    """
    course = get_object_or_404(Course, id=course_id)
    order = ArrangementResolver.resolve_effective_order(course)
    return Response({'success': True, **order.to_dict()}, status=status.HTTP_200_OK)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsCoordinatorOrAdmin])
def launch_course(request, course_id):
    """
    POST /api/progression/courses/<course_id>/launch/
    """
    course = get_object_or_404(Course, id=course_id)
    try:
        ArrangementWorkflow.launch_course(course, actor=request.user)
        return Response({
            'success': True,
            'course_id': str(course.id),
            'is_launched': course.is_launched,
            'launched_at': course.launched_at,
        }, status=status.HTTP_200_OK)
    except ProgressionError as e:
        return _error_response(e)
    except Exception as e:
        return _server_error('LAUNCH', e)


def _arrangement_payload(arrangement):
    return {
        'arrangement_id': str(arrangement.id),
        'course_id': str(arrangement.course_id),
        'status': arrangement.status,
        'version': arrangement.version,
        'rejection_reason': arrangement.rejection_reason,
        'items': [
            {
                'content_type': item.content_type,
                'content_id': str(item.content_id),
                'title': item.title,
                'unit_id': str(item.unit_id),
                'order': item.order,
            }
            for item in arrangement.items.all()
        ],
    }


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsCoordinatorOrAdmin])
def create_arrangement(request, course_id):
    """
    POST /api/progression/courses/<course_id>/arrangements/
    Body: { items: [{content_type, content_id, unit_id, order}] } (optional)
    """
    course = get_object_or_404(Course, id=course_id)
    serializer = ArrangementSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid(serializer)

    items = serializer.validated_data.get('items')
    try:
        arrangement = ArrangementWorkflow.create_arrangement(
            course,
            request.user,
            items=[dict(item) for item in items] if items is not None else None,
        )
        return Response({'success': True, **_arrangement_payload(arrangement)}, status=status.HTTP_201_CREATED)
    except ProgressionError as e:
        return _error_response(e)
    except Exception as e:
        return _server_error('ARRANGEMENT', e)


@api_view(['PUT'])
@permission_classes([IsAuthenticated, IsCoordinatorOrAdmin])
def update_arrangement_items(request, arrangement_id):
    """
    PUT /api/progression/arrangements/<arrangement_id>/items/
    """
    arrangement = get_object_or_404(ContentArrangement, id=arrangement_id)
    serializer = ArrangementSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid(serializer)

    try:
        ArrangementWorkflow.replace_items(
            arrangement,
            [dict(item) for item in serializer.validated_data.get('items', [])],
        )
        return Response({'success': True, **_arrangement_payload(arrangement)}, status=status.HTTP_200_OK)
    except ProgressionError as e:
        return _error_response(e)
    except Exception as e:
        return _server_error('ARRANGEMENT', e)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsCoordinatorOrAdmin])
def arrangement_action(request, arrangement_id, action):
    """
    POST /api/progression/arrangements/<arrangement_id>/<submit|approve|reject>/
    Body: { comments: str, reason: str }
    """
    arrangement = get_object_or_404(ContentArrangement, id=arrangement_id)
    serializer = ArrangementDecisionSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid(serializer)

    data = serializer.validated_data
    try:
        if action == 'submit':
            arrangement = ArrangementWorkflow.submit(arrangement, request.user)
        elif action == 'approve':
            if request.user.role != 'admin' and arrangement.coordinator_id == request.user.id:
                return Response({
                    'success': False,
                    'error': 'Coordinators cannot approve their own arrangement',
                }, status=status.HTTP_403_FORBIDDEN)
            arrangement = ArrangementWorkflow.approve(arrangement, request.user, comments=data['comments'])
        elif action == 'reject':
            arrangement = ArrangementWorkflow.reject(arrangement, request.user, reason=data['reason'])
        else:
            return Response({'success': False, 'error': f"Unknown action '{action}'"}, status=status.HTTP_404_NOT_FOUND)

        return Response({'success': True, **_arrangement_payload(arrangement)}, status=status.HTTP_200_OK)
    except ProgressionError as e:
        return _error_response(e)
    except Exception as e:
        return _server_error('ARRANGEMENT', e)
