"""
Request validation for progression endpoints
"""
from rest_framework import serializers


class ContentProgressSerializer(serializers.Serializer):
    CONTENT_TYPES = [('video', 'video'), ('document', 'document')]

    content_id = serializers.UUIDField()
    content_type = serializers.ChoiceField(choices=CONTENT_TYPES)
    time_spent = serializers.FloatField(required=False, default=0, min_value=0)
    position = serializers.FloatField(required=False, default=0, min_value=0)
    completed = serializers.BooleanField(required=False, default=False)


class GenerateQuizSerializer(serializers.Serializer):
    destroy_incomplete = serializers.BooleanField(required=False, default=False)


class SecurityViolationSerializer(serializers.Serializer):
    type = serializers.CharField(max_length=50)
    details = serializers.JSONField(required=False)
    timestamp = serializers.CharField(required=False, allow_blank=True)


class QuizSubmissionSerializer(serializers.Serializer):
    answers = serializers.JSONField(required=False, default=dict)
    security_violations = SecurityViolationSerializer(many=True, required=False, default=list)
    tab_switch_count = serializers.IntegerField(required=False, default=0, min_value=0)
    is_auto_submit = serializers.BooleanField(required=False, default=False)
    time_spent = serializers.IntegerField(required=False, min_value=0)

    def validate_answers(self, value):
        if value in (None, ''):
            return {}
        if not isinstance(value, (dict, list)):
            raise serializers.ValidationError('answers must be an object or a list')
        return value


class UnlockGrantSerializer(serializers.Serializer):
    tier = serializers.ChoiceField(choices=['TEACHER', 'HOD', 'DEAN', 'ADMIN'])
    reason = serializers.CharField(required=False, allow_blank=True, default='')
    expected_grants = serializers.IntegerField(required=False, min_value=0)

    def to_internal_value(self, data):
        if hasattr(data, 'get') and isinstance(data.get('tier'), str):
            data = data.copy()
            data['tier'] = data['tier'].upper()
        return super().to_internal_value(data)


class ArrangementItemSerializer(serializers.Serializer):
    content_type = serializers.ChoiceField(choices=['video', 'document'])
    content_id = serializers.UUIDField()
    unit_id = serializers.UUIDField(required=False)
    order = serializers.IntegerField(required=False)


class ArrangementSerializer(serializers.Serializer):
    items = ArrangementItemSerializer(many=True, required=False)


class ArrangementDecisionSerializer(serializers.Serializer):
    comments = serializers.CharField(required=False, allow_blank=True, default='')
    reason = serializers.CharField(required=False, allow_blank=True, default='')
