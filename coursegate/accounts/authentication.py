"""
JWT bearer authentication
Tokens are issued by the external identity service; this class only verifies
them and resolves the matching UserProfile
"""
import jwt
from django.conf import settings
from rest_framework.authentication import BaseAuthentication
from rest_framework.exceptions import AuthenticationFailed
from .models import UserProfile
import logging

logger = logging.getLogger(__name__)


class JWTAuthentication(BaseAuthentication):
    """
    Authenticate requests carrying ``Authorization: Bearer <token>``.
    The payload must contain ``user_id`` or ``email``.
    """

    keyword = 'Bearer'

    def authenticate(self, request):
        auth_header = request.META.get('HTTP_AUTHORIZATION', '')

        if not auth_header.startswith(f'{self.keyword} '):
            return None

        token = auth_header[len(self.keyword) + 1:].strip()
        if not token:
            raise AuthenticationFailed('Invalid token header: no credentials provided')

        try:
            payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
        except jwt.ExpiredSignatureError:
            raise AuthenticationFailed('Token has expired')
        except jwt.InvalidTokenError:
            raise AuthenticationFailed('Invalid token')

        user_id = payload.get('user_id')
        email = payload.get('email')

        if not email and not user_id:
            raise AuthenticationFailed('Invalid token: missing email or user_id')

        try:
            if user_id:
                user = UserProfile.objects.get(id=user_id)
            else:
                user = UserProfile.objects.get(email=email)
        except (UserProfile.DoesNotExist, ValueError):
            logger.warning(f"[AUTH] Token subject not found: user_id={user_id} email={email}")
            raise AuthenticationFailed('User not found')

        if user.status != 'active':
            raise AuthenticationFailed('User account is not active')

        return (user, token)

    def authenticate_header(self, request):
        return self.keyword
