"""
Tests for bearer token authentication
"""
import datetime
import jwt
from django.conf import settings
from django.test import TestCase
from rest_framework.exceptions import AuthenticationFailed
from rest_framework.test import APIRequestFactory
from .authentication import JWTAuthentication
from .models import UserProfile


def make_token(**payload):
    payload.setdefault('exp', datetime.datetime.now(datetime.timezone.utc) + datetime.timedelta(minutes=5))
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


class JWTAuthenticationTest(TestCase):

    def setUp(self):
        """Set up test data"""
        self.factory = APIRequestFactory()
        self.auth = JWTAuthentication()
        self.user = UserProfile.objects.create(first_name='Asha', email='asha@example.com', role='student')

    def request_with(self, token):
        return self.factory.get('/', HTTP_AUTHORIZATION=f'Bearer {token}')

    def test_resolves_user_by_id(self):
        """Test that a valid token resolves the profile by user_id"""
        user, _ = self.auth.authenticate(self.request_with(make_token(user_id=str(self.user.id))))
        self.assertEqual(user, self.user)

    def test_resolves_user_by_email(self):
        """Test that tokens may carry only an email"""
        user, _ = self.auth.authenticate(self.request_with(make_token(email='asha@example.com')))
        self.assertEqual(user, self.user)

    def test_missing_header_is_anonymous(self):
        """Test that requests without a bearer header are left to other authenticators"""
        self.assertIsNone(self.auth.authenticate(self.factory.get('/')))

    def test_expired_token(self):
        """Test that expired tokens are refused"""
        expired = datetime.datetime.now(datetime.timezone.utc) - datetime.timedelta(minutes=1)
        with self.assertRaises(AuthenticationFailed):
            self.auth.authenticate(self.request_with(make_token(user_id=str(self.user.id), exp=expired)))

    def test_inactive_user(self):
        """Test that inactive profiles cannot authenticate"""
        self.user.status = 'inactive'
        self.user.save()
        with self.assertRaises(AuthenticationFailed):
            self.auth.authenticate(self.request_with(make_token(user_id=str(self.user.id))))

    def test_unknown_subject(self):
        """Test that tokens for unknown users are refused"""
        with self.assertRaises(AuthenticationFailed):
            self.auth.authenticate(self.request_with(make_token(email='ghost@example.com')))
