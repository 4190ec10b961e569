"""
Role-based access control for progression operations
"""
from rest_framework import permissions


def _role(request):
    user = request.user
    if not user or not user.is_authenticated:
        return None
    return getattr(user, 'role', None)


class IsStudent(permissions.BasePermission):
    """Only students can access"""
    def has_permission(self, request, view):
        return _role(request) == 'student'


class IsUnlockAuthority(permissions.BasePermission):
    """Teachers, HODs, deans and admins may grant quiz unlocks"""
    def has_permission(self, request, view):
        return _role(request) in ['teacher', 'hod', 'dean', 'admin']


class IsCoordinatorOrAdmin(permissions.BasePermission):
    """Course coordinators manage arrangements; admins can do anything"""
    def has_permission(self, request, view):
        return _role(request) in ['coordinator', 'admin']


class IsStaffMember(permissions.BasePermission):
    """Any non-student role"""
    def has_permission(self, request, view):
        return _role(request) in ['teacher', 'hod', 'dean', 'admin', 'coordinator']
