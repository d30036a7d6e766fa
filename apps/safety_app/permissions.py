from rest_framework import permissions

from .models import UserProfile


def user_type(user):
    profile = getattr(user, 'profile', None)
    return profile.user_type if profile else None


class IsParent(permissions.BasePermission):
    message = "Only parents can perform this action."

    def has_permission(self, request, view):
        return bool(request.user and request.user.is_authenticated and user_type(request.user) == UserProfile.PARENT)


class IsChild(permissions.BasePermission):
    message = "Only children can perform this action."

    def has_permission(self, request, view):
        return bool(request.user and request.user.is_authenticated and user_type(request.user) == UserProfile.CHILD)


def can_view_user(viewer, subject):
    """A user can see their own data; a parent can see their children's."""
    if viewer.pk == subject.pk:
        return True
    profile = getattr(subject, 'profile', None)
    return (
        user_type(viewer) == UserProfile.PARENT
        and profile is not None
        and profile.parent_id == viewer.pk
    )
