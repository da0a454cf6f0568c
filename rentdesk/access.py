import functools

from django.contrib.auth.decorators import login_required
from django.core.exceptions import PermissionDenied

from .models import UserProfile
from .store import PortfolioStore


def _profile(user):
    return getattr(user, "profile", None)


def organization_required(view_func):
    """Resolve the caller's organization and attach a store for it to the request."""

    @login_required
    @functools.wraps(view_func)
    def wrapper(request, *args, **kwargs):
        profile = _profile(request.user)
        if profile is None or profile.organization is None or not profile.organization.is_active:
            raise PermissionDenied("No active organization for this account.")
        request.profile = profile
        request.organization = profile.organization
        request.store = PortfolioStore(profile.organization, request.user)
        return view_func(request, *args, **kwargs)

    return wrapper


def role_required(*roles):
    def decorator(view_func):
        @organization_required
        @functools.wraps(view_func)
        def wrapper(request, *args, **kwargs):
            if request.profile.role not in roles:
                raise PermissionDenied("Your role cannot perform this action.")
            return view_func(request, *args, **kwargs)

        return wrapper

    return decorator


editor_required = role_required(UserProfile.Role.SUPER_ADMIN, UserProfile.Role.ADMIN, UserProfile.Role.MANAGER)
admin_required = role_required(UserProfile.Role.SUPER_ADMIN, UserProfile.Role.ADMIN)


def super_admin_required(view_func):
    @login_required
    @functools.wraps(view_func)
    def wrapper(request, *args, **kwargs):
        profile = _profile(request.user)
        is_super = request.user.is_superuser or (profile is not None and profile.role == UserProfile.Role.SUPER_ADMIN)
        if not is_super:
            raise PermissionDenied("Super admin access required.")
        return view_func(request, *args, **kwargs)

    return wrapper
