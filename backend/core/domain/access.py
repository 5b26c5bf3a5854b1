"""
core.domain.access — Role-scoped queryset selectors (shared patterns).

This module provides shared utilities that each app's service layer
calls to resolve the requesting user's workflow role and to obtain
querysets filtered by that role.

╔══════════════════════════════════════════════════════════════════╗
║  IMPORTANT — Per-app scoping logic does NOT live here.         ║
║  Each app's ``services.py`` owns its own scope config.         ║
║  This module provides:                                         ║
║    1) ``get_user_role_name`` — the actor's workflow role.      ║
║    2) ``apply_role_filter`` — role-keyed queryset dispatch.    ║
║    3) ``require_role`` — guard on the role name.               ║
╚══════════════════════════════════════════════════════════════════╝

Usage in an app's service layer::

    from core.domain.access import apply_role_filter

    _REPORT_SCOPE_CONFIG = {
        "admin":   lambda qs, u: qs,
        "citizen": lambda qs, u: qs.filter(reporter=u),
    }

    qs = apply_role_filter(Report.objects.all(), user,
                           scope_config=_REPORT_SCOPE_CONFIG,
                           default="none")
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable

from django.db.models import QuerySet

from core.domain.exceptions import PermissionDenied

if TYPE_CHECKING:
    from accounts.models import User

# Type alias for a scope filter function.
# Takes (queryset, user) and returns a filtered queryset.
ScopeFilter = Callable[[QuerySet, "User"], QuerySet]

# Role name → filter function.
ScopeConfig = dict[str, ScopeFilter]


def get_user_role_name(user: User) -> str | None:
    """
    Return the workflow role string for a user, or ``None`` if unassigned.

    Superusers always act as ``"admin"`` regardless of their stored role.
    """
    if getattr(user, "is_superuser", False):
        return "admin"
    role = getattr(user, "role", None)
    if not role:
        return None
    return str(role)


def apply_role_filter(
    queryset: QuerySet,
    user: User,
    *,
    scope_config: ScopeConfig,
    default: str = "none",
) -> QuerySet:
    """
    Apply role-based filtering to a queryset using the provided config.

    Args:
        queryset:     Base (unfiltered) queryset.
        user:         The authenticated user.
        scope_config: Role name → ``filter_fn(qs, user)``.
        default:      What to do when the role has no entry.
                      ``"none"`` (default) → empty queryset.
                      ``"all"`` → return unfiltered.
    """
    role_name = get_user_role_name(user)

    if role_name and role_name in scope_config:
        return scope_config[role_name](queryset, user)

    if default == "none":
        return queryset.none()
    return queryset


def require_role(user: User, *allowed_roles: str) -> None:
    """
    Guard that raises ``PermissionDenied`` if the user's role is not
    among ``allowed_roles``.
    """
    role_name = get_user_role_name(user)
    if role_name not in allowed_roles:
        raise PermissionDenied(
            f"Role '{role_name}' is not permitted for this operation. "
            f"Required: {', '.join(allowed_roles)}.",
            required_role=allowed_roles[0] if allowed_roles else None,
        )
