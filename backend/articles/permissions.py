"""Authorization predicates for article and comment handlers.

Each predicate takes the requester (any object shaped like Django's user,
including ``AnonymousUser``) and, where relevant, the resource, and answers
allow or deny. Handlers turn a deny into ``PermissionDenied`` with
:func:`deny_unless`.
"""

from django.core.exceptions import PermissionDenied


def is_admin(user) -> bool:
    return bool(
        user is not None
        and user.is_authenticated
        and (user.is_staff or user.is_superuser)
    )


def can_manage_articles(user) -> bool:
    """Creating, editing and deleting articles is reserved to admins."""

    return is_admin(user)


def can_delete_comment(user, comment) -> bool:
    """A comment may be deleted by its author or by an admin."""

    if user is None or not user.is_authenticated:
        return False
    return comment.user_id == user.pk or is_admin(user)


def deny_unless(allowed: bool, message: str = "Access denied.") -> None:
    if not allowed:
        raise PermissionDenied(message)
