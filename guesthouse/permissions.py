from rest_framework.exceptions import NotAuthenticated, PermissionDenied
from rest_framework.permissions import BasePermission

from .exceptions import RoleUnresolved
from .models import UserRole

Role = UserRole.Role

STAFF = frozenset({Role.RECEPTIONIST.value, Role.OWNER.value})
OWNER_ONLY = frozenset({Role.OWNER.value})

# Operation name -> roles allowed to perform it. ``None`` means anyone,
# including anonymous callers.
CAPABILITIES = {
    "browse_rooms": None,
    "place_booking": None,
    "lookup_booking": None,
    "view_payment_instructions": None,
    "view_session": None,
    "register_account": None,
    "list_bookings": STAFF,
    "list_payment_notifications": STAFF,
    "confirm_payment": STAFF,
    "check_in": STAFF,
    "check_out": STAFF,
    "cancel_booking": STAFF,
    "update_room_status": STAFF,
    "manage_rooms": OWNER_ONLY,
    "manage_staff": OWNER_ONLY,
    "manage_payment_settings": OWNER_ONLY,
    "view_revenue": OWNER_ONLY,
}


def can_perform(role, operation):
    """Return True if ``role`` may perform ``operation``.

    Unknown operations are denied.
    """
    if operation not in CAPABILITIES:
        return False
    allowed = CAPABILITIES[operation]
    if allowed is None:
        return True
    return role in allowed


class SessionContext:
    """Identity and role of the caller for one request.

    Built from the request at the start of handling and passed explicitly to
    the service layer. ``role`` is None until it has been resolved from the
    database and stays None for anonymous callers.
    """

    def __init__(self, user=None, role=None):
        self.user = user
        self.role = role

    @classmethod
    def from_request(cls, request):
        user = getattr(request, "user", None)
        if user is None or not user.is_authenticated:
            return cls()
        return cls(user=user, role=resolve_role(user))

    @classmethod
    def for_user(cls, user):
        return cls(user=user, role=resolve_role(user))

    @property
    def user_id(self):
        return self.user.pk if self.user is not None else None

    @property
    def is_authenticated(self):
        return self.user is not None

    def can(self, operation):
        return can_perform(self.role, operation)

    def as_dict(self):
        return {
            "user_id": self.user_id,
            "is_authenticated": self.is_authenticated,
            "role": self.role,
        }


def resolve_role(user):
    """Look up the user's role, or None if no role row exists."""
    if user is None or not user.is_authenticated:
        return None
    role = UserRole.objects.filter(user=user).values_list("role", flat=True).first()
    return role


def ensure_permitted(context, operation):
    """Raise unless the caller described by ``context`` may perform ``operation``.

    Called by the service layer right before mutating anything, so the check
    does not depend on the view having done it already.
    """
    if can_perform(None, operation):
        return
    if context is None or not context.is_authenticated:
        raise NotAuthenticated()
    if context.role is None:
        raise RoleUnresolved()
    if not context.can(operation):
        raise PermissionDenied(f"Role '{context.role}' may not perform '{operation}'.")


class RolePermission(BasePermission):
    """DRF permission backed by the capability table.

    Views declare ``operations``, a mapping of action name to operation
    name. Actions missing from the map are denied.
    """

    def has_permission(self, request, view):
        action = getattr(view, "action", None) or request.method.lower()
        operation = getattr(view, "operations", {}).get(action)
        if operation is None:
            return False
        if can_perform(None, operation):
            return True
        context = SessionContext.from_request(request)
        ensure_permitted(context, operation)
        return True
