# backend/hm_core/common/permissions.py

from __future__ import annotations

from typing import Set

from rest_framework.permissions import SAFE_METHODS, BasePermission

# Group/role names (Django auth Group names)
ROLE_ADMIN = "ADMIN"
ROLE_DOCTOR = "DOCTOR"
ROLE_NURSE = "NURSE"
ROLE_BED_MANAGER = "BED_MANAGER"
ROLE_RECEPTION = "RECEPTION"
ROLE_READONLY = "READONLY"

ALL_ROLES = (ROLE_ADMIN, ROLE_DOCTOR, ROLE_NURSE, ROLE_BED_MANAGER, ROLE_RECEPTION, ROLE_READONLY)

ANY_STAFF = frozenset(ALL_ROLES)
WARD_STAFF = frozenset({ROLE_NURSE, ROLE_BED_MANAGER})
CLINICAL_STAFF = frozenset({ROLE_DOCTOR, ROLE_NURSE, ROLE_BED_MANAGER})

def user_roles(user) -> Set[str]:
    """
    Resolve roles from Django groups.

    - Superuser is treated as ADMIN.
    - Authenticated users without any group are READONLY.
    """
    roles: Set[str] = set()

    if not user or not getattr(user, "is_authenticated", False):
        return roles

    if getattr(user, "is_superuser", False):
        roles.add(ROLE_ADMIN)
        return roles

    if hasattr(user, "groups"):
        roles.update(user.groups.values_list("name", flat=True))

    if not roles:
        roles.add(ROLE_READONLY)

    return roles

class BaseRolePermission(BasePermission):
    """
    Role-based access control per ViewSet action.

    - ADMIN bypass.
    - allowed_roles_per_action maps action -> allowed roles.
    - Unknown SAFE actions fall back to list/retrieve; unknown writes are denied.
    """
    message = "You do not have permission to perform this action."

    allowed_roles_per_action: dict[str, frozenset[str]] = {
        "list": ANY_STAFF,
        "retrieve": ANY_STAFF,
    }

    def _infer_action(self, request, view) -> str | None:
        action = getattr(view, "action", None)
        if action:
            return action

        kwargs = getattr(view, "kwargs", {}) or {}
        is_detail = "pk" in kwargs or "id" in kwargs

        method = request.method.upper()
        if method in SAFE_METHODS:
            return "retrieve" if is_detail else "list"
        if method == "POST":
            return "create"
        if method == "PATCH":
            return "partial_update"
        return None

    def has_permission(self, request, view) -> bool:
        user = request.user
        if not user or not getattr(user, "is_authenticated", False):
            return False

        roles = user_roles(user)
        if ROLE_ADMIN in roles:
            return True

        action = self._infer_action(request, view)
        allowed = self.allowed_roles_per_action.get(action)

        if allowed is None and request.method in SAFE_METHODS:
            kwargs = getattr(view, "kwargs", {}) or {}
            read_action = "retrieve" if ("pk" in kwargs or "id" in kwargs) else "list"
            allowed = self.allowed_roles_per_action.get(read_action)

        if allowed is not None:
            return bool(roles & allowed)

        return False

class AdmissionPermission(BaseRolePermission):
    allowed_roles_per_action = {
        "list": ANY_STAFF,
        "retrieve": ANY_STAFF,
        "timeline": ANY_STAFF,
        "current_bed": ANY_STAFF,
        "bed_assignments": ANY_STAFF,
        "bed_log": ANY_STAFF,
        "create": CLINICAL_STAFF,
        "partial_update": frozenset({ROLE_DOCTOR}),
        # Attending-doctor check happens in the service.
        "request_discharge": frozenset({ROLE_DOCTOR}),
        "cancel_discharge_request": CLINICAL_STAFF,
        "finalize_discharge": CLINICAL_STAFF,
        "assign_bed": CLINICAL_STAFF,
        "transfer_bed": CLINICAL_STAFF,
        "release_bed": CLINICAL_STAFF,
    }

class BedPermission(BaseRolePermission):
    allowed_roles_per_action = {
        "list": ANY_STAFF,
        "retrieve": ANY_STAFF,
        "available": ANY_STAFF,
        "history": ANY_STAFF,
        "occupant": ANY_STAFF,
        "floors": ANY_STAFF,
        "recent_changes": ANY_STAFF,
        "long_maintenance": ANY_STAFF,
        "staff_activity": frozenset({ROLE_BED_MANAGER}),
        "reserve": WARD_STAFF,
        "cancel_reservation": WARD_STAFF,
        "maintenance": WARD_STAFF,
        "complete_maintenance": WARD_STAFF,
        "mark_cleaned": WARD_STAFF,
    }

class RoomPermission(BaseRolePermission):
    allowed_roles_per_action = {
        "list": ANY_STAFF,
        "retrieve": ANY_STAFF,
        "create": WARD_STAFF,
        "add_bed": WARD_STAFF,
        "operational": WARD_STAFF,
    }

class SequencePermission(BaseRolePermission):
    allowed_roles_per_action = {
        "list": ANY_STAFF,
        "retrieve": ANY_STAFF,
        "next": frozenset({ROLE_RECEPTION}),
    }
