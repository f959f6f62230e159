"""
Role and tenant based permission classes.
"""
from rest_framework.permissions import BasePermission, SAFE_METHODS

from core.models import User

ADMIN_ROLES = {User.SUPER_ADMIN, User.HOSPITAL_ADMIN}
CLINICAL_ROLES = {User.SUPER_ADMIN, User.HOSPITAL_ADMIN, User.DOCTOR}
PHARMACY_ROLES = {User.SUPER_ADMIN, User.PHARMACY_STAFF}
# roles bound to one tenant, and the user field holding it
TENANT_FIELDS = {
    User.HOSPITAL_ADMIN: "hospital_id",
    User.PHARMACY_STAFF: "pharmacy_id",
    User.DISTRIBUTOR: "distributor_id",
}


def missing_tenant(user) -> bool:
    """True for a tenant-bound role whose account has no tenant set."""
    field = TENANT_FIELDS.get(getattr(user, "role", None))
    return field is not None and not getattr(user, field, None)


def has_role(user, *roles) -> bool:
    if not (user and user.is_authenticated) or missing_tenant(user):
        return False
    return getattr(user, "role", None) in roles


class RolePermission(BasePermission):
    """Allow access when the user's role is in ``roles``."""
    roles: frozenset = frozenset()

    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return has_role(getattr(request, "user", None), *self.roles)


class IsSuperAdmin(RolePermission):
    roles = frozenset({User.SUPER_ADMIN})


class IsAdminRole(RolePermission):
    """Super or hospital administrators."""
    roles = frozenset(ADMIN_ROLES)


class IsDoctor(RolePermission):
    roles = frozenset({User.DOCTOR})


class IsClinicalRole(RolePermission):
    """Doctors and administrators."""
    roles = frozenset(CLINICAL_ROLES)


class IsPatientRole(RolePermission):
    roles = frozenset({User.PATIENT})


class IsPharmacyRole(RolePermission):
    """Super admin or pharmacy staff."""
    roles = frozenset(PHARMACY_ROLES)


class IsAdminOrReadOnly(BasePermission):
    """Authenticated reads; writes for administrators only."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        user = getattr(request, "user", None)
        if not (user and user.is_authenticated) or missing_tenant(user):
            return False
        if request.method in SAFE_METHODS:
            return True
        return user.role in ADMIN_ROLES


class IsPharmacyOrReadOnly(BasePermission):
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        user = getattr(request, "user", None)
        if not (user and user.is_authenticated) or missing_tenant(user):
            return False
        return request.method in SAFE_METHODS or user.role in PHARMACY_ROLES


def scoped_pharmacy_id(user):
    """Pharmacy id a pharmacy staff member is pinned to, else None."""
    if getattr(user, "role", None) == User.PHARMACY_STAFF:
        return user.pharmacy_id
    return None


def can_access_pharmacy(user, pharmacy_id) -> bool:
    if getattr(user, "role", None) == User.SUPER_ADMIN:
        return True
    if getattr(user, "role", None) == User.PHARMACY_STAFF:
        return bool(user.pharmacy_id) and str(user.pharmacy_id) == str(pharmacy_id)
    return False
