"""Stateless authorization gates.

Every gate takes the resolved user and the requested operation explicitly;
nothing here holds a store handle.
"""

import enum

from etuition.db.models import User, UserRole
from etuition.services.exceptions import Forbidden


class Operation(str, enum.Enum):
    # Admin
    LIST_USERS = "list_users"
    CHANGE_ROLE = "change_role"
    EDIT_USER_PROFILE = "edit_user_profile"
    MODERATE_TUITION = "moderate_tuition"
    OVERRIDE_APPLICATION_STATUS = "override_application_status"
    PRUNE_LISTINGS = "prune_listings"
    # Student
    CREATE_TUITION = "create_tuition"
    EDIT_TUITION = "edit_tuition"
    DELETE_TUITION = "delete_tuition"
    VIEW_RECEIVED_APPLICATIONS = "view_received_applications"
    REJECT_APPLICATION = "reject_application"
    CREATE_CHECKOUT = "create_checkout"
    VIEW_OWN_PAYMENTS = "view_own_payments"
    # Tutor
    APPLY = "apply"
    VIEW_OWN_APPLICATIONS = "view_own_applications"
    EDIT_APPLICATION = "edit_application"
    WITHDRAW_APPLICATION = "withdraw_application"
    VIEW_ONGOING = "view_ongoing"


OPERATION_ROLES: dict[Operation, frozenset[UserRole]] = {
    Operation.LIST_USERS: frozenset({UserRole.ADMIN}),
    Operation.CHANGE_ROLE: frozenset({UserRole.ADMIN}),
    Operation.EDIT_USER_PROFILE: frozenset({UserRole.ADMIN}),
    Operation.MODERATE_TUITION: frozenset({UserRole.ADMIN}),
    Operation.OVERRIDE_APPLICATION_STATUS: frozenset({UserRole.ADMIN}),
    Operation.PRUNE_LISTINGS: frozenset({UserRole.ADMIN}),
    Operation.CREATE_TUITION: frozenset({UserRole.STUDENT}),
    Operation.EDIT_TUITION: frozenset({UserRole.STUDENT}),
    Operation.DELETE_TUITION: frozenset({UserRole.STUDENT}),
    Operation.VIEW_RECEIVED_APPLICATIONS: frozenset({UserRole.STUDENT}),
    Operation.REJECT_APPLICATION: frozenset({UserRole.STUDENT}),
    Operation.CREATE_CHECKOUT: frozenset({UserRole.STUDENT}),
    Operation.VIEW_OWN_PAYMENTS: frozenset({UserRole.STUDENT}),
    Operation.APPLY: frozenset({UserRole.TUTOR}),
    Operation.VIEW_OWN_APPLICATIONS: frozenset({UserRole.TUTOR}),
    Operation.EDIT_APPLICATION: frozenset({UserRole.TUTOR}),
    Operation.WITHDRAW_APPLICATION: frozenset({UserRole.TUTOR}),
    Operation.VIEW_ONGOING: frozenset({UserRole.TUTOR}),
}


def is_allowed(user: User | None, operation: Operation) -> bool:
    if user is None:
        return False
    return user.role in OPERATION_ROLES[operation]


def authorize(user: User | None, operation: Operation) -> User:
    """Raise Forbidden unless the user's role may perform the operation"""
    if not is_allowed(user, operation):
        raise Forbidden()
    return user


def ensure_owner(requester_email: str, owner_email: str | None, message: str = "forbidden") -> None:
    if not owner_email or requester_email.lower() != owner_email.lower():
        raise Forbidden(message)
