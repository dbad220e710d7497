"""Enums and type aliases for One Scheduler."""

from enum import StrEnum


class UserRole(StrEnum):
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    TEACHER = "teacher"
    STAFF = "staff"


class AuthEvent(StrEnum):
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"


class GateStatus(StrEnum):
    CHECKING = "checking"
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"
    ERROR = "error"


class ContextState(StrEnum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY_WITH_TENANT = "ready_with_tenant"
    READY_WITHOUT_TENANT = "ready_without_tenant"
    CLEARED = "cleared"
