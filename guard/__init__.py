# QMR Guard - authorization core (registry, cache, checker, gate, audit)
from .models import (
    Principal,
    Decision,
    CacheEntry,
    AccountStatus,
    AuditEntry,
    AuditLevel,
    AuditCategory,
)
from .roles import Role, PermissionRegistry, DEFAULT_REGISTRY, PERMISSIONS, ROLE_HIERARCHY
from .errors import (
    GuardError,
    AuthenticationError,
    PermissionDenied,
    ValidationError,
    InternalError,
    parse_resource_id,
)
from .cache import PermissionCache
from .audit import AuditLogger
from .checker import PermissionChecker, AccountStore, ACCOUNT_STATUS_KEY
from .rules import Rule, AllowAlways, DenyAlways, PermissionCheck, ResourceOwnershipCheck, Composite
from .gate import Gate, DEFAULT_GATE_MAP
from .service import AccessControl

__all__ = [
    "Principal",
    "Decision",
    "CacheEntry",
    "AccountStatus",
    "AuditEntry",
    "AuditLevel",
    "AuditCategory",
    "Role",
    "PermissionRegistry",
    "DEFAULT_REGISTRY",
    "PERMISSIONS",
    "ROLE_HIERARCHY",
    "GuardError",
    "AuthenticationError",
    "PermissionDenied",
    "ValidationError",
    "InternalError",
    "parse_resource_id",
    "PermissionCache",
    "AuditLogger",
    "PermissionChecker",
    "AccountStore",
    "ACCOUNT_STATUS_KEY",
    "Rule",
    "AllowAlways",
    "DenyAlways",
    "PermissionCheck",
    "ResourceOwnershipCheck",
    "Composite",
    "Gate",
    "DEFAULT_GATE_MAP",
    "AccessControl",
]
