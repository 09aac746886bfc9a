# QMR Guard - Gate: operation id -> Rule, evaluated before any resolver runs
import logging
from types import MappingProxyType
from typing import Any, Mapping

from .audit import AuditLogger
from .checker import PermissionChecker
from .errors import InternalError, ValidationError
from .models import Decision, Principal
from .roles import Role
from .rules import (
    AllowAlways,
    Composite,
    DenyAlways,
    PermissionCheck,
    ResourceOwnershipCheck,
    Rule,
    all_of,
    allow,
    deny,
    has_permission,
    owns_resource,
)

logger = logging.getLogger(__name__)

NO_RULE = "No rule for operation"
INVALID_IDENTIFIER = "Invalid resource identifier"
INTERNAL_ERROR = "Internal authorization error"

# Operations absent from this table are denied for everyone, root included.
DEFAULT_GATE_MAP: Mapping[str, Rule] = MappingProxyType({
    # Queries
    "Query.me": has_permission("update_own_profile"),
    "Query.getAdmins": has_permission("view_admins"),
    "Query.getAdmin": all_of(has_permission("view_admins"), owns_resource("id", Role.admin)),
    "Query.getTeachers": has_permission("view_teachers"),
    "Query.getTeacher": all_of(has_permission("view_teachers"), owns_resource("id", Role.teacher)),
    "Query.getDegrees": has_permission("view_teachers"),
    "Query.getDegree": has_permission("view_teachers"),
    "Query.getCacheStats": has_permission("manage_system"),
    "Query.getAuditLogs": has_permission("view_audit_logs"),
    # Mutations
    "Mutation.login": allow,
    "Mutation.addAdmin": has_permission("create_admin"),
    "Mutation.addTeacher": has_permission("create_teacher"),
    "Mutation.changeAdmin": all_of(has_permission("update_admin"), owns_resource("id", Role.admin)),
    "Mutation.changeTeacher": all_of(has_permission("update_teacher"), owns_resource("id", Role.teacher)),
    "Mutation.changeAdminActive": has_permission("change_admin_status"),
    "Mutation.changeTeacherActive": all_of(
        has_permission("change_teacher_status"), owns_resource("id", Role.teacher),
    ),
    "Mutation.deleteAdmin": has_permission("delete_admin"),
    "Mutation.deleteTeacher": has_permission("delete_teacher"),
    "Mutation.changePassword": has_permission("update_own_profile"),
    "Mutation.updateProfile": has_permission("update_own_profile"),
    "Mutation.addDegree": has_permission("manage_system"),
    "Mutation.updateDegree": has_permission("manage_system"),
    "Mutation.deleteDegree": has_permission("manage_system"),
    "Mutation.invalidateUserPermissions": has_permission("manage_system"),
    "Mutation.invalidateAllPermissions": has_permission("manage_system"),
    "Mutation.pruneAuditLogs": has_permission("manage_system"),
    "Mutation.testFileUpload": deny,
})


class Gate:
    """Fail-closed evaluator for the operation -> Rule table."""

    def __init__(self, checker: PermissionChecker, audit: AuditLogger,
                 gate_map: Mapping[str, Rule] = DEFAULT_GATE_MAP):
        self.checker = checker
        self.audit = audit
        self._map = MappingProxyType(dict(gate_map))

    def rule_for(self, operation_id: str) -> Rule | None:
        return self._map.get(operation_id)

    def operations(self) -> list[str]:
        return sorted(self._map)

    async def evaluate(self, operation_id: str, args: Mapping[str, Any] | None,
                       principal: Principal | None) -> Decision:
        args = args or {}
        rule = self._map.get(operation_id)
        if rule is None:
            self.audit.log_security(principal, operation_id, "gate", success=False,
                                    details={"reason": NO_RULE})
            return Decision.deny(NO_RULE, operation=operation_id)

        try:
            return await self._evaluate(rule, operation_id, args, principal)
        except ValidationError as e:
            self.audit.log_permission(principal, operation_id, "gate", success=False,
                                      details={"reason": INVALID_IDENTIFIER, "field": e.field})
            return Decision.deny(INVALID_IDENTIFIER, operation=operation_id)
        except Exception as e:
            err = InternalError(f"{type(e).__name__}: {e}")
            logger.exception("Rule evaluation failed for %s", operation_id)
            self.audit.log_security(principal, operation_id, "gate", success=False,
                                    details={"reason": INTERNAL_ERROR}, error_message=str(err))
            return Decision.deny(INTERNAL_ERROR, operation=operation_id)

    async def _evaluate(self, rule: Rule, operation_id: str, args: Mapping[str, Any],
                        principal: Principal | None) -> Decision:
        if isinstance(rule, (AllowAlways, DenyAlways)):
            allowed = isinstance(rule, AllowAlways)
            decision = Decision.allow("Public operation") if allowed else Decision.deny("Operation disabled")
            self.audit.log_permission(principal, operation_id, "gate", success=allowed,
                                      details={"reason": decision.reason})
            return decision
        if isinstance(rule, PermissionCheck):
            return await self.checker.check_permission(principal, rule.permission, resource=operation_id)
        if isinstance(rule, ResourceOwnershipCheck):
            if rule.id_param not in args:
                raise ValidationError(rule.id_param, "missing resource identifier")
            if rule.owner_role is not None:
                owner_role = rule.owner_role
            elif rule.owner_role_param in args:
                owner_role = args[rule.owner_role_param]
            else:
                raise ValidationError(rule.owner_role_param, "missing owner role")
            return await self.checker.check_resource_access(principal, args[rule.id_param], owner_role)
        if isinstance(rule, Composite):
            decision = None
            for sub in rule.rules:
                decision = await self._evaluate(sub, operation_id, args, principal)
                if not decision.allowed:
                    return decision
            return decision
        raise InternalError(f"unsupported rule {rule!r}")
