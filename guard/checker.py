# QMR Guard - Permission checker (permission lookup, resource ownership, composite checks)
import asyncio
import logging
from typing import Iterable, Protocol

from .audit import AuditLogger
from .cache import PermissionCache
from .errors import PermissionDenied, ValidationError, parse_resource_id
from .models import AccountStatus, Decision, Principal
from .roles import DEFAULT_REGISTRY, PermissionRegistry, Role, coerce_role

logger = logging.getLogger(__name__)

# Reserved cache slot holding the account-store verdict for a principal
ACCOUNT_STATUS_KEY = "__account_status__"

NO_USER = "No user provided"
INVALID_USER = "Invalid user"
UNKNOWN_PERMISSION = "Unknown permission"


class AccountStore(Protocol):
    async def exists(self, role: Role, account_id: int) -> AccountStatus: ...


def parse_role(value, field: str = "owner_role") -> Role:
    role = coerce_role(value)
    if role is None:
        raise ValidationError(field, f"unknown role {value!r}")
    return role


class PermissionChecker:
    """
    Answers "may this principal do X (to this resource)?".

    Decisions are memoized in the shared PermissionCache keyed by
    (principal id, permission). The account-store lookup is the only await
    and is cached under ACCOUNT_STATUS_KEY for the same principal, so
    PermissionCache.invalidate_user drops both.
    """

    def __init__(
        self,
        cache: PermissionCache,
        accounts: AccountStore,
        audit: AuditLogger,
        registry: PermissionRegistry = DEFAULT_REGISTRY,
    ):
        self.cache = cache
        self.accounts = accounts
        self.audit = audit
        self.registry = registry

    async def _validate_principal(self, principal: Principal) -> Decision:
        cached = self.cache.get(principal.id, ACCOUNT_STATUS_KEY)
        if cached is not None:
            return cached.decision
        try:
            status = await self.accounts.exists(principal.role, principal.id)
        except Exception:
            # not cached: the next request retries the store
            logger.exception("Account lookup failed for %s(%s)", principal.role.value, principal.id)
            return Decision.deny(INVALID_USER)
        if status.exists and status.active:
            decision = Decision.allow("Active account")
        else:
            decision = Decision.deny(INVALID_USER, exists=status.exists, active=status.active)
        self.cache.set(principal.id, ACCOUNT_STATUS_KEY, decision)
        return decision

    async def check_permission(self, principal: Principal | None, permission: str,
                               *, resource: str | None = None) -> Decision:
        if principal is None:
            decision = Decision.deny(NO_USER)
            self.audit.log_permission(None, permission, resource, success=False,
                                      details={"reason": decision.reason})
            return decision

        if not self.registry.is_known_permission(permission):
            decision = Decision.deny(UNKNOWN_PERMISSION)
            self.audit.log_security(principal, permission, resource, success=False,
                                    details={"reason": decision.reason})
            return decision

        account = await self._validate_principal(principal)
        if not account.allowed:
            decision = account
        else:
            cached = self.cache.get(principal.id, permission)
            if cached is not None:
                decision = cached.decision
            else:
                granted = self.registry.has_permission(principal.role, permission)
                decision = Decision.allow("Permission granted") if granted else Decision.deny("Permission denied")
                self.cache.set(principal.id, permission, decision)

        self.audit.log_permission(principal, permission, resource, success=decision.allowed,
                                  details={"reason": decision.reason})
        return decision

    async def check_resource_access(self, principal: Principal | None, resource_id,
                                    resource_owner_role) -> Decision:
        if principal is None:
            decision = Decision.deny(NO_USER)
            self.audit.log_permission(None, "resource_access", None, success=False,
                                      details={"reason": decision.reason})
            return decision

        # validate before any comparison; raises ValidationError
        target_id = parse_resource_id(resource_id)
        owner_role = parse_role(resource_owner_role)

        account = await self._validate_principal(principal)
        if not account.allowed:
            decision = account
        elif principal.role == Role.root:
            decision = Decision.allow("Root access")
        elif principal.id == target_id:
            decision = Decision.allow("Own resource access")
        elif self.registry.is_higher_role(principal.role, owner_role):
            decision = Decision.allow("Higher role access")
        else:
            decision = Decision.deny("Insufficient permissions")

        self.audit.log_permission(principal, "resource_access", owner_role.value, success=decision.allowed,
                                  resource_id=target_id, details={"reason": decision.reason})
        return decision

    async def check_action_permission(self, principal: Principal | None, action: str,
                                      resource_id=None, resource_owner_role=None) -> Decision:
        permission = await self.check_permission(principal, action)
        if not permission.allowed:
            return permission

        if resource_id is not None and resource_owner_role is not None:
            access = await self.check_resource_access(principal, resource_id, resource_owner_role)
            if not access.allowed:
                return access

        return Decision.allow("Action allowed")

    async def check_multiple_permissions(self, principal: Principal | None,
                                         permissions: Iterable[str]) -> dict[str, Decision]:
        names = list(dict.fromkeys(permissions))
        results = await asyncio.gather(*(self.check_permission(principal, p) for p in names))
        return dict(zip(names, results))

    async def validate_permission(self, principal: Principal | None, permission: str,
                                  resource_id=None, resource_owner_role=None) -> bool:
        """Raise PermissionDenied unless the action is allowed."""
        decision = await self.check_action_permission(principal, permission, resource_id, resource_owner_role)
        if not decision.allowed:
            raise PermissionDenied(decision.reason, operation=permission)
        return True
