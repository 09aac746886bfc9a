# QMR Guard - AccessControl: the services built once at process start
import logging
from pathlib import Path
from typing import Any, Mapping

from .audit import AuditLogger
from .cache import DEFAULT_MAX_SIZE, DEFAULT_TTL_SECONDS, PermissionCache
from .checker import AccountStore, PermissionChecker
from .gate import DEFAULT_GATE_MAP, Gate
from .models import Decision, Principal
from .roles import DEFAULT_REGISTRY, PermissionRegistry
from .rules import Rule

logger = logging.getLogger(__name__)


class AccessControl:
    """Bundle of cache, audit trail, checker and gate passed through request context."""

    def __init__(self, cache: PermissionCache, audit: AuditLogger, checker: PermissionChecker,
                 gate: Gate, verifier=None):
        self.cache = cache
        self.audit = audit
        self.checker = checker
        self.gate = gate
        self.verifier = verifier

    @classmethod
    def build(
        cls,
        accounts: AccountStore,
        verifier=None,
        *,
        cache_ttl: float = DEFAULT_TTL_SECONDS,
        cache_max_size: int = DEFAULT_MAX_SIZE,
        audit_enabled: bool = True,
        audit_log_file: Path | str | None = None,
        audit_echo: bool = False,
        registry: PermissionRegistry = DEFAULT_REGISTRY,
        gate_map: Mapping[str, Rule] = DEFAULT_GATE_MAP,
    ) -> "AccessControl":
        cache = PermissionCache(max_size=cache_max_size, ttl=cache_ttl)
        audit = AuditLogger(enabled=audit_enabled, log_file=audit_log_file, echo=audit_echo)
        checker = PermissionChecker(cache, accounts, audit, registry=registry)
        gate = Gate(checker, audit, gate_map=gate_map)
        return cls(cache, audit, checker, gate, verifier=verifier)

    async def evaluate(self, operation_id: str, args: Mapping[str, Any] | None,
                       principal: Principal | None) -> Decision:
        return await self.gate.evaluate(operation_id, args, principal)

    def invalidate_user(self, principal_id: int) -> int:
        return self.cache.invalidate_user(principal_id)

    def invalidate_all(self) -> int:
        return self.cache.invalidate_all()

    def get_cache_stats(self) -> dict:
        return self.cache.stats()

    def close(self) -> None:
        self.audit.close()
