# QMR Guard - Operation dispatcher (gate first, resolver second)
import inspect
import logging
from typing import Any, Awaitable, Callable, Mapping

from guard import PermissionDenied, Principal
from guard.gate import Gate

logger = logging.getLogger(__name__)

Resolver = Callable[[Mapping[str, Any], Principal | None], Awaitable[Any] | Any]


class UnknownOperation(LookupError):
    pass


class OperationDispatcher:
    """Routes operation ids to resolvers; every call is gated before the resolver runs."""

    def __init__(self, gate: Gate):
        self.gate = gate
        self._resolvers: dict[str, Resolver] = {}

    def register(self, operation_id: str):
        def decorator(fn: Resolver) -> Resolver:
            if operation_id in self._resolvers:
                raise ValueError(f"resolver already registered for {operation_id}")
            self._resolvers[operation_id] = fn
            return fn
        return decorator

    def operations(self) -> list[str]:
        return sorted(self._resolvers)

    async def dispatch(self, operation_id: str, args: Mapping[str, Any] | None,
                       principal: Principal | None) -> Any:
        args = dict(args or {})
        decision = await self.gate.evaluate(operation_id, args, principal)
        if not decision.allowed:
            logger.info("Denied %s for %s: %s", operation_id,
                        f"{principal.role.value}({principal.id})" if principal else "anonymous", decision.reason)
            raise PermissionDenied(decision.reason, operation=operation_id)

        resolver = self._resolvers.get(operation_id)
        if resolver is None:
            raise UnknownOperation(operation_id)
        result = resolver(args, principal)
        if inspect.isawaitable(result):
            result = await result
        return result
