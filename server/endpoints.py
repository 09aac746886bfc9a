"""
Administrative API routes: permission cache, audit log, account status.

Every route goes through the OperationDispatcher under a Query./Mutation.
operation id, so the gate decides before any of the resolvers below run.
"""

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Body, Depends, Request
from pydantic import BaseModel, Field
from pydantic import ValidationError as ArgumentError

from auth import get_principal
from database.accounts import SqlAccountStore
from guard import AccessControl, AuditCategory, AuditLevel, Principal, Role, ValidationError, parse_resource_id
from guard.checker import parse_role
from server.dispatcher import OperationDispatcher

router = APIRouter(prefix="/api")


class ActiveStatus(BaseModel):
    is_active: bool


class AuditLogQuery(BaseModel):
    principal_id: int | None = Field(None, ge=0)
    action: str | None = None
    level: AuditLevel | None = None
    category: AuditCategory | None = None
    start: datetime | None = None
    end: datetime | None = None
    limit: int | None = Field(None, ge=1)


class AuditPrune(BaseModel):
    older_than_days: int = Field(ge=0)


def parse_args(model: type[BaseModel], args: dict) -> BaseModel:
    """Validate resolver arguments; failures surface as guard ValidationError."""
    try:
        return model.model_validate(args)
    except ArgumentError as e:
        err = e.errors()[0]
        field = ".".join(str(p) for p in err["loc"]) or model.__name__
        raise ValidationError(field, err["msg"]) from e


def get_dispatcher(request: Request) -> OperationDispatcher:
    return request.app.state.dispatcher


def _account_view(account) -> dict:
    return {
        "id": account.id,
        "username": account.username,
        "role": account.role,
        "fullname": account.fullname,
        "is_active": account.is_active,
    }


def register_resolvers(dispatcher: OperationDispatcher, access: AccessControl, accounts: SqlAccountStore,
                       retention_days: int = 30) -> None:
    audit = access.audit

    @dispatcher.register("Query.me")
    async def me(args, principal: Principal):
        return {"id": principal.id, "role": principal.role.value, "username": principal.username}

    @dispatcher.register("Query.getCacheStats")
    async def get_cache_stats(args, principal):
        return access.get_cache_stats()

    @dispatcher.register("Mutation.invalidateUserPermissions")
    async def invalidate_user_permissions(args, principal):
        target = parse_resource_id(args.get("principal_id"), "principal_id")
        removed = access.invalidate_user(target)
        audit.log_security(principal, "invalidate_user_permissions", "permission_cache",
                           details={"target": target, "removed": removed})
        return {"success": True, "removed": removed}

    @dispatcher.register("Mutation.invalidateAllPermissions")
    async def invalidate_all_permissions(args, principal):
        removed = access.invalidate_all()
        audit.log_security(principal, "invalidate_all_permissions", "permission_cache",
                           details={"removed": removed})
        return {"success": True, "removed": removed}

    @dispatcher.register("Query.getAuditLogs")
    async def get_audit_logs(args, principal):
        query = parse_args(AuditLogQuery, {k: v for k, v in args.items() if v is not None})
        entries = audit.get_logs(
            principal_id=query.principal_id,
            action=query.action,
            level=query.level,
            category=query.category,
            start=query.start,
            end=query.end,
        )
        if query.limit:
            entries = entries[-query.limit:]
        return {"total_entries": len(entries), "entries": [e.model_dump(mode="json") for e in entries]}

    @dispatcher.register("Mutation.pruneAuditLogs")
    async def prune_audit_logs(args, principal):
        days = args.get("older_than_days")
        prune = parse_args(AuditPrune, {"older_than_days": retention_days if days is None else days})
        removed = audit.prune(prune.older_than_days)
        audit.log_security(principal, "prune_audit_logs", "audit_log",
                           details={"older_than_days": prune.older_than_days, "removed": removed})
        return {"success": True, "removed": removed}

    async def _change_active(role: Role, args: dict, principal: Principal) -> dict:
        account_id = parse_resource_id(args.get("id"))
        is_active = args.get("isActive")
        if not isinstance(is_active, bool):
            raise ValidationError("isActive", "expected a boolean")
        account = await accounts.set_active(role, account_id, is_active)
        if account is None:
            return {"success": False, "message": f"{role.value.capitalize()} not found", "account": None}
        # standing changed: drop every cached decision for that principal
        access.invalidate_user(account_id)
        audit.log_security(principal, f"change_{role.value}_status", role.value,
                           details={"target": account_id, "is_active": is_active})
        return {"success": True, "message": "Status updated", "account": _account_view(account)}

    @dispatcher.register("Mutation.changeAdminActive")
    async def change_admin_active(args, principal):
        return await _change_active(Role.admin, args, principal)

    @dispatcher.register("Mutation.changeTeacherActive")
    async def change_teacher_active(args, principal):
        return await _change_active(Role.teacher, args, principal)


# ============ OPERATIONS ============

@router.post("/operations/{operation_id}")
async def run_operation(
    operation_id: str,
    args: dict[str, Any] = Body(default_factory=dict),
    principal: Principal | None = Depends(get_principal),
    dispatcher: OperationDispatcher = Depends(get_dispatcher),
):
    return await dispatcher.dispatch(operation_id, args, principal)


# ============ PERMISSION CACHE ============

@router.get("/admin/cache/stats")
async def cache_stats(principal=Depends(get_principal), dispatcher=Depends(get_dispatcher)):
    return await dispatcher.dispatch("Query.getCacheStats", {}, principal)


@router.post("/admin/cache/invalidate")
async def invalidate_all(principal=Depends(get_principal), dispatcher=Depends(get_dispatcher)):
    return await dispatcher.dispatch("Mutation.invalidateAllPermissions", {}, principal)


@router.post("/admin/cache/invalidate/{principal_id}")
async def invalidate_user(principal_id: str, principal=Depends(get_principal),
                          dispatcher=Depends(get_dispatcher)):
    return await dispatcher.dispatch("Mutation.invalidateUserPermissions", {"principal_id": principal_id}, principal)


# ============ AUDIT LOG ============

@router.get("/admin/audit-log")
async def audit_log(
    principal_id: str | None = None,
    action: str | None = None,
    level: str | None = None,
    category: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int | None = None,
    principal=Depends(get_principal),
    dispatcher=Depends(get_dispatcher),
):
    args = {
        "principal_id": principal_id, "action": action, "level": level, "category": category,
        "start": start, "end": end, "limit": limit,
    }
    return await dispatcher.dispatch("Query.getAuditLogs", args, principal)


@router.delete("/admin/audit-log")
async def prune_audit_log(older_than_days: int | None = None, principal=Depends(get_principal),
                          dispatcher=Depends(get_dispatcher)):
    return await dispatcher.dispatch("Mutation.pruneAuditLogs", {"older_than_days": older_than_days}, principal)


# ============ ACCOUNT STATUS ============

@router.post("/admin/accounts/{role}/{account_id}/active")
async def change_account_active(role: str, account_id: str, body: ActiveStatus,
                                principal=Depends(get_principal), dispatcher=Depends(get_dispatcher)):
    operation = {
        Role.admin: "Mutation.changeAdminActive",
        Role.teacher: "Mutation.changeTeacherActive",
    }.get(parse_role(role, "role"))
    if operation is None:
        raise ValidationError("role", "status changes apply to admin or teacher accounts")
    return await dispatcher.dispatch(operation, {"id": account_id, "isActive": body.is_active}, principal)
