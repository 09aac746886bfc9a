# QMR Guard - API entry point
# Every operation goes: bearer token -> Principal -> gate (rule + checker + cache + audit) -> resolver.
import asyncio
import logging
from contextlib import asynccontextmanager, suppress

from dotenv import load_dotenv
from fastapi import FastAPI, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from auth import TokenVerifier, hash_password, verify_password
from config import Settings, get_settings
from database import SqlAccountStore, create_session_factory, ensure_root_account, init_db
from guard import AccessControl, AuditLogger, AuthenticationError, PermissionDenied, Role, ValidationError
from server.dispatcher import OperationDispatcher, UnknownOperation
from server.endpoints import get_dispatcher, parse_args, register_resolvers, router as admin_router

load_dotenv()

logger = logging.getLogger(__name__)


class LoginRequest(BaseModel):
    username: str
    password: str
    role: str  # root | admin | teacher


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    role: str
    user_id: int


def make_login_resolver(accounts: SqlAccountStore, verifier: TokenVerifier, access: AccessControl):
    audit = access.audit

    async def login(args, principal):
        body = parse_args(LoginRequest, args)
        username = body.username
        try:
            role = Role(body.role)
        except ValueError:
            audit.log_auth(None, "login", success=False, details={"username": username, "reason": "unknown_role"})
            raise AuthenticationError("Invalid username or password")
        account = await accounts.find_by_username(username, role)
        if account is None or not verify_password(body.password, account.password_hash):
            audit.log_auth(None, "login", success=False, details={"username": username, "reason": "bad_credentials"})
            raise AuthenticationError("Invalid username or password")
        if role != Role.root and not account.is_active:
            audit.log_auth(None, "login", success=False, details={"username": username, "reason": "inactive"})
            raise AuthenticationError("Invalid username or password")
        token = verifier.issue(account.id, role, account.username)
        audit.log_auth(None, "login", success=True, details={"username": account.username, "account_id": account.id})
        return LoginResponse(access_token=token, role=role.value, user_id=account.id)

    return login


async def prune_audit_trail(audit: AuditLogger, retention_days: int, interval: float) -> None:
    """Retention loop: every interval seconds drop entries older than retention_days."""
    while True:
        await asyncio.sleep(interval)
        try:
            audit.prune(retention_days)
        except Exception:
            logger.exception("Audit retention pass failed")


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    logging.basicConfig(level=settings.log_level)

    engine, session_factory = create_session_factory(settings.database_url)
    await init_db(engine)
    accounts = SqlAccountStore(session_factory)
    if settings.root_password:
        await ensure_root_account(accounts, settings.root_username, hash_password(settings.root_password))

    verifier = TokenVerifier.from_settings(settings)
    access = AccessControl.build(
        accounts,
        verifier,
        cache_ttl=settings.permission_cache_ttl,
        cache_max_size=settings.permission_cache_max_size,
        audit_enabled=settings.audit_logging_enabled,
        audit_log_file=settings.audit_log_file,
        audit_echo=settings.audit_echo,
    )
    dispatcher = OperationDispatcher(access.gate)
    register_resolvers(dispatcher, access, accounts, retention_days=settings.audit_retention_days)
    dispatcher.register("Mutation.login")(make_login_resolver(accounts, verifier, access))

    app.state.access = access
    app.state.accounts = accounts
    app.state.dispatcher = dispatcher
    retention = asyncio.create_task(
        prune_audit_trail(access.audit, settings.audit_retention_days, settings.audit_prune_interval_seconds)
    )
    logger.info("QMR Guard ready: %d gated operations", len(access.gate.operations()))
    yield
    # shutdown
    retention.cancel()
    with suppress(asyncio.CancelledError):
        await retention
    access.close()
    await engine.dispose()


def create_app(settings: Settings | None = None) -> FastAPI:
    app = FastAPI(title="QMR Guard", description="Role-based permission gate with decision cache and audit trail",
                  lifespan=lifespan)
    app.state.settings = settings or get_settings()

    @app.exception_handler(PermissionDenied)
    async def permission_denied(request: Request, exc: PermissionDenied):
        # uniform body: never says which rule failed or whether the resource exists
        return JSONResponse(status_code=403, content={"detail": str(exc)})

    @app.exception_handler(AuthenticationError)
    async def authentication_failed(request: Request, exc: AuthenticationError):
        return JSONResponse(status_code=401, content={"detail": str(exc)})

    @app.exception_handler(ValidationError)
    async def validation_failed(request: Request, exc: ValidationError):
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    @app.exception_handler(UnknownOperation)
    async def unknown_operation(request: Request, exc: UnknownOperation):
        return JSONResponse(status_code=404, content={"detail": "Unknown operation"})

    @app.post("/api/login", response_model=LoginResponse)
    async def login(body: LoginRequest, dispatcher: OperationDispatcher = Depends(get_dispatcher)):
        """Login: username, password, role. Returns a bearer token."""
        return await dispatcher.dispatch("Mutation.login", body.model_dump(), None)

    @app.get("/health")
    async def health(request: Request):
        access: AccessControl = request.app.state.access
        return {
            "status": "ok",
            "gate_operations": len(access.gate.operations()),
            "permission_cache": access.get_cache_stats(),
            "audit_entries": len(access.audit),
        }

    app.include_router(admin_router)
    return app


app = create_app()


if __name__ == "__main__":
    import os
    import uvicorn
    host = os.environ.get("UVICORN_HOST", "127.0.0.1")
    port = int(os.environ.get("PORT", "8000"))
    uvicorn.run("main:app", host=host, port=port, reload=False)
