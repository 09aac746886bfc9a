# QMR Guard - Auth (JWT verification -> Principal; password hashing for login)
import logging
from datetime import datetime, timedelta, timezone

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext

from config import Settings
from guard import AuthenticationError, Principal, Role
from guard.audit import AuditLogger

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
bearer = HTTPBearer(auto_error=False)

# Bcrypt limit: password must be <= 72 bytes
MAX_PASSWORD_BYTES = 72


def _truncate_password(password: str) -> str:
    """Bcrypt accepts max 72 bytes; truncate to avoid ValueError."""
    if not password:
        return password
    enc = password.encode("utf-8")
    if len(enc) <= MAX_PASSWORD_BYTES:
        return password
    return enc[:MAX_PASSWORD_BYTES].decode("utf-8", errors="ignore")


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(_truncate_password(plain), hashed)


def hash_password(plain: str) -> str:
    return pwd_context.hash(_truncate_password(plain))


class TokenVerifier:
    """Signs and verifies access tokens (signature, expiry, issuer, audience)."""

    def __init__(self, secret: str, algorithm: str = "HS256", issuer: str = "qmr-backend",
                 audience: str = "qmr-frontend", expire_days: int = 10):
        self.secret = secret
        self.algorithm = algorithm
        self.issuer = issuer
        self.audience = audience
        self.expire_days = expire_days

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenVerifier":
        return cls(
            secret=settings.secret_key,
            algorithm=settings.jwt_algorithm,
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience,
            expire_days=settings.token_expire_days,
        )

    def issue(self, account_id: int, role: Role | str, username: str,
              expires_delta: timedelta | None = None) -> str:
        now = datetime.now(timezone.utc)
        expire = now + (expires_delta if expires_delta is not None else timedelta(days=self.expire_days))
        claims = {
            "sub": str(account_id),
            "id": account_id,
            "role": Role(role).value,
            "username": username,
            "iss": self.issuer,
            "aud": self.audience,
            "iat": now,
            "exp": expire,
        }
        return jwt.encode(claims, self.secret, algorithm=self.algorithm)

    def verify(self, token: str) -> Principal:
        try:
            payload = jwt.decode(
                token, self.secret, algorithms=[self.algorithm],
                audience=self.audience, issuer=self.issuer,
            )
        except JWTError as e:
            raise AuthenticationError("Invalid or expired token") from e

        account_id, role, username = payload.get("id"), payload.get("role"), payload.get("username")
        if not isinstance(account_id, int) or isinstance(account_id, bool):
            raise AuthenticationError("Token carries no integer id")
        if not isinstance(username, str) or not username:
            raise AuthenticationError("Token carries no username")
        try:
            role = Role(role)
        except ValueError as e:
            raise AuthenticationError("Token carries an unknown role") from e
        return Principal(id=account_id, role=role, username=username)


def resolve_principal(verifier: TokenVerifier, token: str | None,
                      audit: AuditLogger | None = None) -> Principal | None:
    """Soft authentication: any failure yields an anonymous (None) principal."""
    if not token:
        return None
    try:
        principal = verifier.verify(token)
    except AuthenticationError as e:
        logger.info("Token rejected: %s", e)
        if audit is not None:
            audit.log_auth(None, "verify_token", success=False, details={"reason": str(e)})
        return None
    if audit is not None:
        audit.log_auth(principal, "verify_token", success=True)
    return principal


async def get_principal(request: Request,
                        credentials: HTTPAuthorizationCredentials | None = Depends(bearer)) -> Principal | None:
    """FastAPI dependency: Principal from a Bearer Authorization header, or None."""
    if not credentials:
        return None
    access = request.app.state.access
    return resolve_principal(access.verifier, credentials.credentials, access.audit)
