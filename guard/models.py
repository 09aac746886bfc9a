# QMR Guard - protocol objects
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from pydantic import BaseModel, ConfigDict, Field

from .roles import Role


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# --- Principal (per request, never persisted) ---
class Principal(BaseModel):
    """Who is making the request, as carried by a verified token."""
    model_config = ConfigDict(frozen=True)

    id: int = Field(..., description="Account identifier")
    role: Role = Field(..., description="root | admin | teacher")
    username: str


# --- Decision ---
class Decision(BaseModel):
    model_config = ConfigDict(frozen=True)

    allowed: bool
    reason: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=_utcnow)

    @classmethod
    def allow(cls, reason: str, **metadata) -> "Decision":
        return cls(allowed=True, reason=reason, metadata=metadata)

    @classmethod
    def deny(cls, reason: str, **metadata) -> "Decision":
        return cls(allowed=False, reason=reason, metadata=metadata)


# --- Permission cache entry ---
class CacheEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    decision: Decision
    timestamp: float = Field(..., description="Clock reading at insertion")

    @property
    def allowed(self) -> bool:
        return self.decision.allowed

    @property
    def reason(self) -> str:
        return self.decision.reason


# --- Account store answer ---
class AccountStatus(BaseModel):
    exists: bool = False
    active: bool = False


# --- Audit ---
class AuditLevel(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    SECURITY = "security"


class AuditCategory(str, Enum):
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    DATA_ACCESS = "data_access"
    DATA_MODIFICATION = "data_modification"
    SYSTEM = "system"
    SECURITY = "security"


class AuditEntry(BaseModel):
    """Append-only record of one authentication/authorization decision or security event."""
    principal_id: int | None = None
    role: str | None = None
    action: str
    resource: str | None = None
    resource_id: int | str | None = None
    level: AuditLevel = AuditLevel.INFO
    category: AuditCategory = AuditCategory.SYSTEM
    success: bool = True
    details: dict[str, Any] = Field(default_factory=dict)
    error_message: str | None = None
    timestamp: datetime = Field(default_factory=_utcnow)
