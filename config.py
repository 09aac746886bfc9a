# QMR Guard - configuration
from pathlib import Path
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    secret_key: str = "dev-secret-change-in-production"
    database_url: str = "sqlite+aiosqlite:///./qmr.db"
    log_level: str = "INFO"

    # token verification
    jwt_algorithm: str = "HS256"
    jwt_issuer: str = "qmr-backend"
    jwt_audience: str = "qmr-frontend"
    token_expire_days: int = 10

    # permission cache
    permission_cache_ttl: float = 300.0
    permission_cache_max_size: int = 1000

    # audit trail
    audit_logging_enabled: bool = True
    audit_log_file: Path | None = Path("./data/audit_log.jsonl")
    audit_echo: bool = False
    audit_retention_days: int = 30
    audit_prune_interval_seconds: float = 3600.0

    # seeded on startup when root_password is set
    root_username: str = "root"
    root_password: str = ""

    class Config:
        env_file = ".env"
        extra = "ignore"


def get_settings() -> Settings:
    return Settings()
