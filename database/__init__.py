# QMR Guard database
from .models import Base, Account
from .database import create_session_factory, init_db
from .accounts import SqlAccountStore
from .seed import ensure_root_account

__all__ = [
    "Base",
    "Account",
    "create_session_factory",
    "init_db",
    "SqlAccountStore",
    "ensure_root_account",
]
