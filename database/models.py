# QMR Guard - database models (account table consulted by the account store)
from datetime import datetime, timezone
from sqlalchemy import Boolean, Column, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import declarative_base


Base = declarative_base()


def _utcnow():
    return datetime.now(timezone.utc)


class Account(Base):
    """One row per root/admin/teacher; ids are unique across roles."""
    __tablename__ = "accounts"
    __table_args__ = (UniqueConstraint("role", "username", name="uq_accounts_role_username"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(64), nullable=False, index=True)
    password_hash = Column(String(256), nullable=False)
    role = Column(String(20), nullable=False)  # root, admin, teacher
    fullname = Column(String(128), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    def __repr__(self):
        return f"<Account(id={self.id}, username={self.username}, role={self.role})>"
