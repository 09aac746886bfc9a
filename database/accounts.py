# QMR Guard - SQL account store (existence/active checks behind the permission checker)
import logging
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from guard import AccountStatus, Role
from .models import Account

logger = logging.getLogger(__name__)


class SqlAccountStore:
    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def exists(self, role: Role, account_id: int) -> AccountStatus:
        """Root accounts count as active whenever they exist."""
        async with self.session_factory() as session:
            r = await session.execute(
                select(Account.is_active).where(Account.id == account_id, Account.role == Role(role).value)
            )
            row = r.first()
        if row is None:
            return AccountStatus(exists=False, active=False)
        active = True if Role(role) == Role.root else bool(row.is_active)
        return AccountStatus(exists=True, active=active)

    async def find_by_username(self, username: str, role: Role | str) -> Account | None:
        async with self.session_factory() as session:
            r = await session.execute(
                select(Account).where(Account.username == username, Account.role == Role(role).value)
            )
            return r.scalar_one_or_none()

    async def create(self, username: str, password_hash: str, role: Role | str,
                     fullname: str | None = None, is_active: bool = True) -> Account:
        async with self.session_factory() as session:
            account = Account(
                username=username,
                password_hash=password_hash,
                role=Role(role).value,
                fullname=fullname,
                is_active=is_active,
            )
            session.add(account)
            await session.commit()
            await session.refresh(account)
            return account

    async def set_active(self, role: Role | str, account_id: int, active: bool) -> Account | None:
        async with self.session_factory() as session:
            r = await session.execute(
                select(Account).where(Account.id == account_id, Account.role == Role(role).value)
            )
            account = r.scalar_one_or_none()
            if account is None:
                return None
            if account.is_active != active:
                account.is_active = active
                await session.commit()
                await session.refresh(account)
                logger.info("Account %s(%s) active=%s", account.role, account.id, active)
            return account

    async def count(self) -> int:
        async with self.session_factory() as session:
            r = await session.execute(select(Account.id))
            return len(r.all())
