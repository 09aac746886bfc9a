# QMR Guard - seed the initial root account
import asyncio
import logging

from guard import Role
from .accounts import SqlAccountStore
from .database import create_session_factory, init_db

logger = logging.getLogger(__name__)


async def ensure_root_account(store: SqlAccountStore, username: str, password_hash: str,
                              fullname: str = "Root User") -> bool:
    """Create the root account if it is missing. Returns True when one was created."""
    if await store.find_by_username(username, Role.root) is not None:
        logger.info("Root account %r already present. Skip.", username)
        return False
    await store.create(username, password_hash, Role.root, fullname=fullname)
    logger.info("Root account %r created.", username)
    return True


async def seed():
    from auth import hash_password
    from config import get_settings

    settings = get_settings()
    if not settings.root_password:
        print("ROOT_PASSWORD is not set. Skip.")
        return
    engine, session_factory = create_session_factory(settings.database_url)
    await init_db(engine)
    store = SqlAccountStore(session_factory)
    created = await ensure_root_account(store, settings.root_username, hash_password(settings.root_password))
    await engine.dispose()
    print("Seed completed." if created else "Database already seeded. Skip.")


if __name__ == "__main__":
    asyncio.run(seed())
