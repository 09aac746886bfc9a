import pytest
import pytest_asyncio

from database import SqlAccountStore, create_session_factory, ensure_root_account, init_db
from guard import Role


@pytest_asyncio.fixture
async def store(tmp_path):
    engine, session_factory = create_session_factory(f"sqlite+aiosqlite:///{tmp_path}/accounts.db")
    await init_db(engine)
    yield SqlAccountStore(session_factory)
    await engine.dispose()


@pytest.mark.asyncio
async def test_exists_reports_active_and_inactive(store):
    active = await store.create("alice", "h", Role.admin)
    inactive = await store.create("bob", "h", Role.teacher, is_active=False)

    status = await store.exists(Role.admin, active.id)
    assert (status.exists, status.active) == (True, True)
    status = await store.exists(Role.teacher, inactive.id)
    assert (status.exists, status.active) == (True, False)


@pytest.mark.asyncio
async def test_exists_checks_role(store):
    account = await store.create("alice", "h", Role.admin)
    status = await store.exists(Role.teacher, account.id)
    assert status.exists is False
    status = await store.exists(Role.admin, 999)
    assert status.exists is False


@pytest.mark.asyncio
async def test_root_is_always_active(store):
    root = await store.create("root", "h", Role.root, is_active=False)
    status = await store.exists(Role.root, root.id)
    assert (status.exists, status.active) == (True, True)


@pytest.mark.asyncio
async def test_ids_are_unique_across_roles(store):
    a = await store.create("same", "h", Role.admin)
    t = await store.create("same", "h", Role.teacher)
    assert a.id != t.id
    assert await store.count() == 2


@pytest.mark.asyncio
async def test_set_active(store):
    account = await store.create("carol", "h", Role.teacher)
    updated = await store.set_active(Role.teacher, account.id, False)
    assert updated.is_active is False
    assert (await store.exists(Role.teacher, account.id)).active is False
    assert await store.set_active(Role.admin, account.id, False) is None
    assert await store.set_active(Role.teacher, 12345, True) is None


@pytest.mark.asyncio
async def test_find_by_username_is_role_scoped(store):
    await store.create("dave", "h", Role.admin, fullname="Dave")
    found = await store.find_by_username("dave", "admin")
    assert found.fullname == "Dave"
    assert await store.find_by_username("dave", Role.teacher) is None


@pytest.mark.asyncio
async def test_ensure_root_account_is_idempotent(store):
    assert await ensure_root_account(store, "root", "hash") is True
    assert await ensure_root_account(store, "root", "other-hash") is False
    root = await store.find_by_username("root", Role.root)
    assert root.password_hash == "hash"
    assert await store.count() == 1
