"""Shared fixtures: principals, a fake account store, and a wired checker/gate."""

import pytest

from guard import AccessControl, AccountStatus, AuditLogger, Gate, PermissionCache, PermissionChecker, Principal, Role
from guard.roles import PermissionRegistry


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeAccountStore:
    """In-memory stand-in for the account store; counts lookups."""

    def __init__(self, accounts=None):
        # {(role, id): active}
        self.accounts = dict(accounts or {})
        self.calls = 0
        self.fail = False

    async def exists(self, role, account_id):
        self.calls += 1
        if self.fail:
            raise ConnectionError("account store unavailable")
        key = (Role(role), account_id)
        if key not in self.accounts:
            return AccountStatus(exists=False, active=False)
        return AccountStatus(exists=True, active=self.accounts[key])


@pytest.fixture
def root():
    return Principal(id=1, role=Role.root, username="root")


@pytest.fixture
def admin():
    return Principal(id=5, role=Role.admin, username="admin5")


@pytest.fixture
def other_admin():
    return Principal(id=6, role=Role.admin, username="admin6")


@pytest.fixture
def teacher():
    return Principal(id=9, role=Role.teacher, username="teacher9")


@pytest.fixture
def accounts():
    return FakeAccountStore({
        (Role.root, 1): True,
        (Role.admin, 5): True,
        (Role.admin, 6): True,
        (Role.teacher, 9): True,
        (Role.teacher, 10): True,
    })


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return PermissionCache(max_size=1000, ttl=300, clock=clock)


@pytest.fixture
def audit():
    logger = AuditLogger()
    yield logger
    logger.close()


@pytest.fixture
def registry():
    return PermissionRegistry()


@pytest.fixture
def checker(cache, accounts, audit, registry):
    return PermissionChecker(cache, accounts, audit, registry=registry)


@pytest.fixture
def gate(checker, audit):
    return Gate(checker, audit)


@pytest.fixture
def access(cache, audit, checker, gate):
    return AccessControl(cache, audit, checker, gate)
