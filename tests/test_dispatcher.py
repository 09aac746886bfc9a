from unittest.mock import AsyncMock

import pytest

from guard import PermissionDenied
from server.dispatcher import OperationDispatcher, UnknownOperation


@pytest.fixture
def dispatcher(gate):
    return OperationDispatcher(gate)


@pytest.mark.asyncio
async def test_allowed_operation_runs_resolver(dispatcher, admin):
    resolver = AsyncMock(return_value=["a1", "a2"])
    dispatcher.register("Query.getAdmins")(resolver)

    assert await dispatcher.dispatch("Query.getAdmins", {"limit": 2}, admin) == ["a1", "a2"]
    resolver.assert_awaited_once_with({"limit": 2}, admin)


@pytest.mark.asyncio
async def test_denied_operation_never_reaches_resolver(dispatcher, teacher):
    resolver = AsyncMock()
    dispatcher.register("Query.getAdmins")(resolver)

    with pytest.raises(PermissionDenied) as exc:
        await dispatcher.dispatch("Query.getAdmins", {}, teacher)
    assert str(exc.value) == "Access denied"
    assert exc.value.operation == "Query.getAdmins"
    resolver.assert_not_awaited()


@pytest.mark.asyncio
async def test_anonymous_is_denied(dispatcher):
    dispatcher.register("Query.me")(AsyncMock())
    with pytest.raises(PermissionDenied):
        await dispatcher.dispatch("Query.me", None, None)


@pytest.mark.asyncio
async def test_public_operation_without_principal(dispatcher):
    dispatcher.register("Mutation.login")(lambda args, principal: {"ok": principal is None})
    assert await dispatcher.dispatch("Mutation.login", {}, None) == {"ok": True}


@pytest.mark.asyncio
async def test_gated_but_unregistered_operation(dispatcher, root):
    with pytest.raises(UnknownOperation):
        await dispatcher.dispatch("Query.getAdmins", {}, root)


@pytest.mark.asyncio
async def test_registered_but_unmapped_operation_is_denied(dispatcher, root):
    resolver = AsyncMock()
    dispatcher.register("Query.notInTheMap")(resolver)
    with pytest.raises(PermissionDenied):
        await dispatcher.dispatch("Query.notInTheMap", {}, root)
    resolver.assert_not_awaited()


def test_duplicate_registration_rejected(dispatcher):
    dispatcher.register("Query.me")(AsyncMock())
    with pytest.raises(ValueError):
        dispatcher.register("Query.me")(AsyncMock())
    assert dispatcher.operations() == ["Query.me"]
