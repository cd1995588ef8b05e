import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from supabase import PostgrestAPIError
from tenacity import wait_none

from unilink.errors import ConflictError, RemoteCallError
from unilink.supabase_manager import Join, SupabaseStore, or_clause, select_columns


def make_client(*responses):
    """Client whose query builder chains to itself and returns ``responses`` from execute()."""
    builder = MagicMock()
    for method in ("select", "eq", "in_", "or_", "order", "limit", "insert", "update", "delete"):
        getattr(builder, method).return_value = builder
    builder.execute = AsyncMock(side_effect=list(responses))
    client = MagicMock()
    client.table.return_value = builder
    return client, builder


def response(data=None, count=None):
    return SimpleNamespace(data=data, count=count)


def make_store(client, **kwargs):
    kwargs.setdefault("retry_wait", wait_none())
    return SupabaseStore(client, timeout=1, read_attempts=3, **kwargs)


def test_select_columns_renders_joins():
    assert select_columns("*", {"author": Join("profiles", "user_id")}) == "*, author:profiles!user_id(*)"


def test_or_clause_renders_groups():
    clause = or_clause([{"a": 1, "b": 2}, {"c": 3}])
    assert clause == "and(a.eq.1,b.eq.2),c.eq.3"


async def test_select_builds_query():
    client, builder = make_client(response([{"id": "p1"}]))
    store = make_store(client)

    rows = await store.select("posts", {"user_id": "u1"}, joins={"author": Join("profiles", "user_id")},
                              any_of=[{"a": 1}], in_={"id": ["p1"]}, order="created_at", desc=True, limit=5)

    assert rows == [{"id": "p1"}]
    client.table.assert_called_with("posts")
    builder.select.assert_called_with("*, author:profiles!user_id(*)")
    builder.eq.assert_called_with("user_id", "u1")
    builder.in_.assert_called_with("id", ["p1"])
    builder.or_.assert_called_with("a.eq.1")
    builder.order.assert_called_with("created_at", desc=True)
    builder.limit.assert_called_with(5)


async def test_select_with_empty_in_list_skips_the_call():
    client, builder = make_client()
    assert await make_store(client).select("profiles", in_={"id": []}) == []
    builder.execute.assert_not_called()


async def test_count_uses_exact_count():
    client, builder = make_client(response([], count=7))
    assert await make_store(client).count("post_likes", {"post_id": "p1"}) == 7
    builder.select.assert_called_with("id", count="exact")


async def test_reads_are_retried_on_transient_errors():
    client, builder = make_client(httpx.ConnectError("down"), response([{"id": "j1"}]))
    assert await make_store(client).select("jobs") == [{"id": "j1"}]
    assert builder.execute.await_count == 2


async def test_reads_give_up_after_configured_attempts():
    client, builder = make_client(*[httpx.ConnectError("down")] * 3)
    with pytest.raises(RemoteCallError):
        await make_store(client).select("jobs")
    assert builder.execute.await_count == 3


async def test_writes_are_not_retried():
    client, builder = make_client(httpx.ConnectError("down"), response([{"id": "x"}]))
    with pytest.raises(RemoteCallError):
        await make_store(client).insert("post_likes", {"post_id": "p1", "user_id": "u1"})
    assert builder.execute.await_count == 1


async def test_unique_violation_becomes_conflict():
    error = PostgrestAPIError({"message": "duplicate key", "code": "23505", "hint": None, "details": None})
    client, _ = make_client(error)
    with pytest.raises(ConflictError):
        await make_store(client).insert("applications", {"job_id": "j1", "student_id": "u1"})


async def test_other_api_errors_are_not_retryable():
    error = PostgrestAPIError({"message": "permission denied", "code": "42501", "hint": None, "details": None})
    client, builder = make_client(error)
    with pytest.raises(RemoteCallError) as exc_info:
        await make_store(client).select("profiles")
    assert not exc_info.value.retryable
    assert builder.execute.await_count == 1


async def test_timeout_becomes_remote_call_error():
    async def hang():
        await asyncio.sleep(10)

    client, builder = make_client()
    builder.execute = hang
    store = SupabaseStore(client, timeout=0.01, read_attempts=1)
    with pytest.raises(RemoteCallError, match="timed out"):
        await store.update("posts", {"likes": 1}, {"id": "p1"})


async def test_insert_returns_first_row_and_rejects_empty():
    client, _ = make_client(response([{"id": "n1"}]), response([]))
    store = make_store(client)
    assert await store.insert("notifications", {"user_id": "u1"}) == {"id": "n1"}
    with pytest.raises(RemoteCallError):
        await store.insert("notifications", {"user_id": "u1"})


async def test_update_and_delete_require_filters():
    client, _ = make_client()
    store = make_store(client)
    with pytest.raises(ValueError):
        await store.update("posts", {"likes": 0}, {})
    with pytest.raises(ValueError):
        await store.delete("posts", {})
