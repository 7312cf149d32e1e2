"""Tests for the Repository over contexts, files, sites, and messages."""

from __future__ import annotations

import asyncio

import pytest

from recall.db.models import ProcessingStatus
from recall.db.repository import Repository, new_id, utcnow
from recall.errors import NotFoundError, StorageError


@pytest.fixture
def repo(backend):
    return Repository(backend)


def _run(coro):
    return asyncio.run(coro)


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def test_new_id_is_unique():
    assert new_id() != new_id()


def test_utcnow_sorts_in_time_order():
    first = utcnow()
    second = utcnow()
    assert first <= second
    assert first.endswith("+00:00")


# ------------------------------------------------------------------
# Contexts
# ------------------------------------------------------------------

def test_create_and_get_context(repo):
    async def scenario():
        ctx = await repo.create_context("Research", "alice")
        return ctx, await repo.get_context(ctx.id)

    created, fetched = _run(scenario())
    assert fetched == created
    assert fetched.user_id == "alice"


def test_get_context_not_found(repo):
    assert _run(repo.get_context("nope")) is None


def test_require_context_raises(repo):
    with pytest.raises(NotFoundError):
        _run(repo.require_context("nope"))


def test_list_contexts_filters_by_user(repo):
    async def scenario():
        await repo.create_context("A", "alice")
        await repo.create_context("B", "bob")
        await repo.create_context("C", "alice")
        return await repo.list_contexts("alice"), await repo.list_contexts()

    mine, everyone = _run(scenario())
    assert [c.name for c in mine] == ["A", "C"]
    assert len(everyone) == 3


# ------------------------------------------------------------------
# Files
# ------------------------------------------------------------------

def test_create_file_is_pending(repo):
    async def scenario():
        ctx = await repo.create_context("Docs", "local")
        record = await repo.create_file(ctx.id, "local", "a.txt", 12, "text/plain", "k/a.txt")
        return await repo.get_file(record.id)

    record = _run(scenario())
    assert record.processing_status is ProcessingStatus.PENDING
    assert record.processing_error is None
    assert record.path == "k/a.txt"


def test_create_file_unknown_context(repo):
    with pytest.raises(StorageError):
        _run(repo.create_file("missing", "local", "a.txt", 1, "text/plain"))


def test_set_file_status_with_error(repo):
    async def scenario():
        ctx = await repo.create_context("Docs", "local")
        record = await repo.create_file(ctx.id, "local", "a.txt", 1, "text/plain")
        await repo.set_file_status(record.id, ProcessingStatus.PROCESSING)
        return await repo.set_file_status(record.id, ProcessingStatus.FAILED, "boom")

    record = _run(scenario())
    assert record.processing_status is ProcessingStatus.FAILED
    assert record.processing_error == "boom"


def test_set_file_status_missing_returns_none(repo):
    assert _run(repo.set_file_status("nope", ProcessingStatus.COMPLETED)) is None


def test_set_file_content(repo):
    async def scenario():
        ctx = await repo.create_context("Docs", "local")
        record = await repo.create_file(ctx.id, "local", "a.txt", 1, "text/plain")
        await repo.set_file_content(record.id, "full text")
        return await repo.get_file(record.id)

    assert _run(scenario()).content == "full text"


def test_list_and_delete_files(repo):
    async def scenario():
        ctx = await repo.create_context("Docs", "local")
        a = await repo.create_file(ctx.id, "local", "a.txt", 1, "text/plain")
        await repo.create_file(ctx.id, "local", "b.txt", 1, "text/plain")
        await repo.delete_file(a.id)
        return await repo.list_files(ctx.id)

    assert [f.name for f in _run(scenario())] == ["b.txt"]


# ------------------------------------------------------------------
# Sites
# ------------------------------------------------------------------

def test_get_or_create_site_is_idempotent_per_context(repo):
    async def scenario():
        one = await repo.create_context("One", "local")
        two = await repo.create_context("Two", "local")
        first = await repo.get_or_create_site(one.id, "https://example.com", "Example")
        again = await repo.get_or_create_site(one.id, "https://example.com")
        other = await repo.get_or_create_site(two.id, "https://example.com")
        return first, again, other, await repo.list_sites(one.id)

    first, again, other, sites = _run(scenario())
    assert again.id == first.id
    assert again.title == "Example"
    assert other.id != first.id
    assert len(sites) == 1


def test_delete_site(repo):
    async def scenario():
        ctx = await repo.create_context("One", "local")
        site = await repo.get_or_create_site(ctx.id, "https://example.com")
        await repo.delete_site(site.id)
        return await repo.get_site(site.id)

    assert _run(scenario()) is None


# ------------------------------------------------------------------
# Messages
# ------------------------------------------------------------------

def test_message_role_validated(repo):
    async def scenario():
        ctx = await repo.create_context("Chat", "local")
        await repo.create_message(ctx.id, "system", "nope")

    with pytest.raises(ValueError, match="Invalid message role"):
        _run(scenario())


def test_list_messages_pages_oldest_first(repo):
    async def scenario():
        ctx = await repo.create_context("Chat", "local")
        for i in range(5):
            await repo.create_message(ctx.id, "user" if i % 2 == 0 else "assistant", f"m{i}")
        return (
            await repo.list_messages(ctx.id, page=1, page_size=2),
            await repo.list_messages(ctx.id, page=3, page_size=2),
        )

    first, last = _run(scenario())
    assert [m.content for m in first] == ["m0", "m1"]
    assert [m.content for m in last] == ["m4"]


def test_list_messages_rejects_bad_page(repo):
    with pytest.raises(ValueError):
        _run(repo.list_messages("ctx", page=0))


def test_latest_messages_chronological(repo):
    async def scenario():
        ctx = await repo.create_context("Chat", "local")
        for i in range(5):
            await repo.create_message(ctx.id, "user", f"m{i}")
        return await repo.latest_messages(ctx.id, limit=3)

    assert [m.content for m in _run(scenario())] == ["m2", "m3", "m4"]


def test_update_and_delete_message(repo):
    async def scenario():
        ctx = await repo.create_context("Chat", "local")
        msg = await repo.create_message(ctx.id, "assistant", "")
        updated = await repo.update_message(msg.id, "done")
        await repo.delete_message(msg.id)
        return updated, await repo.list_messages(ctx.id)

    updated, remaining = _run(scenario())
    assert updated.content == "done"
    assert remaining == []
