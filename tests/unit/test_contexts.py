"""Tests for context and document lifecycle."""

from __future__ import annotations

import asyncio

import pytest

from recall.db.backend import blob_key
from recall.errors import NotFoundError, StorageError, ValidationError

TEXT = "Compost needs greens and browns. Turn the pile weekly. Keep it moist."


# ------------------------------------------------------------------
# create / list
# ------------------------------------------------------------------


def test_create_and_list(recall_app):
    async def scenario():
        await recall_app.create_context("  Garden  ")
        await recall_app.create_context("Kitchen")
        return await recall_app.list_contexts()

    assert [c.name for c in asyncio.run(scenario())] == ["Garden", "Kitchen"]


@pytest.mark.parametrize("name", ["", "   "])
def test_create_requires_name(recall_app, name):
    with pytest.raises(ValidationError):
        asyncio.run(recall_app.create_context(name))


def test_list_is_scoped_to_user(recall_app):
    async def scenario():
        await recall_app.repo.create_context("Someone else's", "bob")
        await recall_app.create_context("Mine")
        return await recall_app.list_contexts()

    assert [c.name for c in asyncio.run(scenario())] == ["Mine"]


# ------------------------------------------------------------------
# delete_context
# ------------------------------------------------------------------


def test_delete_context_removes_everything(recall_app, memory_backend):
    async def scenario():
        ctx = await recall_app.create_context("Garden")
        keep = await recall_app.create_context("Keep")
        await recall_app.ingest_file("compost.txt", TEXT.encode(), ctx.id)
        await recall_app.ingest_file("compost.txt", TEXT.encode(), keep.id)
        await recall_app.ingest_page(TEXT, "https://e.com/compost", [ctx.id, keep.id])
        await recall_app.wait_for_ingestion()
        async for _ in recall_app.send_message(ctx.id, "How often to turn?"):
            pass

        report = await recall_app.delete_context(ctx.id)
        counts = {
            table: await memory_backend.count(table, {"context_id": ctx.id})
            for table in ("files", "sites", "messages")
        }
        return ctx, keep, report, counts, await recall_app.store.count_for_context(keep.id)

    ctx, keep, report, counts, kept_chunks = asyncio.run(scenario())
    assert report.kind == "context"
    assert report.files == 1
    assert report.sites == 1
    assert report.messages == 2
    assert report.chunks == 2
    assert report.blob_errors == []
    assert counts == {"files": 0, "sites": 0, "messages": 0}
    assert not memory_backend.has_blob(blob_key("local", ctx.id, "compost.txt"))
    assert memory_backend.has_blob(blob_key("local", keep.id, "compost.txt"))
    assert kept_chunks == 2
    assert asyncio.run(recall_app.repo.get_context(ctx.id)) is None


def test_delete_unknown_context(recall_app):
    with pytest.raises(NotFoundError):
        asyncio.run(recall_app.delete_context("nope"))


def test_delete_context_survives_blob_failure(recall_app, memory_backend, monkeypatch):
    async def broken_remove(paths):
        raise StorageError("bucket unavailable")

    async def scenario():
        ctx = await recall_app.create_context("Garden")
        await recall_app.ingest_file("compost.txt", TEXT.encode(), ctx.id)
        await recall_app.wait_for_ingestion()
        monkeypatch.setattr(memory_backend, "remove", broken_remove)
        report = await recall_app.delete_context(ctx.id)
        return ctx, report

    ctx, report = asyncio.run(scenario())
    assert report.files == 1
    assert report.blob_errors == ["bucket unavailable"]
    assert asyncio.run(recall_app.repo.get_context(ctx.id)) is None


# ------------------------------------------------------------------
# delete_document
# ------------------------------------------------------------------


def test_delete_file_document(recall_app, memory_backend):
    async def scenario():
        ctx = await recall_app.create_context("Garden")
        record = await recall_app.ingest_file("compost.txt", TEXT.encode(), ctx.id)
        await recall_app.wait_for_ingestion()
        report = await recall_app.delete_document(record.id)
        return ctx, record, report, await recall_app.store.count_for_context(ctx.id)

    ctx, record, report, remaining = asyncio.run(scenario())
    assert report.kind == "file"
    assert report.files == 1
    assert report.chunks >= 1
    assert remaining == 0
    assert not memory_backend.has_blob(record.path)


def test_delete_site_document(recall_app):
    async def scenario():
        ctx = await recall_app.create_context("Garden")
        [outcome] = await recall_app.ingest_page(TEXT, "https://e.com/compost", [ctx.id])
        report = await recall_app.delete_document(outcome.site.id)
        return report, await recall_app.repo.list_sites(ctx.id)

    report, sites = asyncio.run(scenario())
    assert report.kind == "site"
    assert report.sites == 1
    assert sites == []


def test_delete_unknown_document(recall_app):
    with pytest.raises(NotFoundError, match="Document 'nope' not found"):
        asyncio.run(recall_app.delete_document("nope"))


def test_delete_document_runs_every_step_and_aggregates(recall_app, memory_backend, monkeypatch):
    async def broken_delete_by_parent(**kwargs):
        raise StorageError("chunks locked")

    async def scenario():
        ctx = await recall_app.create_context("Garden")
        record = await recall_app.ingest_file("compost.txt", TEXT.encode(), ctx.id)
        await recall_app.wait_for_ingestion()
        monkeypatch.setattr(recall_app.store, "delete_by_parent", broken_delete_by_parent)
        with pytest.raises(StorageError, match="chunks locked"):
            await recall_app.delete_document(record.id)
        return record, await recall_app.repo.get_file(record.id)

    record, after = asyncio.run(scenario())
    # blob and record steps still ran; the file row cascade took its chunks
    assert after is None
    assert not memory_backend.has_blob(record.path)
