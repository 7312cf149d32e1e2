"""Tests for the logical schema shared by both backends."""

from __future__ import annotations

import pytest

from recall.db.backend import blob_key
from recall.db.schema import FOREIGN_KEYS, TABLES, check_columns


def test_check_columns_accepts_known():
    check_columns("files", ["id", "context_id", "processing_status"])


def test_check_columns_rejects_unknown_table():
    with pytest.raises(ValueError, match="Unknown table"):
        check_columns("users", ["id"])


def test_check_columns_rejects_unknown_column():
    with pytest.raises(ValueError, match="name; DROP"):
        check_columns("contexts", ["name; DROP TABLE contexts"])


def test_foreign_keys_reference_known_tables():
    for child, refs in FOREIGN_KEYS.items():
        assert child in TABLES
        for column, parent in refs.items():
            assert column in TABLES[child]
            assert parent in TABLES


def test_blob_key_layout():
    assert blob_key("local", "ctx-1", "notes.txt") == "local/contexts/ctx-1/notes.txt"
