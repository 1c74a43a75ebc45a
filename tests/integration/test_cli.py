"""
Integration tests for the sequencer CLI.
"""

import json
import os
import tempfile

import pytest

from sequencer.document import Document, Element, ElementType, TextElement
from sequencer.links import LinkRegistry
from sequencer.store import LEGACY_VALUE_KEY, SequenceStore, SqliteKeyValueStore
from sequencer.tools.cli import main


@pytest.fixture
def workdir():
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def db_path(workdir):
    return os.path.join(workdir, "plugin.db")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("SEQUENCER_STORE_PATH", "LOG_FORMAT", "SEQUENCER_FALLBACK_FONT_FAMILY"):
        monkeypatch.delenv(name, raising=False)


class TestCli:
    """Tests for the list, migrate and audit commands."""

    def test_migrate_legacy_store(self, db_path, capsys):
        SqliteKeyValueStore(db_path).set(LEGACY_VALUE_KEY, "5100")

        assert main(["--store", db_path, "migrate"]) == 0
        assert "imported legacy invoice counter" in capsys.readouterr().out

        assert main(["--store", db_path, "migrate"]) == 0
        assert "Already at version 2" in capsys.readouterr().out

    def test_list(self, db_path, capsys):
        store = SequenceStore(SqliteKeyValueStore(db_path))
        store.migrate()
        store.create(name="Invoice#", next_value="0099", prefix="INV-")

        assert main(["--store", db_path, "list"]) == 0
        out = capsys.readouterr().out
        assert "* Invoice# (number, compliance)" in out
        assert "next=INV-0099" in out

        assert main(["--store", db_path, "list", "--format", "json"]) == 0
        data = json.loads(capsys.readouterr().out)
        assert data["sequences"][0]["nextValue"] == "0099"

    def test_missing_store(self, capsys):
        assert main(["list"]) == 2
        assert "SEQUENCER_STORE_PATH" in capsys.readouterr().err

    def test_audit_reports_violations(self, db_path, workdir, capsys):
        store = SequenceStore(SqliteKeyValueStore(db_path))
        store.migrate()
        seq = store.create(name="Invoice#", next_value="0100", prefix="INV-")
        store.update(seq.id, lambda s: s.evolve(highest_used="0099", locked=True))

        labels = [TextElement("INV-0099", id="a"), TextElement("INV-0099", id="b")]
        document = Document(Element(ElementType.PAGE, children=labels))
        registry = LinkRegistry(document)
        for label in labels:
            registry.set_link(label, seq.id, "INV-0099")
        doc_path = os.path.join(workdir, "doc.json")
        with open(doc_path, "w", encoding="utf-8") as f:
            json.dump(document.to_dict(), f)

        assert main(["--store", db_path, "audit", "--document", doc_path]) == 1
        out = capsys.readouterr().out
        assert "[VIOLATION] DUPLICATE_STAMP" in out

    def test_audit_clean(self, db_path, capsys):
        SequenceStore(SqliteKeyValueStore(db_path)).migrate()
        assert main(["--store", db_path, "audit"]) == 0
        assert "No drift detected" in capsys.readouterr().out
