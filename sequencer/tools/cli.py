"""
Sequencer command-line tool.

This tool inspects and maintains a document's sequence state:
- list: Show sequences with their next and highest-used values
- migrate: Bring persisted state up to the current layout version
- audit: Report drift between sequences and stamped layers
- serve: Run the HTTP bridge

Usage:
    sequencer list --store doc.db
    sequencer migrate --store doc.db
    sequencer audit --store doc.db --document doc.json --format json
    sequencer serve

Invariants:
    - Compliance violations in an audit cause a non-zero exit code
    - JSON output is deterministic (sorted keys)

How to change safely:
    - Add new commands, don't modify existing ones
    - Keep output format stable for CI parsing
"""

from __future__ import annotations

import argparse
import json
import logging
import sys

from ..compliance.audit import DriftFinding, audit_document
from ..config import SequencerConfig, StorageConfig
from ..engine.increment import full_value
from ..links.registry import LinkRegistry
from ..store.kv import SqliteKeyValueStore
from ..store.migrations import MigrationReport
from ..store.sequence_store import SequenceStore

logger = logging.getLogger(__name__)


class SequencerCLI:
    """CLI operations over one sequence store.

    Example:
        >>> cli = SequencerCLI(SequenceStore(SqliteKeyValueStore("doc.db")))
        >>> print(cli.list_sequences())
    """

    def __init__(self, store: SequenceStore) -> None:
        self.store = store

    def list_sequences(self, as_json: bool = False) -> str:
        """Render the sequence collection.

        Args:
            as_json: Emit JSON instead of a table

        Returns:
            Rendered output
        """
        sequences = self.store.list()
        selected_id = self.store.get_selected()

        if as_json:
            return json.dumps(
                {"selectedId": selected_id, "sequences": [s.to_dict() for s in sequences]},
                indent=2,
                sort_keys=True,
            )

        if not sequences:
            return "No sequences"

        lines = []
        for s in sequences:
            marker = "*" if s.id == selected_id else " "
            lock = " [locked]" if s.locked else ""
            lines.append(
                f"{marker} {s.name} ({s.type.value}, {s.mode.value}){lock}\n"
                f"    id={s.id} next={full_value(s)} highest={s.highest_used or '-'}"
            )
        return "\n".join(lines)

    def migrate(self) -> MigrationReport:
        """Run pending migrations."""
        return self.store.migrate()

    def audit(self, document_path: str | None) -> list[DriftFinding]:
        """Audit the store against a document tree.

        Args:
            document_path: JSON document tree; without one only store-level
                drift (stale selection) is reported

        Returns:
            Drift findings
        """
        from ..api.http_app import load_document

        document = load_document(document_path or "")
        return audit_document(self.store, LinkRegistry(document))


def _open_store(path: str | None, config: SequencerConfig) -> SequenceStore:
    store_path = path or config.storage.store_path
    if not store_path:
        raise ValueError("No store given; pass --store or set SEQUENCER_STORE_PATH")
    return SequenceStore(
        SqliteKeyValueStore(store_path, busy_timeout_ms=config.storage.busy_timeout_ms)
    )


def main(argv: list[str] | None = None) -> int:
    """CLI entry point for the sequencer tool."""
    parser = argparse.ArgumentParser(description="Sequencer sequence management tool")
    parser.add_argument("--store", "-s", help="SQLite document store (default: SEQUENCER_STORE_PATH)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # list command
    list_parser = subparsers.add_parser("list", help="Show sequences")
    list_parser.add_argument(
        "--format", choices=["text", "json"], default="text", help="Output format"
    )

    # migrate command
    subparsers.add_parser("migrate", help="Upgrade persisted state to the current version")

    # audit command
    audit_parser = subparsers.add_parser("audit", help="Report drift between store and layers")
    audit_parser.add_argument("--document", "-d", help="JSON document tree to audit")
    audit_parser.add_argument(
        "--format", choices=["text", "json"], default="text", help="Output format"
    )

    # serve command
    subparsers.add_parser("serve", help="Run the HTTP bridge")

    args = parser.parse_args(argv)

    try:
        config = SequencerConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    if args.command == "serve":
        if args.store:
            config.storage = StorageConfig(args.store, config.storage.busy_timeout_ms)
        import uvicorn

        from ..api.http_app import HttpSettings, create_app
        from ..main import setup_logging

        setup_logging(config)
        settings = HttpSettings()
        uvicorn.run(create_app(config, settings), host=settings.host, port=settings.port)
        return 0

    try:
        cli = SequencerCLI(_open_store(args.store, config))
    except ValueError as e:
        print(str(e), file=sys.stderr)
        return 2

    if args.command == "list":
        print(cli.list_sequences(as_json=args.format == "json"))
        return 0

    if args.command == "migrate":
        report = cli.migrate()
        if report.changed:
            print(f"Migrated from version {report.from_version} to {report.to_version}")
            if report.legacy_imported:
                print("  - imported legacy invoice counter")
            if report.upgraded:
                print(f"  - upgraded {report.upgraded} record(s)")
        else:
            print(f"Already at version {report.to_version}")
        if report.parse_failed:
            print("Stored sequences could not be parsed and were left untouched", file=sys.stderr)
            return 1
        return 0

    if args.command == "audit":
        findings = cli.audit(args.document)
        violations = [f for f in findings if f.is_violation]

        if args.format == "json":
            print(json.dumps([f.to_dict() for f in findings], indent=2, sort_keys=True))
        elif not findings:
            print("No drift detected")
        else:
            print(f"Found {len(findings)} issue(s):")
            for finding in findings:
                print(f"  {finding}")

        return 1 if violations else 0

    return 2


if __name__ == "__main__":
    sys.exit(main())
