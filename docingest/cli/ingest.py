# =============================================================================
# docingest/cli/ingest.py -- Operator CLI for the ingestion pipeline
# =============================================================================
#
# Supported subcommands:
#
#   upload         -- Upload a local file for an owner and run the pipeline
#   resume         -- Resume one paused / errored / stalled document
#   resume-paused  -- Sweep: resume every paused document (cron-friendly)
#   status         -- Show a document's status-polling view
#   list           -- List an owner's documents
#   delete         -- Delete a document's blob, row and vectors
#
# The CLI process stays alive until every background invocation (including
# self-triggered continuations after a pause) has settled, so `upload`
# normally ends with the document complete or in error.
#
# Usage examples:
#   python -m docingest.cli.ingest upload --file report.pdf --owner acme
#   python -m docingest.cli.ingest status --id <document-id> --owner acme
#   python -m docingest.cli.ingest resume-paused --limit 50
#   python -m docingest.cli.ingest delete --id <document-id> --owner acme --force --yes
# =============================================================================

"""Standalone operator CLI for docingest.

Usage::

    python -m docingest.cli.ingest upload --file report.pdf --owner acme

    python -m docingest.cli.ingest resume --id <document-id> --owner acme

    python -m docingest.cli.ingest list --owner acme
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Any

from docingest.config.settings import Settings
from docingest.utils.errors import IngestError


def _load_settings(args: argparse.Namespace) -> Settings:
    from docingest.config.loader import load_settings

    return load_settings(args.config)


async def _build_full(app_settings: Settings) -> dict[str, Any]:
    """Full pipeline; needs an embedding provider."""
    from docingest.main import build_pipeline, initialize_pipeline

    components = build_pipeline(app_settings)
    await initialize_pipeline(components)
    return components


async def _build_metadata_store(app_settings: Settings):  # noqa: ANN202
    """Metadata store only; status and list need nothing else."""
    from docingest.providers.metadata.sqlite_metadata_store import SQLiteMetadataStore

    store = SQLiteMetadataStore(db_path=app_settings.metadata_db_path)
    await store.initialize()
    return store


def _print_result(result: Any) -> None:
    for key, value in result.model_dump(mode="json").items():
        print(f"  {key:<22} {value}")


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


async def _handle_upload(args: argparse.Namespace, app_settings: Settings) -> int:
    path = Path(args.file)
    if not path.is_file():
        print(f"Error: file not found: {path}", file=sys.stderr)
        return 1

    components = await _build_full(app_settings)
    service = components["ingestion_service"]

    print(f"Uploading {path.name} for owner '{args.owner}'")
    document = await service.upload(
        path.read_bytes(),
        path.name,
        args.owner,
        title=args.title,
        content_type=args.content_type,
    )
    print(f"  Document ID: {document.id}")

    if args.no_wait:
        return 0

    await service.drain()
    status = await service.get_status(document.id, args.owner)
    print("\nFinal status:")
    _print_result(status)
    return 0 if status.status.value in ("complete", "paused") else 2


async def _handle_resume(args: argparse.Namespace, app_settings: Settings) -> int:
    components = await _build_full(app_settings)
    service = components["ingestion_service"]

    result = await service.resume(args.id, args.owner)
    print("Invocation result:")
    _print_result(result)
    await service.drain()
    status = await service.get_status(args.id, args.owner)
    print("\nFinal status:")
    _print_result(status)
    return 0 if result.error is None else 2


async def _handle_resume_paused(args: argparse.Namespace, app_settings: Settings) -> int:
    components = await _build_full(app_settings)
    results = await components["resume_trigger"].resume_paused(limit=args.limit)

    print(f"Resumed {len(results)} paused document(s)")
    for result in results:
        state = "paused" if result.paused else result.status.value
        print(
            f"  {result.document_id}  {state:<10} "
            f"batch {result.current_batch}/{result.batch_count}"
        )
    return 0 if all(r.error is None for r in results) else 2


async def _handle_status(args: argparse.Namespace, app_settings: Settings) -> int:
    store = await _build_metadata_store(app_settings)
    document = await store.get(args.id, args.owner)
    if document is None:
        print(f"Document {args.id} not found.", file=sys.stderr)
        return 1
    _print_result(document.to_status_view())
    return 0


async def _handle_list(args: argparse.Namespace, app_settings: Settings) -> int:
    store = await _build_metadata_store(app_settings)
    documents = await store.list_documents(owner_id=args.owner)
    if not documents:
        print(f"No documents for owner '{args.owner}'.")
        return 0

    print(f"{'ID':<38} {'STATUS':<11} {'PROGRESS':>8}  TITLE")
    for doc in documents:
        print(f"{doc.id:<38} {doc.status.value:<11} {doc.progress:>7}%  {doc.title}")
    return 0


async def _handle_delete(args: argparse.Namespace, app_settings: Settings) -> int:
    if not args.yes:
        answer = input(f"Delete document {args.id} and all its vectors? [y/N] ")
        if answer.strip().lower() not in ("y", "yes"):
            print("  Aborted.")
            return 1

    from docingest.main import _build_vector_store
    from docingest.pipeline.deletion import DeletionCoordinator
    from docingest.providers.blob.local_blob_store import LocalBlobStore

    store = await _build_metadata_store(app_settings)
    coordinator = DeletionCoordinator(
        store,
        LocalBlobStore(root_dir=app_settings.blob_root_dir),
        _build_vector_store(app_settings),
        delete_batch_size=app_settings.vector_delete_batch_size,
    )
    result = await coordinator.delete(args.id, args.owner, force=args.force)
    print("Deleted:")
    _print_result(result)
    return 0


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the ingestion CLI."""
    parser = argparse.ArgumentParser(
        prog="python -m docingest.cli.ingest",
        description="Operate the docingest resumable ingestion pipeline.",
    )
    parser.add_argument(
        "--config",
        default="config/config.yaml",
        help="YAML settings file (default: config/config.yaml)",
    )
    subparsers = parser.add_subparsers(dest="command", help="Pipeline commands")

    # -- upload --
    upload_parser = subparsers.add_parser("upload", help="Upload and ingest a file")
    upload_parser.add_argument("--file", required=True, help="Path to the file")
    upload_parser.add_argument("--owner", required=True, help="Owner / namespace id")
    upload_parser.add_argument("--title", default=None, help="Title (default: file stem)")
    upload_parser.add_argument(
        "--content-type",
        default=None,
        dest="content_type",
        help="Override the content type detected from the file suffix",
    )
    upload_parser.add_argument(
        "--no-wait",
        action="store_true",
        dest="no_wait",
        help="Return once the document is queued",
    )

    # -- resume --
    resume_parser = subparsers.add_parser("resume", help="Resume one document")
    resume_parser.add_argument("--id", required=True, help="Document id")
    resume_parser.add_argument("--owner", required=True, help="Owner / namespace id")

    # -- resume-paused --
    sweep_parser = subparsers.add_parser(
        "resume-paused", help="Resume every paused document"
    )
    sweep_parser.add_argument(
        "--limit", type=int, default=None, help="Maximum documents to resume"
    )

    # -- status --
    status_parser = subparsers.add_parser("status", help="Show document status")
    status_parser.add_argument("--id", required=True, help="Document id")
    status_parser.add_argument("--owner", required=True, help="Owner / namespace id")

    # -- list --
    list_parser = subparsers.add_parser("list", help="List an owner's documents")
    list_parser.add_argument("--owner", required=True, help="Owner / namespace id")

    # -- delete --
    delete_parser = subparsers.add_parser("delete", help="Delete a document")
    delete_parser.add_argument("--id", required=True, help="Document id")
    delete_parser.add_argument("--owner", required=True, help="Owner / namespace id")
    delete_parser.add_argument(
        "--force",
        action="store_true",
        help="Remove blob and row even if vector cleanup fails",
    )
    delete_parser.add_argument(
        "--yes", "-y", action="store_true", help="Skip confirmation prompt"
    )

    return parser


_HANDLERS = {
    "upload": _handle_upload,
    "resume": _handle_resume,
    "resume-paused": _handle_resume_paused,
    "status": _handle_status,
    "list": _handle_list,
    "delete": _handle_delete,
}


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    """CLI entry point: parse arguments, load settings, dispatch, exit."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    from docingest.utils.logging import configure_logging

    app_settings = _load_settings(args)
    configure_logging(
        log_level=app_settings.log_level,
        json_output=app_settings.app_env == "production",
    )

    handler = _HANDLERS[args.command]
    try:
        exit_code = asyncio.run(handler(args, app_settings))
    except IngestError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        exit_code = 1
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
