"""Allow ``python -m docingest.cli`` execution (defaults to the ingest CLI)."""

from docingest.cli.ingest import main

main()
