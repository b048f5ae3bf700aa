"""Command-line tools for docingest."""
