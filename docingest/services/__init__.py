"""Application services for docingest."""
