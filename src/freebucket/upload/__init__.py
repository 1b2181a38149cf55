"""Upload pipeline."""
