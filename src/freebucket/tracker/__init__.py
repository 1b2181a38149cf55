"""Monthly usage counter service."""
