"""Image uploads to an S3-compatible bucket, gated by free-tier usage."""

__version__ = "0.1.0"
