"""Blob store collaborators."""
