"""Utility functions for the Docker image timezone creator."""

from .digest import calculate_file_digest

__all__ = ["calculate_file_digest"]
