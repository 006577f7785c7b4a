"""Utility helpers shared across blockscribe."""

from .logging import get_log_path, reset_logging, setup_logging

__all__ = ["setup_logging", "reset_logging", "get_log_path"]
