"""Concurrency management for snipdown."""

from .manager import ConcurrencyManager

__all__ = ["ConcurrencyManager"]
