"""
Core module for engine configuration and utilities.

The CAT engine lives in ``examcat.core.cat``; import it directly.
"""
from .config import settings

__all__ = ["settings"]
