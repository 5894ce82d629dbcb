"""Small helpers shared across the concierge package."""

from .slug import slugify

__all__ = ["slugify"]
