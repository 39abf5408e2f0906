"""Pydantic schemas for the shared experience repository."""

from schemas.strict_base import CamelModel, StrictBaseModel

__all__ = ["CamelModel", "StrictBaseModel"]
