from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class StrictBaseModel(BaseModel):
    model_config = ConfigDict(extra="forbid")


class CamelModel(StrictBaseModel):
    """Snake_case attributes in Python, camelCase keys in the persisted JSON."""

    model_config = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)
