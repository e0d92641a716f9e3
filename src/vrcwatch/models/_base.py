"""Base model for VRChat API and pipeline payloads.

Every inbound model inherits from :class:`VrcBaseModel` which provides:

* ``alias_generator=to_camel`` so camelCase API keys map
  automatically to snake_case fields.
* A ``model_validator(mode="before")`` that drops ``None`` values so the
  field default is used.
* A ``raw`` dict that captures the original payload.
"""

from __future__ import annotations

from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from vrcwatch._constants import OFFLINE_LOCATIONS


def normalize_location(value: Any) -> str | None:
    """Map the API's "not in an instance" markers to ``None``."""
    if value is None:
        return None
    text = str(value).strip()
    if text in OFFLINE_LOCATIONS:
        return None
    return text


OptionalLocation = Annotated[str | None, BeforeValidator(normalize_location)]
"""Location token where ``offline`` and empty strings become ``None``."""


class VrcBaseModel(BaseModel):
    """Base for VRChat response and event models."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    raw: dict[str, Any] = Field(default_factory=dict, exclude=True)
    """Original payload dict."""

    @model_validator(mode="before")
    @classmethod
    def _stash_raw(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        cleaned = {key: value for key, value in values.items() if value is not None}
        # Keep an explicit raw= when constructing from kwargs.
        if "raw" not in values:
            cleaned["raw"] = dict(values)
        return cleaned
