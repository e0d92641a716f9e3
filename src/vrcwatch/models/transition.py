"""Transition notification types."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict


class TransitionKind(StrEnum):
    LOCATION = "location-change"
    ONLINE = "online"
    OFFLINE = "offline"


class TransitionContext(BaseModel):
    """Optional enrichment shown alongside a transition."""

    model_config = ConfigDict(frozen=True)

    world_name: str | None = None
    thumbnail_url: str | None = None
