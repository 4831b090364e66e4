"""
Person identity data models.

``PersonCandidate`` is the read-only projection of a durable identity held
by the identity service. ``Voiceprint`` records a voice sample enrolled for
a person from one meeting channel.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class PersonCandidate(BaseModel):
    """A durable identity as returned by search or creation.

    Attributes:
        id: Identity-service person identifier.
        name: Person's display name.
        email: Optional contact email.
        notes: Optional free-form notes.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(..., min_length=1, description="Person identifier.")
    name: str = Field(..., description="Person's display name.")
    email: str | None = Field(default=None, description="Contact email.")
    notes: str | None = Field(default=None, description="Free-form notes.")


class Voiceprint(BaseModel):
    """A voice sample enrolled for a person from a meeting channel."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    person_id: str
    meeting_id: str | None = None
    speaker_label: str | None = None
    created_at: datetime | None = None
