"""
Speaker binding data models.

A ``SpeakerBinding`` associates one diarization channel label of a meeting
with an optional local display name and an optional durable person link.
``BindingPatch`` is the partial update applied to a binding when a commit
is reflected locally.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class SpeakerBinding(BaseModel):
    """Per-meeting binding of a channel label to a name and/or person.

    Attributes:
        id: Server-side speaker binding identifier.
        channel_label: Pipeline-assigned channel label (immutable key).
        display_name: Local override name.
        person_id: Linked durable identity, if any.
        person_name: Cached name of the linked person.
        is_self: Whether this channel is the local user's own microphone.
    """

    model_config = ConfigDict(from_attributes=True, extra="ignore")

    id: str = Field(..., description="Server-side speaker binding identifier.")
    channel_label: str = Field(..., min_length=1, description="Pipeline channel label.")
    display_name: str | None = Field(default=None, description="Local override name.")
    person_id: str | None = Field(default=None, description="Linked person identifier.")
    person_name: str | None = Field(default=None, description="Linked person's name.")
    is_self: bool = Field(default=False, description="Local user's own channel.")

    @model_validator(mode="after")
    def _linked_person_has_name(self) -> SpeakerBinding:
        """A person link always carries the person's cached name."""
        if self.person_id is not None and self.person_name is None:
            raise ValueError("person_name is required when person_id is set")
        return self

    @property
    def is_linked(self) -> bool:
        return self.person_id is not None

    def patched(self, patch: BindingPatch) -> SpeakerBinding:
        """Return a validated copy of this binding with *patch* applied."""
        data = self.model_dump()
        data.update(patch.changes())
        return SpeakerBinding.model_validate(data)


class BindingPatch(BaseModel):
    """Partial update for a ``SpeakerBinding``.

    Only fields explicitly passed to the constructor are applied, so a
    field can be deliberately reset by passing ``None``.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    display_name: str | None = None
    person_id: str | None = None
    person_name: str | None = None

    @classmethod
    def clear(cls) -> BindingPatch:
        """Patch that drops both the override name and the person link."""
        return cls(display_name=None, person_id=None, person_name=None)

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)
