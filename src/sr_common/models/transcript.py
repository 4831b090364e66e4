"""
Transcript line model used when rendering a meeting with resolved
speaker names.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class TranscriptLine(BaseModel):
    """One finalized transcript utterance.

    Attributes:
        speaker: Channel label the utterance was attributed to.
        text: Transcribed text.
        timestamp_ms: Wall-clock time of the utterance (epoch milliseconds).
    """

    model_config = ConfigDict(extra="ignore")

    speaker: str = Field(..., description="Channel label.")
    text: str = Field(..., description="Transcribed text.")
    timestamp_ms: int = Field(default=0, ge=0, description="Epoch milliseconds.")
