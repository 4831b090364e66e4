"""
Shared Pydantic data models for the speaker resolution engine.

This package contains the speaker binding, person, voiceprint and
transcript models exchanged with the identity service.
"""

from sr_common.models.person import PersonCandidate, Voiceprint
from sr_common.models.speaker import BindingPatch, SpeakerBinding
from sr_common.models.transcript import TranscriptLine

__all__ = [
    "BindingPatch",
    "PersonCandidate",
    "SpeakerBinding",
    "TranscriptLine",
    "Voiceprint",
]
