"""
Speaker identity resolution engine.

Reconciles anonymous diarization channel labels with durable person
identities while a user renames, links, merges or unlinks speakers of an
open meeting.
"""

from speaker_resolution.candidate_search import DebouncedCandidateSearch
from speaker_resolution.coordinator import CommitResult, ResolutionCoordinator
from speaker_resolution.directory import SpeakerDirectory, UnknownSpeakerError
from speaker_resolution.edit_session import (
    EditSession,
    EditSessionMachine,
    EditState,
    MenuOption,
    OptionKind,
)
from speaker_resolution.identity_client import IdentityServiceClient, IdentityServiceError

__all__ = [
    "CommitResult",
    "DebouncedCandidateSearch",
    "EditSession",
    "EditSessionMachine",
    "EditState",
    "IdentityServiceClient",
    "IdentityServiceError",
    "MenuOption",
    "OptionKind",
    "ResolutionCoordinator",
    "SpeakerDirectory",
    "UnknownSpeakerError",
]
