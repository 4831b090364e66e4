"""Shared fixtures for speaker resolution tests."""

from __future__ import annotations

import os
from collections.abc import AsyncIterator
from unittest.mock import AsyncMock

import pytest

# Set env vars before any sr_common import.
os.environ.setdefault("SR_IDENTITY_SERVICE_URL", "http://identity.test")
os.environ.setdefault("SR_API_KEY", "test-key")
os.environ.setdefault("SR_LOG_JSON", "false")

from sr_common.models import PersonCandidate, SpeakerBinding  # noqa: E402
from speaker_resolution.coordinator import ResolutionCoordinator  # noqa: E402
from speaker_resolution.directory import SpeakerDirectory  # noqa: E402
from speaker_resolution.identity_client import IdentityServiceClient  # noqa: E402

# ─── Fixtures ────────────────────────────────────────────────────


@pytest.fixture()
def meeting_id() -> str:
    return "meeting-0001"


@pytest.fixture()
def bindings() -> list[SpeakerBinding]:
    """One unbound, one linked, one renamed and the local user's channel."""
    return [
        SpeakerBinding(id="b0", channel_label="speaker_0"),
        SpeakerBinding(
            id="b1",
            channel_label="speaker_1",
            person_id="p1",
            person_name="Alice",
        ),
        SpeakerBinding(id="b2", channel_label="speaker_2", display_name="Bob"),
        SpeakerBinding(id="b-user", channel_label="user", is_self=True),
    ]


@pytest.fixture()
def carol() -> PersonCandidate:
    return PersonCandidate(id="p3", name="Carol", email="carol@example.com")


@pytest.fixture()
def mock_client(bindings: list[SpeakerBinding], carol: PersonCandidate) -> AsyncMock:
    """Async mock standing in for an ``IdentityServiceClient``."""
    client = AsyncMock(spec=IdentityServiceClient)
    client.list_speakers = AsyncMock(return_value=bindings)
    client.search_persons = AsyncMock(return_value=[])
    client.create_person = AsyncMock(return_value=carol)
    client.bind_speaker = AsyncMock(return_value=True)
    client.unbind_speaker = AsyncMock(return_value=True)
    client.enroll_voiceprint = AsyncMock(return_value=None)
    return client


@pytest.fixture()
async def directory(mock_client: AsyncMock, meeting_id: str) -> SpeakerDirectory:
    d = SpeakerDirectory(mock_client, meeting_id)
    await d.load()
    return d


@pytest.fixture()
async def coordinator(
    directory: SpeakerDirectory,
    mock_client: AsyncMock,
) -> AsyncIterator[ResolutionCoordinator]:
    c = ResolutionCoordinator(
        directory,
        mock_client,
        search_delay_s=0.02,
        blur_grace_s=0.02,
    )
    yield c
    await c.aclose()
