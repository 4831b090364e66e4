"""
Speaker directory for one open meeting.

Holds the in-memory mapping ``channel_label -> SpeakerBinding`` seeded
from the identity service on meeting load, applies committed bindings
optimistically, and resolves the label and colour shown for each channel.

Label precedence
----------------
1. ``display_name`` override.
2. Linked ``person_name``.
3. Well-known channels: ``user`` → "You", ``interviewer`` → "Speaker".
4. Ordinal parsed from ``speaker_<n>`` style labels → "Speaker n+1".
5. The raw channel label.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterator, Mapping
from types import MappingProxyType

import structlog

from sr_common.models import BindingPatch, SpeakerBinding

from .identity_client import IdentityServiceClient, IdentityServiceError

logger = structlog.get_logger()

_WELL_KNOWN_LABELS: dict[str, str] = {
    "user": "You",
    "interviewer": "Speaker",
}
_WELL_KNOWN_COLORS: dict[str, str] = {
    "user": "orange",
    "interviewer": "purple",
}
PALETTE: tuple[str, ...] = ("emerald", "amber", "rose", "cyan")

# Matches speaker_3, speaker_SPEAKER_3 and speaker_speaker3.
_ORDINAL_RE = re.compile(r"speaker_(?:SPEAKER_)?(?:speaker)?(\d+)", re.IGNORECASE)

DirectoryListener = Callable[["SpeakerDirectory"], None]


class UnknownSpeakerError(LookupError):
    """Raised when a channel label is not part of the loaded meeting."""


def default_label(channel_label: str) -> str:
    """Return the label for a channel with no name or person binding."""
    if channel_label in _WELL_KNOWN_LABELS:
        return _WELL_KNOWN_LABELS[channel_label]
    match = _ORDINAL_RE.search(channel_label)
    if match:
        return f"Speaker {int(match.group(1)) + 1}"
    return channel_label


def _string_hash(value: str) -> int:
    """32-bit signed rolling hash (``h * 31 + c``) over code points."""
    h = 0
    for ch in value:
        h = (ord(ch) + ((h << 5) - h)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return h


def color_for_label(channel_label: str) -> str:
    """Return the palette colour token for *channel_label*."""
    if channel_label in _WELL_KNOWN_COLORS:
        return _WELL_KNOWN_COLORS[channel_label]
    return PALETTE[abs(_string_hash(channel_label)) % len(PALETTE)]


class SpeakerDirectory:
    """Mapping of channel labels to speaker bindings for one meeting.

    Args:
        client: Identity service used by :meth:`load`.
        meeting_id: Meeting whose speakers this directory holds.
    """

    def __init__(self, client: IdentityServiceClient, meeting_id: str) -> None:
        self._client = client
        self.meeting_id = meeting_id
        self._bindings: dict[str, SpeakerBinding] = {}
        self._listeners: list[DirectoryListener] = []

    # ── loading ──

    async def load(self, meeting_id: str | None = None) -> Mapping[str, SpeakerBinding]:
        """Rebuild the directory from the identity service.

        On failure the current mapping is kept as-is.

        Args:
            meeting_id: Switch to another meeting before loading.

        Returns:
            A read-only view of the mapping.
        """
        if meeting_id is not None:
            self.meeting_id = meeting_id
        log = logger.bind(meeting_id=self.meeting_id)
        try:
            bindings = await self._client.list_speakers(self.meeting_id)
        except IdentityServiceError as exc:
            log.warning("speaker_directory_load_failed", error=str(exc))
            return self.as_mapping()

        self._bindings = {b.channel_label: b for b in bindings}
        log.info("speaker_directory_loaded", speakers=len(self._bindings))
        self._notify()
        return self.as_mapping()

    # ── mutation ──

    def apply_binding(self, channel_label: str, patch: BindingPatch) -> SpeakerBinding:
        """Apply *patch* to the binding of *channel_label* locally.

        Raises:
            UnknownSpeakerError: If the label is not in this meeting.
        """
        current = self._bindings.get(channel_label)
        if current is None:
            raise UnknownSpeakerError(channel_label)
        updated = current.patched(patch)
        self._bindings[channel_label] = updated
        logger.debug(
            "speaker_binding_applied",
            meeting_id=self.meeting_id,
            channel_label=channel_label,
            changes=patch.changes(),
        )
        self._notify()
        return updated

    # ── resolution ──

    def label_for(self, channel_label: str) -> str:
        """Return the display label for *channel_label*."""
        binding = self._bindings.get(channel_label)
        if binding is not None:
            if binding.display_name:
                return binding.display_name
            if binding.person_name:
                return binding.person_name
        return default_label(channel_label)

    def color_for(self, channel_label: str) -> str:
        """Return the stable colour token for *channel_label*."""
        return color_for_label(channel_label)

    # ── change notification ──

    def subscribe(self, listener: DirectoryListener) -> Callable[[], None]:
        """Register *listener* for load/apply events.

        Returns:
            A callable that removes the listener.
        """
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    # ── read access ──

    def get(self, channel_label: str) -> SpeakerBinding | None:
        return self._bindings.get(channel_label)

    def require(self, channel_label: str) -> SpeakerBinding:
        binding = self._bindings.get(channel_label)
        if binding is None:
            raise UnknownSpeakerError(channel_label)
        return binding

    def labels(self) -> list[str]:
        return list(self._bindings)

    def bindings(self) -> list[SpeakerBinding]:
        return list(self._bindings.values())

    def as_mapping(self) -> Mapping[str, SpeakerBinding]:
        return MappingProxyType(self._bindings)

    def __contains__(self, channel_label: object) -> bool:
        return channel_label in self._bindings

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._bindings))

    def __len__(self) -> int:
        return len(self._bindings)
