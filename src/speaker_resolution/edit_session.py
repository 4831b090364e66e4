"""
Edit session state machine for renaming, linking and merging speakers.

At most one :class:`EditSession` is live per directory.  A session moves
``EDITING → COMMITTING → CLOSED`` on a commit or ``EDITING → CANCELLED →
CLOSED`` on a cancel.  Both terminal paths claim the session's
``committed`` flag; the first trigger to claim it wins and every later
trigger for the same session is a no-op.  Timer cancellation alone cannot
give that guarantee because a blur and a selection can both be in flight
before either handler runs.
"""

from __future__ import annotations

import enum
from collections.abc import Sequence
from dataclasses import dataclass, field

import structlog

from sr_common.models import PersonCandidate

from .directory import SpeakerDirectory

logger = structlog.get_logger()


class EditState(str, enum.Enum):
    """Lifecycle states of an edit session."""

    CLOSED = "closed"
    EDITING = "editing"
    COMMITTING = "committing"
    CANCELLED = "cancelled"


class OptionKind(str, enum.Enum):
    """Sections of the option menu, in display order."""

    MERGE = "merge"
    CANDIDATE = "candidate"
    CREATE = "create"


@dataclass(frozen=True, slots=True)
class MenuOption:
    """One entry of the option menu shown while editing.

    Attributes:
        kind: Menu section.
        label: Text shown for the entry.
        channel_label: Merge target, for ``MERGE`` entries.
        person: Search hit, for ``CANDIDATE`` entries.
    """

    kind: OptionKind
    label: str
    channel_label: str | None = None
    person: PersonCandidate | None = None


@dataclass(slots=True)
class EditSession:
    """In-progress rename/link/merge interaction on one channel label.

    Attributes:
        target_label: Channel label being edited.
        input_text: Current contents of the edit field.
        candidates: Latest accepted search results.
        candidates_query: Edit text the accepted candidates were issued for.
        committed: Set exactly once by the first terminal trigger.
        state: Current lifecycle state.
    """

    target_label: str
    input_text: str = ""
    candidates: list[PersonCandidate] = field(default_factory=list)
    candidates_query: str | None = None
    committed: bool = False
    state: EditState = EditState.EDITING

    @property
    def trimmed_text(self) -> str:
        return self.input_text.strip()

    def claim(self, next_state: EditState) -> bool:
        """Claim the single terminal transition of this session.

        Returns:
            ``True`` for the first caller, ``False`` for every later one.
        """
        if self.committed:
            return False
        self.committed = True
        self.state = next_state
        return True


class EditSessionMachine:
    """Owns the single live edit session of a directory.

    Args:
        drop_stale_results: Drop search results issued for text that no
            longer matches the session's input.  ``False`` keeps the
            last-response-wins behaviour.
    """

    def __init__(self, *, drop_stale_results: bool = True) -> None:
        self.drop_stale_results = drop_stale_results
        self._session: EditSession | None = None

    @property
    def session(self) -> EditSession | None:
        return self._session

    @property
    def state(self) -> EditState:
        if self._session is None:
            return EditState.CLOSED
        return self._session.state

    def is_current(self, session: EditSession) -> bool:
        return self._session is session

    # ── transitions ──

    def open(self, target_label: str) -> EditSession:
        """Start editing *target_label*, cancelling any open session."""
        previous = self._session
        if previous is not None and previous.claim(EditState.CANCELLED):
            logger.debug(
                "edit_session_superseded",
                channel_label=previous.target_label,
                discarded_text=previous.input_text,
            )
        self._session = EditSession(target_label=target_label)
        logger.debug("edit_session_opened", channel_label=target_label)
        return self._session

    def set_text(self, text: str) -> EditSession | None:
        """Update the input text of the live session."""
        session = self._session
        if session is None or session.state is not EditState.EDITING:
            return None
        session.input_text = text
        if not text.strip():
            session.candidates = []
            session.candidates_query = text
        return session

    def accept_candidates(self, query: str, candidates: Sequence[PersonCandidate]) -> bool:
        """Store search results for the live session.

        Returns:
            ``True`` if the results were stored.
        """
        session = self._session
        if session is None or session.state is not EditState.EDITING:
            return False
        if self.drop_stale_results and query != session.input_text:
            logger.debug(
                "stale_candidates_dropped",
                channel_label=session.target_label,
                query=query,
            )
            return False
        session.candidates = list(candidates)
        session.candidates_query = query
        return True

    def begin_commit(self) -> EditSession | None:
        """Claim the live session for a commit.

        Returns:
            The claimed session, or ``None`` if there is none or another
            trigger already claimed it.
        """
        session = self._session
        if session is None or not session.claim(EditState.COMMITTING):
            return None
        return session

    def cancel(self) -> bool:
        """Cancel the live session without committing."""
        session = self._session
        if session is None or not session.claim(EditState.CANCELLED):
            return False
        self._discard(session)
        return True

    def finish(self, session: EditSession) -> None:
        """Close *session* after its commit completed or was aborted."""
        self._discard(session)

    def _discard(self, session: EditSession) -> None:
        session.state = EditState.CLOSED
        if self._session is session:
            self._session = None


def build_options(session: EditSession | None, directory: SpeakerDirectory) -> list[MenuOption]:
    """Compute the option menu for *session* against *directory*.

    Merge targets come first, then search candidates, then a create entry
    when the typed name is new.  The list is empty only when nothing is
    typed and no other speaker exists.
    """
    if session is None or session.state is not EditState.EDITING:
        return []

    needle = session.trimmed_text.lower()
    options: list[MenuOption] = []

    for channel_label in directory.labels():
        if channel_label == session.target_label:
            continue
        label = directory.label_for(channel_label)
        if needle and needle not in label.lower():
            continue
        options.append(MenuOption(OptionKind.MERGE, label, channel_label=channel_label))

    for person in session.candidates:
        options.append(MenuOption(OptionKind.CANDIDATE, person.name, person=person))

    if needle and not any(p.name.lower() == needle for p in session.candidates):
        options.append(MenuOption(OptionKind.CREATE, session.trimmed_text))

    return options
