"""
Resolution coordinator for speaker edits.

Ties the speaker directory, the edit session state machine, the debounced
candidate search and the identity service together, and applies exactly
one committed mutation per edit session.

Commit flow
-----------
1. A trigger (selection, commit key, blur, create) claims the session.
   Losing triggers return ``CommitResult.IGNORED``.
2. The binding change is applied to the directory immediately.
3. The matching identity-service write is started as a background task;
   its failure is logged and counted, never retried and never rolled back.
4. The session is discarded.

Creating a person is the one commit that awaits the service before the
local change, since the new person's id is needed; a failed creation
leaves the binding untouched.
"""

from __future__ import annotations

import asyncio
import enum
from collections.abc import Awaitable, Callable

import structlog

from sr_common.config import get_settings
from sr_common.metrics import speaker_commits_total, speaker_remote_write_failures_total
from sr_common.models import BindingPatch, PersonCandidate, Voiceprint

from .candidate_search import DebouncedCandidateSearch
from .directory import SpeakerDirectory, UnknownSpeakerError
from .edit_session import (
    EditSession,
    EditSessionMachine,
    EditState,
    MenuOption,
    build_options,
)
from .identity_client import IdentityServiceClient

logger = structlog.get_logger()

OptionsListener = Callable[[list[MenuOption]], None]


class CommitResult(str, enum.Enum):
    """Outcome of one edit-session trigger."""

    APPLIED = "applied"
    UNCHANGED = "unchanged"
    CANCELLED = "cancelled"
    FAILED = "failed"
    IGNORED = "ignored"


class ResolutionCoordinator:
    """Orchestrates edit sessions against one meeting's speaker directory.

    All public methods must be called from the event loop that owns the
    directory; no locking is performed.

    Args:
        directory: Loaded (or to-be-loaded) speaker directory.
        client: Identity service client.
        search_delay_s: Debounce quiet period override.
        search_limit: Candidates per search override.
        blur_grace_s: Delay before a blur commits, override.
        drop_stale_results: Tagged-drop of stale search results override.
        enroll_on_link: Enroll a voiceprint on link, override.
    """

    def __init__(
        self,
        directory: SpeakerDirectory,
        client: IdentityServiceClient,
        *,
        search_delay_s: float | None = None,
        search_limit: int | None = None,
        blur_grace_s: float | None = None,
        drop_stale_results: bool | None = None,
        enroll_on_link: bool | None = None,
    ) -> None:
        settings = get_settings()
        self.directory = directory
        self._client = client
        self.blur_grace_s = (
            blur_grace_s if blur_grace_s is not None else settings.blur_grace_ms / 1000
        )
        self.enroll_on_link = (
            enroll_on_link if enroll_on_link is not None else settings.enroll_on_link
        )
        self._machine = EditSessionMachine(
            drop_stale_results=(
                drop_stale_results
                if drop_stale_results is not None
                else settings.search_drop_stale
            ),
        )
        self._search = DebouncedCandidateSearch(
            client,
            self._on_search_results,
            delay_s=search_delay_s,
            limit=search_limit,
        )
        self._listeners: list[OptionsListener] = []
        self._writes: set[asyncio.Task[bool]] = set()
        self._blur_tasks: set[asyncio.Task[CommitResult]] = set()
        self._unsubscribe_directory = directory.subscribe(self._on_directory_changed)

    # ── state ──

    @property
    def session(self) -> EditSession | None:
        return self._machine.session

    @property
    def state(self) -> EditState:
        return self._machine.state

    @property
    def options(self) -> list[MenuOption]:
        """Option menu for the live session (empty when closed)."""
        return build_options(self._machine.session, self.directory)

    @property
    def menu_visible(self) -> bool:
        return bool(self.options)

    def subscribe(self, listener: OptionsListener) -> Callable[[], None]:
        """Register *listener* for option-menu changes."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _emit(self) -> None:
        if not self._listeners:
            return
        options = self.options
        for listener in list(self._listeners):
            listener(options)

    def _on_directory_changed(self, directory: SpeakerDirectory) -> None:
        session = self._machine.session
        if (
            session is not None
            and session.state is EditState.EDITING
            and session.target_label not in directory
        ):
            logger.info(
                "edit_session_target_removed",
                meeting_id=directory.meeting_id,
                channel_label=session.target_label,
            )
            self._machine.cancel()
            self._search.cancel()
        self._emit()

    # ── session lifecycle ──

    async def reload(self) -> None:
        """Rebuild the directory from the identity service.

        A live session whose speaker is gone from the reloaded meeting is
        cancelled.
        """
        await self.directory.load()

    def open_edit(self, channel_label: str) -> EditSession:
        """Open an edit session on *channel_label*.

        Any open session is cancelled without committing.

        Raises:
            UnknownSpeakerError: If the label is not in the directory.
        """
        self.directory.require(channel_label)
        self._search.cancel()
        session = self._machine.open(channel_label)
        self._emit()
        return session

    def set_input(self, text: str) -> None:
        """Update the edit text and debounce a candidate search."""
        if self._machine.set_text(text) is None:
            return
        self._search.schedule(text)
        self._emit()

    def _on_search_results(self, query: str, candidates: list[PersonCandidate]) -> None:
        if self._machine.accept_candidates(query, candidates):
            self._emit()

    # ── triggers ──

    def select_merge_target(self, target_label: str) -> CommitResult:
        """Merge the edited speaker into *target_label*."""
        session = self._machine.session
        if (
            session is None
            or target_label == session.target_label
            or target_label not in self.directory
        ):
            return self._record("merge", CommitResult.IGNORED)
        return self._run_commit("merge", lambda s: self._merge(s.target_label, target_label))

    def select_candidate(self, person: PersonCandidate) -> CommitResult:
        """Link the edited speaker to an existing person."""
        return self._run_commit("link", lambda s: self._link(s.target_label, person))

    async def create_person(self, name: str | None = None) -> CommitResult:
        """Create a person named *name* (default: the edit text) and link it."""
        session = self._machine.session
        if session is None:
            return self._record("create", CommitResult.IGNORED)
        name = (name if name is not None else session.input_text).strip()
        if not name:
            return self._record("create", CommitResult.IGNORED)

        claimed = self._machine.begin_commit()
        if claimed is None:
            return self._record("create", CommitResult.IGNORED)
        self._search.cancel()
        log = logger.bind(meeting_id=self.directory.meeting_id, channel_label=claimed.target_label)

        result = CommitResult.FAILED
        try:
            person = await self._client.create_person(name)
            if person is None:
                log.warning("speaker_create_aborted", name=name)
            elif claimed.target_label not in self.directory:
                log.warning("speaker_create_target_removed", person_id=person.id)
            else:
                result = self._link(claimed.target_label, person)
        except Exception as exc:  # noqa: BLE001
            log.error("speaker_create_error", name=name, error=str(exc))
        finally:
            self._machine.finish(claimed)
            self._emit()
        return self._record("create", result)

    def press_commit_key(self) -> CommitResult:
        """Commit the typed text as a rename; blank text cancels."""
        session = self._machine.session
        if session is None:
            return self._record("rename", CommitResult.IGNORED)
        if not session.trimmed_text:
            return self.press_cancel_key()
        return self._run_commit("rename", lambda s: self._rename(s.target_label, s.trimmed_text))

    def press_cancel_key(self) -> CommitResult:
        """Close the session without committing."""
        if not self._machine.cancel():
            return self._record("cancel", CommitResult.IGNORED)
        self._search.cancel()
        self._emit()
        return self._record("cancel", CommitResult.CANCELLED)

    def blur(self) -> asyncio.Task[CommitResult]:
        """Handle focus loss: commit or cancel after the grace delay.

        Returns:
            The task resolving to the blur's result; it resolves to
            ``IGNORED`` when another trigger committed first.
        """
        session = self._machine.session
        task = asyncio.get_running_loop().create_task(self._blur_after_grace(session))
        self._blur_tasks.add(task)
        task.add_done_callback(self._blur_tasks.discard)
        return task

    async def _blur_after_grace(self, session: EditSession | None) -> CommitResult:
        await asyncio.sleep(self.blur_grace_s)
        if session is None or session.committed or not self._machine.is_current(session):
            return self._record("blur", CommitResult.IGNORED)
        if not session.trimmed_text:
            return self.press_cancel_key()
        return self._run_commit("blur", lambda s: self._rename(s.target_label, s.trimmed_text))

    def clear_mapping(self, channel_label: str) -> CommitResult:
        """Drop the name and person link of *channel_label*.

        Independent of any open edit session.
        """
        binding = self.directory.require(channel_label)
        self.directory.apply_binding(channel_label, BindingPatch.clear())
        self._spawn_write(
            "unbind",
            self._client.unbind_speaker(self.directory.meeting_id, binding.id),
        )
        return self._record("clear", CommitResult.APPLIED)

    async def enroll_voiceprint(self, channel_label: str) -> Voiceprint | None:
        """Enroll a voiceprint for the person linked to *channel_label*."""
        binding = self.directory.require(channel_label)
        if binding.person_id is None:
            logger.info(
                "voiceprint_skipped_unlinked",
                meeting_id=self.directory.meeting_id,
                channel_label=channel_label,
            )
            return None
        return await self._client.enroll_voiceprint(
            binding.person_id, self.directory.meeting_id, channel_label
        )

    # ── commit helpers ──

    def _run_commit(
        self,
        action: str,
        apply: Callable[[EditSession], CommitResult],
    ) -> CommitResult:
        session = self._machine.begin_commit()
        if session is None:
            return self._record(action, CommitResult.IGNORED)
        self._search.cancel()
        try:
            if session.target_label not in self.directory:
                result = CommitResult.FAILED
            else:
                result = apply(session)
        finally:
            self._machine.finish(session)
            self._emit()
        return self._record(action, result)

    def _link(self, channel_label: str, person: PersonCandidate) -> CommitResult:
        binding = self.directory.apply_binding(
            channel_label,
            BindingPatch(display_name=person.name, person_id=person.id, person_name=person.name),
        )
        if self.enroll_on_link:
            self._spawn_write("enroll", self._enroll_or_bind(binding.id, channel_label, person))
        else:
            self._spawn_write(
                "bind",
                self._client.bind_speaker(
                    self.directory.meeting_id, binding.id, person.name, person.id
                ),
            )
        return CommitResult.APPLIED

    async def _enroll_or_bind(
        self, binding_id: str, channel_label: str, person: PersonCandidate
    ) -> bool:
        """Link through voiceprint enrollment, falling back to a plain bind."""
        meeting_id = self.directory.meeting_id
        voiceprint = await self._client.enroll_voiceprint(person.id, meeting_id, channel_label)
        if voiceprint is not None:
            return True
        logger.info(
            "voiceprint_enroll_fallback_bind",
            meeting_id=meeting_id,
            channel_label=channel_label,
            person_id=person.id,
        )
        return await self._client.bind_speaker(meeting_id, binding_id, person.name, person.id)

    def _merge(self, source_label: str, target_label: str) -> CommitResult:
        target = self.directory.require(target_label)
        name = self.directory.label_for(target_label)
        if target.person_id is not None:
            patch = BindingPatch(
                display_name=name,
                person_id=target.person_id,
                person_name=target.person_name,
            )
        else:
            patch = BindingPatch(display_name=name)
        source = self.directory.apply_binding(source_label, patch)
        self._spawn_write(
            "bind",
            self._client.bind_speaker(
                self.directory.meeting_id, source.id, name, target.person_id
            ),
        )
        return CommitResult.APPLIED

    def _rename(self, channel_label: str, name: str) -> CommitResult:
        if not name or name == self.directory.label_for(channel_label):
            return CommitResult.UNCHANGED
        binding = self.directory.apply_binding(channel_label, BindingPatch(display_name=name))
        self._spawn_write(
            "bind",
            self._client.bind_speaker(self.directory.meeting_id, binding.id, name),
        )
        return CommitResult.APPLIED

    def _spawn_write(self, operation: str, call: Awaitable[bool]) -> None:
        task = asyncio.get_running_loop().create_task(self._remote_write(operation, call))
        self._writes.add(task)
        task.add_done_callback(self._writes.discard)

    async def _remote_write(self, operation: str, call: Awaitable[bool]) -> bool:
        # A False result was already logged by the client.
        try:
            ok = await call
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "speaker_remote_write_error",
                meeting_id=self.directory.meeting_id,
                operation=operation,
                error=str(exc),
            )
            ok = False
        if not ok:
            speaker_remote_write_failures_total.labels(operation=operation).inc()
        return ok

    def _record(self, action: str, result: CommitResult) -> CommitResult:
        speaker_commits_total.labels(action=action, result=result.value).inc()
        if result is not CommitResult.IGNORED:
            logger.info(
                "speaker_commit",
                meeting_id=self.directory.meeting_id,
                action=action,
                result=result.value,
            )
        return result

    # ── shutdown ──

    async def drain(self) -> None:
        """Wait for every background identity write started so far."""
        if self._writes:
            await asyncio.gather(*list(self._writes), return_exceptions=True)

    async def aclose(self) -> None:
        """Stop timers, cancel pending blurs and wait for pending writes."""
        await self._search.aclose()
        for task in list(self._blur_tasks):
            task.cancel()
        if self._blur_tasks:
            await asyncio.gather(*list(self._blur_tasks), return_exceptions=True)
        await self.drain()
        self._unsubscribe_directory()


__all__ = ["CommitResult", "ResolutionCoordinator", "UnknownSpeakerError"]
