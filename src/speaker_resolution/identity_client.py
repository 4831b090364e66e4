"""
Identity service client for the speaker resolution engine.

Thin async request/response boundary to the external Person/Speaker
store.  Uses :mod:`httpx` for transport and :mod:`tenacity` to retry the
one idempotent read (``list_speakers``) that seeds a meeting's directory.

Error policy
------------
* ``search_persons`` fails open: any failure yields an empty list and is
  counted in ``identity_search_failures_total``.
* ``create_person`` / ``enroll_voiceprint`` return ``None`` on failure or
  on a malformed response.
* ``bind_speaker`` / ``unbind_speaker`` return ``False`` on failure.
* ``list_speakers`` raises :class:`IdentityServiceError` once retries are
  exhausted.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import httpx
import structlog
from pydantic import ValidationError
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from sr_common.config import get_settings
from sr_common.metrics import identity_search_failures_total
from sr_common.models import PersonCandidate, SpeakerBinding, Voiceprint

logger = structlog.get_logger()


class IdentityServiceError(Exception):
    """Raised for transport failures and non-2xx identity service responses.

    Attributes:
        status_code: HTTP status, or ``0`` for transport-level failures.
        body: Decoded response body, when one was received.
    """

    def __init__(self, message: str, status_code: int = 0, body: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


def _is_retryable(exc: BaseException) -> bool:
    """Transport failures and 5xx responses are worth another attempt."""
    if not isinstance(exc, IdentityServiceError):
        return False
    return exc.status_code == 0 or exc.status_code >= 500


class IdentityServiceClient:
    """Async client for the Person/Speaker identity store.

    Args:
        base_url: Service root URL.  Falls back to
            ``Settings.identity_service_url``.
        api_key: Bearer token.  Falls back to ``Settings.api_key``.
        timeout: Per-request timeout in seconds.
        list_attempts: Attempts for :meth:`list_speakers`.
        on_unauthorized: Optional callback invoked on any 401 response.
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        api_key: str | None = None,
        timeout: float | None = None,
        list_attempts: int | None = None,
        on_unauthorized: Callable[[], None] | None = None,
    ) -> None:
        settings = get_settings()
        self.base_url = (base_url or settings.identity_service_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.api_key
        self.timeout = timeout if timeout is not None else settings.request_timeout_s
        self.list_attempts = (
            list_attempts if list_attempts is not None else settings.list_speakers_max_attempts
        )
        self._on_unauthorized = on_unauthorized
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Return (and lazily create) the shared ``httpx.AsyncClient``."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout)
        return self._client

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    # ── transport ──

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Issue one request and return the decoded JSON body.

        Returns:
            The decoded body, or ``None`` for ``204 No Content``.

        Raises:
            IdentityServiceError: On transport failure or a non-2xx status.
        """
        client = await self._get_client()
        try:
            resp = await client.request(
                method,
                path,
                json=json,
                params=params,
                headers=self._headers(),
            )
        except httpx.TransportError as exc:
            raise IdentityServiceError(
                f"Network error calling {method} {path}: {exc}",
            ) from exc

        if resp.status_code == 204:
            return None

        try:
            body: Any = resp.json()
        except ValueError:
            body = resp.text

        if resp.is_error:
            if resp.status_code == 401 and self._on_unauthorized is not None:
                self._on_unauthorized()
            detail = body.get("detail", body) if isinstance(body, dict) else body
            raise IdentityServiceError(
                f"HTTP {resp.status_code}: {detail}",
                status_code=resp.status_code,
                body=body,
            )
        return body

    # ── persons ──

    async def search_persons(self, query: str, limit: int = 5) -> list[PersonCandidate]:
        """Return up to *limit* persons matching *query*.

        Fails open: any transport, HTTP or decoding error yields ``[]``.
        """
        params: dict[str, Any] = {"limit": limit}
        if query:
            params["search"] = query
        try:
            body = await self._request("GET", "/persons", params=params)
            if not isinstance(body, list):
                raise IdentityServiceError("search response is not a list", body=body)
            return [PersonCandidate.model_validate(item) for item in body][:limit]
        except (IdentityServiceError, ValidationError) as exc:
            reason = "invalid" if isinstance(exc, ValidationError) else "error"
            identity_search_failures_total.labels(reason=reason).inc()
            logger.warning("person_search_failed", query=query, error=str(exc))
            return []

    async def create_person(self, name: str, email: str | None = None) -> PersonCandidate | None:
        """Create a durable identity named *name*.

        Returns:
            The created person, or ``None`` on failure or a malformed response.
        """
        payload: dict[str, Any] = {"name": name}
        if email:
            payload["email"] = email
        try:
            body = await self._request("POST", "/persons", json=payload)
            if body is None:
                raise IdentityServiceError("empty create_person response")
            person = PersonCandidate.model_validate(body)
        except (IdentityServiceError, ValidationError) as exc:
            logger.error("person_create_failed", name=name, error=str(exc))
            return None
        logger.info("person_created", person_id=person.id)
        return person

    # ── meeting speakers ──

    async def list_speakers(self, meeting_id: str) -> list[SpeakerBinding]:
        """Return the speaker bindings of *meeting_id*.

        Rows that fail validation are skipped with a warning.

        Raises:
            IdentityServiceError: If every attempt fails.
        """

        @retry(
            stop=stop_after_attempt(self.list_attempts),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
            retry=retry_if_exception(_is_retryable),
            reraise=True,
        )
        async def _inner() -> Any:
            return await self._request("GET", f"/meetings/{meeting_id}/speakers")

        body = await _inner()
        if not isinstance(body, list):
            raise IdentityServiceError("speaker list response is not a list", body=body)

        bindings: list[SpeakerBinding] = []
        for row in body:
            try:
                bindings.append(SpeakerBinding.model_validate(row))
            except ValidationError as exc:
                logger.warning("speaker_row_invalid", meeting_id=meeting_id, error=str(exc))
        return bindings

    async def bind_speaker(
        self,
        meeting_id: str,
        speaker_binding_id: str,
        name: str,
        person_id: str | None = None,
    ) -> bool:
        """Rename a speaker binding, optionally linking it to *person_id*.

        Omitting *person_id* performs a name-only rename.
        """
        payload: dict[str, Any] = {"display_name": name}
        if person_id is not None:
            payload["person_id"] = person_id
        try:
            await self._request(
                "PUT",
                f"/meetings/{meeting_id}/speakers/{speaker_binding_id}",
                json=payload,
            )
        except IdentityServiceError as exc:
            logger.error(
                "speaker_bind_failed",
                meeting_id=meeting_id,
                speaker_binding_id=speaker_binding_id,
                error=str(exc),
            )
            return False
        return True

    async def unbind_speaker(self, meeting_id: str, speaker_binding_id: str) -> bool:
        """Drop the name and person link of a speaker binding."""
        try:
            await self._request(
                "DELETE",
                f"/meetings/{meeting_id}/speakers/{speaker_binding_id}/link",
            )
        except IdentityServiceError as exc:
            logger.error(
                "speaker_unbind_failed",
                meeting_id=meeting_id,
                speaker_binding_id=speaker_binding_id,
                error=str(exc),
            )
            return False
        return True

    # ── voiceprints ──

    async def enroll_voiceprint(
        self,
        person_id: str,
        meeting_id: str,
        speaker_label: str,
    ) -> Voiceprint | None:
        """Enroll a voiceprint for *person_id* from one meeting channel."""
        try:
            body = await self._request(
                "POST",
                f"/voiceprints/persons/{person_id}/enroll-from-meeting",
                params={"meeting_id": meeting_id, "speaker_label": speaker_label},
            )
            if body is None:
                raise IdentityServiceError("empty enroll_voiceprint response")
            return Voiceprint.model_validate(body)
        except (IdentityServiceError, ValidationError) as exc:
            logger.error(
                "voiceprint_enroll_failed",
                person_id=person_id,
                meeting_id=meeting_id,
                error=str(exc),
            )
            return None

    # ── lifecycle ──

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
