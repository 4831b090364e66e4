"""
Tests for the identity service client.

Validates request shapes, the fail-open search policy, malformed-response
handling and the retry budget of the meeting-load read.
"""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from prometheus_client import REGISTRY

from speaker_resolution.identity_client import IdentityServiceClient, IdentityServiceError

_BASE = "http://identity.test"


def _resp(status: int, body: Any = None) -> httpx.Response:
    request = httpx.Request("GET", _BASE)
    if body is None:
        return httpx.Response(status, request=request)
    return httpx.Response(status, json=body, request=request)


def _client_with(*responses: Any, **kwargs: Any) -> tuple[IdentityServiceClient, AsyncMock]:
    ic = IdentityServiceClient(base_url=_BASE, api_key="k", **kwargs)
    http = AsyncMock()
    http.request = AsyncMock(side_effect=list(responses))
    ic._get_client = AsyncMock(return_value=http)  # type: ignore[method-assign]
    return ic, http


def _search_failures(reason: str) -> float:
    return REGISTRY.get_sample_value(
        "identity_search_failures_total", {"reason": reason}
    ) or 0.0


# ── transport ──


class TestRequest:

    async def test_bearer_header_sent(self) -> None:
        ic, http = _client_with(_resp(200, []))
        await ic.search_persons("al", 5)
        headers = http.request.call_args.kwargs["headers"]
        assert headers["Authorization"] == "Bearer k"

    async def test_no_auth_header_without_key(self) -> None:
        ic = IdentityServiceClient(base_url=_BASE, api_key="")
        assert "Authorization" not in ic._headers()

    async def test_base_url_trailing_slash_stripped(self) -> None:
        ic = IdentityServiceClient(base_url=_BASE + "///")
        assert ic.base_url == _BASE

    async def test_error_status_raises_with_detail(self) -> None:
        ic, _ = _client_with(_resp(404, {"detail": "not found"}))
        with pytest.raises(IdentityServiceError) as info:
            await ic._request("GET", "/x")
        assert info.value.status_code == 404
        assert "not found" in str(info.value)

    async def test_transport_error_has_status_zero(self) -> None:
        ic, _ = _client_with(httpx.ConnectError("refused"))
        with pytest.raises(IdentityServiceError) as info:
            await ic._request("GET", "/x")
        assert info.value.status_code == 0

    async def test_no_content_returns_none(self) -> None:
        ic, _ = _client_with(_resp(204))
        assert await ic._request("DELETE", "/x") is None

    async def test_unauthorized_callback(self) -> None:
        hook = MagicMock()
        ic, _ = _client_with(_resp(401, {"detail": "expired"}), on_unauthorized=hook)
        with pytest.raises(IdentityServiceError):
            await ic._request("GET", "/x")
        hook.assert_called_once()


# ── persons ──


class TestSearchPersons:

    async def test_returns_candidates(self) -> None:
        ic, http = _client_with(_resp(200, [{"id": "p1", "name": "Alice", "email": None}]))
        result = await ic.search_persons("Ali", 5)
        assert [p.name for p in result] == ["Alice"]
        assert http.request.call_args.kwargs["params"] == {"limit": 5, "search": "Ali"}

    async def test_truncates_to_limit(self) -> None:
        rows = [{"id": f"p{i}", "name": f"P{i}"} for i in range(8)]
        ic, _ = _client_with(_resp(200, rows))
        assert len(await ic.search_persons("P", 5)) == 5

    async def test_fails_open_on_transport_error(self) -> None:
        ic, _ = _client_with(httpx.ReadTimeout("slow"))
        assert await ic.search_persons("Ali", 5) == []

    async def test_fails_open_on_server_error(self) -> None:
        ic, _ = _client_with(_resp(500, {"detail": "boom"}))
        assert await ic.search_persons("Ali", 5) == []

    async def test_fails_open_on_malformed_rows(self) -> None:
        ic, _ = _client_with(_resp(200, [{"name": "no id"}]))
        assert await ic.search_persons("Ali", 5) == []

    async def test_failure_is_counted_by_reason(self) -> None:
        before = _search_failures("error")
        ic, _ = _client_with(httpx.ConnectError("down"))
        assert await ic.search_persons("Ali", 5) == []
        assert _search_failures("error") == before + 1

    async def test_malformed_rows_counted_as_invalid(self) -> None:
        before = _search_failures("invalid")
        ic, _ = _client_with(_resp(200, [{"name": "no id"}]))
        await ic.search_persons("Ali", 5)
        assert _search_failures("invalid") == before + 1

    async def test_empty_result_is_not_a_failure(self) -> None:
        before = _search_failures("error")
        ic, _ = _client_with(_resp(200, []))
        assert await ic.search_persons("Zz", 5) == []
        assert _search_failures("error") == before


class TestCreatePerson:

    async def test_posts_name(self) -> None:
        ic, http = _client_with(_resp(201, {"id": "p9", "name": "Dana"}))
        person = await ic.create_person("Dana")
        assert person is not None and person.id == "p9"
        assert http.request.call_args.args[:2] == ("POST", "/persons")
        assert http.request.call_args.kwargs["json"] == {"name": "Dana"}

    async def test_empty_response_is_failure(self) -> None:
        ic, _ = _client_with(_resp(204))
        assert await ic.create_person("Dana") is None

    async def test_malformed_response_is_failure(self) -> None:
        ic, _ = _client_with(_resp(200, {"name": "Dana"}))
        assert await ic.create_person("Dana") is None

    async def test_server_error_is_failure(self) -> None:
        ic, _ = _client_with(_resp(409, {"detail": "exists"}))
        assert await ic.create_person("Dana") is None


# ── meeting speakers ──


class TestSpeakers:

    async def test_list_speakers_parses_and_skips_invalid(self) -> None:
        rows = [
            {"id": "b0", "channel_label": "speaker_0"},
            {"id": "b1", "channel_label": "speaker_1", "person_id": "p1"},
        ]
        ic, http = _client_with(_resp(200, rows))
        result = await ic.list_speakers("m1")
        assert [b.channel_label for b in result] == ["speaker_0"]
        assert http.request.call_args.args[1] == "/meetings/m1/speakers"

    async def test_list_speakers_retries_server_errors(self) -> None:
        ic, http = _client_with(
            _resp(503, {"detail": "busy"}),
            _resp(200, [{"id": "b0", "channel_label": "speaker_0"}]),
            list_attempts=2,
        )
        result = await ic.list_speakers("m1")
        assert len(result) == 1
        assert http.request.await_count == 2

    async def test_list_speakers_does_not_retry_client_errors(self) -> None:
        ic, http = _client_with(_resp(404, {"detail": "no meeting"}), list_attempts=3)
        with pytest.raises(IdentityServiceError):
            await ic.list_speakers("m1")
        assert http.request.await_count == 1

    async def test_list_speakers_raises_when_exhausted(self) -> None:
        ic, _ = _client_with(httpx.ConnectError("down"), list_attempts=1)
        with pytest.raises(IdentityServiceError):
            await ic.list_speakers("m1")

    async def test_bind_with_person(self) -> None:
        ic, http = _client_with(_resp(200, {"id": "b0"}))
        assert await ic.bind_speaker("m1", "b0", "Alice", "p1") is True
        assert http.request.call_args.args == ("PUT", "/meetings/m1/speakers/b0")
        assert http.request.call_args.kwargs["json"] == {
            "display_name": "Alice",
            "person_id": "p1",
        }

    async def test_bind_name_only_omits_person(self) -> None:
        ic, http = _client_with(_resp(200, {"id": "b0"}))
        await ic.bind_speaker("m1", "b0", "Bob")
        assert http.request.call_args.kwargs["json"] == {"display_name": "Bob"}

    async def test_bind_failure_returns_false(self) -> None:
        ic, _ = _client_with(_resp(500, {"detail": "boom"}))
        assert await ic.bind_speaker("m1", "b0", "Bob") is False

    async def test_unbind_hits_link_endpoint(self) -> None:
        ic, http = _client_with(_resp(204))
        assert await ic.unbind_speaker("m1", "b0") is True
        assert http.request.call_args.args == ("DELETE", "/meetings/m1/speakers/b0/link")

    async def test_unbind_failure_returns_false(self) -> None:
        ic, _ = _client_with(httpx.ConnectError("down"))
        assert await ic.unbind_speaker("m1", "b0") is False


class TestVoiceprints:

    async def test_enroll_sends_meeting_and_label(self) -> None:
        ic, http = _client_with(
            _resp(201, {"id": "v1", "person_id": "p1", "meeting_id": "m1", "speaker_label": "speaker_1"})
        )
        vp = await ic.enroll_voiceprint("p1", "m1", "speaker_1")
        assert vp is not None and vp.id == "v1"
        assert http.request.call_args.kwargs["params"] == {
            "meeting_id": "m1",
            "speaker_label": "speaker_1",
        }

    async def test_enroll_failure_returns_none(self) -> None:
        ic, _ = _client_with(_resp(500, {"detail": "boom"}))
        assert await ic.enroll_voiceprint("p1", "m1", "speaker_1") is None


class TestLifecycle:

    async def test_close_releases_client(self) -> None:
        ic = IdentityServiceClient(base_url=_BASE)
        with patch("speaker_resolution.identity_client.httpx.AsyncClient") as cls:
            inner = MagicMock()
            inner.is_closed = False
            inner.aclose = AsyncMock()
            cls.return_value = inner
            assert await ic._get_client() is inner
            await ic.close()
        inner.aclose.assert_awaited_once()
        assert ic._client is None
