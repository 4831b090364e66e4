"""
Prometheus metrics for the speaker resolution engine.

Counters are registered once at import time on the default registry so
every coordinator in the process shares them.
"""

from __future__ import annotations

from prometheus_client import Counter

speaker_commits_total = Counter(
    "speaker_commits_total",
    "Edit-session commit attempts by action and result",
    ["action", "result"],
)
identity_search_requests_total = Counter(
    "identity_search_requests_total",
    "Completed person searches by whether any candidate was returned",
    ["status"],
)
identity_search_failures_total = Counter(
    "identity_search_failures_total",
    "Person searches that failed and were answered with no candidates",
    ["reason"],
)
speaker_remote_write_failures_total = Counter(
    "speaker_remote_write_failures_total",
    "Fire-and-forget identity writes that failed",
    ["operation"],
)

__all__ = [
    "identity_search_failures_total",
    "identity_search_requests_total",
    "speaker_commits_total",
    "speaker_remote_write_failures_total",
]
