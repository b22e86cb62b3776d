"""Metric definitions for the realtime presence service."""

from __future__ import annotations

from .registry import registry


realtime_events_total = registry.counter(
    "realtime_events_total",
    "Count of realtime events processed by the websocket router.",
    label_names=("event", "direction"),
)

realtime_errors_total = registry.counter(
    "realtime_errors_total",
    "Number of error events returned to clients.",
    label_names=("reason",),
)

realtime_auth_failures_total = registry.counter(
    "realtime_auth_failures_total",
    "Number of rejected websocket handshakes.",
    label_names=("reason",),
)

realtime_stale_evictions_total = registry.counter(
    "realtime_stale_evictions_total",
    "Number of presence entries removed by the staleness sweep.",
)

realtime_connections = registry.gauge(
    "realtime_active_connections",
    "Number of websocket connections handled locally.",
    label_names=("scope",),
)

realtime_rooms = registry.gauge(
    "realtime_active_rooms",
    "Number of rooms with at least one member.",
)
