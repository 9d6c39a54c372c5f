"""
In-memory request counters reported by /health.
Nothing here is persisted; the AWS account is the only durable state.
"""
from __future__ import annotations

import threading
from typing import Any

_lock = threading.Lock()

# ── In-memory counters ─────────────────────────────────────────
counters: dict[str, int] = {
    "received": 0,
    "in_flight": 0,
    "succeeded": 0,
    "failed": 0,
}
bus_state: dict[str, Any] = {"connected": False}


def request_started() -> None:
    with _lock:
        counters["received"] += 1
        counters["in_flight"] += 1


def request_finished(succeeded: bool) -> None:
    with _lock:
        counters["in_flight"] -= 1
        counters["succeeded" if succeeded else "failed"] += 1


def set_bus_connected(connected: bool) -> None:
    with _lock:
        bus_state["connected"] = connected


def snapshot() -> dict[str, Any]:
    with _lock:
        return {**counters, "bus_connected": bus_state["connected"]}


def clear_all() -> None:
    with _lock:
        for key in counters:
            counters[key] = 0
        bus_state["connected"] = False
