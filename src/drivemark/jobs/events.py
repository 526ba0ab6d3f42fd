"""Typed events published by the scheduler and job handlers."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, TypeVar, Union

from .models import DriveJobs

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class Toast:
    """User-facing notification.

    Attributes:
        title: Short headline.
        type: ``<job type>:<outcome>``, e.g. ``sync:done``.
        err: Error message of a failed job.
        links: Anchor to label map, e.g. ``{"#drive_logs:job-1": "View logs"}``.
        payload: Job payload the toast refers to.
    """

    title: str
    type: str
    err: Optional[str] = None
    links: dict[str, str] = field(default_factory=dict)
    payload: Optional[str] = None


@dataclass(slots=True)
class JobsChanged:
    drive_id: str
    jobs: DriveJobs


@dataclass(slots=True)
class ToastAdded:
    drive_id: str
    toast: Toast


@dataclass(slots=True)
class ChangesChanged:
    drive_id: str


@dataclass(slots=True)
class PanicRaised:
    """Credentials stopped working; retrying will not help."""

    drive_id: str
    message: str


Event = Union[JobsChanged, ToastAdded, ChangesChanged, PanicRaised]
E = TypeVar("E")


class EventBus:
    """Synchronous publish/subscribe keyed by event class."""

    def __init__(self) -> None:
        self._handlers: dict[type, list[Callable[[Any], None]]] = {}
        self._lock = threading.Lock()

    def subscribe(self, event_cls: type[E], handler: Callable[[E], None]) -> Callable[[], None]:
        """Register ``handler`` for ``event_cls``.

        Returns:
            Callable: Removes the subscription when called.
        """
        with self._lock:
            self._handlers.setdefault(event_cls, []).append(handler)

        def _unsubscribe() -> None:
            with self._lock:
                handlers = self._handlers.get(event_cls, [])
                if handler in handlers:
                    handlers.remove(handler)

        return _unsubscribe

    def publish(self, event: Event) -> None:
        with self._lock:
            handlers = list(self._handlers.get(type(event), []))
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                LOGGER.exception("Event handler failed for %s", type(event).__name__)


__all__ = [
    "ChangesChanged",
    "Event",
    "EventBus",
    "JobsChanged",
    "PanicRaised",
    "Toast",
    "ToastAdded",
]
