"""
In-process change feed.

Services publish a ChangeEvent after each committed write. Consumers (the
routing trigger, WebSocket streams) subscribe with an explicit Subscription
handle and close it when they are done, either by calling ``close()`` or by
using the handle as a context manager.
"""
import logging
import threading
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from fastapi import Request
from sqlalchemy import inspect

logger = logging.getLogger(__name__)

EVENT_TYPES = ("insert", "update", "delete")


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    event_type: str
    row: Dict[str, Any] = field(default_factory=dict)

    @property
    def report_id(self) -> Optional[str]:
        if self.table == "reports":
            value = self.row.get("id")
        else:
            value = self.row.get("report_id")
        return str(value) if value is not None else None


class Subscription:
    def __init__(self, feed: "ChangeFeed", callback: Callable[[ChangeEvent], None],
                 table: Optional[str] = None, report_id: Optional[str] = None,
                 event_types: Optional[List[str]] = None):
        self.id = uuid.uuid4().hex
        self.feed = feed
        self.callback = callback
        self.table = table
        self.report_id = str(report_id) if report_id is not None else None
        self.event_types = tuple(event_types) if event_types else EVENT_TYPES
        self.active = True

    def matches(self, event: ChangeEvent) -> bool:
        if self.table is not None and event.table != self.table:
            return False
        if event.event_type not in self.event_types:
            return False
        if self.report_id is not None and event.report_id != self.report_id:
            return False
        return True

    def close(self):
        if self.active:
            self.feed._remove(self)
            self.active = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class ChangeFeed:
    def __init__(self):
        self._subscriptions: Dict[str, Subscription] = {}
        self._lock = threading.Lock()

    def subscribe(self, callback: Callable[[ChangeEvent], None], table: Optional[str] = None,
                  report_id: Optional[str] = None, event_types: Optional[List[str]] = None) -> Subscription:
        for event_type in event_types or ():
            if event_type not in EVENT_TYPES:
                raise ValueError(f"Unknown event type: {event_type}")
        sub = Subscription(self, callback, table=table, report_id=report_id, event_types=event_types)
        with self._lock:
            self._subscriptions[sub.id] = sub
        return sub

    def _remove(self, sub: Subscription):
        with self._lock:
            self._subscriptions.pop(sub.id, None)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def publish(self, table: str, event_type: str, row: Dict[str, Any]) -> ChangeEvent:
        event = ChangeEvent(table=table, event_type=event_type, row=row)
        with self._lock:
            targets = [s for s in self._subscriptions.values() if s.matches(event)]

        for sub in targets:
            # One failing consumer must not stop delivery to the others
            try:
                sub.callback(event)
            except Exception:
                logger.exception(f"Subscriber {sub.id} failed on {table}:{event_type}")
        return event


def row_of(obj) -> Dict[str, Any]:
    """Column values of an ORM instance, keyed by attribute name."""
    return {attr.key: getattr(obj, attr.key) for attr in inspect(obj).mapper.column_attrs}


def publish(feed: Optional[ChangeFeed], table: str, event_type: str, row: Dict[str, Any]):
    """Publish when a feed is wired in; services run without one in scripts."""
    if feed is not None:
        feed.publish(table, event_type, row)


def get_feed(request: Request) -> ChangeFeed:
    return request.app.state.feed
