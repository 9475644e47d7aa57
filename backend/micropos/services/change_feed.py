# Overview: Commit-driven change notification; lets read models re-run queries after writes.

"""
Change Feed

Push-based read model for ledger consumers (screens, receipt printers,
reporting). Every flush records which tables it touched on the session;
after the transaction commits, subscribers registered for any of those
tables are notified once with the full set.

RULES:
- Notifications fire only after COMMIT. A rolled back transaction notifies nobody.
- No ordering guarantee between subscribers.
- Callbacks run inside the after_commit hook, where the session cannot emit SQL.
  Re-evaluation must therefore be lazy (see LiveQuery).
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Iterable

from sqlalchemy import event
from sqlalchemy.orm import Session


logger = logging.getLogger(__name__)

_PENDING_KEY = "micropos.changed_tables"


class Subscription:
    """Handle returned by ChangeFeed.subscribe; call cancel() to stop receiving."""

    def __init__(self, feed: "ChangeFeed", tables: frozenset[str] | None, callback: Callable):
        self._feed = feed
        self.tables = tables
        self.callback = callback

    def matches(self, changed: frozenset[str]) -> bool:
        if self.tables is None:
            return True
        return bool(self.tables & changed)

    def cancel(self) -> None:
        self._feed._remove(self)


class ChangeFeed:
    def __init__(self):
        self._subscriptions: list[Subscription] = []
        self._lock = threading.Lock()
        self._installed = False

    def init_app(self, app) -> None:
        app.extensions["micropos_change_feed"] = self
        self.install()

    def install(self) -> None:
        """Register the session listeners once per process."""
        if self._installed:
            return
        event.listen(Session, "after_flush", self._after_flush)
        event.listen(Session, "after_commit", self._after_commit)
        event.listen(Session, "after_soft_rollback", self._after_soft_rollback)
        self._installed = True

    def subscribe(self, tables: Iterable[str] | None, callback: Callable[[frozenset[str]], None]) -> Subscription:
        """
        Register callback for commits touching any of `tables`.

        tables=None subscribes to every commit that wrote something.
        """
        sub = Subscription(self, frozenset(tables) if tables is not None else None, callback)
        with self._lock:
            self._subscriptions.append(sub)
        return sub

    def _remove(self, sub: Subscription) -> None:
        with self._lock:
            if sub in self._subscriptions:
                self._subscriptions.remove(sub)

    def _after_flush(self, session, flush_context) -> None:
        touched = session.info.setdefault(_PENDING_KEY, set())
        for obj in list(session.new) + list(session.dirty) + list(session.deleted):
            table = getattr(obj, "__tablename__", None)
            if table:
                touched.add(table)

    def _after_commit(self, session) -> None:
        touched = session.info.pop(_PENDING_KEY, None)
        if not touched:
            return
        self.publish(frozenset(touched))

    def _after_soft_rollback(self, session, previous_transaction) -> None:
        session.info.pop(_PENDING_KEY, None)

    def publish(self, changed: frozenset[str]) -> None:
        with self._lock:
            targets = [s for s in self._subscriptions if s.matches(changed)]
        for sub in targets:
            try:
                sub.callback(changed)
            except Exception:
                # The write is already committed; subscriber errors stay here.
                logger.exception("Change feed subscriber failed for tables %s", sorted(changed))


class LiveQuery:
    """
    Query result that refreshes after relevant commits.

    The query callable is re-run lazily on the next `.value` read after a
    commit touching one of `tables`.
    """

    def __init__(self, feed: ChangeFeed, tables: Iterable[str], query: Callable[[], object]):
        self._query = query
        self._stale = True
        self._value = None
        self.refresh_count = 0
        self._subscription = feed.subscribe(tables, self._on_change)

    def _on_change(self, changed: frozenset[str]) -> None:
        self._stale = True

    @property
    def is_stale(self) -> bool:
        return self._stale

    @property
    def value(self):
        if self._stale:
            self._value = self._query()
            self._stale = False
            self.refresh_count += 1
        return self._value

    def close(self) -> None:
        self._subscription.cancel()
