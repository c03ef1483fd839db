"""Push-based change notification for live projections.

Repositories publish the names of the tables a committed transaction
touched. ``LiveQuery`` objects subscribed to any of those tables re-run
their fetch function and push the fresh snapshot to every observer.
"""
import logging
import threading
from typing import Callable, Dict, Generic, Iterable, List, Optional, Set, TypeVar

logger = logging.getLogger(__name__)

NOTES_TABLE = "notes"
HISTORY_TABLE = "note_edit_history"

T = TypeVar("T")

TableListener = Callable[[Set[str]], None]


class ChangeNotifier:
    """Thread-safe registry of table-change listeners.

    Listeners are keyed on table name; one ``notify`` call invokes each
    interested listener once, no matter how many of its tables changed.
    """

    def __init__(self):
        self._listeners: Dict[str, List[TableListener]] = {}
        self._lock = threading.Lock()

    def add_listener(self, tables: Iterable[str], listener: TableListener) -> None:
        with self._lock:
            for table in tables:
                bucket = self._listeners.setdefault(table, [])
                if listener not in bucket:
                    bucket.append(listener)

    def remove_listener(self, listener: TableListener) -> None:
        with self._lock:
            for bucket in self._listeners.values():
                if listener in bucket:
                    bucket.remove(listener)

    def listener_count(self, table: str) -> int:
        with self._lock:
            return len(self._listeners.get(table, []))

    def notify(self, tables: Iterable[str]) -> None:
        """Publish that a committed write touched ``tables``.

        Listener failures are logged and never reach the writer.
        """
        changed = set(tables)
        with self._lock:
            targets: List[TableListener] = []
            for table in changed:
                for listener in self._listeners.get(table, []):
                    if listener not in targets:
                        targets.append(listener)

        for listener in targets:
            try:
                listener(changed)
            except Exception as e:
                logger.error(
                    f"Change listener failed for tables {sorted(changed)}: {e}",
                    exc_info=True,
                )


class Subscription:
    """Handle returned by ``LiveQuery.subscribe``; close it to stop updates."""

    def __init__(self, live_query: "LiveQuery", callback: Callable):
        self._live_query = live_query
        self._callback = callback
        self.closed = False

    def close(self) -> None:
        if not self.closed:
            self._live_query._unsubscribe(self._callback)
            self.closed = True

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class LiveQuery(Generic[T]):
    """A standing query whose result is re-delivered after relevant writes.

    The query only listens to the notifier while it has subscribers.

    Example:
        live = queries.live_active_notes(Category.TRUCAR)
        with live.subscribe(lambda notes: render(notes)):
            service.save_note(...)  # render() is called again with the new list
    """

    def __init__(
        self,
        notifier: ChangeNotifier,
        tables: Iterable[str],
        fetch: Callable[[], T],
        name: Optional[str] = None,
    ):
        self._notifier = notifier
        self._tables = frozenset(tables)
        self._fetch = fetch
        self.name = name or getattr(fetch, "__name__", "live_query")
        self._observers: List[Callable[[T], None]] = []
        self._lock = threading.Lock()
        self._latest: Optional[T] = None

    @property
    def tables(self) -> frozenset:
        return self._tables

    @property
    def value(self) -> Optional[T]:
        """Most recently delivered snapshot (None before the first delivery)."""
        return self._latest

    def get(self) -> T:
        """Run the query once without subscribing."""
        return self._fetch()

    def subscribe(self, callback: Callable[[T], None]) -> Subscription:
        """Register an observer and deliver the current snapshot to it."""
        with self._lock:
            first = not self._observers
            self._observers.append(callback)
        if first:
            self._notifier.add_listener(self._tables, self._on_tables_changed)

        snapshot = self._fetch()
        self._latest = snapshot
        callback(snapshot)
        return Subscription(self, callback)

    def _unsubscribe(self, callback: Callable[[T], None]) -> None:
        with self._lock:
            if callback in self._observers:
                self._observers.remove(callback)
            empty = not self._observers
        if empty:
            self._notifier.remove_listener(self._on_tables_changed)

    def _on_tables_changed(self, tables: Set[str]) -> None:
        with self._lock:
            observers = list(self._observers)
        if not observers:
            return
        snapshot = self._fetch()
        self._latest = snapshot
        logger.debug(f"Live query {self.name} refreshed after change to {sorted(tables)}")
        for observer in observers:
            try:
                observer(snapshot)
            except Exception as e:
                logger.error(f"Observer of {self.name} failed: {e}", exc_info=True)
