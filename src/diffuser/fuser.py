"""Fusers: disposable event streams that connect and disconnect as one unit.

A Fuser wraps a Source, something that produces events once given an
effect and returns a disposable to stop. connect() starts a subscription;
calling the returned Connection stops it.

    clicks = from_source(button_source)
    names = extract(lambda event: event.name, clicks)
    connection = from_all(names, other_names).connect(print)
    ...
    connection()  # disconnects every underlying source

There is deliberately no filter/reduce/flat_map. extract_unless_none() is
the only way to drop events. Interpret events downstream, not in the Fuser.
"""

from __future__ import annotations

import itertools
import logging
import threading
from typing import Any, Generic

from diffuser._types import A, B, Disposable, Effect, Function, Source, snapshot

logger = logging.getLogger("diffuser.fuser")


class Connection:
    """A live subscription. Call it (or .dispose()) to stop receiving events.

    Disposal is idempotent: the source is torn down at most once. An event
    already past the disposed check on another thread may still complete.
    """

    __slots__ = ("_disposed", "_lock", "_teardown")

    def __init__(self) -> None:
        self._disposed = threading.Event()
        self._lock = threading.Lock()
        self._teardown: Disposable | None = None

    @property
    def disposed(self) -> bool:
        return self._disposed.is_set()

    def _guard(self, effect: Effect[A]) -> Effect[A]:
        def _safe(value: A) -> None:
            if not self._disposed.is_set():
                effect(value)

        return _safe

    def _attach(self, teardown: Disposable) -> None:
        with self._lock:
            if not self._disposed.is_set():
                self._teardown = teardown
                return
        # Disposed while the source was still connecting.
        teardown()

    def dispose(self) -> None:
        self._disposed.set()
        with self._lock:
            teardown, self._teardown = self._teardown, None
        if teardown is not None:
            teardown()

    def __call__(self) -> None:
        self.dispose()

    def __enter__(self) -> Connection:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.dispose()

    def __repr__(self) -> str:
        state = "disposed" if self.disposed else "active"
        return f"Connection({state})"


class Fuser(Generic[A]):
    """A composable stream of events of type A. Build with from_source()/from_all()."""

    __slots__ = ("_source", "_children")

    def __init__(self, source: Source[A], children: tuple[Fuser[A], ...] = ()) -> None:
        self._source = source
        self._children = children

    def connect(self, effect: Effect[A]) -> Connection:
        """Start receiving events. Each call is an independent subscription.

        Remember to dispose the returned Connection, or the source leaks.
        """
        connection = Connection()
        teardown = self._source(connection._guard(effect))
        connection._attach(teardown)
        return connection

    def __repr__(self) -> str:
        if self._children:
            return f"Fuser(children={len(self._children)})"
        return f"Fuser({getattr(self._source, '__qualname__', self._source)!r})"


def from_source(source: Source[A]) -> Fuser[A]:
    """Wrap a Source: a callable taking an effect and returning a disposable."""
    return Fuser(source)


def from_all(*children: Any) -> Fuser[A]:
    """Merge Fusers of the same event type.

    Accepts varargs or a single collection. Connecting connects every child
    in order; disposing disposes every child connection in order.
    """
    owned: tuple[Fuser[A], ...] = snapshot(children, Fuser)

    def _connect_children(effect: Effect[A]) -> Disposable:
        connections: list[Connection] = []
        try:
            for child in owned:
                connections.append(child.connect(effect))
        except BaseException:
            for connection in connections:
                connection.dispose()
            raise
        lock = threading.Lock()
        logger.debug("Connected %d merged fusers", len(connections))

        def _dispose_children() -> None:
            with lock:
                if connections:
                    logger.debug("Disposing %d merged fusers", len(connections))
                for connection in connections:
                    connection.dispose()
                connections.clear()

        return _dispose_children

    return Fuser(_connect_children, owned)


def extract(transform: Function[B, A], fuser: Fuser[B]) -> Fuser[A]:
    """Apply transform to every event emitted by fuser."""

    def _source(dispatch: Effect[A]) -> Disposable:
        return fuser.connect(lambda event: dispatch(transform(event)))

    return from_source(_source)


def extract_constant(constant: A, fuser: Fuser[Any]) -> Fuser[A]:
    """Emit constant once for every event emitted by fuser."""

    def _source(dispatch: Effect[A]) -> Disposable:
        return fuser.connect(lambda event: dispatch(constant))

    return from_source(_source)


def extract_unless_none(transform: Function[B, A | None], fuser: Fuser[B]) -> Fuser[A]:
    """Apply transform to every event; drop the event when it returns None."""

    def _source(dispatch: Effect[A]) -> Disposable:
        def _forward(event: B) -> None:
            value = transform(event)
            if value is not None:
                dispatch(value)

        return fuser.connect(_forward)

    return from_source(_source)


class Output(Generic[A]):
    """An event outlet an object owns, exposed to listeners as a Fuser.

        class SearchBox:
            def __init__(self):
                self.queries = Output()

            def on_submit(self, text):
                self.queries.send(text)

        from_output(box.queries).connect(handle_query)

    Events sent while nothing is connected are dropped.
    """

    __slots__ = ("_listeners", "_lock", "_ids", "fuser")

    def __init__(self) -> None:
        self._listeners: dict[int, Effect[A]] = {}
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self.fuser: Fuser[A] = from_source(self._connect)

    def send(self, event: A) -> None:
        """Deliver event to every current listener, in connection order."""
        with self._lock:
            listeners = list(self._listeners.values())
        for listener in listeners:
            listener(event)

    def _connect(self, effect: Effect[A]) -> Disposable:
        key = next(self._ids)
        with self._lock:
            self._listeners[key] = effect

        def _remove() -> None:
            with self._lock:
                self._listeners.pop(key, None)

        return _remove

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)


def from_output(output: Output[A]) -> Fuser[A]:
    """The Fuser that receives everything sent through output."""
    return output.fuser
