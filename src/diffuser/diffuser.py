"""Diffusers: side effects that only run when their input changes.

A Diffuser wraps a side-effecting function. Calling run(value) decides,
from the previous value and the new one, whether the effect should fire.
The value is then cached for the next call.

    label = into(lambda text: widget.update(text))
    label.run("a")  # effect runs
    label.run("a")  # skipped, unchanged
    label.run("b")  # effect runs

Diffusers compose: into_all() merges several with the same input type,
map() changes the input type. A graph is built once and never changes;
only the per-instance caches do.

Thread safety: run() is serialised per instance. Calling run() on a
Diffuser from inside its own effect raises ReentrantRunError.
"""

from __future__ import annotations

import operator
import threading
from typing import Any, Generic

from diffuser._types import A, B, DidChange, Effect, Function, snapshot

# Cache value before the first run. Distinct from None so run(None) fires.
_UNSET = object()


class ReentrantRunError(RuntimeError):
    """run() was called on a Diffuser from inside that Diffuser's own effect."""


class Diffuser(Generic[A]):
    """A change-gated effect sink. Build with into(), into_when(), into_all()..."""

    __slots__ = ("_effect", "_lock", "_owner", "_children")

    def __init__(self, effect: Effect[A], children: tuple[Diffuser[A], ...] = ()) -> None:
        self._effect = effect
        self._lock = threading.Lock()
        self._owner: int | None = None
        self._children = children

    def run(self, value: A) -> None:
        """Run the side effect if this is the first call or the value changed.

        If the effect raises, the cache keeps its previous value and the
        exception propagates to the caller.
        """
        me = threading.get_ident()
        if self._owner == me:
            raise ReentrantRunError("Diffuser.run() called from inside its own effect")
        with self._lock:
            self._owner = me
            try:
                self._effect(value)
            finally:
                self._owner = None

    def __call__(self, value: A) -> None:
        # Lets a Diffuser be passed anywhere an Effect is expected.
        self.run(value)

    def __repr__(self) -> str:
        if self._children:
            return f"Diffuser(children={len(self._children)})"
        name = getattr(self._effect, "__qualname__", type(self._effect).__name__)
        return f"Diffuser({name})"


def _gated(did_change: DidChange[A], effect: Effect[A]) -> Effect[A]:
    """Compile did_change + effect into one effect with a private cache cell."""
    cache: list[Any] = [_UNSET]

    def _run(value: A) -> None:
        previous = cache[0]
        if previous is _UNSET or did_change(previous, value):
            effect(value)
        # Skipped when effect raised, so the previous value stays cached.
        cache[0] = value

    _run.__qualname__ = getattr(effect, "__qualname__", _run.__qualname__)
    return _run


def _not_equal(previous: Any, value: Any) -> bool:
    return previous != value


def _never(previous: Any, value: Any) -> bool:
    return False


def into_always(effect: Effect[A]) -> Diffuser[A]:
    """Run effect on every call, regardless of the value.

    A building block for other Diffusers. You probably want into().
    """
    return Diffuser(effect)


def into(effect: Effect[A]) -> Diffuser[A]:
    """Run effect on the first call and whenever the value != the previous one."""
    return Diffuser(_gated(_not_equal, effect))


def into_when(did_change: DidChange[A], target: Effect[A] | Diffuser[A]) -> Diffuser[A]:
    """Run target when did_change(previous, value) is true.

    target may be a plain effect or another Diffuser, in which case this
    adds a caching layer on top of it. The first call always runs target
    and does not consult did_change.
    """
    effect = target.run if isinstance(target, Diffuser) else target
    return Diffuser(_gated(did_change, effect))


def into_once(effect: Effect[A]) -> Diffuser[A]:
    """Run effect with the very first value only."""
    return Diffuser(_gated(_never, effect))


def into_all(*children: Any) -> Diffuser[A]:
    """Merge Diffusers of the same input type.

    Accepts varargs or a single collection. Every child is run, in order,
    on every call; the merged Diffuser adds no caching of its own. If a
    child raises, the remaining children are not run for that call.
    """
    owned: tuple[Diffuser[A], ...] = snapshot(children, Diffuser)

    def _run_children(value: A) -> None:
        for child in owned:
            child.run(value)

    return Diffuser(_run_children, owned)


def map(transform: Function[A, B], diffuser: Diffuser[B]) -> Diffuser[A]:
    """Change the input type of diffuser. transform runs on every call."""

    def _forward(value: A) -> None:
        diffuser.run(transform(value))

    return Diffuser(_forward)


def map_attr(name: str, diffuser: Diffuser[Any]) -> Diffuser[Any]:
    """Map into an attribute of the input. Dotted paths ("user.name") work."""
    return map(operator.attrgetter(name), diffuser)


def map_item(key: Any, diffuser: Diffuser[Any]) -> Diffuser[Any]:
    """Map into value[key]."""
    return map(operator.itemgetter(key), diffuser)


def invert(diffuser: Diffuser[bool]) -> Diffuser[bool]:
    """Negate a boolean input before it reaches diffuser."""
    return map(operator.not_, diffuser)


def into_attribute(name: str, *subjects: Any) -> Diffuser[Any]:
    """Set attribute `name` to the value on every subject, on every call.

    Ungated. Wrap it with into_when() to only write on change.
    """

    def _assign(value: Any) -> None:
        for subject in subjects:
            setattr(subject, name, value)

    return into_always(_assign)
