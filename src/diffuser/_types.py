"""Capability primitives shared by Diffuser and Fuser.

Every collaborator (UI bindings, tests, application code) only ever speaks
in these shapes. They are plain callables, with no base classes to inherit.
"""

from __future__ import annotations

from typing import Callable, Iterable, TypeVar

A = TypeVar("A")
B = TypeVar("B")
T = TypeVar("T")

Effect = Callable[[A], None]
Function = Callable[[A], B]
DidChange = Callable[[A, A], bool]  # (previous, next) -> should run
Disposable = Callable[[], None]
Source = Callable[[Effect[A]], Disposable]


def snapshot(children: tuple, kind: type[T]) -> tuple[T, ...]:
    """Copy varargs, or a single collection of `kind`, into an owned tuple.

    Accepts both `merge(a, b)` and `merge([a, b])`. The copy is taken once;
    mutating the caller's collection afterwards has no effect.
    """
    if len(children) == 1 and not isinstance(children[0], kind):
        collection: Iterable[T] = children[0]
        items = tuple(collection)
    else:
        items = tuple(children)
    for item in items:
        if not isinstance(item, kind):
            raise TypeError(f"expected {kind.__name__}, got {type(item).__name__}")
    return items
