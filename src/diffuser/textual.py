"""Textual bindings for Diffuser and Fuser. Opt-in, requires textual.

Diffusers here write into widgets found with app.query_one(selector).
Every one of them is guarded:
- skipped while the app isn't running or is inside pause(app)
- marshalled with app.call_from_thread when run off the building thread
- NoMatches from the widget query is dropped, and the value is not
  cached, so the next run retries it

The guard checks and marshals before taking any Diffuser lock. When you
compose guarded Diffusers with map() or into_all() and run the result from
worker threads, wrap the outermost one with guarded() as well.

Fusers here turn Textual signals and widget messages into event streams.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Any, Callable

from textual.css.query import NoMatches
from textual.message import Message
from textual.widgets import Button, Input

from diffuser.diffuser import Diffuser, into, invert
from diffuser.fuser import Fuser, Output, extract_unless_none, from_source
from diffuser._types import A, Disposable, Effect

logger = logging.getLogger("diffuser.textual")

# Module-owned pause state, keyed by id(app) so multiple apps work in tests.
_paused_apps: set[int] = set()


@contextmanager
def pause(app):
    """Suspend guarded diffusers during widget replacement."""
    key = id(app)
    _paused_apps.add(key)
    try:
        yield
    finally:
        _paused_apps.discard(key)


def is_safe(app) -> bool:
    """Is the widget tree in a queryable state?"""
    return app.is_running and id(app) not in _paused_apps


class _Guarded(Diffuser[A]):
    """Checks app safety and marshals before taking the run lock.

    call_from_thread blocks until the app thread services it, so the
    marshalling thread must not hold a lock the app thread could need.
    """

    __slots__ = ("_app", "_main")

    def __init__(self, app, diffuser: Diffuser[A]) -> None:
        super().__init__(diffuser.run)
        self._app = app
        self._main = threading.get_ident()

    def run(self, value: A) -> None:
        if not is_safe(self._app):
            return
        if threading.get_ident() != self._main:
            self._app.call_from_thread(self._apply, value)
        else:
            self._apply(value)

    def _apply(self, value: A) -> None:
        try:
            super().run(value)
        except NoMatches as exc:
            logger.debug("Dropped widget update %r: %s", value, exc)


def guarded(app, diffuser: Diffuser[A]) -> Diffuser[A]:
    """Run diffuser only when the app is safe, on the thread that built it."""
    return _Guarded(app, diffuser)


def _widget_effect(app, selector: str, apply: Callable[[Any, A], None]) -> Effect[A]:
    return lambda value: apply(app.query_one(selector), value)


def _set_attribute(name: str) -> Callable[[Any, Any], None]:
    return lambda widget, value: setattr(widget, name, value)


def into_widget(app, selector: str, apply: Callable[[Any, A], None]) -> Diffuser[A]:
    """Call apply(widget, value) when the value changes."""
    return guarded(app, into(_widget_effect(app, selector, apply)))


def into_widget_attribute(app, selector: str, name: str) -> Diffuser[Any]:
    """Set widget.<name> to the value when it changes."""
    return into_widget(app, selector, _set_attribute(name))


def into_update(app, selector: str) -> Diffuser[Any]:
    """Call widget.update(value) when the value changes (Static, Label...)."""
    return into_widget(app, selector, lambda widget, value: widget.update(value))


def into_display(app, selector: str) -> Diffuser[bool]:
    """Show the widget when True, hide it when False."""
    return into_widget_attribute(app, selector, "display")


def into_hidden(app, selector: str) -> Diffuser[bool]:
    # Inverted inside the guard, so no outer lock is held while marshalling.
    effect = _widget_effect(app, selector, _set_attribute("display"))
    return guarded(app, invert(into(effect)))


def into_disabled(app, selector: str) -> Diffuser[bool]:
    """Disable the widget when True, enable it when False."""
    return into_widget_attribute(app, selector, "disabled")


def into_enabled(app, selector: str) -> Diffuser[bool]:
    effect = _widget_effect(app, selector, _set_attribute("disabled"))
    return guarded(app, invert(into(effect)))


def from_signal(signal, node) -> Fuser[Any]:
    """Fuser over a textual.signal.Signal, subscribed on behalf of node.

    A Signal keeps one subscription per node, so connecting the same
    (signal, node) pair twice replaces the first subscription.
    """

    def _source(effect: Effect[Any]) -> Disposable:
        signal.subscribe(node, effect)
        return lambda: signal.unsubscribe(node)

    return from_source(_source)


class Messages:
    """Routes Textual messages into Fusers.

    Textual delivers widget messages to handler methods, not to listeners,
    so forward them from a handler:

        class SearchApp(App):
            def __init__(self):
                super().__init__()
                self.messages = Messages()

            def on_input_changed(self, event):
                self.messages.dispatch(event)

            def on_button_pressed(self, event):
                self.messages.dispatch(event)

        from_text_changes(app.messages, "query").connect(search_box.run)
    """

    __slots__ = ("_output",)

    def __init__(self) -> None:
        self._output: Output[Message] = Output()

    def dispatch(self, message: Message) -> None:
        self._output.send(message)

    def of_type(self, *types: type[Message]) -> Fuser[Any]:
        """Fuser of the dispatched messages that are instances of types."""
        return extract_unless_none(
            lambda message: message if isinstance(message, types) else None,
            self._output.fuser,
        )


def _matches_id(widget, widget_id: str | None) -> bool:
    return widget_id is None or getattr(widget, "id", None) == widget_id


def from_clicks(messages: Messages, button_id: str | None = None) -> Fuser[Any]:
    """Button.Pressed messages, optionally only from the button with button_id."""
    return extract_unless_none(
        lambda pressed: pressed if _matches_id(pressed.button, button_id) else None,
        messages.of_type(Button.Pressed),
    )


def from_text_changes(messages: Messages, input_id: str | None = None) -> Fuser[str]:
    """New values from Input.Changed, optionally only from the input with input_id."""
    return extract_unless_none(
        lambda changed: changed.value if _matches_id(changed.input, input_id) else None,
        messages.of_type(Input.Changed),
    )
