"""Diffuser: change-gated effects and disposable event streams."""

from importlib.metadata import version as _version

__version__ = _version("diffuser")

from diffuser.diffuser import (
    Diffuser,
    ReentrantRunError,
    into,
    into_all,
    into_always,
    into_attribute,
    into_once,
    into_when,
    invert,
    map,
    map_attr,
    map_item,
)
from diffuser.fuser import (
    Connection,
    Fuser,
    Output,
    extract,
    extract_constant,
    extract_unless_none,
    from_all,
    from_output,
    from_source,
)
# textual NOT auto-imported, opt-in only

__all__ = [
    "Diffuser",
    "ReentrantRunError",
    "into",
    "into_all",
    "into_always",
    "into_attribute",
    "into_once",
    "into_when",
    "invert",
    # map is importable by name but left out of star-imports: it shadows the builtin.
    "map_attr",
    "map_item",
    "Connection",
    "Fuser",
    "Output",
    "extract",
    "extract_constant",
    "extract_unless_none",
    "from_all",
    "from_output",
    "from_source",
]
