# python
"""
Marker for optional arguments that were neither supplied nor defaulted.

This module exposes a single instance: `absent`. A resolved argument record
always holds one entry per declared argument; when an optional argument has no
token and no default, its entry is `absent` instead of being left out. It is
falsy, pretty-prints as "(absent)", and renders with colors in Rich.

Common patterns
- Presence checks in handlers:
    if args.member is absent: ...
- Collapse to a concrete value:
    value = absent.nullify(args.member, default=None)

Notes
- `absent` is a cached singleton (per-process).
- Rich rendering uses Text.assemble for a colored "(absent)".
"""
from rich.text import Text

absent = type("absent-type", (), {
    "__module__": None,
    "__slots__": (),
    "__rich__": lambda self: Text.assemble(("(", "yellow"), ("absent", "red"), (")", "yellow")),
    "__repr__": lambda self: "(absent)",
    "__bool__": lambda self: False,
    "__doc__": "singleton marking an optional argument that received no value",
    # Repeated instantiation returns the same object.
    "__new__": __import__("functools").cache(lambda cls: super(type, cls).__new__(cls)),
    # Return the object as-is unless it is the marker; in that case, return `default`.
    "nullify": lambda self, object, default=None, /: object if object is not self else default
})()


__all__ = ("absent",)
