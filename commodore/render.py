"""
Console rendering for collaborators: fault reports and the command table.

Palette keys
- table-title, table-border, name, aliases, usage, description, placeholder
- panel-title

Customization
- Define a mapping named __styles__ in __main__ to override any palette entry
  (fault palette keys are documented in faults.DispatchError.render).
- When colorful is False, styling is suppressed.
"""
from collections import defaultdict

from rich.box import ROUNDED
from rich.console import Console
from rich.panel import Panel
from rich.text import Text
from rich.table import Table

console = Console(stderr=True)


def _palette(colorful):
    styles = defaultdict(str, {
        "table-title": "bold #FFFFFF",
        "table-border": "#4B5563",  # slate border
        "name": "bold #36C5F0",  # sky-blue command names
        "aliases": "#00E6FF dim",
        "usage": "bold #FFD600",  # amber for usage lines
        "description": "#9CA3AF",
        "placeholder": "italic #737373",
        "panel-title": "bold #FF4D94",
    } | getattr(__import__("__main__"), "__styles__", {}))

    def styler(style):
        return styles[style] if colorful else ""

    return styler


def report(outcome, /, console=console, fancy=False, colorful=True):
    """
    print the fault of an outcome, if any.

    returns whether something was printed; successful outcomes and non-commands
    (None) print nothing.
    """
    if outcome is None or outcome.fault is None:
        return False
    console.print(outcome.fault.render(fancy=fancy, colorful=colorful))
    return True


def helper(registry, /, title="commands", fancy=False, colorful=True, nested=True):
    """
    build a rich table listing every registered command.

    columns are name, aliases, usage and description; with nested=True every
    subcommand gets its own row under its parent.
    """
    styler = _palette(colorful)

    def text(fragment, style):
        return Text(str(fragment), styler(style))

    table = Table(
        "name", "aliases", "usage", "description",
        title=text(title, "table-title") if not fancy else None,
        box=ROUNDED,
        style=styler("table-border"),
        header_style=styler("table-title"),
    )

    for command in registry:
        for definition in command.walk() if nested else (command,):
            if definition.descr:
                descr = text(definition.descr, "description")
            else:
                descr = text("no description", "placeholder")
            table.add_row(
                text(definition.qualname, "name"),
                text(", ".join(definition.aliases), "aliases"),
                text(definition.usage, "usage"),
                descr,
            )

    if fancy:
        return Panel(table, title=text(title, "panel-title"), title_align="left", expand=False)
    return table


__all__ = (
    "console",
    "report",
    "helper",
)
