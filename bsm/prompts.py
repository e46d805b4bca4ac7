"""Operator input capability used by interactive operations."""

from __future__ import annotations

from typing import Protocol

import typer


class OperatorInput(Protocol):
    def ask_line(self, prompt: str, default: str = "") -> str: ...

    def ask_confirm(self, prompt: str) -> bool: ...


class TerminalInput:
    """Read answers from the controlling terminal."""

    def ask_line(self, prompt: str, default: str = "") -> str:
        answer = typer.prompt(prompt, default=default, show_default=bool(default))
        return str(answer).strip() or default

    def ask_confirm(self, prompt: str) -> bool:
        return typer.confirm(prompt, default=False)


def ask_int(operator: OperatorInput, prompt: str, default: int) -> int:
    """Numeric answer, falling back to ``default`` on anything unparseable."""
    raw = operator.ask_line(prompt, str(default))
    try:
        return int(raw)
    except (TypeError, ValueError):
        return default


def ask_bool(operator: OperatorInput, prompt: str, default: bool) -> bool:
    raw = operator.ask_line(prompt, "yes" if default else "no").strip().lower()
    if not raw:
        return default
    return raw in ("yes", "y")
