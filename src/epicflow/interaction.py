from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

import click


@dataclass(slots=True, frozen=True)
class Answered:
    value: str


@dataclass(slots=True, frozen=True)
class Cancelled:
    pass


UserResponse = Answered | Cancelled


class Prompter(ABC):
    @abstractmethod
    async def ask(self, message: str, default: str | None = None) -> UserResponse:
        """Ask the user a free-text question."""


class ClickPrompter(Prompter):
    """Prompts on the terminal; Ctrl-C or end of input counts as cancellation."""

    async def ask(self, message: str, default: str | None = None) -> UserResponse:
        try:
            value = click.prompt(
                message,
                default=default if default is not None else "",
                show_default=bool(default),
            )
        except click.Abort:
            return Cancelled()
        return Answered(str(value))
