"""Shared helpers for Questionary-based CLI prompts."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import questionary


class WizardAbort(RuntimeError):
    """Raised when the user aborts a Questionary prompt."""


_DEF_EMPTY_KEYWORD = "none"


def _comma_join(values: Sequence[str] | None) -> str:
    if not values:
        return ""
    return ", ".join(values)


def _split_csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def print_error(message: str) -> None:
    questionary.print(message, style="bold red")


def print_info(message: str) -> None:
    questionary.print(message, style="bold")


def ask_text(message: str, *, default: str | None = None, required: bool = False) -> str:
    """Prompt for a text value, optionally enforcing a non-empty response."""

    prompt_default = default or ""
    while True:
        response = questionary.text(message, default=prompt_default).ask()
        if response is None:
            raise WizardAbort()
        result = response.strip()
        if result:
            return result
        if prompt_default and not required:
            return prompt_default
        if required:
            print_error("Value is required.")
            continue
        return ""


def ask_optional_text(
    message: str,
    *,
    default: str | None = None,
    clear_word: str | None = None,
) -> str | None:
    """Prompt for optional text; ``clear_word`` removes the current value."""

    prompt_default = default or ""
    response = questionary.text(message, default=prompt_default).ask()
    if response is None:
        raise WizardAbort()
    result = response.strip()
    if clear_word and result.lower() == clear_word:
        return None
    if not result:
        return default
    return result


def ask_csv_list(
    message: str,
    *,
    current: Sequence[str] | None,
    empty_keyword: str | None = _DEF_EMPTY_KEYWORD,
) -> list[str]:
    """Prompt for a comma separated list; blank keeps the current entries."""

    current_list = list(current or [])
    hint = "comma separated"
    if empty_keyword:
        hint = f"{hint}; enter '{empty_keyword}' for an empty list"
    response = questionary.text(f"{message} ({hint})", default=_comma_join(current_list)).ask()
    if response is None:
        raise WizardAbort()
    result = response.strip()
    if empty_keyword and result.lower() == empty_keyword:
        return []
    if not result:
        return current_list
    return _split_csv(result)


def ask_bool(message: str, *, default: bool) -> bool:
    """Prompt for a boolean via confirmation."""

    response = questionary.confirm(message, default=default).ask()
    if response is None:
        raise WizardAbort()
    return bool(response)


def ask_choice(message: str, choices: Sequence[questionary.Choice], *, default: Any = None) -> Any:
    """Prompt for one of ``choices`` and return the selected value."""

    response = questionary.select(message, choices=list(choices), default=default).ask()
    if response is None:
        raise WizardAbort()
    return response


__all__ = [
    "WizardAbort",
    "ask_bool",
    "ask_choice",
    "ask_csv_list",
    "ask_optional_text",
    "ask_text",
    "print_error",
    "print_info",
]
