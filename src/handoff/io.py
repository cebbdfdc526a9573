"""Console I/O helpers for user-facing messages and prompts."""

from __future__ import annotations

import sys

import questionary


def interactive_terminal() -> bool:
    """Return whether both stdin and stdout are attached to a terminal."""
    return sys.stdin.isatty() and sys.stdout.isatty()


def say(message: str) -> None:
    """Print a normal message to stdout.

    Example:
        >>> say("Hello")
        Hello
    """
    print(message)


def die(message: str, code: int = 1) -> None:
    """Print an error message and exit.

    Args:
        message: Error message to display.
        code: Exit code to use.

    Returns:
        None. Exits the process via ``sys.exit``.
    """
    print(f"error: {message}", file=sys.stderr)
    sys.exit(code)


def choose_many(title: str, options: list[str]) -> list[int] | None:
    """Let the user tick any number of ``options``.

    Returns:
        Sorted indexes of the ticked options (possibly empty), or ``None``
        when the prompt was cancelled.
    """
    if not options:
        return []
    choices = [questionary.Choice(title=label, value=index) for index, label in enumerate(options)]
    answer = questionary.checkbox(title, choices=choices).ask()
    if answer is None:
        return None
    return sorted(answer)


def choose_one(title: str, options: list[str]) -> int | None:
    """Let the user pick exactly one of ``options``; ``None`` on cancel."""
    if not options:
        return None
    choices = [questionary.Choice(title=label, value=index) for index, label in enumerate(options)]
    return questionary.select(title, choices=choices).ask()


def confirm_actions(
    title: str,
    summary_lines: list[str],
    *,
    proceed_label: str = "Proceed with deletion",
    cancel_label: str = "Cancel",
) -> bool | None:
    """Show ``summary_lines`` and ask whether to proceed.

    Returns:
        ``True`` to proceed, ``False`` when the user picked cancel, or
        ``None`` when the prompt itself was aborted.
    """
    for line in summary_lines:
        print(line)
    choice = questionary.select(title, choices=[proceed_label, cancel_label]).ask()
    if choice is None:
        return None
    return choice == proceed_label


def confirm(text: str, default: bool = False) -> bool:
    """Prompt for a yes/no confirmation.

    Args:
        text: Prompt label shown to the user.
        default: Default answer when the user presses enter.

    Returns:
        ``True`` when the user confirms.
    """
    if interactive_terminal():
        response = questionary.confirm(text, default=default).ask()
        return bool(response)
    suffix = "[Y/n]" if default else "[y/N]"
    response = input(f"{text} {suffix}: ").strip().lower()
    if response == "":
        return default
    return response in {"y", "yes"}
