"""
Terminal UI helpers for secure-user-setup.

Every operator-facing line goes through the shared `console`. Prompts accept an
optional `ask` callable (message -> answer) so the workflow can be driven from
tests without a terminal.
"""

from typing import Callable, Optional

import questionary
from rich.console import Console

console = Console()

Ask = Callable[[str], Optional[str]]


def _questionary_ask(message: str) -> Optional[str]:
    # unsafe_ask lets Ctrl+C propagate as KeyboardInterrupt instead of returning None
    return questionary.text(message, qmark="").unsafe_ask()


def is_affirmative(answer: Optional[str]) -> bool:
    """Only an answer starting with y/Y counts as yes. Empty input is no."""
    if not answer:
        return False
    return answer.strip()[:1] in ("y", "Y")


def prompt_text(message: str, ask: Optional[Ask] = None) -> str:
    """Ask for a line of text and return it stripped ('' if nothing was entered)."""
    ask = ask or _questionary_ask
    answer = ask(message)
    return (answer or "").strip()


def prompt_yes_no(question: str, ask: Optional[Ask] = None) -> bool:
    """Ask a y/N question. Defaults to no."""
    return is_affirmative(prompt_text(f"{question} (y/N):", ask=ask))
