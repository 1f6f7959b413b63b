"""Tiny terminal UI helpers (prompt_toolkit-based).

Operator prompts used by the CLI before destructive or bookkeeping actions:
a yes/no confirmation and an account-code picker fed by category
suggestions. Kept apart from the engine so they are easy to test with a pipe
input.
"""

from __future__ import annotations

from collections.abc import Sequence

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.validation import ValidationError, Validator

_YES = {"y", "yes"}
_NO = {"n", "no"}


def _session_for(session: PromptSession | None, kb: KeyBindings) -> PromptSession:
    if session is None:
        return PromptSession(key_bindings=kb)
    return PromptSession(
        input=getattr(session, "input", None),
        output=getattr(session, "output", None),
        key_bindings=kb,
    )


class _YesNoValidator(Validator):
    def validate(self, document) -> None:
        text = document.text.strip().lower()
        if text and text not in _YES | _NO:
            raise ValidationError(message="Answer y or n")


def confirm_action(
    message: str,
    *,
    default: bool = False,
    session: PromptSession | None = None,
) -> bool:
    """Ask a yes/no question; Enter takes ``default``, Esc or Ctrl+C answer no."""

    kb = KeyBindings()

    @kb.add("escape")
    def _(event) -> None:  # pragma: no cover - exercised indirectly
        event.app.exit(result="n")

    @kb.add("c-c", eager=True)
    def _(event) -> None:  # pragma: no cover - exercised indirectly
        event.app.exit(result="n")

    sess = _session_for(session, kb)
    suffix = " [Y/n] " if default else " [y/N] "
    answer = sess.prompt(
        message + suffix,
        validator=_YesNoValidator(),
        validate_while_typing=False,
        key_bindings=kb,
    )
    text = (answer or "").strip().lower()
    if not text:
        return default
    return text in _YES


def select_account_code(
    codes: Sequence[str],
    *,
    default: str = "",
    message: str = "Account code (Enter to accept, Esc to skip): ",
    session: PromptSession | None = None,
) -> str | None:
    """Pick an account code, with completion over ``codes``.

    Any non-empty code may be typed; the suggestions only drive completion.
    Returns ``None`` when skipped (Esc, Ctrl+C or an empty answer).
    """

    kb = KeyBindings()

    @kb.add("escape")
    def _(event) -> None:  # pragma: no cover - exercised indirectly
        event.app.exit(result=None)

    @kb.add("c-c", eager=True)
    def _(event) -> None:  # pragma: no cover - exercised indirectly
        event.app.exit(result=None)

    completer = WordCompleter(list(codes), ignore_case=True, match_middle=True)
    sess = _session_for(session, kb)
    result = sess.prompt(
        message,
        default=default,
        completer=completer,
        complete_while_typing=True,
        key_bindings=kb,
    )
    if result is None:
        return None
    result = result.strip()
    return result or None


__all__ = ["confirm_action", "select_account_code"]
