"""Tiny terminal UI helpers (prompt_toolkit-based).

Kept apart from capture and rendering so the interactive pieces can be tested
in isolation with pipe input.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any

from prompt_toolkit import PromptSession
from prompt_toolkit.auto_suggest import AutoSuggest, Suggestion
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.filters import Condition
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.keys import Keys
from prompt_toolkit.styles import Style


class _PrefixSuggest(AutoSuggest):
    """Grey inline completion of the first known category with the typed prefix."""

    def __init__(self, vocab: Sequence[str]) -> None:
        self._vocab = list(vocab)

    def get_suggestion(self, buffer, document):
        text = document.text
        if not text:
            return None
        lower = text.lower()
        for w in self._vocab:
            if w.lower() == lower:
                return None
        for w in self._vocab:
            if w.lower().startswith(lower):
                remainder = w[len(text) :]
                return Suggestion(remainder) if remainder else None
        return None


def select_category(
    categories: Sequence[str] | Iterable[str],
    *,
    default: str,
    message: str = "Category (Enter to accept): ",
    session: PromptSession | None = None,
) -> str:
    """Prompt for a category, pre-filled with ``default``.

    Known categories are offered through completion and inline suggestion, but
    any non-empty label is accepted. A typed value matching a known category
    case-insensitively is returned in its known spelling; an empty answer
    keeps ``default``.
    """

    words = list(dict.fromkeys(categories))
    canonical = {w.lower(): w for w in words}

    completer = WordCompleter(words, ignore_case=True, match_middle=True, sentence=False)

    kb = KeyBindings()
    menu_opened = False
    menu_index = 0
    # The first printable keystroke replaces the pre-filled default.
    replace_mode = bool(default)

    def _best_prefix_match(text: str) -> str | None:
        if not text:
            return None
        lower = text.lower()
        for w in words:
            wl = w.lower()
            if wl == lower:
                return None
            if wl.startswith(lower):
                return w
        return None

    def _open_or_advance_menu(b) -> None:
        nonlocal menu_opened, menu_index
        if b.complete_state is None:
            b.start_completion(select_first=True)
            menu_index = 0
        else:
            b.complete_next()
            menu_index += 1
        menu_opened = True

    @kb.add("down", eager=True)
    def _(event) -> None:  # pragma: no cover - integration path
        nonlocal replace_mode
        replace_mode = False
        _open_or_advance_menu(event.app.current_buffer)

    @kb.add("tab", eager=True)
    def _(event) -> None:  # pragma: no cover
        nonlocal replace_mode
        b = event.app.current_buffer
        replace_mode = False
        suggestion_text = getattr(getattr(b, "suggestion", None), "text", None)
        if not suggestion_text:
            cand = _best_prefix_match(b.document.text)
            if cand:
                suggestion_text = cand[len(b.document.text) :]
        if suggestion_text:
            b.insert_text(suggestion_text)
        else:
            _open_or_advance_menu(b)

    @kb.add("enter", eager=True)
    def _(event) -> None:  # pragma: no cover
        b = event.app.current_buffer
        cs = b.complete_state
        if cs is not None and cs.current_completion is not None:
            b.apply_completion(cs.current_completion)
            b.validate_and_handle()
            return
        # Headless sessions never render suggestions, so compute the prefix
        # completion directly as a fallback.
        suggestion_text = getattr(getattr(b, "suggestion", None), "text", None)
        if not suggestion_text:
            cand = _best_prefix_match(b.document.text)
            if cand:
                suggestion_text = cand[len(b.document.text) :]
        if suggestion_text:
            b.insert_text(suggestion_text)
        elif menu_opened and not b.document.text and words:
            b.insert_text(words[max(0, min(menu_index, len(words) - 1))])
        b.validate_and_handle()

    @kb.add("backspace", eager=True)
    def _(event) -> None:  # pragma: no cover
        nonlocal replace_mode
        event.app.current_buffer.delete_before_cursor(1)
        replace_mode = False

    def _leave_replace_mode(action: str) -> None:
        @kb.add(action, eager=True)
        def _(event) -> None:  # pragma: no cover
            nonlocal replace_mode
            replace_mode = False
            b = event.app.current_buffer
            match action:
                case "left":
                    b.cursor_left(1)
                case "right":
                    b.cursor_right(1)
                case "home" | "c-a":
                    b.cursor_position = 0
                case "end" | "c-e":
                    b.cursor_position = len(b.text)
                case "delete":
                    b.delete(1)

    for key in ("left", "right", "home", "end", "delete", "c-a", "c-e"):
        _leave_replace_mode(key)

    @kb.add(Keys.Any, filter=Condition(lambda: replace_mode), eager=True)
    def _(event) -> None:  # pragma: no cover
        nonlocal replace_mode
        data = getattr(event, "data", "") or ""
        if not data or not data.isprintable():
            return
        b = event.app.current_buffer
        replace_mode = False
        if data == " ":
            b.insert_text(" ")
            return
        b.delete_before_cursor(len(b.document.text_before_cursor))
        b.delete(len(b.document.text_after_cursor))
        b.insert_text(data)

    if session is None:
        sess: PromptSession = PromptSession(key_bindings=kb)
    else:
        sess = PromptSession(
            input=getattr(session, "input", None),
            output=getattr(session, "output", None),
            key_bindings=kb,
        )

    prompt_kwargs: dict[str, Any] = {
        "message": message,
        "completer": completer,
        "default": default or "",
        "key_bindings": kb,
        "auto_suggest": _PrefixSuggest(words),
        "style": Style.from_dict({"auto-suggestion": "fg:#888888"}),
    }
    result = sess.prompt(**prompt_kwargs).strip()

    if not result:
        return default
    return canonical.get(result.lower(), result)


__all__ = ["select_category"]
