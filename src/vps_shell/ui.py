# VPS Shell - Interactive Root Shell for VPS Egg Containers
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

from __future__ import annotations

import os
from collections.abc import Iterable
from typing import TYPE_CHECKING

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import Completer, Completion, PathCompleter
from prompt_toolkit.document import Document
from prompt_toolkit.formatted_text import ANSI
from prompt_toolkit.history import History
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.patch_stdout import patch_stdout
from prompt_toolkit.shortcuts import clear as pt_clear
from prompt_toolkit.shortcuts import print_formatted_text
from prompt_toolkit.styles import Style

from .commands import builtin_names

if TYPE_CHECKING:
    from .interfaces import HistoryStore  # pragma: no cover
    from .kernel import Kernel  # pragma: no cover


# ----------------------------
# Theme / Style
# ----------------------------


def _default_style_dict() -> dict[str, str]:
    # Conservative: works across prompt_toolkit versions.
    return {
        "completion-menu": "bg:#111111 #d0d0d0",
        "completion-menu.completion": "bg:#111111 #d0d0d0",
        "completion-menu.completion.current": "bg:#303030 #ffffff bold",
        "completion-menu.meta.completion": "bg:#111111 #808080",
        "completion-menu.meta.completion.current": "bg:#303030 #a0a0a0",
        "scrollbar.background": "bg:#202020",
        "scrollbar.button": "bg:#505050",
    }


# ----------------------------
# Completions
# ----------------------------


def _path_executables(path_val: str) -> set[str]:
    found: set[str] = set()
    for directory in filter(None, path_val.split(os.pathsep)):
        try:
            with os.scandir(directory) as entries:
                for entry in entries:
                    if entry.is_file() and os.access(entry.path, os.X_OK):
                        found.add(entry.name)
        except OSError:
            continue
    return found


class ExecutableCompleter(Completer):
    """Names of executables on $PATH, for the command word only.

    The scan is redone only when $PATH changes.
    """

    def __init__(self) -> None:
        self._scanned_for: str | None = None
        self._names: list[str] = []

    def names(self) -> list[str]:
        path_val = os.environ.get("PATH", "")
        if path_val != self._scanned_for:
            self._names = sorted(_path_executables(path_val))
            self._scanned_for = path_val
        return self._names

    def get_completions(
        self, document, complete_event
    ) -> Iterable[Completion]:
        word = (document.text_before_cursor or "").lstrip()
        if not word or " " in word:
            return

        for name in self.names():
            if name.startswith(word):
                yield Completion(
                    name, start_position=-len(word), display_meta="exe"
                )


class ArgumentCompleter(Completer):
    """Filesystem paths for the word under the cursor, after the command."""

    def __init__(self) -> None:
        self._paths = PathCompleter(expanduser=True)

    def get_completions(
        self, document, complete_event
    ) -> Iterable[Completion]:
        before = (document.text_before_cursor or "").lstrip()
        if " " not in before:
            return

        word = before.rsplit(" ", 1)[1]
        yield from self._paths.get_completions(
            Document(word, len(word)), complete_event
        )


class ShellCompleter(Completer):
    """Builtins and executables on the first token, paths afterwards."""

    def __init__(self) -> None:
        self._exe = ExecutableCompleter()
        self._args = ArgumentCompleter()

    def get_completions(
        self, document, complete_event
    ) -> Iterable[Completion]:
        before = (document.text_before_cursor or "").lstrip()

        if " " in before:
            yield from self._args.get_completions(document, complete_event)
            return

        if not before:
            return

        builtins = builtin_names()
        for name in builtins:
            if name.startswith(before):
                yield Completion(
                    name, start_position=-len(before), display_meta="builtin"
                )
        for c in self._exe.get_completions(document, complete_event):
            if c.text not in builtins:
                yield c


# ----------------------------
# History recall
# ----------------------------


class StoreHistory(History):
    """Up-arrow recall backed by the shell's history file.

    The kernel records every accepted line itself, so store_string does
    nothing; prompt_toolkit still keeps accepted lines in memory.
    """

    def __init__(self, store: HistoryStore) -> None:
        super().__init__()
        self.store = store

    def load_history_strings(self) -> Iterable[str]:
        # prompt_toolkit expects the newest entry first
        return list(reversed(self.store.entries()))

    def store_string(self, string: str) -> None:
        pass


# ----------------------------
# UIs
# ----------------------------


class PromptToolkitUI:
    """
    Terminal-friendly UI:
      - Keeps normal terminal scrollback + drag-select copy.
      - PromptSession with builtin/executable/path completion.
      - Up-arrow recall from the shell history file.
      - Ctrl+L clears the screen.
    """

    def __init__(self, kernel: Kernel | None = None) -> None:
        self.kernel = kernel
        self.session: PromptSession[str] | None = None
        self._style = Style.from_dict(_default_style_dict())

        # Track whether we ended on a newline (to prevent prompt mangling)
        self._needs_newline_before_prompt = False

    def _ensure_session(self) -> None:
        if self.session is not None:
            return

        history = (
            StoreHistory(self.kernel.store) if self.kernel is not None
            else None
        )
        self.session = PromptSession(
            key_bindings=self.build_key_bindings(),
            completer=ShellCompleter(),
            complete_while_typing=False,
            style=self._style,
            history=history,
        )

    # ---------- public API ----------

    def read(self, prompt: str) -> str:
        self._ensure_session()
        assert self.session is not None

        if self._needs_newline_before_prompt:
            print_formatted_text(ANSI("\n"), style=self._style, end="")
            self._needs_newline_before_prompt = False

        with patch_stdout():
            # prompt contains ANSI from kernel.prompt(), so preserve it
            return self.session.prompt(ANSI(prompt + " "))

    def ask(self, prompt: str) -> str:
        """One-off question outside the completion/history session."""
        if self._needs_newline_before_prompt:
            print_formatted_text(ANSI("\n"), style=self._style, end="")
            self._needs_newline_before_prompt = False
        return PromptSession().prompt(ANSI(prompt))

    def write(self, text: str) -> None:
        """Write EXACTLY what we receive (no extra newline).

        Track prompt safety.
        """
        if not text:
            return
        print_formatted_text(ANSI(text), style=self._style, end="")
        self._needs_newline_before_prompt = not text.endswith("\n")

    def clear(self) -> None:
        pt_clear()

    # ---------- keybindings ----------

    def build_key_bindings(self) -> KeyBindings:
        kb = KeyBindings()

        @kb.add("c-l")
        def _(event):
            event.app.renderer.clear()
            event.app.invalidate()

        return kb


class StdIOUI:
    """Plain input()/print() UI for piped consoles and legacy terminals."""

    def read(self, prompt: str) -> str:
        return input(prompt + " ")

    def ask(self, prompt: str) -> str:
        return input(prompt)

    def write(self, text: str) -> None:
        if text:
            print(text, end="" if text.endswith("\n") else "\n", flush=True)

    def clear(self) -> None:
        print("\033c", end="", flush=True)
