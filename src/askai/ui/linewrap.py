from __future__ import annotations
import shutil
import textwrap
from typing import List

DEFAULT_WIDTH = 80


def terminal_width() -> int:
    """Wrap width for answers: terminal width minus a small margin, capped at 80."""
    cols = shutil.get_terminal_size((DEFAULT_WIDTH, 24)).columns or DEFAULT_WIDTH
    return max(10, min(cols - 2, DEFAULT_WIDTH))


def wrap_text(text: str, width: int, tab_width: int = 4) -> str:
    """
    Word-wrap each paragraph to `width`. Newlines are kept; a word longer than
    the width stays whole on its own line.
    """
    if not text:
        return ""
    out: List[str] = []
    for paragraph in text.expandtabs(tab_width).splitlines():
        if len(paragraph) <= width:
            out.append(paragraph)
            continue
        out.extend(textwrap.wrap(paragraph, width, break_long_words=False, break_on_hyphens=False) or [""])
    return "\n".join(out)


class LineWrapper:
    """
    Incremental wrapper for streamed text. feed() returns what can be printed now;
    a word is held back until the whitespace after it arrives. Call finish() at the end.
    """

    def __init__(self, width: int, tab_width: int = 4):
        self.width = width
        self.tab_width = tab_width
        self._col = 0
        self._word: List[str] = []
        self._space = False

    def _flush_word(self) -> str:
        if not self._word:
            return ""
        word = "".join(self._word)
        self._word = []
        sep = " " if self._space and self._col > 0 else ""
        self._space = False
        if self._col > 0 and self._col + len(sep) + len(word) > self.width:
            self._col = len(word)
            return "\n" + word
        self._col += len(sep) + len(word)
        return sep + word

    def feed(self, chunk: str) -> str:
        out: List[str] = []
        for ch in chunk.expandtabs(self.tab_width):
            if ch == "\n":
                out.append(self._flush_word())
                out.append("\n")
                self._col = 0
                self._space = False
            elif ch.isspace():
                out.append(self._flush_word())
                self._space = True
            else:
                self._word.append(ch)
        return "".join(out)

    def finish(self) -> str:
        return self._flush_word()
