"""
Parser for a single shortcode invocation such as ``image(url="a.png", width=300)``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, Optional

from .errors import DocSyntaxError

NAME_RE = re.compile(r"[A-Za-z0-9]+")
KEY_RE = re.compile(r"[A-Za-z_]+")
WHITESPACE_RE = re.compile(r"[ \t\r\n]*")

# Characters allowed in an unquoted value besides letters and digits.
BASIC_PUNCTUATION = "-_./:#%+@?&=~!*$^;"
BASIC_VALUE_RE = re.compile(r"[A-Za-z0-9" + re.escape(BASIC_PUNCTUATION) + r"]+")

# Opening quote -> closing quote.
QUOTES: Dict[str, str] = {
    '"': '"',
    "“": "”",
}


@dataclass(frozen=True)
class ShortcodeCall:
    """Name and parameters of one shortcode invocation."""

    name: str
    parameters: Dict[str, str] = field(default_factory=dict)


class _CallScanner:
    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0
        self.name: Optional[str] = None

    def fail(self, message: str, pos: Optional[int] = None) -> DocSyntaxError:
        at = self.pos if pos is None else pos
        fragment = self.text[at : at + 20] or "<end of input>"
        return DocSyntaxError(
            f"{message} near {fragment!r}",
            offset=at,
            context=self.name,
        )

    def skip_whitespace(self) -> None:
        self.pos = WHITESPACE_RE.match(self.text, self.pos).end()

    def at_end(self) -> bool:
        return self.pos >= len(self.text)

    def peek(self) -> str:
        return self.text[self.pos : self.pos + 1]

    def expect(self, char: str) -> None:
        if self.peek() != char:
            raise self.fail(f"expected {char!r}")
        self.pos += 1

    def match(self, pattern: re.Pattern[str], what: str) -> str:
        found = pattern.match(self.text, self.pos)
        if not found:
            raise self.fail(f"expected {what}")
        self.pos = found.end()
        return found.group(0)

    def value(self) -> str:
        opening = self.peek()
        closing = QUOTES.get(opening)
        if closing is None:
            return self.match(BASIC_VALUE_RE, "a quoted string or a plain value")
        start = self.pos
        end = self.text.find(closing, start + 1)
        if end == -1:
            raise self.fail("unterminated quoted string", start)
        self.pos = end + 1
        return self.text[start + 1 : end]

    def parse(self) -> ShortcodeCall:
        self.skip_whitespace()
        self.name = self.match(NAME_RE, "a shortcode name")
        parameters: Dict[str, str] = {}
        self.skip_whitespace()
        if self.peek() == "(":
            self.pos += 1
            self.skip_whitespace()
            if self.peek() != ")":
                while True:
                    self.skip_whitespace()
                    key_pos = self.pos
                    key = self.match(KEY_RE, "a parameter name")
                    if key in parameters:
                        raise self.fail(f"duplicate parameter {key!r}", key_pos)
                    self.skip_whitespace()
                    if self.peek() != "=":
                        raise self.fail(f"expected '=' after parameter {key!r}")
                    self.pos += 1
                    self.skip_whitespace()
                    parameters[key] = self.value()
                    self.skip_whitespace()
                    if self.peek() == ",":
                        self.pos += 1
                        continue
                    break
            self.expect(")")
            self.skip_whitespace()
        if not self.at_end():
            raise self.fail("unexpected trailing text")
        return ShortcodeCall(name=self.name, parameters=parameters)


def parse_shortcode(text: str) -> ShortcodeCall:
    """
    Parse ``name`` or ``name(key=value, ...)`` into a :class:`ShortcodeCall`.

    Values are either quoted (straight or curly double quotes) or plain tokens
    made of letters, digits and :data:`BASIC_PUNCTUATION`. Whitespace, including
    newlines, is allowed between all tokens.

    Raises
    ------
    DocSyntaxError
        If the call is malformed. ``offset`` points into `text`.
    """
    return _CallScanner(text).parse()


__all__ = ["BASIC_PUNCTUATION", "ShortcodeCall", "parse_shortcode"]
