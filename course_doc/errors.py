"""
Error taxonomy shared by the splitter, the shortcode engine and the assembler.
"""

from __future__ import annotations

from typing import Optional


class CourseDocError(RuntimeError):
    """
    Base class for every error raised while parsing or rendering a document.

    Parameters
    ----------
    message:
        Human readable description of the problem.
    line:
        1-based line number in the source document, when known.
    column:
        1-based column on that line, when known.
    offset:
        0-based character offset in the text being processed, when known.
    context:
        Innermost enclosing construct (block keyword or shortcode name).
    """

    def __init__(
        self,
        message: str,
        *,
        line: Optional[int] = None,
        column: Optional[int] = None,
        offset: Optional[int] = None,
        context: Optional[str] = None,
    ) -> None:
        self.message = message
        self.line = line
        self.column = column
        self.offset = offset
        self.context = context
        super().__init__(self._format())

    def _format(self) -> str:
        text = self.message
        if self.line is not None:
            text += f" at line {self.line}"
            if self.column is not None:
                text += f", column {self.column}"
        elif self.offset is not None:
            text += f" at offset {self.offset}"
        if self.context:
            text += f" [in {self.context}]"
        return text

    def with_context(self, context: str) -> "CourseDocError":
        """Set `context` unless a more specific one is already known."""
        if not self.context:
            self.context = context
            self.args = (self._format(),)
        return self

    def shift(self, delta: int) -> "CourseDocError":
        """Move `offset` by `delta`; an error without offset is placed at `delta`."""
        self.offset = delta if self.offset is None else self.offset + delta
        self.args = (self._format(),)
        return self

    def relocate(self, first_line: int, text: str) -> "CourseDocError":
        """
        Translate an offset inside `text` into an absolute line/column.

        `text` is a fragment that starts on line `first_line` of the document.
        """
        if self.offset is not None:
            line, self.column = line_column(text, self.offset)
            self.line = first_line + line - 1
        elif self.line is not None:
            self.line = first_line + self.line - 1
        else:
            self.line = first_line
        self.args = (self._format(),)
        return self


class DocSyntaxError(CourseDocError):
    """Malformed shortcode call, attribute list, front matter or template."""


class StructuralError(CourseDocError):
    """Tags or shortcode blocks that do not pair up, or content in the wrong place."""


class ResolutionError(CourseDocError):
    """Unknown shortcode name or a template variable that was never bound."""

    def __init__(self, message: str, *, name: Optional[str] = None, **kwargs) -> None:
        self.name = name
        super().__init__(message, **kwargs)


class FormatError(CourseDocError):
    """A shortcode has no template variant for the requested output format."""


class RenderError(CourseDocError):
    """A shortcode template failed while rendering (bad operation on a bound value)."""


class ConfigError(CourseDocError):
    """Invalid or missing project configuration."""


def line_column(text: str, offset: int) -> tuple[int, int]:
    """Return the 1-based (line, column) of `offset` in `text`."""
    prefix = text[:offset]
    line = prefix.count("\n") + 1
    column = offset - (prefix.rfind("\n") + 1) + 1
    return line, column


__all__ = [
    "ConfigError",
    "CourseDocError",
    "DocSyntaxError",
    "FormatError",
    "RenderError",
    "ResolutionError",
    "StructuralError",
    "line_column",
]
