"""
Output formats and the per-format rendering policy.
"""

from __future__ import annotations

from enum import Enum

from .errors import FormatError


class OutputFormat(str, Enum):
    """Rendering targets sharing the same source document."""

    HTML = "html"
    MARKDOWN = "markdown"
    NOTEBOOK = "notebook"
    ANSWER_KEY = "answer-key"

    @property
    def template_format(self) -> str:
        """Name of the shortcode template variant used by this format."""
        if self is OutputFormat.HTML:
            return "html"
        return "markdown"

    @property
    def always_reveals(self) -> bool:
        """Instructor formats show solutions regardless of the reveal flag."""
        return self is OutputFormat.ANSWER_KEY

    @property
    def extension(self) -> str:
        return {
            OutputFormat.HTML: "html",
            OutputFormat.MARKDOWN: "md",
            OutputFormat.NOTEBOOK: "ipynb",
            OutputFormat.ANSWER_KEY: "key.md",
        }[self]

    def reveals(self, reveal_solutions: bool) -> bool:
        return reveal_solutions or self.always_reveals

    @classmethod
    def from_name(cls, name: str) -> "OutputFormat":
        try:
            return cls(name.strip().lower())
        except ValueError as exc:
            choices = ", ".join(member.value for member in cls)
            raise FormatError(f"Unknown output format {name!r} (expected one of: {choices})") from exc


__all__ = ["OutputFormat"]
