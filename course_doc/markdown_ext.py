"""Markdown extension keeping TeX math intact for client-side rendering."""

from __future__ import annotations

from re import Match
import xml.etree.ElementTree as ElementTree

from markdown import Extension, Markdown
from markdown.inlinepatterns import InlineProcessor
from markdown.util import AtomicString

DISPLAY_MATH_PATTERN = r"(?<!\\)\$\$(.+?)\$\$"
# A closing dollar followed by a digit is a price, not math: "$5 and $6".
INLINE_MATH_PATTERN = r"(?<![\\$])\$(?![\s$])(.+?)(?<![\s\\])\$(?!\d)"


class MathInlineProcessor(InlineProcessor):
    """Wrap ``$...$`` and ``$$...$$`` in spans with KaTeX/MathJax delimiters."""

    def __init__(self, pattern: str, md: Markdown, display: bool) -> None:
        super().__init__(pattern, md)
        self.display = display

    def handleMatch(  # type: ignore[override]  # noqa: N802
        self,
        match: Match[str],
        data: str,
    ) -> tuple[ElementTree.Element, int, int]:
        element = ElementTree.Element("span")
        if self.display:
            element.set("class", "math display")
            element.text = AtomicString(f"\\[{match.group(1)}\\]")
        else:
            element.set("class", "math inline")
            element.text = AtomicString(f"\\({match.group(1)}\\)")
        return element, match.start(0), match.end(0)


class MathExtension(Extension):
    """Register the math processors between code spans and backslash escapes."""

    def extendMarkdown(self, md: Markdown) -> None:  # type: ignore[override]  # noqa: N802
        md.inlinePatterns.register(MathInlineProcessor(DISPLAY_MATH_PATTERN, md, display=True), "math_display", 186)
        md.inlinePatterns.register(MathInlineProcessor(INLINE_MATH_PATTERN, md, display=False), "math_inline", 185)


def makeExtension(**kwargs: object) -> MathExtension:  # noqa: N802
    return MathExtension(**kwargs)


__all__ = ["MathExtension", "MathInlineProcessor", "makeExtension"]
