"""
Shortcode template registry backed by Jinja2.

Each shortcode name maps to one template body per output format. Variables are
discovered by Jinja2 at render time: a variable that is neither passed as a
parameter nor given a ``default`` in the template fails the render.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional

from jinja2 import DictLoader, Environment, StrictUndefined, TemplateError, TemplateSyntaxError, UndefinedError

from .errors import DocSyntaxError, FormatError, RenderError, ResolutionError

logger = logging.getLogger(__name__)

UNDEFINED_NAME_RE = re.compile(r"^'([^']+)' is undefined")


class TemplateRegistry:
    """Read-only (once built) lookup of shortcode templates by name and format."""

    def __init__(self, templates: Optional[Mapping[str, Mapping[str, str]]] = None) -> None:
        self._sources: Dict[str, str] = {}
        self._formats: Dict[str, set[str]] = {}
        self._env = Environment(
            loader=DictLoader(self._sources),
            undefined=StrictUndefined,
            autoescape=False,
            keep_trailing_newline=False,
        )
        for name, variants in (templates or {}).items():
            for template_format, source in variants.items():
                self.add(name, template_format, source)

    @classmethod
    def from_directory(cls, path: Path) -> "TemplateRegistry":
        """
        Load ``<path>/<format>/<name>.<ext>`` files.

        The shortcode name is the file name up to its first dot, so both
        ``note.html`` and ``note.jinja.html`` register ``note``.
        """
        registry = cls()
        if not path.is_dir():
            logger.debug("No shortcode directory at %s", path)
            return registry
        for format_dir in sorted(p for p in path.iterdir() if p.is_dir()):
            for template_path in sorted(format_dir.iterdir()):
                if not template_path.is_file() or template_path.name.startswith("."):
                    continue
                name = template_path.name.split(".", 1)[0]
                registry.add(name, format_dir.name, template_path.read_text(encoding="utf-8"))
        logger.debug("Loaded %d shortcode(s) from %s", len(list(registry.names())), path)
        return registry

    def add(self, name: str, template_format: str, source: str) -> None:
        self._sources[self._key(name, template_format)] = source
        self._formats.setdefault(name, set()).add(template_format)

    def names(self) -> Iterable[str]:
        return sorted(self._formats)

    def formats(self, name: str) -> Iterable[str]:
        return sorted(self._formats.get(name, ()))

    def __contains__(self, name: object) -> bool:
        return name in self._formats

    def lookup(self, name: str, template_format: str) -> str:
        """
        Return the registry key of the `template_format` variant of `name`.

        Raises
        ------
        ResolutionError
            If no shortcode called `name` exists.
        FormatError
            If the shortcode exists but has no variant for `template_format`.
        """
        variants = self._formats.get(name)
        if variants is None:
            raise ResolutionError(f"Unknown shortcode {name!r}", name=name, context=name)
        if template_format not in variants:
            available = ", ".join(sorted(variants))
            raise FormatError(
                f"Shortcode {name!r} has no {template_format!r} template (available: {available})",
                context=name,
            )
        return self._key(name, template_format)

    def render(self, name: str, template_format: str, bindings: Mapping[str, Any]) -> str:
        key = self.lookup(name, template_format)
        try:
            template = self._env.get_template(key)
        except TemplateSyntaxError as exc:
            raise DocSyntaxError(
                f"Invalid template {key!r}: {exc.message}",
                context=name,
            ) from exc
        try:
            return template.render(dict(bindings))
        except UndefinedError as exc:
            match = UNDEFINED_NAME_RE.match(str(exc.message or ""))
            variable = match.group(1) if match else None
            if variable:
                message = f"Shortcode {name!r} requires variable {variable!r}, which was not bound"
            else:
                message = f"Shortcode {name!r} failed to render: {exc.message}"
            raise ResolutionError(message, name=variable, context=name) from exc
        except (TemplateError, TypeError, ValueError, ArithmeticError, LookupError, AttributeError) as exc:
            raise RenderError(f"Shortcode {name!r} failed to render: {exc}", context=name) from exc

    @staticmethod
    def _key(name: str, template_format: str) -> str:
        return f"{template_format}/{name}"


__all__ = ["TemplateRegistry"]
