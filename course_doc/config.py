"""
Project configuration (``config.yml``) validated with Pydantic.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .errors import ConfigError
from .formats import OutputFormat
from .split import SplitterConfig
from .utils import read_yaml

CONFIG_FILENAME = "config.yml"


class ProjectConfig(BaseModel):
    """Settings of one course project."""

    model_config = ConfigDict(extra="forbid")

    title: str = Field(..., min_length=1, description="Project title, exposed to templates.")
    version: str = Field("0.1.0", description="Project version, exposed to templates.")
    author: Optional[str] = Field(None, description="Optional author name.")
    content_dir: Path = Field(Path("content"), description="Documents, relative to the project.")
    templates_dir: Path = Field(Path("templates"), description="Templates, relative to the project.")
    build_dir: Path = Field(Path("build"), description="Output directory, relative to the project.")
    language: str = Field("python", description="Language of the source documents.")
    comment_leaders: str = Field("#", description="Characters that start a comment line.")
    markup_marker: str = Field("|", description="Character turning a comment into markup.")
    formats: List[OutputFormat] = Field(
        default_factory=lambda: [OutputFormat.HTML, OutputFormat.NOTEBOOK],
        description="Formats produced by a build.",
    )
    reveal_solutions: bool = Field(False, description="Show solutions in learner formats.")
    extra: Dict[str, Any] = Field(default_factory=dict, description="Free-form template values.")

    @model_validator(mode="after")
    def _check_comment_convention(self) -> "ProjectConfig":
        try:
            self.splitter()
        except ConfigError as exc:
            raise ValueError(exc.message) from exc
        return self

    def splitter(self) -> SplitterConfig:
        return SplitterConfig(leaders=self.comment_leaders, marker=self.markup_marker)

    def template_context(self) -> Dict[str, Any]:
        """Values exposed to shortcode templates as ``project``."""
        return {
            "title": self.title,
            "version": self.version,
            "author": self.author,
            "language": self.language,
            "extra": dict(self.extra),
        }


def load_config(path: Path) -> ProjectConfig:
    """
    Load and validate a project configuration file.

    Raises
    ------
    ConfigError
        If the file is missing, is not YAML, or does not match the schema.
    """
    if not path.exists():
        raise ConfigError(f"Configuration file not found: {path}")
    try:
        data = read_yaml(path)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping at the root.")
    try:
        return ProjectConfig.model_validate(data)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or 'config'}: {error['msg']}"
            for error in exc.errors()
        )
        raise ConfigError(f"Invalid configuration in {path}: {problems}") from exc


__all__ = ["CONFIG_FILENAME", "ProjectConfig", "load_config"]
