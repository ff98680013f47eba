# services/api/core/templates.py
"""
Named, versioned HTML templates (jinja2).

Layout on disk:
    <templates_dir>/<name>/v1.html
    <templates_dir>/<name>/v2.html ...

Missing, None or blank values render as PLACEHOLDER so a printed document
never looks silently complete.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Mapping, Optional

import jinja2
from jinja2 import Environment, FileSystemLoader, select_autoescape

from core.errors import TemplateNotFound

logger = logging.getLogger(__name__)

PLACEHOLDER = "----------------"

_TEMPLATE_NAME_RE = re.compile(r"^[a-z0-9][a-z0-9\-_]*$")
_VERSION_FILE_RE = re.compile(r"^v(\d+)\.html$")


class PlaceholderUndefined(jinja2.Undefined):
    """Unknown variables print as the placeholder instead of an empty string."""

    def __str__(self) -> str:
        return PLACEHOLDER

    def __html__(self) -> str:
        return PLACEHOLDER


def _finalize(value: Any) -> Any:
    if value is None:
        return PLACEHOLDER
    if isinstance(value, str) and not value.strip():
        return PLACEHOLDER
    return value


def _money(value: Any) -> str:
    if isinstance(value, jinja2.Undefined) or value is None or value == "":
        return PLACEHOLDER
    try:
        return f"{float(value):,.2f}"
    except (TypeError, ValueError):
        return PLACEHOLDER


@dataclass
class DocumentTemplate:
    name: str
    version: int
    path: Path
    _template: jinja2.Template

    def bind(self, binding: Mapping[str, Any]) -> str:
        """Render the template with a generic key/value binding."""
        context = {k: v for k, v in binding.items() if isinstance(k, str) and k.isidentifier()}
        return self._template.render(fields=dict(binding), **context)


class TemplateStore:
    """Read-only access to the template directory."""

    def __init__(self, templates_dir: str):
        self.root = Path(templates_dir)
        self._env = Environment(
            loader=FileSystemLoader(str(self.root)),
            autoescape=select_autoescape(["html"]),
            undefined=PlaceholderUndefined,
            finalize=_finalize,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self._env.filters["money"] = _money

    def versions(self, name: str) -> List[int]:
        if not _TEMPLATE_NAME_RE.match(name or ""):
            return []
        folder = self.root / name
        if not folder.is_dir():
            return []
        found = []
        for entry in folder.iterdir():
            m = _VERSION_FILE_RE.match(entry.name)
            if m and entry.is_file():
                found.append(int(m.group(1)))
        return sorted(found)

    def load(self, name: str, version: Optional[int] = None) -> DocumentTemplate:
        available = self.versions(name)
        if not available:
            raise TemplateNotFound(f"Template '{name}' not found in {self.root}")
        if version is None:
            version = available[-1]
        elif version not in available:
            raise TemplateNotFound(
                f"Template '{name}' has no version {version} (available: {available})"
            )

        relative = f"{name}/v{version}.html"
        try:
            template = self._env.get_template(relative)
        except jinja2.TemplateNotFound as e:
            raise TemplateNotFound(f"Template '{relative}' not found") from e
        except jinja2.TemplateSyntaxError as e:
            logger.error(f"Template {relative} has a syntax error at line {e.lineno}: {e.message}")
            raise TemplateNotFound(f"Template '{relative}' is invalid: {e.message}") from e

        return DocumentTemplate(name=name, version=version, path=self.root / relative, _template=template)
