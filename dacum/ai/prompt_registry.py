"""
DACUM Competency Profile Platform
Prompt Registry.

Generation prompts live in YAML next to this module (``prompts/*.yaml``)::

    name: cluster_title
    version: v1
    description: ...
    system: |
      ...
    user: |
      ... {{activities}} ...

An operator can point ``PROMPTS_DIR`` at a directory of files with the same
layout; those are loaded after the built-ins and win on equal
``(name, version)``. Without an explicit version the highest one is used.

Usage:
    registry = PromptRegistry(app.config["PROMPTS_DIR"])
    system, user = registry.render_parts("cluster_title",
                                         activities="- Record attendance",
                                         language_name="English")
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

BUILTIN_DIR = Path(__file__).parent / "prompts"
_PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*\}\}")


def _version_key(version: str) -> tuple:
    digits = re.sub(r"\D", "", version)
    return (int(digits) if digits else 0, version)


@dataclass(frozen=True)
class PromptTemplate:
    name: str
    version: str
    system: str
    user: str
    description: str = ""
    source: str = "builtin"

    @property
    def variables(self) -> list[str]:
        seen = []
        for text in (self.system, self.user):
            for var in _PLACEHOLDER.findall(text):
                if var not in seen:
                    seen.append(var)
        return seen

    def render_parts(self, **values) -> tuple[str, str]:
        """Substitute ``{{var}}``; unknown variables are left in place and logged."""
        missing = [v for v in self.variables if v not in values]
        if missing:
            logger.warning("Prompt %s/%s rendered without %s", self.name, self.version, ", ".join(missing))

        def fill(match):
            key = match.group(1)
            return str(values[key]) if key in values else match.group(0)

        return _PLACEHOLDER.sub(fill, self.system), _PLACEHOLDER.sub(fill, self.user)

    def render(self, **values) -> list[dict]:
        """Chat messages; an empty system part is omitted."""
        system, user = self.render_parts(**values)
        messages = [{"role": "system", "content": system}] if system.strip() else []
        messages.append({"role": "user", "content": user})
        return messages

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "version": self.version,
            "description": self.description,
            "source": self.source,
            "variables": self.variables,
        }


class PromptRegistry:

    def __init__(self, prompts_dir: str | None = None):
        self._templates: dict[tuple[str, str], PromptTemplate] = {}
        self.load_dir(BUILTIN_DIR, source="builtin")
        if prompts_dir:
            self.load_dir(Path(prompts_dir), source="override")

    def load_dir(self, directory: Path, *, source: str) -> int:
        """Load every ``*.yaml`` in *directory*. Returns the number loaded."""
        if not directory.is_dir():
            logger.info("Prompt directory %s not found, skipping", directory)
            return 0

        loaded = 0
        for path in sorted(directory.glob("*.yaml")):
            try:
                data = yaml.safe_load(path.read_text(encoding="utf-8"))
            except (OSError, yaml.YAMLError) as exc:
                logger.error("Cannot load prompt file %s: %s", path.name, exc)
                continue
            if not isinstance(data, dict):
                logger.warning("Prompt file %s is not a mapping, skipping", path.name)
                continue
            template = PromptTemplate(
                name=str(data.get("name") or path.stem),
                version=str(data.get("version") or "v1"),
                system=str(data.get("system") or ""),
                user=str(data.get("user") or ""),
                description=str(data.get("description") or ""),
                source=source,
            )
            self._templates[(template.name, template.version)] = template
            loaded += 1
        logger.debug("Loaded %d %s prompt template(s) from %s", loaded, source, directory)
        return loaded

    def get(self, name: str, version: str | None = None) -> PromptTemplate | None:
        if version is not None:
            return self._templates.get((name, version))
        candidates = [t for (n, _), t in self._templates.items() if n == name]
        return max(candidates, key=lambda t: _version_key(t.version), default=None)

    def _require(self, name: str, version: str | None) -> PromptTemplate:
        template = self.get(name, version)
        if template is None:
            raise KeyError(f"Prompt template not found: {name} {version or '(latest)'}")
        return template

    def render(self, name: str, version: str | None = None, **values) -> list[dict]:
        return self._require(name, version).render(**values)

    def render_parts(self, name: str, version: str | None = None, **values) -> tuple[str, str]:
        """``(system, user)`` for single-turn generation. Raises KeyError for an unknown template."""
        return self._require(name, version).render_parts(**values)

    def list_templates(self) -> list[dict]:
        return [t.to_dict() for _, t in sorted(self._templates.items())]
