"""
Build template store.

Loads <language>.yaml files from the template directory. Each file holds a
`dockerfile` text and whether it takes the handler filename as a parameter.
Templates are cached once loaded.
"""

import logging
import re
import threading
from pathlib import Path
from typing import Dict

import yaml
from pydantic import ValidationError

from ..core.exceptions import TemplateError
from ..models.function import BuildTemplate

logger = logging.getLogger("gateway.template_store")

_LANGUAGE_RE = re.compile(r"^[a-z0-9][a-z0-9_-]*$")


class TemplateStore:
    def __init__(self, templates_dir: Path):
        self.templates_dir = Path(templates_dir)
        self._cache: Dict[str, BuildTemplate] = {}
        self._lock = threading.Lock()

    def get(self, language: str) -> BuildTemplate:
        """
        Get the build template for a language.

        Raises:
            TemplateError: template file missing, unreadable, or malformed
        """
        with self._lock:
            cached = self._cache.get(language)
        if cached is not None:
            return cached

        template = self._load(language)
        with self._lock:
            # First loader wins so callers always share one instance.
            return self._cache.setdefault(language, template)

    def _load(self, language: str) -> BuildTemplate:
        if not _LANGUAGE_RE.match(language or ""):
            raise TemplateError(language, "invalid language tag")

        path = self.templates_dir / f"{language}.yaml"
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except FileNotFoundError as e:
            raise TemplateError(language, f"no template at {path}") from e
        except OSError as e:
            raise TemplateError(language, f"unable to read {path}: {e}") from e
        except yaml.YAMLError as e:
            raise TemplateError(language, f"invalid YAML: {e}") from e

        if not isinstance(data, dict):
            raise TemplateError(language, "template must be a mapping")

        data.setdefault("language", language)
        try:
            template = BuildTemplate(**data)
        except ValidationError as e:
            raise TemplateError(language, f"invalid template: {e}") from e

        if template.language != language:
            raise TemplateError(language, f"file declares language '{template.language}'")

        logger.info(f"Loaded build template for {language} from {path}")
        return template
