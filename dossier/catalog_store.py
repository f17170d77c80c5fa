"""
Template Catalog - YAML-backed Requirement Catalog

Read-only source of dossier templates and their ordered requirements.

File layout:

    templates:
      - template_id: inspectie-basis
        name: Inspectie Basis
        version: "2024.1"
        is_active: true
        requirements:
          - requirement_id: req-mest-001
            code: MEST-001
            title: Valid manure contract
            category: mest
            required: true
            recency_days: 365

Requirements without an explicit sort_order keep their file order.
"""

import logging
import threading
from pathlib import Path
from typing import Optional, Dict, List, Tuple

import yaml

from .dossier_model import (
    DossierTemplate,
    Requirement,
    DossierStoreError,
    TemplateNotFoundError,
)

logger = logging.getLogger("catalog_store")


class TemplateCatalog:
    """
    Loads the catalog once and serves it from memory.

    The catalog is never written by this package.
    """

    def __init__(self, catalog_file: Path):
        self._catalog_file = Path(catalog_file)
        self._lock = threading.Lock()
        self._templates: Optional[Dict[str, DossierTemplate]] = None
        self._requirements: Dict[str, List[Requirement]] = {}

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    def _load(self) -> Tuple[Dict[str, DossierTemplate], Dict[str, List[Requirement]]]:
        if not self._catalog_file.exists():
            logger.info(f"No catalog file at {self._catalog_file}, catalog is empty")
            return {}, {}

        try:
            with open(self._catalog_file, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load catalog: {e}")
            raise DossierStoreError("load_catalog", f"Failed to load catalog: {e}") from e

        templates: Dict[str, DossierTemplate] = {}
        requirements: Dict[str, List[Requirement]] = {}

        for raw in data.get("templates", []) or []:
            try:
                template, items = self._parse_template(raw)
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                logger.error(f"Invalid catalog entry: {e!r}")
                raise DossierStoreError("load_catalog", f"Invalid catalog entry: {e}") from e
            templates[template.template_id] = template
            requirements[template.template_id] = items

        logger.info(f"Loaded {len(templates)} templates from catalog")
        return templates, requirements

    @staticmethod
    def _parse_template(raw: Dict) -> Tuple[DossierTemplate, List[Requirement]]:
        template = DossierTemplate(
            template_id=str(raw["template_id"]),
            name=raw.get("name", raw["template_id"]),
            version=str(raw.get("version", "1")),
            is_active=raw.get("is_active", True),
        )

        items = []
        for index, req in enumerate(raw.get("requirements", []) or []):
            items.append(Requirement.from_dict({
                "sort_order": index,
                **req,
                "template_id": template.template_id,
            }))
        return template, sorted(items, key=lambda r: r.sort_order)

    def _ensure_loaded(self) -> Dict[str, DossierTemplate]:
        with self._lock:
            if self._templates is None:
                self._templates, self._requirements = self._load()
            return self._templates

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def list_templates(self, active_only: bool = True) -> List[DossierTemplate]:
        """List templates sorted by name."""
        templates = self._ensure_loaded().values()
        if active_only:
            templates = [t for t in templates if t.is_active]
        return sorted(templates, key=lambda t: t.name)

    def get_template(self, template_id: str) -> DossierTemplate:
        template = self._ensure_loaded().get(template_id)
        if template is None:
            raise TemplateNotFoundError(template_id)
        return template

    def list_requirements(self, template_id: str) -> List[Requirement]:
        """Ordered requirements of a template. Unknown template raises."""
        self.get_template(template_id)
        return list(self._requirements.get(template_id, []))
