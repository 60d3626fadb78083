"""
Registry of named query templates.
Templates are registered while the catalog loads; after freeze() the store is read-only,
so concurrent readers need no locking.
"""
import json
import logging
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Union

from pydantic import ValidationError

from errors import (
    CatalogFrozenError,
    DuplicateTemplateError,
    TemplateDefinitionError,
    UnknownTemplateError,
)
from models import QueryTemplate

logger = logging.getLogger(__name__)


class TemplateStore:
    """Holds the fixed set of query templates and looks them up by name"""

    def __init__(self, templates: Iterable[QueryTemplate] = ()):
        self._templates: Dict[str, QueryTemplate] = {}
        self._frozen = False
        for template in templates:
            self.register(template)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "TemplateStore":
        """Build a frozen store from a JSON catalog file"""
        store = cls(load_catalog(path))
        store.freeze()
        return store

    def register(self, template: QueryTemplate):
        if self._frozen:
            raise CatalogFrozenError(template.name)
        if template.name in self._templates:
            raise DuplicateTemplateError(template.name)
        self._templates[template.name] = template
        logger.debug(f"Registered template {template.name}")

    def get(self, name: str) -> QueryTemplate:
        try:
            return self._templates[name]
        except KeyError:
            raise UnknownTemplateError(name) from None

    def freeze(self):
        """End the load phase; further registration fails"""
        self._frozen = True
        logger.info(f"Template store frozen with {len(self._templates)} templates")

    @property
    def frozen(self) -> bool:
        return self._frozen

    def names(self) -> List[str]:
        return list(self._templates)

    def __contains__(self, name) -> bool:
        return name in self._templates

    def __len__(self) -> int:
        return len(self._templates)

    def __iter__(self) -> Iterator[QueryTemplate]:
        return iter(list(self._templates.values()))


def load_catalog(path: Union[str, Path]) -> List[QueryTemplate]:
    """Read a catalog file of the form {"templates": [...]} into validated templates"""
    path = Path(path)
    try:
        with open(path, "r") as f:
            data = json.load(f)
    except Exception as e:
        logger.error(f"Failed to read catalog {path}: {str(e)}")
        raise

    entries = data.get("templates", []) if isinstance(data, dict) else data
    templates = []
    for entry in entries:
        name = entry.get("name") if isinstance(entry, dict) else None
        try:
            templates.append(QueryTemplate.model_validate(entry))
        except ValidationError as e:
            logger.error(f"Invalid template {name} in {path}: {str(e)}")
            raise TemplateDefinitionError(name, str(e)) from e

    logger.info(f"Loaded {len(templates)} templates from {path}")
    return templates
