"""
Binds caller values to a query template.
Values never enter the SQL text: each placeholder becomes a driver marker and the
value is appended to the ordered list passed to the driver's own parameter mechanism.
"""
import logging
from typing import Any, Dict, List, Mapping, Optional

from errors import MissingParameterError, TypeMismatchError, UnknownParameterError
from models import BoundQuery, QueryTemplate, iter_placeholders

logger = logging.getLogger(__name__)

PARAMSTYLES = ("pyformat", "format", "qmark", "numeric")


class ParameterBinder:
    """Validates values against a template and produces a BoundQuery"""

    def __init__(self, paramstyle: str = "pyformat"):
        if paramstyle not in PARAMSTYLES:
            raise ValueError(f"Unsupported paramstyle {paramstyle}, expected one of {', '.join(PARAMSTYLES)}")
        self.paramstyle = paramstyle

    def bind(self, template: QueryTemplate, values: Optional[Mapping[str, Any]] = None) -> BoundQuery:
        values = dict(values or {})
        resolved = self.resolve(template, values)

        pieces: List[str] = []
        ordered_values: List[Any] = []
        position = 0
        for match in iter_placeholders(template.query):
            pieces.append(self._literal(template.query[position:match.start()]))
            ordered_values.append(resolved[match.group("name")])
            pieces.append(self._marker(len(ordered_values)))
            position = match.end()
        pieces.append(self._literal(template.query[position:]))

        logger.debug(f"Bound template {template.name} with {len(ordered_values)} values")
        return BoundQuery(
            template_name=template.name,
            text="".join(pieces),
            ordered_values=tuple(ordered_values),
            paramstyle=self.paramstyle,
        )

    def resolve(self, template: QueryTemplate, values: Dict[str, Any]) -> Dict[str, Any]:
        """Check the supplied names and coerce every declared parameter's value"""
        missing = [p.name for p in template.parameters if p.name not in values and p.required]
        if missing:
            raise MissingParameterError(template.name, missing)

        declared = {p.name for p in template.parameters}
        unknown = sorted(name for name in values if name not in declared)
        if unknown:
            raise UnknownParameterError(template.name, unknown)

        resolved = {}
        for param in template.parameters:
            if param.name in values:
                value = values[param.name]
                if value is None:
                    raise TypeMismatchError(template.name, param.name, param.type.value, value)
            else:
                value = param.default
                if value is None:
                    resolved[param.name] = None
                    continue
            try:
                resolved[param.name] = param.coerce(value)
            except ValueError:
                raise TypeMismatchError(template.name, param.name, param.type.value, value) from None
        return resolved

    def _marker(self, position: int) -> str:
        if self.paramstyle == "qmark":
            return "?"
        if self.paramstyle == "numeric":
            return f":{position}"
        return "%s"

    def _literal(self, text: str) -> str:
        # format/pyformat drivers expand the whole statement with `%`
        if self.paramstyle in ("pyformat", "format"):
            return text.replace("%", "%%")
        return text
