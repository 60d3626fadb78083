"""
Pydantic models for query templates, their parameters and results.
Templates are immutable once constructed; bindings and results live for a single call.
"""
import re
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

import pandas as pd
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


IDENTIFIER_PATTERN = r"^[A-Za-z_][A-Za-z0-9_]*$"

# Quoted literals (with '' or backslash escapes), $$ strings and comments are matched first so placeholders inside them are skipped.
# The lookbehind keeps `::NUMBER` casts and `col:field` JSON paths out of the match.
SQL_TOKEN_RE = re.compile(
    r"""
    '(?:[^'\\]|\\.|'')*'
    | \$\$.*?\$\$
    | "(?:[^"]|"")*"
    | --[^\n]*
    | /\*.*?\*/
    | (?<![:\w]):(?P<name>[A-Za-z_][A-Za-z0-9_]*)
    """,
    re.VERBOSE | re.DOTALL,
)


def iter_placeholders(query: str) -> Iterator[re.Match]:
    """Yield a match for every `:name` placeholder outside literals and comments"""
    for match in SQL_TOKEN_RE.finditer(query):
        if match.group("name"):
            yield match


def find_placeholders(query: str) -> List[str]:
    """Placeholder names in order of first appearance"""
    names = []
    for match in iter_placeholders(query):
        if match.group("name") not in names:
            names.append(match.group("name"))
    return names


# ============ Template Models ============

class ParamType(str, Enum):
    STRING = "string"
    INT = "int"
    FLOAT = "float"
    DATE = "date"
    ENUM = "enum"


class QueryParameter(BaseModel):
    """A declared parameter slot of a query template"""
    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(..., pattern=IDENTIFIER_PATTERN, description="Placeholder name")
    type: ParamType = Field(ParamType.STRING, description="Semantic type of the value")
    default: Optional[Any] = Field(None, description="Value used when the caller omits it")
    choices: Optional[Tuple[str, ...]] = Field(None, description="Allowed values for enum parameters")
    description: Optional[str] = Field(None, description="Human readable description")

    @property
    def required(self) -> bool:
        """Required unless a default (possibly null) was declared"""
        return "default" not in self.model_fields_set

    @model_validator(mode="after")
    def check_choices_and_default(self):
        if self.type == ParamType.ENUM and not self.choices:
            raise ValueError(f"enum parameter {self.name} must declare choices")
        if self.type != ParamType.ENUM and self.choices is not None:
            raise ValueError(f"choices are only allowed on enum parameters, not {self.type.value}")
        if self.default is not None:
            self.coerce(self.default)
        return self

    def coerce(self, value: Any) -> Any:
        """Convert value to this parameter's type, raising ValueError when it cannot be"""
        if self.type == ParamType.STRING:
            if isinstance(value, str):
                return value
        elif self.type == ParamType.INT:
            if isinstance(value, int) and not isinstance(value, bool):
                return value
            if isinstance(value, float) and value.is_integer():
                return int(value)
        elif self.type == ParamType.FLOAT:
            if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
                return float(value)
        elif self.type == ParamType.DATE:
            if isinstance(value, datetime):
                return value.date()
            if isinstance(value, date):
                return value
            if isinstance(value, str):
                try:
                    return date.fromisoformat(value)
                except ValueError:
                    pass
        elif self.type == ParamType.ENUM:
            if isinstance(value, str) and value in self.choices:
                return value
            raise ValueError(f"{value!r} is not one of {', '.join(self.choices)}")
        raise ValueError(f"{value!r} cannot be used as {self.type.value}")


class QueryTemplate(BaseModel):
    """A named, parameterized query. Declared parameters must cover every placeholder."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(..., min_length=1, description="Unique template name")
    query: str = Field(..., min_length=1, description="SQL text with :name placeholders")
    parameters: Tuple[QueryParameter, ...] = Field((), description="Declared parameters, in order")
    category: Optional[str] = Field(None, description="Catalog grouping")
    question: Optional[str] = Field(None, description="Business question the query answers")
    sample_values: Dict[str, Any] = Field(default_factory=dict, description="Values used by the catalog check")

    @field_validator("parameters")
    @classmethod
    def unique_parameter_names(cls, parameters):
        seen = set()
        for param in parameters:
            if param.name in seen:
                raise ValueError(f"parameter {param.name} declared more than once")
            seen.add(param.name)
        return parameters

    @model_validator(mode="after")
    def placeholders_declared(self):
        declared = {p.name for p in self.parameters}
        undeclared = [name for name in find_placeholders(self.query) if name not in declared]
        if undeclared:
            raise ValueError(f"placeholders not declared as parameters: {', '.join(undeclared)}")
        unknown_samples = sorted(set(self.sample_values) - declared)
        if unknown_samples:
            raise ValueError(f"sample values for undeclared parameters: {', '.join(unknown_samples)}")
        return self

    @property
    def placeholders(self) -> List[str]:
        return find_placeholders(self.query)

    def parameter(self, name: str) -> Optional[QueryParameter]:
        for param in self.parameters:
            if param.name == name:
                return param
        return None


# ============ Invocation Models ============

class QueryRequest(BaseModel):
    """An invocation request: which template, with which values, within how long"""
    model_config = ConfigDict(frozen=True, extra="forbid")

    template_name: str = Field(..., min_length=1)
    values: Dict[str, Any] = Field(default_factory=dict)
    timeout_seconds: Optional[float] = Field(None, gt=0, description="Falls back to QUERY_TIMEOUT")


class BoundQuery(BaseModel):
    """Query text containing only driver markers, plus the values for those markers"""
    model_config = ConfigDict(frozen=True)

    template_name: str
    text: str
    ordered_values: Tuple[Any, ...] = ()
    paramstyle: str


@dataclass(frozen=True)
class ResultSet:
    """Materialized rows of one executed query, columns in the backend's declared order"""
    columns: Tuple[str, ...]
    rows: Tuple[Dict[str, Any], ...]

    @classmethod
    def from_rows(cls, columns: Sequence[str], rows: Sequence[Sequence[Any]]) -> "ResultSet":
        columns = tuple(columns)
        return cls(columns=columns, rows=tuple(dict(zip(columns, row)) for row in rows))

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self) -> Iterator[Mapping[str, Any]]:
        return iter(self.rows)

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def to_records(self) -> List[Dict[str, Any]]:
        return [dict(row) for row in self.rows]

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame(list(self.rows), columns=list(self.columns))
