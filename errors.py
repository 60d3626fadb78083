"""
Exception hierarchy for the query catalog.
Every error surfaced by lookup, binding or execution derives from CatalogError.
"""
from typing import Any, Iterable, Optional


class CatalogError(Exception):
    """Base class for all catalog errors"""


# ============ Template Store Errors ============

class UnknownTemplateError(CatalogError):
    """Raised when a template name is not registered"""

    def __init__(self, name: str):
        super().__init__(f"Unknown query template: {name}")
        self.name = name


class DuplicateTemplateError(CatalogError):
    """Raised when a template name is registered twice"""

    def __init__(self, name: str):
        super().__init__(f"Query template already registered: {name}")
        self.name = name


class CatalogFrozenError(CatalogError):
    """Raised when registering into a store that finished loading"""

    def __init__(self, name: str):
        super().__init__(f"Cannot register {name}: template store is frozen")
        self.name = name


class TemplateDefinitionError(CatalogError):
    """Raised when a catalog entry is not a valid template definition"""

    def __init__(self, name: Optional[str], reason: str):
        super().__init__(f"Invalid template definition {name or '<unnamed>'}: {reason}")
        self.name = name
        self.reason = reason


# ============ Binding Errors ============

class ParameterError(CatalogError):
    """Base class for errors detected before the backend is reached"""

    def __init__(self, template_name: str, parameters: Iterable[str], message: str):
        super().__init__(message)
        self.template_name = template_name
        self.parameters = tuple(parameters)


class MissingParameterError(ParameterError):
    def __init__(self, template_name: str, parameters: Iterable[str]):
        parameters = tuple(parameters)
        super().__init__(
            template_name,
            parameters,
            f"Template {template_name} is missing required parameters: {', '.join(parameters)}",
        )


class UnknownParameterError(ParameterError):
    def __init__(self, template_name: str, parameters: Iterable[str]):
        parameters = tuple(parameters)
        super().__init__(
            template_name,
            parameters,
            f"Template {template_name} does not declare parameters: {', '.join(parameters)}",
        )


class TypeMismatchError(ParameterError):
    def __init__(self, template_name: str, parameter: str, expected: str, value: Any):
        super().__init__(
            template_name,
            [parameter],
            f"Parameter {parameter} of template {template_name} expects {expected}, "
            f"got {type(value).__name__} {value!r}",
        )
        self.parameter = parameter
        self.expected = expected
        self.value = value


# ============ Backend Errors ============

class BackendError(CatalogError):
    """Base class for errors raised while executing against the backend"""


class BackendQueryError(BackendError):
    """Wraps a native backend error; the original diagnostic is kept verbatim"""

    def __init__(self, template_name: str, original: BaseException):
        super().__init__(f"Query {template_name} failed: {original}")
        self.template_name = template_name
        self.original = original


class BackendTimeoutError(BackendError):
    def __init__(self, template_name: str, timeout: float):
        super().__init__(f"Query {template_name} exceeded timeout of {timeout}s")
        self.template_name = template_name
        self.timeout = timeout
