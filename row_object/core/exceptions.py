"""RowObject exception hierarchy.

Every failure raised by the core is a RowObjectError carrying a machine
readable ``code``, a ``category``, structured ``details`` and the original
``cause``. Raw driver exceptions are never exposed to callers: the SQL layer
wraps them in DatabaseError, and constraint violations are translated into
ValidationError before they reach the entity caller.
"""

from __future__ import annotations

import re
from typing import Any

_SENSITIVE_KEYS = ("password", "token", "key", "secret")


def sanitize_details(details: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of *details* with credential-like values redacted."""
    cleaned: dict[str, Any] = {}
    for name, value in details.items():
        if any(marker in name.lower() for marker in _SENSITIVE_KEYS):
            cleaned[name] = "[REDACTED]"
        elif isinstance(value, dict):
            cleaned[name] = sanitize_details(value)
        else:
            cleaned[name] = value
    return cleaned


class RowObjectError(Exception):
    """Base exception for all RowObject errors."""

    category = "runtime"

    def __init__(
        self,
        message: str,
        code: str = "ROW_OBJECT_ERROR",
        details: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ) -> None:
        self.message = message
        self.code = code
        self.details = details or {}
        self.cause = cause
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": type(self).__name__,
            "message": self.message,
            "code": self.code,
            "category": self.category,
            "details": sanitize_details(self.details),
            "cause": str(self.cause) if self.cause is not None else None,
        }


# --- Validation ---


class ValidationError(RowObjectError):
    """Raised when entity data violates a field constraint."""

    category = "validation"

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: dict[str, Any] | None = None,
        cause: BaseException | None = None,
        errors: list[ValidationError] | None = None,
    ) -> None:
        super().__init__(message, code, details, cause)
        self.errors = errors or []

    @property
    def field_name(self) -> str | None:
        return self.details.get("field")

    @property
    def fields(self) -> list[str]:
        """Names of every violated field, in report order."""
        if self.errors:
            return [e.field_name for e in self.errors if e.field_name is not None]
        return [self.field_name] if self.field_name is not None else []

    @classmethod
    def required_field(cls, field_name: str, object_type: str) -> ValidationError:
        return cls(
            f"Required field '{field_name}' is missing for {object_type}",
            "VALIDATION_REQUIRED_FIELD",
            {"field": field_name, "object_type": object_type},
        )

    @classmethod
    def invalid_value(
        cls, field_name: str, value: Any, expected: str
    ) -> ValidationError:
        return cls(
            f"Invalid value for field '{field_name}': expected {expected}, got {value!r}",
            "VALIDATION_INVALID_VALUE",
            {"field": field_name, "value": value, "expected": expected},
        )

    @classmethod
    def unique_constraint(
        cls,
        field_name: str,
        value: Any = None,
        cause: BaseException | None = None,
    ) -> ValidationError:
        return cls(
            f"Unique constraint violation for field '{field_name}' with value {value!r}",
            "VALIDATION_UNIQUE_CONSTRAINT",
            {"field": field_name, "value": value, "constraint": "unique"},
            cause,
        )

    @classmethod
    def not_null_constraint(
        cls, field_name: str, cause: BaseException | None = None
    ) -> ValidationError:
        return cls(
            f"Field '{field_name}' cannot be null",
            "VALIDATION_REQUIRED_FIELD",
            {"field": field_name, "constraint": "not_null"},
            cause,
        )

    @classmethod
    def range_error(
        cls,
        field_name: str,
        value: Any,
        minimum: float | None = None,
        maximum: float | None = None,
    ) -> ValidationError:
        if minimum is not None and maximum is not None:
            bounds = f"between {minimum} and {maximum}"
        elif minimum is not None:
            bounds = f">= {minimum}"
        else:
            bounds = f"<= {maximum}"
        return cls(
            f"Value {value!r} for field '{field_name}' must be {bounds}",
            "VALIDATION_RANGE_ERROR",
            {"field": field_name, "value": value, "min": minimum, "max": maximum},
        )

    @classmethod
    def unknown_field(cls, field_name: str, object_type: str) -> ValidationError:
        return cls(
            f"Unknown field '{field_name}' for {object_type}",
            "VALIDATION_UNKNOWN_FIELD",
            {"field": field_name, "object_type": object_type},
        )

    @classmethod
    def from_report(cls, report: ValidationReport) -> ValidationError:
        return cls(
            str(report),
            "VALIDATION_FAILED",
            {"object_type": report.object_type, "fields": report.fields},
            errors=list(report.errors),
        )


class ValidationReport:
    """Collects every field violation of one validation pass."""

    def __init__(self, object_type: str) -> None:
        self.object_type = object_type
        self._errors: list[ValidationError] = []

    def add(self, error: ValidationError) -> None:
        self._errors.append(error)

    def has_errors(self) -> bool:
        return bool(self._errors)

    @property
    def errors(self) -> list[ValidationError]:
        return list(self._errors)

    @property
    def fields(self) -> list[str]:
        return [e.field_name for e in self._errors if e.field_name is not None]

    def raise_for_errors(self) -> None:
        if self._errors:
            raise ValidationError.from_report(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "object_type": self.object_type,
            "error_count": len(self._errors),
            "errors": [
                {"field": e.field_name, "message": e.message, "code": e.code}
                for e in self._errors
            ],
        }

    def __str__(self) -> str:
        lines = [
            f"Validation failed for {self.object_type} "
            f"with {len(self._errors)} error(s):"
        ]
        lines.extend(f"  - {e.message}" for e in self._errors)
        return "\n".join(lines)


# --- Database ---


class DatabaseError(RowObjectError):
    """Raised on storage-layer failures (connection, query, schema, constraint)."""

    category = "database"

    def __init__(
        self,
        message: str,
        code: str = "DB_ERROR",
        details: dict[str, Any] | None = None,
        cause: BaseException | None = None,
        transient: bool = False,
    ) -> None:
        super().__init__(message, code, details, cause)
        self.transient = transient

    @classmethod
    def connection_failed(
        cls, database_url: str, cause: BaseException | None = None
    ) -> DatabaseError:
        return cls(
            f"Failed to connect to database: {database_url}",
            "DB_CONNECTION_FAILED",
            {"database_url": database_url},
            cause,
            transient=True,
        )

    @classmethod
    def query_failed(
        cls,
        sql: str,
        cause: BaseException | None = None,
        transient: bool = False,
    ) -> DatabaseError:
        return cls(
            f"Database query failed: {cause}" if cause else "Database query failed",
            "DB_QUERY_FAILED",
            {"sql": sql},
            cause,
            transient=transient,
        )

    @classmethod
    def schema_error(
        cls, table: str, operation: str, cause: BaseException | None = None
    ) -> DatabaseError:
        return cls(
            f"Schema {operation} failed for table '{table}'",
            "DB_SCHEMA_ERROR",
            {"table": table, "operation": operation},
            cause,
        )

    @classmethod
    def constraint_violation(
        cls, constraint: str, sql: str | None = None, cause: BaseException | None = None
    ) -> DatabaseError:
        return cls(
            f"Database constraint violation: {constraint}",
            "DB_CONSTRAINT_VIOLATION",
            {"constraint": constraint, "sql": sql},
            cause,
        )

    @classmethod
    def from_driver_error(
        cls,
        sql: str,
        error: BaseException,
        *,
        transient: bool = False,
        integrity: bool = False,
    ) -> DatabaseError:
        if integrity:
            return cls.constraint_violation(str(error), sql, error)
        return cls.query_failed(sql, error, transient=transient)


# --- AI ---


class AIError(RowObjectError):
    """Raised when the AI client fails or answers unusably."""

    category = "ai"

    @classmethod
    def provider_error(
        cls, provider: str, operation: str, cause: BaseException | None = None
    ) -> AIError:
        return cls(
            f"AI provider '{provider}' failed during {operation}",
            "AI_PROVIDER_ERROR",
            {"provider": provider, "operation": operation},
            cause,
        )

    @classmethod
    def rate_limit_exceeded(
        cls, provider: str, retry_after: float | None = None
    ) -> AIError:
        return cls(
            f"Rate limit exceeded for AI provider '{provider}'",
            "AI_RATE_LIMIT",
            {"provider": provider, "retry_after": retry_after},
        )

    @classmethod
    def invalid_response(cls, provider: str, response: Any) -> AIError:
        return cls(
            f"Invalid response from AI provider '{provider}'",
            "AI_INVALID_RESPONSE",
            {"provider": provider, "response": response},
        )

    @classmethod
    def authentication_failed(cls, provider: str) -> AIError:
        return cls(
            f"Authentication failed for AI provider '{provider}'",
            "AI_AUTH_FAILED",
            {"provider": provider},
        )


# --- Configuration ---


class ConfigurationError(RowObjectError):
    """Raised on missing or invalid setup."""

    category = "configuration"

    @classmethod
    def missing_configuration(cls, key: str, context: str) -> ConfigurationError:
        return cls(
            f"Missing required configuration '{key}' for {context}",
            "CONFIG_MISSING",
            {"key": key, "context": context},
        )

    @classmethod
    def invalid_configuration(
        cls, key: str, value: Any, expected: str
    ) -> ConfigurationError:
        return cls(
            f"Invalid configuration '{key}': expected {expected}, got {value!r}",
            "CONFIG_INVALID",
            {"key": key, "value": value, "expected": expected},
        )

    @classmethod
    def initialization_failed(
        cls, component: str, cause: BaseException | None = None
    ) -> ConfigurationError:
        return cls(
            f"Failed to initialize {component}",
            "CONFIG_INIT_FAILED",
            {"component": component},
            cause,
        )


# --- Runtime ---


class RuntimeError(RowObjectError):  # noqa: A001
    """Raised on invalid-state misuse, e.g. saving a deleted entity."""

    category = "runtime"

    @classmethod
    def operation_failed(
        cls,
        operation: str,
        context: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ) -> RuntimeError:
        return cls(
            f"Operation '{operation}' failed",
            "RUNTIME_OPERATION_FAILED",
            {"operation": operation, **(context or {})},
            cause,
        )

    @classmethod
    def invalid_state(
        cls, state: str, operation: str, object_type: str | None = None
    ) -> RuntimeError:
        return cls(
            f"Cannot {operation} while in state '{state}'",
            "RUNTIME_INVALID_STATE",
            {"state": state, "operation": operation, "object_type": object_type},
        )


# --- Transaction ---


class TransactionError(DatabaseError):
    """Base for transaction errors."""


class TransactionStateError(TransactionError):
    """Raised on invalid transaction state transitions."""

    def __init__(self, current_state: str, attempted_action: str) -> None:
        self.current_state = current_state
        self.attempted_action = attempted_action
        super().__init__(
            f"Cannot {attempted_action} transaction in state '{current_state}'",
            "DB_TRANSACTION_STATE",
            {"state": current_state, "action": attempted_action},
        )


# --- Adapter ---


class AdapterError(ConfigurationError):
    """Raised when a driver adapter cannot be loaded."""


class ConnectionError(DatabaseError):  # noqa: A001
    """Raised on connection failures."""


class PoolError(DatabaseError):
    """Raised when no pooled connection becomes available in time."""


# --- Constraint translation ---

_CONSTRAINT_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"UNIQUE constraint failed: \w+\.(\w+)((?:, \w+\.\w+)*)"), "unique"),
    (re.compile(r"NOT NULL constraint failed: \w+\.(\w+)"), "not_null"),
    (re.compile(r"duplicate key value violates unique constraint.*?Key \(([\w, ]+)\)", re.S), "unique"),
    (re.compile(r'null value in column "(\w+)"'), "not_null"),
    (re.compile(r"constraint failed: (\w+)"), "unknown"),
]


def extract_constraint_field(message: str) -> tuple[str, str]:
    """Return ``(field, kind)`` parsed from a raw constraint error message.

    Falls back to ``("unknown_field", "unknown")`` when nothing matches.
    """
    for pattern, kind in _CONSTRAINT_PATTERNS:
        match = pattern.search(message)
        if match is None:
            continue
        field = match.group(1)
        if kind == "unique" and match.lastindex and match.lastindex > 1 and match.group(2):
            extra = [part.split(".")[-1] for part in match.group(2).split(", ") if part]
            field = ", ".join([field, *extra])
        return field, kind
    return "unknown_field", "unknown"


def translate_constraint_error(
    error: BaseException, values: dict[str, Any] | None = None
) -> ValidationError | None:
    """Translate a storage constraint violation into a ValidationError.

    Returns None when *error* is not a UNIQUE or NOT NULL violation so the
    caller can re-raise the original error.
    """
    texts = [str(error)]
    cause = getattr(error, "cause", None) or error.__cause__
    if cause is not None:
        texts.append(str(cause))
    message = "\n".join(texts)
    lowered = message.lower()
    if "unique" not in lowered and "null" not in lowered and "duplicate key" not in lowered:
        return None

    field, kind = extract_constraint_field(message)
    if kind == "not_null" or (kind == "unknown" and "null" in lowered):
        return ValidationError.not_null_constraint(field, cause=error)
    value = (values or {}).get(field)
    return ValidationError.unique_constraint(field, value, cause=error)
