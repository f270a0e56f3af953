"""Catalog exceptions.

All errors raised by the catalog core. Each one carries the HTTP status
and machine-readable code the API layer reports, so the service never
needs to know about HTTP itself.
"""

from typing import Any


class CatalogError(Exception):
    """Base class for all catalog exceptions.

    Attributes:
        status_code: HTTP-equivalent status for the error.
        error_code: Machine-readable error code.
    """

    status_code: int = 400
    error_code: str = "CATALOG_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize catalog error.

        Args:
            message: Human-readable error message.
            details: Optional dictionary with additional error context.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFoundError(CatalogError):
    """Raised when a product or category does not exist."""

    status_code = 404
    error_code = "NOT_FOUND"

    def __init__(self, entity_type: str, key: str, field: str = "id") -> None:
        """Initialize not found error.

        Args:
            entity_type: Type of entity (e.g., "Product").
            key: Lookup value that matched nothing.
            field: Name of the lookup field.
        """
        super().__init__(
            f"{entity_type} not found",
            details={"entity_type": entity_type, field: key},
        )


class InvalidArgumentError(CatalogError):
    """Raised when a request value is missing, malformed or out of range."""

    error_code = "INVALID_ARGUMENT"


class InvalidReferenceError(CatalogError):
    """Raised when an attribute, attribute value or category id is unknown."""

    error_code = "INVALID_REFERENCE"

    def __init__(self, entity_type: str, missing_ids: list[str]) -> None:
        """Initialize invalid reference error.

        Args:
            entity_type: Type of the referenced entity.
            missing_ids: Ids that do not exist.
        """
        super().__init__(
            f"One or more {entity_type} references are invalid",
            details={"entity_type": entity_type, "missing_ids": sorted(missing_ids)},
        )


class UnsupportedFormatError(CatalogError):
    """Raised when an upload has a MIME type the importer cannot decode."""

    status_code = 415
    error_code = "UNSUPPORTED_FORMAT"

    def __init__(self, mimetype: str | None) -> None:
        """Initialize unsupported format error.

        Args:
            mimetype: Declared MIME type of the upload.
        """
        super().__init__(
            "Unsupported file format. Use CSV or XLSX",
            details={"mimetype": mimetype},
        )


class ParseError(CatalogError):
    """Raised when upload bytes cannot be decoded into rows."""

    error_code = "PARSE_ERROR"


class EmptyInputError(CatalogError):
    """Raised when no file was uploaded or it holds no rows."""

    error_code = "EMPTY_INPUT"
