"""Custom exception classes for the catalog."""

from typing import Any, Dict, Optional


class CatalogError(Exception):
    """Base exception class for all catalog errors."""

    code = "CATALOG_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the ``{code, message, details?}`` error surface."""
        error: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            error["details"] = self.details
        return error


class ValidationError(CatalogError):
    """Raised when input is malformed or out of bounds."""

    code = "VALIDATION_ERROR"


class NotFoundError(CatalogError):
    """Raised when a product id does not exist in the collection."""

    code = "NOT_FOUND"


class ConflictError(CatalogError):
    """Raised when a product name is already taken."""

    code = "CONFLICT"


class DomainError(CatalogError):
    """Raised when a business rule would be violated, e.g. negative stock."""

    code = "DOMAIN_ERROR"


class StorageError(CatalogError):
    """Raised when reading or writing the product file fails."""

    code = "STORAGE_ERROR"


class ConfigurationError(CatalogError):
    """Raised when there's a configuration error."""

    code = "CONFIGURATION_ERROR"
