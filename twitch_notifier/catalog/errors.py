"""Exceptions raised by the catalog client."""


class CatalogError(Exception):
    """Raised when the content catalog cannot serve a request."""

    def __init__(
        self,
        message: str,
        category_id: str | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.category_id = category_id
        self.status_code = status_code


class CredentialError(CatalogError):
    """Raised when an app access token cannot be obtained."""
