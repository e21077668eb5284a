from __future__ import annotations


class AssetServiceError(Exception):
    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFoundError(AssetServiceError):
    status_code = 404
    default_message = "Asset not found"


class ForbiddenError(AssetServiceError):
    status_code = 403
    default_message = "Forbidden"


class InvalidInputError(AssetServiceError):
    status_code = 400
    default_message = "Invalid input"


class StorageFailureError(AssetServiceError):
    status_code = 502
    default_message = "Object storage unavailable"


class RepositoryFailureError(AssetServiceError):
    status_code = 503
    default_message = "Metadata store unavailable"
