"""
Application-wide exception hierarchy.

Services raise these types; blueprints register handlers against them
once and get consistent HTTP status codes everywhere.

Usage:
    from pp_assessment.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Project", resource_id="contoso")
    raise ValidationError("Scale responses must be 1-5", details={"value": "7"})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Maps to HTTP 404.

    Args:
        resource: Human-readable entity name (e.g. "Project", "Task").
        resource_id: The key that was looked up.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input is well-formed but violates a business rule.

    Examples: a scale response outside 1-5, a percentage above 100, an
    unknown task status.

    Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ImportFormatError(Exception):
    """Raised when an import payload lacks the expected structure.

    The message is safe to show to the end user. Maps to HTTP 400.
    """

    USER_MESSAGE = "Failed to import file. Please ensure it's a valid assessment export."

    def __init__(self, reason: str | None = None) -> None:
        self.reason = reason
        super().__init__(self.USER_MESSAGE)


class StorageCorruptionError(Exception):
    """Raised when a persisted blob cannot be decoded.

    Args:
        key: Storage key whose value failed to parse.
        reason: Parser message, for logs only.
    """

    def __init__(self, key: str, reason: str | None = None) -> None:
        self.key = key
        self.reason = reason
        msg = f"Stored value under {key!r} is corrupted"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)
