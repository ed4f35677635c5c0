"""Lookup, uniqueness and input errors raised by the user, site and admin services."""

from statichost.exceptions.base import AppException


class NotFoundError(AppException):
    """A user, site or upload id that matches no row (404)."""

    def __init__(self, resource: str, identifier: int | str):
        """
        Parameters:
            resource (str): Model name shown to the caller, e.g. "Site" or "User".
            identifier (int | str): The id or slug that was looked up.
        """
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} with identifier '{identifier}' not found")


class AlreadyExistsError(AppException):
    """A taken site slug or account e-mail (409)."""

    def __init__(self, resource: str, field: str, value: int | str):
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(f"{resource} with {field}='{value}' already exists")


class ValidationError(AppException):
    """
    Input a service refuses after schema validation passed (422).

    `field` names the offending request field so clients can highlight it; it is
    None for checks spanning several fields, such as activating a site that has
    no index.html yet.
    """

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)
