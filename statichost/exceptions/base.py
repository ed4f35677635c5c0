"""Root of the application exception hierarchy."""


class AppException(Exception):
    """Base class for every domain-level error raised by the services."""

    def __init__(self, message: str = "An application error occurred"):
        """
        Store the human-readable message on the exception.

        Parameters:
            message (str): Description of the failure, surfaced as the response `detail`.
        """
        self.message = message
        super().__init__(message)
