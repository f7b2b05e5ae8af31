"""Exceptions raised by the Funnelcake REST client."""


class FunnelcakeException(Exception):
    """Base class for every Funnelcake failure."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{type(self).__name__}: {self.message}"


class FunnelcakeNotConfiguredException(FunnelcakeException):
    """The client has no base URL."""

    def __init__(self):
        super().__init__("Funnelcake API not configured")


class FunnelcakeApiException(FunnelcakeException):
    """The API answered with a non-success status."""

    def __init__(self, message: str, status_code: int, url: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.url = url

    def __str__(self) -> str:
        return f"{type(self).__name__}: {self.message} (status: {self.status_code})"


class FunnelcakeNotFoundException(FunnelcakeApiException):
    def __init__(self, resource: str, url: str | None = None):
        super().__init__(f"{resource} not found", status_code=404, url=url)
        self.resource = resource


class FunnelcakeTimeoutException(FunnelcakeException):
    def __init__(self, url: str | None = None):
        message = f"Request timed out for {url}" if url else "Request timed out"
        super().__init__(message)
        self.url = url
