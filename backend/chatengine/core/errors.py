"""Error taxonomy shared by the pipeline and the HTTP layer."""


class ChatEngineError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(ChatEngineError):
    """Unknown customer or session."""

    status_code = 404


class ConfigurationMissing(ChatEngineError):
    """Tenant or deployment is misconfigured; not the visitor's fault."""

    status_code = 500


class InvalidRequest(ChatEngineError):
    status_code = 400


class UpstreamRateLimited(ChatEngineError):
    """The model provider asked us to slow down (HTTP 429)."""

    status_code = 500


class UpstreamServiceError(ChatEngineError):
    """Non-success response, timeout or transport failure from an external service."""

    status_code = 500

    def __init__(self, message: str, status: int | None = None, body: str | None = None):
        super().__init__(message)
        self.status = status
        self.body = body


class ParseError(ChatEngineError):
    """Malformed structured output from a model; callers treat it as "no result"."""


class RateLimited(ChatEngineError):
    status_code = 429

    def __init__(self, retry_after: int):
        super().__init__("Too many requests")
        self.retry_after = retry_after
