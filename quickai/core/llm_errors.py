"""LLM error types."""


class LLMError(Exception):
    """Provider call failure, classified for the key fallback policy.

    error_class values:
      "auth"       -- 401/403, credential rejected (triggers key fallback)
      "transport"  -- non-2xx other than 401/403, connection-level failure
      "timeout"    -- no fragment within the idle window
      "protocol"   -- response body could not be read as an SSE stream
      "config"     -- unsupported provider, missing credential
    """

    error_class = "transport"


class AuthenticationFailure(LLMError):
    error_class = "auth"


class TransportFailure(LLMError):
    error_class = "transport"

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class TimeoutFailure(LLMError):
    error_class = "timeout"


class ProtocolFailure(LLMError):
    error_class = "protocol"


class ConfigurationError(LLMError):
    error_class = "config"


class StreamCancelled(Exception):
    """Caller-initiated cancellation. Never reported to the user as an error."""
