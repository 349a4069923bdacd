"""
Errors of the build/control utility and of its payloads.

None of them are retried by the bridge: the utility is expected to retry
internally, and a malformed payload stays malformed on the next attempt.
"""


class ExternalToolError(Exception):
    """ The utility reported an error: i.e. it wrote anything to stderr. """

    def __init__(self, stderr: str) -> None:
        super().__init__(stderr)
        self.stderr = stderr


class ExternalToolTimeoutError(ExternalToolError):
    """ The utility did not exit in the configured time and was killed. """

    def __init__(self, stderr: str, *, timeout: float) -> None:
        super().__init__(stderr)
        self.timeout = timeout


class DecodeError(ValueError):
    """ A payload is not the base64-encoded UTF-8 JSON it is expected to be. """
