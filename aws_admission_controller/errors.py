"""
Error taxonomy shared by the gateway, the rule pipelines and the resolver.

Every error carries a ``user_visible`` flag. The gateway surfaces the message
of user-visible errors verbatim in the admission response and replaces all
other messages with a generic one, logging the original server-side.
"""

INTERNAL_ERROR_MESSAGE = "internal admission controller error"


class AdmissionError(Exception):
    """Base class for all errors raised while handling an admission request."""

    user_visible = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ParsingFailedError(AdmissionError):
    """Malformed input: undecodable body, unparsable version or annotation."""

    user_visible = True


class NotFoundError(AdmissionError):
    """A mandatory peer resource does not exist (yet)."""

    user_visible = True


class InvalidConfigError(AdmissionError):
    """Bad startup configuration; raised before the server accepts requests."""


class NotAllowedError(AdmissionError):
    """Policy denial; the message is the human-readable reason."""

    user_visible = True


class ExecutionFailedError(AdmissionError):
    """Unexpected failure talking to the cluster or serializing a response."""
