"""
Failure taxonomy shared by every provider.

Only ConfigurationError, AuthError, NotFoundError, ProviderError (including
exhausted transient failures) and EngineLoadError leave the orchestration
layer. UnsupportedCapabilityError and SchemaParseError are recovered locally
into a StructuredResponse.
"""

import re
from typing import Optional


class EncyclopediaError(Exception):
    """Base for all errors raised by this package"""


class ProviderError(EncyclopediaError):
    """Generic provider failure"""

    def __init__(self, message: str, *, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class ConfigurationError(ProviderError):
    """Credential or provider setup missing"""


class AuthError(ProviderError):
    """Credential rejected by the backend"""


class NotFoundError(ProviderError):
    """Unknown model reference"""


class TransientError(ProviderError):
    """Rate limited or temporarily overloaded backend"""


class EngineLoadError(ProviderError):
    """Local engine failed to download or load"""


class UnsupportedCapabilityError(EncyclopediaError):
    """Attachment kind not accepted by the active model"""


class SchemaParseError(EncyclopediaError):
    """Model output does not match the response schema"""


AUTH_MESSAGE = "API Key is invalid or has expired."
NOT_FOUND_MESSAGE = "Model not found. Please check your API key permissions."

_STATUS_MARKER_RE = re.compile(r"\b(401|403|404|429|503)\b")

TRANSIENT_STATUSES = {429, 502, 503, 504}


def status_from_message(message: str) -> Optional[int]:
    """Find a status code marker embedded in a transport error message."""
    match = _STATUS_MARKER_RE.search(message or "")
    return int(match.group(1)) if match else None


def classify_failure(
    status: Optional[int],
    message: str,
    *,
    provider_label: str = "Provider",
) -> ProviderError:
    """
    Map a transport failure onto the taxonomy.

    Args:
        status: HTTP status or SDK error code when the transport exposes one
        message: Human readable error text from the transport
        provider_label: Name used in user-facing messages

    Returns:
        The matching ProviderError subclass instance (not raised)
    """
    if status is None:
        status = status_from_message(message)

    if status in (401, 403):
        return AuthError(AUTH_MESSAGE, status=status)
    if status == 404:
        return NotFoundError(NOT_FOUND_MESSAGE, status=status)
    if status in TRANSIENT_STATUSES:
        return TransientError(
            message or f"{provider_label} is temporarily unavailable ({status})",
            status=status,
        )
    return ProviderError(message or f"{provider_label} API Error: {status}", status=status)
