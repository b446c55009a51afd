"""Errors raised by platform adapters when an outbound operation fails.

Covers sends, replies and bulk deletes. Callers use ``retryable`` to tell
a hiccup from a refusal.
"""


class OutboundDeliveryError(RuntimeError):
    """The platform did not accept an outbound operation."""

    retryable = False


class TemporaryDeliveryError(OutboundDeliveryError):
    """Network trouble, a reconnect or a platform 5xx."""

    retryable = True


class PermanentDeliveryError(OutboundDeliveryError):
    """Unknown channel or message, or a missing permission."""
