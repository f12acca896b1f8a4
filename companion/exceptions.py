"""
Custom exceptions for the companion generation service, providing a structured error hierarchy.
"""

from typing import List, Optional


class CompanionBaseException(Exception):
    """Base exception for all custom exceptions in this package."""

    pass


class ConfigurationError(CompanionBaseException):
    """Raised for errors in configuration, like missing keys or invalid values."""

    pass


class GenerationError(CompanionBaseException):
    """Raised when a generation request cannot be fulfilled.

    ``user_message`` is safe to show to the end user; ``str(error)`` may carry
    diagnostics meant for logs only.
    """

    user_message = "Something went wrong. Please try again."

    def __init__(self, message: str, user_message: Optional[str] = None):
        super().__init__(message)
        if user_message is not None:
            self.user_message = user_message


class InsufficientFundsError(GenerationError):
    """Raised when the account balance cannot cover the quoted cost. No provider is called."""

    def __init__(self, required_units: int, available_units: int):
        self.required_units = required_units
        self.available_units = available_units
        super().__init__(
            f"Insufficient balance: need {required_units}, have {available_units}",
            user_message=(
                f"Insufficient coins. Need {required_units} coins, you have {available_units}. "
                "Please purchase more or upgrade to Premium."
            ),
        )


class AllProvidersFailedError(GenerationError):
    """Raised after every adapter in a capability's fallback chain has failed."""

    def __init__(self, capability: str, failures: Optional[List] = None):
        self.capability = capability
        self.failures = failures or []
        super().__init__(
            f"All {capability} providers failed: "
            + ", ".join(f"{f.provider_id.value}={f.reason.value}" for f in self.failures),
            user_message="Generation is unavailable right now. Please try again.",
        )


class GenerationCancelledError(GenerationError):
    """Raised when the owning request was cancelled before a result was produced."""

    user_message = "The request was cancelled."


class TemplateNotFoundError(GenerationError):
    """Raised for an unknown quick-template id."""

    def __init__(self, template_id: str):
        self.template_id = template_id
        super().__init__(f"Template not found: {template_id}", user_message="Template not found")


class StreamUpstreamError(CompanionBaseException):
    """Raised by a live token source when the upstream model fails mid-stream."""

    pass


class ClientDisconnectedError(CompanionBaseException):
    """Raised when a stream write fails because the client went away."""

    pass
