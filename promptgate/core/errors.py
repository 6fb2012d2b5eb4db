"""
Error taxonomy for prompt execution.

None of these are retried by the orchestrator. Vendor transports may retry
beneath an adapter, invisibly to callers.
"""


class PromptGateError(Exception):
    """Base class for all errors raised by promptgate."""


class ConfigNotFound(PromptGateError):
    """A required model, prompt, organization or quota row is missing."""


class CredentialNotFound(PromptGateError):
    """No usable API key could be resolved for the run."""


class UnsupportedVendor(PromptGateError):
    """No provider adapter is registered for the vendor tag."""

    def __init__(self, vendor: str):
        super().__init__(f"Provider {vendor} not supported")
        self.vendor = vendor


class ProviderError(PromptGateError):
    """Raised when a vendor request fails at the HTTP level."""

    def __init__(self, message: str, status_code: int = 0):
        super().__init__(message)
        self.status_code = status_code


class NoContent(PromptGateError):
    """The vendor responded without any usable output item."""
