"""
Exceptions for the NFT mint SDK.
"""
from typing import Optional


class MintSDKError(Exception):
    """Base exception for all SDK errors."""
    pass


class InvalidInput(MintSDKError):
    """Raised for caller errors. Never retried."""
    pass


class InvalidMetadata(InvalidInput):
    """Raised when an NFT metadata document violates a field invariant."""

    def __init__(self, field: str, message: Optional[str] = None):
        self.field = field
        super().__init__(message or f"Invalid metadata field: {field}")


class NetworkError(MintSDKError):
    """Raised when a remote service could not be reached (connection, timeout)."""
    pass


class ServiceError(MintSDKError):
    """Raised when a remote service answered with an error response."""

    def __init__(self, message: str, status_code: Optional[int] = None, transient: bool = True):
        self.status_code = status_code
        self.transient = transient
        super().__init__(message)


class UploadFailed(MintSDKError):
    """Raised when content could not be uploaded after all attempts."""

    def __init__(self, cause: Exception, attempts: int = 0):
        self.cause = cause
        self.attempts = attempts
        super().__init__(f"Upload failed after {attempts} attempt(s): {cause}")


class IdentityError(MintSDKError):
    """Raised when a signing identity cannot be resolved from its secret source."""
    pass


class StorageUnavailable(MintSDKError):
    """Raised when a persistent artifact cache cannot be read or written."""
    pass


class InsufficientFunds(MintSDKError):
    """Raised when the authority balance cannot cover a mint transaction."""

    def __init__(self, address: str, required: Optional[int] = None, available: Optional[int] = None):
        self.address = address
        self.required = required
        self.available = available
        if required is None or available is None:
            message = f"Insufficient funds for {address}"
        else:
            message = f"Insufficient funds for {address}: need {required} wei, have {available} wei"
        super().__init__(message)


class TransactionError(MintSDKError):
    """Raised when a transaction cannot be built, signed or submitted."""
    pass


class Rejected(TransactionError):
    """Raised when a submitted transaction was reverted on-chain."""

    def __init__(self, signature: str, message: Optional[str] = None):
        self.signature = signature
        super().__init__(message or f"Transaction {signature} was rejected on-chain")


class ConfirmationTimeout(TransactionError):
    """
    Raised when a transaction was not confirmed within the polling window.

    The transaction may still land; check the signature before retrying.
    """

    def __init__(self, signature: str, timeout: float):
        self.signature = signature
        self.timeout = timeout
        super().__init__(f"Transaction {signature} not confirmed within {timeout}s")


class Cancelled(MintSDKError):
    """Raised when a pipeline run was cancelled by its caller."""
    pass


class PipelineFailed(MintSDKError):
    """Raised by PipelineRun.raise_for_failure() for a run that ended in FAILED."""

    def __init__(self, stage: str, cause: Exception, signature: Optional[str] = None):
        self.stage = stage
        self.cause = cause
        self.signature = signature
        message = f"Pipeline failed at stage '{stage}': {cause}"
        if signature:
            message += f" (signature: {signature})"
        super().__init__(message)
