"""Cross-chain transfer errors.

Only :py:class:`AttestationTimeoutError` ends attestation polling.
Everything else propagates from :py:class:`eth_cctp.orchestrator.TransferOrchestrator`
to the caller after a ``FAILED`` progress event.
"""

from decimal import Decimal


class CCTPError(Exception):
    """Base class for all transfer errors."""


class UnsupportedChainError(CCTPError):
    """Chain key is not in the registry or cannot play the requested role."""


class InvalidAmountError(CCTPError):
    """Amount is not a positive USDC value with at most 6 decimals."""


class InsufficientBalanceError(CCTPError):
    """Sender does not hold enough USDC."""

    def __init__(self, message: str, available: Decimal, required: Decimal):
        super().__init__(message)
        self.available = available
        self.required = required


class InsufficientAllowanceError(CCTPError):
    """Sender has not approved enough USDC to TokenMessengerV2."""

    def __init__(self, message: str, available: Decimal, required: Decimal):
        super().__init__(message)
        self.available = available
        self.required = required


class BurnFailureError(CCTPError):
    """Burn transaction was mined but reverted."""


class MessageNotFoundError(CCTPError):
    """The burn receipt has no ``MessageSent`` log.

    Not retryable: points to a wrong contract address or ABI.
    """


class AttestationServiceError(CCTPError):
    """Iris API returned an error we cannot interpret as "not ready yet"."""


class AttestationTimeoutError(CCTPError):
    """Attestation was not available before the wait budget ran out."""

    def __init__(self, message: str, elapsed: float, attempts: int):
        super().__init__(message)
        self.elapsed = elapsed
        self.attempts = attempts


class AttestationMissingError(CCTPError):
    """Tried to mint with a transfer result that has no attestation."""


class MintFailureError(CCTPError):
    """Destination chain rejected ``receiveMessage()``.

    Retrying the whole :py:meth:`~eth_cctp.orchestrator.TransferOrchestrator.complete`
    is safe, MessageTransmitterV2 refuses an already used nonce.
    """


class InvalidHookMetadataError(CCTPError, ValueError):
    """Hook values do not fit the fixed 6 byte wire format."""
