"""Circle CCTP V2 attestation service client.

Query Circle's Iris API for burn attestations needed to complete
cross-chain USDC transfers.

After ``depositForBurn()`` is mined on the source chain, Circle's attestation
service signs the burn event. Until then Iris answers 404 or a pending status,
which this client reports as ``None``, "not yet". Waiting is the job of
:py:class:`eth_cctp.poller.AttestationPoller`.

Example::

    from eth_cctp.attestation import IrisAttestationClient
    from eth_cctp.constants import CCTP_DOMAIN_ETHEREUM, IRIS_API_BASE_URL

    client = IrisAttestationClient(IRIS_API_BASE_URL)
    attestation = client.fetch_attestation(
        message_id="0x...",
        source_domain=CCTP_DOMAIN_ETHEREUM,
        transaction_hash="0x...",
    )
    if attestation is not None:
        print(attestation.attestation.hex())
"""

import enum
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal

import requests
from eth_typing import HexStr
from requests import Session
from web3 import Web3

from eth_cctp.constants import FINALITY_THRESHOLD_FAST, IRIS_API_BASE_URL
from eth_cctp.errors import AttestationServiceError
from eth_cctp.session import create_iris_session

logger = logging.getLogger(__name__)

#: HTTP 404 status code indicating resource not found
HTTP_NOT_FOUND = 404


@dataclass(slots=True)
class CCTPAttestation:
    """Attestation data for a CCTP burn event.

    Contains the signed message and attestation needed to call
    ``receiveMessage()`` on the destination chain's MessageTransmitterV2.
    """

    #: The CCTP message bytes to relay to the destination chain.
    #:
    #: Empty when looked up by message hash only, Iris does not return the message then.
    message: bytes

    #: The signed attestation bytes from Circle's Iris service
    attestation: bytes

    #: Status from Iris API (e.g. "complete")
    status: str

    #: keccak256 of the message
    message_hash: HexStr | None = None

    def __post_init__(self):
        if self.message_hash is None and self.message:
            self.message_hash = HexStr(Web3.keccak(self.message).to_0x_hex())


class MessageStatus(enum.Enum):
    """Where Iris thinks a message is."""

    pending = "pending"
    attested = "attested"
    completed = "completed"
    unknown = "unknown"


#: Iris and legacy status strings, lowercased
_STATUS_MAP = {
    "pending": MessageStatus.pending,
    "pending_confirmations": MessageStatus.pending,
    "complete": MessageStatus.attested,
    "attested": MessageStatus.attested,
    "completed": MessageStatus.completed,
}


def _decode_hex(value: str) -> bytes:
    return bytes.fromhex(value.removeprefix("0x"))


class AttestationClient(ABC):
    """Fetch attestations for burned messages.

    ``None`` means "not ready yet". A raised exception means the service
    could not be asked. Neither is final, :py:class:`eth_cctp.poller.AttestationPoller`
    keeps asking until its time budget runs out.
    """

    @abstractmethod
    def fetch_attestation(
        self,
        message_id: str,
        source_domain: int | None = None,
        transaction_hash: str | None = None,
    ) -> CCTPAttestation | None:
        """Get the attestation if it is ready.

        :param message_id:
            Message hash

        :param source_domain:
            Source chain CCTP domain. With ``transaction_hash`` allows the V2 lookup.

        :param transaction_hash:
            Burn transaction hash
        """

    @abstractmethod
    def fetch_message_status(self, message_hash: str) -> MessageStatus:
        """Where the message is in the attestation pipeline."""

    @abstractmethod
    def fetch_fast_transfer_fee(self, source_domain: int, destination_domain: int) -> Decimal:
        """Minimum fast transfer fee, basis points."""

    def fetch_message(
        self,
        message_hash: str,
        source_domain: int | None = None,
        transaction_hash: str | None = None,
    ) -> bytes | None:
        """Look up the raw message bytes for a message hash.

        Used to resume a mint when the stored transfer result lost its message.
        """
        attestation = self.fetch_attestation(message_hash, source_domain, transaction_hash)
        if attestation is not None and attestation.message:
            return attestation.message
        return None


class IrisAttestationClient(AttestationClient):
    """Circle Iris API client.

    - `Iris API reference <https://developers.circle.com/api-reference/cctp/all/get-messages-v-2>`__
    """

    def __init__(
        self,
        api_base_url: str = IRIS_API_BASE_URL,
        session: Session | None = None,
        timeout: float = 30.0,
    ):
        """
        :param api_base_url:
            Iris API base URL. Defaults to mainnet.

        :param session:
            Requests session, see :py:func:`eth_cctp.session.create_iris_session`

        :param timeout:
            HTTP timeout per request, seconds
        """
        self.api_base_url = api_base_url.rstrip("/")
        self.session = session or create_iris_session()
        self.timeout = timeout

    def __repr__(self):
        return f"<IrisAttestationClient {self.api_base_url}>"

    def _get(self, path: str, params: dict | None = None) -> dict | list | None:
        """GET a JSON document, ``None`` on 404."""
        url = f"{self.api_base_url}{path}"
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise AttestationServiceError(f"Iris request failed: {url}: {e}") from e

        # Iris API returns 404 when the transaction is not yet indexed
        if response.status_code == HTTP_NOT_FOUND:
            return None

        if response.status_code >= 400:
            raise AttestationServiceError(f"Iris returned HTTP {response.status_code} for {url}: {response.text[0:200]}")

        try:
            return response.json()
        except ValueError as e:
            raise AttestationServiceError(f"Iris returned non-JSON body for {url}: {response.text[0:200]}") from e

    def fetch_attestation(
        self,
        message_id: str,
        source_domain: int | None = None,
        transaction_hash: str | None = None,
    ) -> CCTPAttestation | None:
        if source_domain is not None and transaction_hash:
            # Iris API requires 0x-prefixed transaction hash
            if not transaction_hash.startswith("0x"):
                transaction_hash = f"0x{transaction_hash}"

            data = self._get(f"/v2/messages/{source_domain}", params={"transactionHash": transaction_hash})
            if not data:
                return None

            messages = data.get("messages") or []
            if not messages:
                return None

            msg = messages[0]
            status = msg.get("status", "")
            attestation_hex = msg.get("attestation")
            if status != "complete" or not attestation_hex or attestation_hex == "PENDING":
                logger.debug("Attestation status for tx %s: %s", transaction_hash, status)
                return None

            message = _decode_hex(msg.get("message") or "")
            return CCTPAttestation(
                message=message,
                attestation=_decode_hex(attestation_hex),
                status=status,
                # Hash the message itself when we have it
                message_hash=None if message else HexStr(message_id),
            )

        data = self._get(f"/v1/attestations/{message_id}")
        if not data:
            return None

        status = data.get("status", "")
        attestation_hex = data.get("attestation")
        if status != "complete" or not attestation_hex or attestation_hex == "PENDING":
            logger.debug("Attestation status for message %s: %s", message_id, status)
            return None

        return CCTPAttestation(
            message=b"",
            attestation=_decode_hex(attestation_hex),
            status=status,
            message_hash=HexStr(message_id),
        )

    def fetch_message_status(self, message_hash: str) -> MessageStatus:
        data = self._get(f"/v1/attestations/{message_hash}")
        if data is None:
            return MessageStatus.pending
        status = str(data.get("status", "")).lower()
        return _STATUS_MAP.get(status, MessageStatus.unknown)

    def fetch_fast_transfer_fee(self, source_domain: int, destination_domain: int) -> Decimal:
        data = self._get(f"/v2/burn/USDC/fees/{source_domain}/{destination_domain}")
        if data is None:
            raise AttestationServiceError(f"No fee data for route {source_domain} -> {destination_domain}")

        # Current API returns one entry per finality threshold
        if isinstance(data, list):
            for entry in data:
                if entry.get("finalityThreshold") == FINALITY_THRESHOLD_FAST:
                    return Decimal(str(entry["minimumFee"]))
            raise AttestationServiceError(f"No fast transfer fee for route {source_domain} -> {destination_domain}: {data}")

        fee = data.get("minimumFee", data.get("fee"))
        if fee is None:
            raise AttestationServiceError(f"Could not parse fee response: {data}")
        return Decimal(str(fee))

    def fetch_fast_transfer_allowance(self) -> Decimal:
        """Remaining USDC Circle lets through fast transfers right now."""
        data = self._get("/v2/fastBurn/USDC/allowance")
        if not data or "allowance" not in data:
            raise AttestationServiceError(f"Could not parse fast burn allowance: {data}")
        return Decimal(str(data["allowance"]))

    def is_attestation_complete(
        self,
        message_id: str,
        source_domain: int | None = None,
        transaction_hash: str | None = None,
    ) -> bool:
        """One-shot check if attestation is ready.

        Never raises, failures are logged and reported as ``False``.
        """
        try:
            return self.fetch_attestation(message_id, source_domain, transaction_hash) is not None
        except AttestationServiceError:
            logger.warning(
                "Failed to check attestation status for %s",
                transaction_hash or message_id,
                exc_info=True,
            )
            return False
