"""Attestation polling.

Iris is eventually consistent: an attestation appears some seconds
(fast transfers) or tens of minutes (standard transfers) after the burn.
We cannot be notified, so we ask again every ``poll_interval`` seconds
until the attestation is there or the wait budget runs out.
"""

import logging
import time
from typing import Callable

from eth_cctp.attestation import AttestationClient, CCTPAttestation
from eth_cctp.constants import ATTESTATION_POLL_INTERVAL
from eth_cctp.errors import AttestationTimeoutError

logger = logging.getLogger(__name__)


#: Progress never reports more than this before the attestation is in hand
MAX_PENDING_PROGRESS = 95.0


#: Called with percentage 0...100 of the wait budget used
PollProgressCallback = Callable[[float], None]


class AttestationPoller:
    """Wait for an attestation with a bounded time budget.

    - Fixed interval between attempts
    - "Not ready" answers and client errors are logged and retried
    - Only running out of time is an error

    Clock and sleep are injectable so tests do not need to wait.
    """

    def __init__(
        self,
        client: AttestationClient,
        poll_interval: float = ATTESTATION_POLL_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        assert poll_interval > 0, f"Bad poll interval {poll_interval}"
        self.client = client
        self.poll_interval = poll_interval
        self.clock = clock
        self.sleep = sleep

    def poll(
        self,
        message_id: str,
        max_wait_time: float,
        on_progress: PollProgressCallback | None = None,
        source_domain: int | None = None,
        transaction_hash: str | None = None,
    ) -> CCTPAttestation:
        """Poll until the attestation is available.

        :param message_id:
            Message hash of the burned message

        :param max_wait_time:
            Seconds to keep trying

        :param on_progress:
            Receives the elapsed share of ``max_wait_time`` as 0...95,
            and 100 once when the attestation arrives.

        :param source_domain:
            Source CCTP domain, passed to the client

        :param transaction_hash:
            Burn transaction hash, passed to the client

        :return:
            The attestation

        :raise AttestationTimeoutError:
            ``max_wait_time`` elapsed without an attestation
        """
        start = self.clock()
        attempts = 0

        while True:
            elapsed = self.clock() - start
            if elapsed >= max_wait_time:
                break

            attempts += 1
            logger.info(
                "Polling attestation for %s, attempt %d, elapsed %.1fs of %.1fs",
                message_id,
                attempts,
                elapsed,
                max_wait_time,
            )

            try:
                attestation = self.client.fetch_attestation(
                    message_id,
                    source_domain=source_domain,
                    transaction_hash=transaction_hash,
                )
            except Exception as e:
                # The service being down is the same as not ready yet
                logger.warning("Attestation query failed on attempt %d, will retry: %s", attempts, e)
                attestation = None

            if attestation is not None and attestation.attestation:
                logger.info("Attestation for %s received after %d attempts, %.1fs", message_id, attempts, self.clock() - start)
                if on_progress:
                    on_progress(100.0)
                return attestation

            if on_progress:
                elapsed = self.clock() - start
                on_progress(min(elapsed / max_wait_time * 100, MAX_PENDING_PROGRESS))

            self.sleep(self.poll_interval)

        elapsed = self.clock() - start
        raise AttestationTimeoutError(
            f"Attestation for {message_id} timed out after {elapsed:.0f}s ({attempts} attempts). Testnet attestations can take longer, the message may still be processing.",
            elapsed=elapsed,
            attempts=attempts,
        )
