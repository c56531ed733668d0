"""HTTP session management for Circle Iris API and webhook delivery.

Sessions retry throttled and failed requests with exponential backoff
and log every retry through :py:class:`eth_cctp.logging_retry.LoggingRetry`.
"""

import logging

from requests import Session
from requests.adapters import HTTPAdapter

from eth_cctp.logging_retry import LoggingRetry

logger = logging.getLogger(__name__)

#: Default number of retries for API requests
DEFAULT_RETRIES = 5

#: Default backoff factor for retries (seconds)
DEFAULT_BACKOFF_FACTOR = 0.5

#: Status codes worth retrying on Iris.
#:
#: Iris rate limits to 35 requests per second and answers 429 above that.
RETRY_STATUS_CODES = [429, 500, 502, 503, 504]


def create_iris_session(
    api_key: str | None = None,
    retries: int = DEFAULT_RETRIES,
    backoff_factor: float = DEFAULT_BACKOFF_FACTOR,
    pool_maxsize: int = 32,
) -> Session:
    """Create a requests Session configured for Circle's Iris API.

    Example::

        from eth_cctp.session import create_iris_session

        session = create_iris_session()
        response = session.get("https://iris-api.circle.com/v2/messages/0?transactionHash=0x...")

    :param api_key:
        Circle API key, sent as a bearer token when given.

    :param retries:
        Maximum number of retry attempts for failed requests

    :param backoff_factor:
        Backoff factor for exponential retry delays

    :param pool_maxsize:
        Connections kept in the pool, many transfers poll in parallel threads.

    :return:
        Configured session
    """
    session = Session()

    if retries > 0:
        retry_policy = LoggingRetry(
            total=retries,
            backoff_factor=backoff_factor,
            status_forcelist=RETRY_STATUS_CODES,
            # Hand the final error response back to us instead of raising RetryError
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry_policy, pool_maxsize=pool_maxsize)
        session.mount("http://", adapter)
        session.mount("https://", adapter)

    session.headers.update({"Accept": "application/json"})
    if api_key:
        session.headers.update({"Authorization": f"Bearer {api_key}"})

    logger.debug("Created Iris session, retries: %d, backoff: %f", retries, backoff_factor)
    return session


def create_webhook_session(retries: int = 0) -> Session:
    """Create a session for webhook delivery.

    Webhooks are fire-and-forget, so by default there are no retries.
    """
    session = Session()
    if retries > 0:
        retry_policy = LoggingRetry(
            total=retries,
            backoff_factor=DEFAULT_BACKOFF_FACTOR,
            status_forcelist=[500, 502, 503, 504],
            allowed_methods=["POST"],  # Need to whitelist POST
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry_policy)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
    return session
