"""eth_cctp package root.

Cross-chain USDC transfers over Circle CCTP V2: burn on the source chain,
wait for the Iris attestation, mint on the destination chain.

- :py:mod:`eth_cctp.orchestrator` sequences a transfer
- :py:mod:`eth_cctp.dispatcher` runs merchant post-payment hooks
"""

import sys


#: Minimum required Python version to run this package
MIN_PYTHON_VERSION = (3, 10)


def _check_python_version():
    """Try early abort if the Python version is too old."""

    # Use Python tuple comparison for version numbers
    # https://stackoverflow.com/a/1093331/315168
    if sys.version_info < MIN_PYTHON_VERSION:
        raise RuntimeError(f"eth-cctp needs Python {MIN_PYTHON_VERSION[0]}.{MIN_PYTHON_VERSION[1]} or later")


_check_python_version()
