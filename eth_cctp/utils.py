"""Bunch of random utilities."""

import logging
import os
import time
from contextlib import contextmanager
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional

from filelock import FileLock

from eth_cctp.constants import USDC_DECIMALS
from eth_cctp.errors import InvalidAmountError


logger = logging.getLogger(__name__)


def parse_token_amount(amount: str | Decimal | int, decimals: int = USDC_DECIMALS) -> int:
    """Convert a human-readable token amount to raw fixed point units.

    Example::

        assert parse_token_amount("100.50") == 100_500_000

    :param amount:
        Amount as a decimal string, e.g. ``"100.00"``.
        Floats are refused because they cannot carry exact cents.

    :param decimals:
        Token decimals. USDC has 6.

    :return:
        Raw token units

    :raise InvalidAmountError:
        Amount is not a number, is zero or negative, or has more decimals than the token
    """

    if isinstance(amount, float) or isinstance(amount, bool):
        raise InvalidAmountError(f"Amount must be a decimal string, got {type(amount)}: {amount}")

    try:
        value = Decimal(str(amount).strip())
    except (InvalidOperation, ValueError) as e:
        raise InvalidAmountError(f"Not a valid amount: {amount!r}") from e

    if not value.is_finite():
        raise InvalidAmountError(f"Not a valid amount: {amount!r}")

    if value <= 0:
        raise InvalidAmountError(f"Amount must be positive, got {amount}")

    scaled = value.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise InvalidAmountError(f"Amount {amount} has more than {decimals} decimals")

    return int(scaled)


def format_token_amount(raw_amount: int, decimals: int = USDC_DECIMALS) -> Decimal:
    """Convert raw token units back to a human-readable decimal."""
    return Decimal(raw_amount).scaleb(-decimals)


def unix_timestamp_ms(now: float | None = None) -> int:
    """Milliseconds since the epoch, as webhook receivers expect."""
    if now is None:
        now = time.time()
    return int(now * 1000)


def setup_console_logging(
    default_log_level="warning",
    simplified_logging=False,
    log_file: Path | None = None,
    std_out_log_level: Optional[int] = None,
) -> logging.Logger:
    """Set up coloured log output.

    - Helper function to have nicer logging output in operator scripts.
    - Tune down some noisy dependency library logging

    :param log_file:
        Output both console and this log file.

    :return:
        Root logger
    """

    level = os.environ.get("LOG_LEVEL", default_log_level).upper()
    numeric_level = getattr(logging, level, None)
    assert numeric_level, f"No level: {level}"

    if not std_out_log_level:
        std_out_log_level = numeric_level

    if simplified_logging:
        fmt = "%(message)s"
    else:
        fmt = "%(asctime)s %(name)-44s %(message)s"
    date_fmt = "%H:%M:%S"

    try:
        # Optional dev dependency
        import coloredlogs

        coloredlogs.install(level=std_out_log_level, fmt=fmt, date_fmt=date_fmt)
    except ImportError:
        # non-ANSI e.g. Docker
        logging.basicConfig(level=std_out_log_level, format=fmt, datefmt=date_fmt)

    if log_file:
        assert isinstance(log_file, Path), "log_file must be a Path"
        log_file.parent.mkdir(parents=True, exist_ok=True)

        # The file always gets at least INFO, env var controls only terminal output
        min_level = min(logging.INFO, numeric_level)
        file_handler = logging.FileHandler(log_file, mode="w", encoding="utf-8")
        file_handler.setLevel(min_level)
        file_handler.setFormatter(logging.Formatter(fmt, date_fmt))

        root = logging.getLogger()
        root.setLevel(min_level)
        root.addHandler(file_handler)

    # Mute noise
    logging.getLogger("web3.providers.HTTPProvider").setLevel(logging.WARNING)
    logging.getLogger("web3.RequestManager").setLevel(logging.WARNING)
    logging.getLogger("urllib3.connectionpool").setLevel(logging.WARNING)
    return logging.getLogger()


@contextmanager
def wait_other_writers(path: Path | str, timeout: int = 120):
    """Wait other potential writers writing the same file.

    Used by the JSON backed stores so that two processes saving
    merchant or webhook configuration do not interleave.

    :param path:
        File that is being written

    :param timeout:
        How many seconds wait to acquire the lock file.

    :raise filelock.Timeout:
        If the file writer is stuck with the lock.
    """

    if isinstance(path, str):
        path = Path(path)

    assert isinstance(path, Path), f"Not Path object: {path}"
    assert path.is_absolute(), f"Did not get an absolute path: {path}\nPlease use absolute paths for lock files to prevent polluting the local working directory."

    # If we are writing to a new folder, create any parent paths
    os.makedirs(path.parent, exist_ok=True)

    lock_file = path.parent / (path.name + ".lock")
    lock = FileLock(lock_file, timeout=timeout)

    if lock.is_locked:
        logger.info(
            "File %s locked for writing, waiting %f seconds",
            path,
            timeout,
        )

    with lock:
        yield
