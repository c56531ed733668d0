"""JSON file backed configuration stores.

Merchant hook configuration and webhook subscriptions are small,
administrator edited lists. They live in memory and are optionally
persisted as a JSON file. Writes are serialised across processes
with a :py:mod:`filelock` lock next to the file.
"""

import json
import logging
import os
from dataclasses import asdict, dataclass
from pathlib import Path

from eth_typing import HexAddress

from eth_cctp.utils import wait_other_writers

logger = logging.getLogger(__name__)


class JSONFileStore:
    """Load and save a list of records as a JSON file.

    With no path the store is memory only and :py:meth:`save` does nothing.
    """

    def __init__(self, path: Path | None = None):
        if path is not None:
            assert isinstance(path, Path), f"Expected Path, got {type(path)}"
            path = path.absolute()
        self.path = path

    def read_records(self) -> list[dict]:
        if self.path is None or not self.path.exists():
            return []

        with open(self.path, "rt", encoding="utf-8") as f:
            data = json.load(f)

        assert isinstance(data, list), f"{self.path} does not contain a JSON list"
        return data

    def write_records(self, records: list[dict]):
        if self.path is None:
            return

        with wait_other_writers(self.path):
            temp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            with open(temp_path, "wt", encoding="utf-8") as f:
                json.dump(records, f, indent=2)
            os.replace(temp_path, self.path)

        logger.debug("Saved %d records to %s", len(records), self.path)


@dataclass(slots=True)
class MerchantHookConfig:
    """Post-payment automation a merchant has configured."""

    merchant_id: str

    #: Where ``payment.received`` notifications go
    webhook_url: str | None = None

    #: Chain key to forward received USDC to
    rebalance_target: str | None = None

    #: Token to swap received USDC into
    auto_swap_token: HexAddress | None = None

    #: Merchant's own hook contract. Stored, not executed by the dispatcher.
    custom_hook_contract: HexAddress | None = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "MerchantHookConfig":
        return cls(**data)


class MerchantConfigStore(JSONFileStore):
    """Merchant id -> :py:class:`MerchantHookConfig`.

    Changes are written to disk immediately when the store has a path.

    Example::

        store = MerchantConfigStore(Path("~/.cctp/merchants.json").expanduser())
        store.load()
        store.set(MerchantHookConfig("shop-1", webhook_url="https://example.com/hook"))
    """

    def __init__(self, path: Path | None = None):
        super().__init__(path)
        self.configs: dict[str, MerchantHookConfig] = {}

    def load(self):
        """Replace the in-memory configs with the file content."""
        self.configs = {}
        for record in self.read_records():
            config = MerchantHookConfig.from_dict(record)
            self.configs[config.merchant_id] = config
        logger.info("Loaded %d merchant configs", len(self.configs))

    def save(self):
        self.write_records([c.to_dict() for c in self.configs.values()])

    def get(self, merchant_id: str) -> MerchantHookConfig | None:
        return self.configs.get(merchant_id)

    def set(self, config: MerchantHookConfig):
        assert config.merchant_id, "Merchant id missing"
        self.configs[config.merchant_id] = config
        self.save()

    def remove(self, merchant_id: str) -> bool:
        """Remove a merchant.

        :return:
            ``True`` if the merchant existed
        """
        existed = self.configs.pop(merchant_id, None) is not None
        if existed:
            self.save()
        return existed

    def list(self) -> list[MerchantHookConfig]:
        return list(self.configs.values())
