"""Merchant hook configuration store."""

import json
from pathlib import Path

from eth_cctp.store import MerchantConfigStore, MerchantHookConfig

USDC_BASE = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"


def test_memory_only():
    store = MerchantConfigStore()
    store.set(MerchantHookConfig("shop-1", webhook_url="https://shop.example.com/hook"))

    assert store.get("shop-1").webhook_url == "https://shop.example.com/hook"
    assert store.get("shop-2") is None
    assert store.remove("shop-1") is True
    assert store.remove("shop-1") is False
    assert store.list() == []


def test_persistence(tmp_path: Path):
    path = tmp_path / "config" / "merchants.json"

    store = MerchantConfigStore(path)
    store.set(MerchantHookConfig("shop-1", webhook_url="https://shop.example.com/hook", rebalance_target="arbitrum"))
    store.set(MerchantHookConfig("shop-2", auto_swap_token=USDC_BASE, custom_hook_contract=USDC_BASE))

    assert path.exists()
    assert not path.with_suffix(".json.tmp").exists()
    assert len(json.loads(path.read_text())) == 2

    reloaded = MerchantConfigStore(path)
    reloaded.load()
    assert reloaded.get("shop-1") == store.get("shop-1")
    assert reloaded.get("shop-2").auto_swap_token == USDC_BASE
    assert [c.merchant_id for c in reloaded.list()] == ["shop-1", "shop-2"]

    reloaded.remove("shop-1")
    again = MerchantConfigStore(path)
    again.load()
    assert [c.merchant_id for c in again.list()] == ["shop-2"]


def test_load_missing_file(tmp_path: Path):
    store = MerchantConfigStore(tmp_path / "nothing.json")
    store.load()
    assert store.list() == []
