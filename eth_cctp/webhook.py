"""Transfer lifecycle webhooks.

The orchestrator reports every transfer state change to an :py:class:`EventNotifier`.
:py:class:`WebhookNotifier` delivers them as signed HTTP POSTs to the
URLs in a :py:class:`WebhookRegistry`.

Delivery is fire-and-forget: one attempt, failures are logged, nothing is raised.

Payload::

    {
        "event": "transfer.completed",
        "timestamp": 1718000000000,
        "transfer": {"id": "0x...", "sourceChain": "ethereum", ...},
        "metadata": {"progress": 100}
    }

Receivers check ``X-Webhook-Signature-256`` with :py:func:`verify_webhook_signature`.
"""

import enum
import hashlib
import hmac
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, fields
from pathlib import Path
from urllib.parse import urlparse

import requests
from requests import Session

from eth_cctp.session import create_webhook_session
from eth_cctp.store import JSONFileStore
from eth_cctp.utils import unix_timestamp_ms

logger = logging.getLogger(__name__)


#: Sent as User-Agent with every delivery
WEBHOOK_USER_AGENT = "eth-cctp-webhook/1.0"

#: Header carrying ``sha256=<hex>``
SIGNATURE_HEADER = "X-Webhook-Signature-256"


class WebhookEvent(enum.Enum):
    TRANSFER_INITIATED = "transfer.initiated"
    TRANSFER_BURNING = "transfer.burning"
    TRANSFER_ATTESTATION_PENDING = "transfer.attestation_pending"
    TRANSFER_READY_TO_MINT = "transfer.ready_to_mint"
    TRANSFER_MINTING = "transfer.minting"
    TRANSFER_COMPLETED = "transfer.completed"
    TRANSFER_FAILED = "transfer.failed"

    #: Merchant notification hook
    PAYMENT_RECEIVED = "payment.received"


def create_webhook_payload(
    event: WebhookEvent,
    transfer: dict | None = None,
    metadata: dict | None = None,
    timestamp: int | None = None,
    **extra,
) -> dict:
    """Build the JSON body for an event.

    :param transfer:
        camelCase transfer fields, ``None`` values are dropped

    :param metadata:
        Optional progress, estimate, error or attestation, ``None`` values are dropped

    :param timestamp:
        Unix milliseconds, defaults to now
    """
    payload = {
        "event": event.value,
        "timestamp": timestamp if timestamp is not None else unix_timestamp_ms(),
    }

    if transfer is not None:
        payload["transfer"] = {k: v for k, v in transfer.items() if v is not None}

    if metadata:
        payload["metadata"] = {k: v for k, v in metadata.items() if v is not None}

    payload.update(extra)
    return payload


def sign_webhook_payload(body: str | bytes, secret: str) -> str:
    """HMAC-SHA256 of the exact request body, hex."""
    if isinstance(body, str):
        body = body.encode("utf-8")
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_webhook_signature(body: str | bytes, signature: str, secret: str) -> bool:
    """Check a received ``X-Webhook-Signature-256`` header.

    :param signature:
        Header value, with or without the ``sha256=`` prefix
    """
    expected = sign_webhook_payload(body, secret)
    provided = signature.removeprefix("sha256=")
    return hmac.compare_digest(expected, provided)


def is_valid_webhook_url(url: str) -> bool:
    """We only deliver over HTTP(S)."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


@dataclass(slots=True)
class WebhookConfig:
    """One webhook subscription."""

    url: str

    #: Events delivered to this URL
    events: list[WebhookEvent] = field(default_factory=lambda: list(WebhookEvent))

    #: HMAC key, no signature header when not set
    secret: str | None = None

    enabled: bool = True

    def is_subscribed(self, event: WebhookEvent) -> bool:
        return self.enabled and event in self.events

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "events": [e.value for e in self.events],
            "secret": self.secret,
            "enabled": self.enabled,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "WebhookConfig":
        return cls(
            url=data["url"],
            events=[WebhookEvent(e) for e in data.get("events", [])],
            secret=data.get("secret"),
            enabled=data.get("enabled", True),
        )


class WebhookRegistry(JSONFileStore):
    """Webhook subscriptions, keyed by URL.

    Changes are written to disk immediately when the registry has a path.
    """

    def __init__(self, path: Path | None = None, configs: list[WebhookConfig] | None = None):
        super().__init__(path)
        self.configs: list[WebhookConfig] = list(configs or [])

    def load(self):
        self.configs = [WebhookConfig.from_dict(r) for r in self.read_records()]
        logger.info("Loaded %d webhook configs", len(self.configs))

    def save(self):
        self.write_records([c.to_dict() for c in self.configs])

    def add(self, config: WebhookConfig):
        assert is_valid_webhook_url(config.url), f"Not a valid webhook URL: {config.url}"
        self.configs.append(config)
        self.save()

    def remove(self, url: str):
        self.configs = [c for c in self.configs if c.url != url]
        self.save()

    def update(self, url: str, **changes) -> WebhookConfig | None:
        """Change fields of the config with this URL.

        ``events`` may be given as event names, they are converted to :py:class:`WebhookEvent`.

        :return:
            The updated config, or ``None`` if there is no such URL
        """
        known = {f.name for f in fields(WebhookConfig)}
        unknown = set(changes) - known
        assert not unknown, f"WebhookConfig has no fields: {sorted(unknown)}"

        if "events" in changes:
            changes["events"] = [WebhookEvent(e) for e in changes["events"]]

        if "url" in changes:
            assert is_valid_webhook_url(changes["url"]), f"Not a valid webhook URL: {changes['url']}"

        for config in self.configs:
            if config.url == url:
                for key, value in changes.items():
                    setattr(config, key, value)
                self.save()
                return config
        return None

    def get(self, url: str) -> WebhookConfig | None:
        for config in self.configs:
            if config.url == url:
                return config
        return None

    def get_subscribers(self, event: WebhookEvent) -> list[WebhookConfig]:
        return [c for c in self.configs if c.is_subscribed(event)]

    def list(self) -> list[WebhookConfig]:
        return list(self.configs)


class EventNotifier(ABC):
    """Receives transfer lifecycle events.

    Implementations must not raise, the transfer pipeline
    still guards every call.
    """

    @abstractmethod
    def notify(self, event: WebhookEvent, payload: dict, target_url: str | None = None):
        """Deliver one event.

        :param payload:
            JSON serialisable body, see :py:func:`create_webhook_payload`

        :param target_url:
            Deliver to this URL only instead of the registered subscribers
        """


class WebhookNotifier(EventNotifier):
    """POST events to registered webhook URLs."""

    def __init__(
        self,
        registry: WebhookRegistry,
        session: Session | None = None,
        timeout: float = 10.0,
    ):
        self.registry = registry
        self.session = session or create_webhook_session()
        self.timeout = timeout

    def notify(self, event: WebhookEvent, payload: dict, target_url: str | None = None):
        if target_url:
            # Use the registered secret if the target is a known URL
            config = self.registry.get(target_url) or WebhookConfig(url=target_url, events=[event])
            targets = [config]
        else:
            targets = self.registry.get_subscribers(event)

        for config in targets:
            self.deliver(config, event, payload)

    def deliver(self, config: WebhookConfig, event: WebhookEvent, payload: dict) -> bool:
        """Send one webhook.

        :return:
            ``True`` if the receiver answered 2xx or 3xx
        """
        body = json.dumps(payload, separators=(",", ":"))
        headers = {
            "Content-Type": "application/json",
            "User-Agent": WEBHOOK_USER_AGENT,
            "X-Webhook-Event": event.value,
            "X-Webhook-Timestamp": str(payload.get("timestamp", unix_timestamp_ms())),
        }

        if config.secret:
            headers[SIGNATURE_HEADER] = f"sha256={sign_webhook_payload(body, config.secret)}"

        logger.info("Sending webhook %s to %s", event.value, config.url)

        try:
            response = self.session.post(config.url, data=body.encode("utf-8"), headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning("Failed to deliver webhook %s to %s: %s", event.value, config.url, e)
            return False

        if response.status_code >= 400:
            # No retries, 4xx is the receiver refusing the payload
            logger.warning(
                "Webhook %s to %s failed with HTTP %d: %s",
                event.value,
                config.url,
                response.status_code,
                response.text[0:200],
            )
            return False

        logger.info("Webhook delivered to %s, status %d", config.url, response.status_code)
        return True

    def send_test_event(self, config: WebhookConfig) -> bool:
        """Send a made up ``transfer.initiated`` event to check a receiver."""
        payload = create_webhook_payload(
            WebhookEvent.TRANSFER_INITIATED,
            transfer={
                "id": "test-transfer-id",
                "messageHash": "0xtest",
                "sourceChain": "ethereum",
                "destinationChain": "avalanche",
                "amount": "100.00",
                "recipient": "0x742d35cc6675c4b9d7c5fc6ba9adacce5e00bd27",
                "sender": "0x742d35cc6675c4b9d7c5fc6ba9adacce5e00bd27",
                "status": "PENDING",
                "useFastTransfer": False,
                "enableHooks": False,
            },
            metadata={"progress": 10},
        )
        return self.deliver(config, WebhookEvent.TRANSFER_INITIATED, payload)
