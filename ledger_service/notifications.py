"""
Notification Module

Best-effort alerts for ledger activity and account approval. Delivery runs
after the triggering mutation has committed; a failed delivery is recorded
and logged but never raised to the caller.
"""

from datetime import datetime, timezone
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any
from enum import Enum
import logging
import uuid
import requests
from abc import ABC, abstractmethod

from .storage import StorageInterface, StorageRecord
from .events import DomainEvent, EventDispatcher, EventPayload

logger = logging.getLogger("ledger.notifications")


class NotificationChannel(Enum):
    """Available notification channels"""
    LOG = "log"
    WEBHOOK = "webhook"


class NotificationStatus(Enum):
    """Status of notifications"""
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


@dataclass
class Notification(StorageRecord):
    """Individual notification instance"""
    channel: NotificationChannel
    recipient: str
    subject: str
    body: str
    html: Optional[str] = None
    status: NotificationStatus = NotificationStatus.PENDING
    failed_reason: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class ChannelProvider(ABC):
    """Abstract base class for notification channel providers"""

    @abstractmethod
    def send(self, notification: Notification) -> bool:
        """Send notification via this channel. Returns True if successful."""
        pass


class LogChannelProvider(ChannelProvider):
    """Writes notifications to the log; the development default"""

    def send(self, notification: Notification) -> bool:
        logger.info(
            f"{notification.channel.value.upper()} to {notification.recipient}: "
            f"{notification.subject} | {notification.body[:100]}"
        )
        return True


class WebhookChannelProvider(ChannelProvider):
    """POSTs notifications as JSON to a fixed webhook URL"""

    def __init__(self, url: str, timeout: float = 5.0):
        self.url = url
        self.timeout = timeout

    def send(self, notification: Notification) -> bool:
        payload = {
            "notification_id": notification.id,
            "recipient": notification.recipient,
            "subject": notification.subject,
            "body": notification.body,
            "html": notification.html,
            "timestamp": notification.created_at.isoformat(),
            "metadata": notification.metadata
        }
        response = requests.post(
            self.url,
            json=payload,
            timeout=self.timeout,
            headers={"Content-Type": "application/json"}
        )
        return 200 <= response.status_code < 300


class LedgerNotifier:
    """
    Turns domain events into notifications and delivers them best-effort.

    Every delivery attempt is stored in the ``notifications`` table with its
    outcome.
    """

    def __init__(
        self,
        storage: StorageInterface,
        providers: Optional[Dict[NotificationChannel, ChannelProvider]] = None,
        channels: Optional[List[NotificationChannel]] = None
    ):
        self.storage = storage
        self.table_name = "notifications"
        self.providers: Dict[NotificationChannel, ChannelProvider] = providers or {
            NotificationChannel.LOG: LogChannelProvider()
        }
        self.channels = channels or list(self.providers.keys())

    def register_provider(self, channel: NotificationChannel, provider: ChannelProvider) -> None:
        self.providers[channel] = provider
        if channel not in self.channels:
            self.channels.append(channel)

    def attach(self, dispatcher: EventDispatcher) -> None:
        """Subscribe to the ledger events this notifier reports on"""
        dispatcher.subscribe(DomainEvent.DEPOSIT_COMPLETED, self.on_deposit)
        dispatcher.subscribe(DomainEvent.TRANSFER_COMPLETED, self.on_transfer)

    def on_deposit(self, event: EventPayload) -> None:
        data = event.data
        self.send(
            recipient=data.get("holder_email") or data["account_number"],
            subject="Deposit received",
            body=f"A deposit of {data['amount']} was credited to account {data['account_number']}. "
                 f"New balance: {data['balance']}.",
            metadata={"event_id": event.event_id, "transaction_id": event.entity_id}
        )

    def on_transfer(self, event: EventPayload) -> None:
        data = event.data
        self.send(
            recipient=data.get("from_holder_email") or data["from_account_number"],
            subject="Transfer sent",
            body=f"{data['amount']} was transferred from {data['from_account_number']} "
                 f"to {data['to_account_number']}.",
            metadata={"event_id": event.event_id, "transaction_id": event.entity_id}
        )
        self.send(
            recipient=data.get("to_holder_email") or data["to_account_number"],
            subject="Transfer received",
            body=f"{data['amount']} was received from {data['from_account_number']} "
                 f"into {data['to_account_number']}.",
            metadata={"event_id": event.event_id, "transaction_id": event.entity_id}
        )

    def notify_account_approved(self, name: str, email: str) -> bool:
        """Tell a user their account was approved. Returns whether it was sent."""
        return self.send(
            recipient=email,
            subject="Your Account Has Been Approved",
            body=f"Hello {name},\n\nYour account has been approved by the admin. "
                 f"You can now log in and use your account.",
            html=f"<p>Hello {name},</p><p>Your account has been <b>approved</b> by the admin. "
                 f"You can now log in and use your account.</p>"
        )

    def send(
        self,
        recipient: str,
        subject: str,
        body: str,
        html: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> bool:
        """Deliver on every configured channel; True if any channel succeeded"""
        delivered = False
        for channel in self.channels:
            provider = self.providers.get(channel)
            if provider is None:
                continue
            now = datetime.now(timezone.utc)
            notification = Notification(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                channel=channel,
                recipient=recipient,
                subject=subject,
                body=body,
                html=html,
                metadata=metadata or {}
            )
            try:
                ok = provider.send(notification)
                notification.status = NotificationStatus.SENT if ok else NotificationStatus.FAILED
                if not ok:
                    notification.failed_reason = "provider reported failure"
            except Exception as e:
                logger.error(f"Failed to send {channel.value} notification to {recipient}: {e}")
                notification.status = NotificationStatus.FAILED
                notification.failed_reason = str(e)
            notification.updated_at = datetime.now(timezone.utc)
            self._record(notification)
            delivered = delivered or notification.status == NotificationStatus.SENT
        return delivered

    def _record(self, notification: Notification) -> None:
        try:
            self.storage.save(self.table_name, notification.id, notification.to_dict())
        except Exception as e:
            logger.error(f"Failed to record notification {notification.id}: {e}")

    def list_notifications(self) -> List[Dict[str, Any]]:
        return self.storage.load_all(self.table_name)
