"""
Ledger system wiring and request dependencies
"""

from typing import Optional

from fastapi import Request

from ..storage import StorageInterface, open_storage
from ..accounts import AccountStore
from ..transactions import TransactionLog
from ..directory import UserDirectory, StorageUserDirectory, HttpUserDirectory
from ..events import EventDispatcher
from ..notifications import LedgerNotifier, NotificationChannel, LogChannelProvider, WebhookChannelProvider
from ..ledger import LedgerEngine, AccountLocks
from ..reporting import HistoryReporter
from ..config import LedgerConfig, get_config


class LedgerSystem:
    """Ledger components wired around one store handle"""

    def __init__(self, config: Optional[LedgerConfig] = None, storage: Optional[StorageInterface] = None):
        self.config = config or get_config()
        self.storage = storage or open_storage(self.config.database_url)

        self.accounts = AccountStore(
            self.storage, max_number_attempts=self.config.account_number_max_attempts
        )
        self.log = TransactionLog(self.storage)
        self.directory = self._create_directory()
        self.dispatcher = EventDispatcher()

        self.notifier = self._create_notifier()
        if self.config.enable_notifications:
            self.notifier.attach(self.dispatcher)

        self.locks = AccountLocks()
        self.engine = LedgerEngine(
            self.storage, self.accounts, self.log,
            directory=self.directory,
            dispatcher=self.dispatcher,
            locks=self.locks,
            default_timeout=self.config.operation_timeout_seconds
        )
        self.reporter = HistoryReporter(
            self.accounts, self.log, directory=self.directory, locks=self.locks
        )

    def _create_directory(self) -> UserDirectory:
        """Create the user directory based on configuration"""
        if not self.config.user_directory_url:
            return StorageUserDirectory(self.storage)
        return HttpUserDirectory(
            base_url=self.config.user_directory_url,
            timeout=self.config.user_directory_timeout,
            cache_ttl=self.config.user_directory_cache_ttl_seconds,
            cache_size=self.config.user_directory_cache_size
        )

    def _create_notifier(self) -> LedgerNotifier:
        providers = {NotificationChannel.LOG: LogChannelProvider()}
        if self.config.notification_webhook_url:
            providers[NotificationChannel.WEBHOOK] = WebhookChannelProvider(
                self.config.notification_webhook_url,
                timeout=self.config.notification_timeout
            )
        return LedgerNotifier(self.storage, providers=providers)

    def close(self) -> None:
        if isinstance(self.directory, HttpUserDirectory):
            self.directory.close()
        self.storage.close()


def get_ledger_system(request: Request) -> LedgerSystem:
    return request.app.state.ledger_system
