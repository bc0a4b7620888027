"""Service wiring.

Builds the repositories and engines from settings so the API, the
Temporal activities and the scripts share one composition.
"""

from dataclasses import dataclass
from typing import Optional

from approval_dispatcher.dispatcher import ApprovalDispatcher
from connectors.dia.dia_auth import DiaSessionManager
from connectors.dia.dia_client import DiaApiClient
from connectors.dia.directory_cache import UserDirectoryCache
from core.config import Settings, get_settings
from core.security.encryption import CredentialCipher, cipher_from_settings
from notifications.mail_service import MailService
from notifications.scheduler import NotificationScheduler
from storage.db import Database
from storage.settings import SettingsRepository
from storage.transactions import TransactionRepository
from storage.users import UserRepository
from sync_engine.engine import TransactionSyncEngine


@dataclass
class AppServices:
    """Everything a request or activity needs, built once per process."""
    settings: Settings
    db: Database
    cipher: CredentialCipher
    users: UserRepository
    transactions: TransactionRepository
    settings_repo: SettingsRepository
    client: DiaApiClient
    sessions: DiaSessionManager
    directory: UserDirectoryCache
    sync_engine: TransactionSyncEngine
    dispatcher: ApprovalDispatcher
    mail: MailService
    scheduler: NotificationScheduler

    async def close(self) -> None:
        await self.client.disconnect()


def build_services(
    settings: Optional[Settings] = None,
    client: Optional[DiaApiClient] = None,
) -> AppServices:
    """Compose the application services.

    Args:
        settings: Settings to use (defaults to the process-wide settings)
        client: DIA client to use (tests pass a fake transport)

    Raises:
        ValueError: CREDENTIAL_ENCRYPTION_KEY is missing or invalid
    """
    settings = settings or get_settings()
    db = Database(settings.db_path, settings.db_max_connections)
    cipher = cipher_from_settings(settings)
    client = client or DiaApiClient(settings)

    users = UserRepository(db, cipher)
    transactions = TransactionRepository(db)
    settings_repo = SettingsRepository(db, cipher)
    sessions = DiaSessionManager(client, users, settings)
    mail = MailService(settings_repo, settings.dashboard_url)

    return AppServices(
        settings=settings,
        db=db,
        cipher=cipher,
        users=users,
        transactions=transactions,
        settings_repo=settings_repo,
        client=client,
        sessions=sessions,
        directory=UserDirectoryCache(client, settings.user_directory_ttl_seconds),
        sync_engine=TransactionSyncEngine(client, sessions, users, transactions),
        dispatcher=ApprovalDispatcher(client, sessions, users, transactions),
        mail=mail,
        scheduler=NotificationScheduler(settings_repo, transactions, mail),
    )
