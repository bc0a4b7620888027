"""DIA Session Manager.

Keeps one DIA session per local user. A stored session is reused until it
is within the refresh buffer of its expiry; then the stored credentials
are replayed to log in again. DIA does not report a session lifetime, so
a fresh session is assumed to live for a fixed TTL.

Refresh is not serialized per user: two concurrent callers may both log
in, and the later write wins.
"""

from datetime import datetime, timedelta
from typing import Optional

from connectors.dia.dia_client import DiaApiClient
from connectors.dia.dia_models import DiaCredentials, DiaSession, LoginResult
from core.config import Settings, get_settings
from core.errors import ErpCommunicationError
from core.observability.logging import get_logger, with_correlation
from storage.users import UserRepository

logger = get_logger(__name__)


class DiaSessionManager:
    """Obtain valid DIA sessions for local users.

    Usage:
        manager = DiaSessionManager(client, users)
        session = await manager.get_valid_session(user_id)
        if session is None:
            raise NoSessionError()
    """

    def __init__(
        self,
        client: DiaApiClient,
        users: UserRepository,
        settings: Optional[Settings] = None,
    ):
        self.client = client
        self.users = users
        self.settings = settings or get_settings()

    @property
    def session_ttl(self) -> timedelta:
        return timedelta(minutes=self.settings.dia_session_ttl_minutes)

    @property
    def refresh_buffer(self) -> timedelta:
        return timedelta(minutes=self.settings.dia_session_refresh_buffer_minutes)

    async def get_valid_session(self, user_id: str) -> Optional[DiaSession]:
        """Return a usable session for the user, logging in if needed.

        Returns:
            The session, or None when the user is unknown, has incomplete
            DIA credentials, or the login attempt fails
        """
        with with_correlation(user_id=user_id):
            stored = self.users.get_dia_connection(user_id)
            if stored is None:
                logger.info("No DIA credentials configured")
                return None

            session = stored.to_session()
            if session is not None and not session.needs_refresh(self.refresh_buffer):
                return session

            logger.info("DIA session missing or near expiry, logging in")
            result = await self.login(user_id, stored.credentials)
            return result.session if result.success else None

    async def login(self, user_id: str, credentials: DiaCredentials) -> LoginResult:
        """Log in to DIA and persist the connection on success.

        Transport failures are reported as a failed LoginResult, not raised.
        """
        with with_correlation(user_id=user_id):
            if not credentials.is_complete:
                return LoginResult(success=False, error="Missing required fields")

            try:
                response = await self.client.login(credentials)
            except ErpCommunicationError as e:
                logger.warning(f"DIA login request failed: {e}")
                return LoginResult(success=False, error=str(e))

            session_id = response.session_id
            if not session_id:
                error = response.error_message or "DIA login failed"
                logger.warning(f"DIA login rejected: {error}")
                return LoginResult(success=False, error=error)

            expires_at = datetime.utcnow() + self.session_ttl
            self.users.save_dia_connection(user_id, credentials, session_id, expires_at)
            logger.info(f"DIA session established, expires {expires_at.isoformat()}")

            return LoginResult(
                success=True,
                session=DiaSession(
                    session_id=session_id,
                    server_name=credentials.server_name,
                    firma_kodu=credentials.firma_kodu,
                    donem_kodu=credentials.donem_kodu,
                    expires_at=expires_at,
                ),
            )

    def invalidate(self, user_id: str) -> None:
        """Drop the stored session after DIA refused it.

        Credentials are kept, so the next `get_valid_session` logs in again.
        """
        with with_correlation(user_id=user_id):
            logger.warning("DIA rejected the stored session, clearing it")
            self.users.clear_session(user_id)
