"""Shared pytest fixtures.

DIA is faked by subclassing the client and replacing its transport
(`_post`), so everything above the HTTP layer runs for real against a
temporary SQLite database.
"""

import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Dict, List, Tuple, Union

import pytest

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parent))

from connectors.dia.dia_client import DiaApiClient
from connectors.dia.dia_models import DiaCredentials
from core.config import Settings, override_settings
from core.errors import ErpCommunicationError
from core.security.encryption import generate_encryption_key
from core.services import build_services
from notifications.mail_service import MailService


Handler = Union[Dict[str, Any], Callable[[Dict[str, Any]], Dict[str, Any]], Exception]


class FakeDiaClient(DiaApiClient):
    """DIA client answering from canned responses keyed by method name.

    Unregistered list methods answer with an empty successful page and
    login answers with a fresh session id.
    """

    def __init__(self, settings: Settings):
        super().__init__(settings)
        self.responses: Dict[str, Handler] = {}
        self.requests: List[Tuple[str, str, Dict[str, Any]]] = []
        self.login_count = 0

    def respond(self, method: str, handler: Handler) -> None:
        self.responses[method] = handler

    def respond_rows(self, method: str, rows: List[Dict[str, Any]]) -> None:
        self.responses[method] = {"code": "200", "msg": "", "result": rows}

    def fail(self, method: str, code: str = "500", msg: str = "Sunucu hatası") -> None:
        self.responses[method] = {"code": code, "msg": msg}

    def bodies(self, method: str) -> List[Dict[str, Any]]:
        return [body for _, m, body in self.requests if m == method]

    def urls(self, method: str) -> List[str]:
        return [url for url, m, _ in self.requests if m == method]

    async def _post(self, url: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        method = next(iter(payload))
        body = payload[method]
        self.requests.append((url, method, body))

        handler = self.responses.get(method)
        if handler is None:
            if method == "login":
                self.login_count += 1
                return {"code": "200", "msg": f"sess-{self.login_count}"}
            return {"code": "200", "msg": "", "result": []}
        if isinstance(handler, Exception):
            raise handler
        if callable(handler):
            return handler(body)
        return handler


class RecordingMailService(MailService):
    """Mail service that records deliveries instead of talking SMTP."""

    def __init__(self, settings_repo, dashboard_url="http://dashboard.test"):
        super().__init__(settings_repo, dashboard_url)
        self.sent: List[Dict[str, Any]] = []
        self.fail_for: set = set()

    def _deliver(self, mail, recipients, subject, html, text=None):
        if self.fail_for.intersection(recipients):
            raise OSError("connection refused")
        self.sent.append({
            "from": mail.from_header,
            "to": list(recipients),
            "subject": subject,
            "html": html,
        })


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def settings(tmp_path):
    settings = Settings(
        db_path=tmp_path / "approvals-test.db",
        credential_encryption_key=generate_encryption_key(),
        dashboard_url="http://dashboard.test",
    )
    override_settings(settings)
    yield settings
    override_settings(None)


@pytest.fixture
def fake_client(settings):
    return FakeDiaClient(settings)


@pytest.fixture
def services(settings, fake_client):
    services = build_services(settings, client=fake_client)
    services.db.init_schema()
    return services


@pytest.fixture
def user_id(services):
    return services.users.create_user("onayci@example.com", "Test Onaycı", user_id="user-1").id


@pytest.fixture
def credentials():
    return DiaCredentials(
        server_name="acme",
        api_key="api-key-123",
        username="ws_user",
        password="ws-secret",
        firma_kodu=1,
        donem_kodu=1,
    )


@pytest.fixture
def connected_user(services, user_id, credentials):
    """A user with stored credentials and a live session `sess-live`."""
    services.users.save_dia_connection(
        user_id,
        credentials,
        "sess-live",
        datetime.utcnow() + timedelta(hours=1),
    )
    return user_id


@pytest.fixture
def transport_error():
    return ErpCommunicationError("DIA request failed: connection reset")
