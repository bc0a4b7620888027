"""DIA HTTP Client.

Low-level async client for the DIA web-service API. Every call is a JSON
POST to `https://{server}.ws.dia.com.tr/api/v3/{module}/json` with a
body of the form `{method_name: {session_id, firma_kodu, donem_kodu, ...}}`.
DIA reports the outcome in the body's `code` field.

The client does not retry. Transport failures and non-200 codes on read
calls surface as ErpCommunicationError; update calls return the parsed
response so the caller can decide per item.
"""

import asyncio
import json
from typing import Any, Dict, List, Optional, Union

import aiohttp

from connectors.dia.dia_models import (
    DETAIL_METHODS,
    ApprovalCategory,
    DetailMethod,
    DiaCredentials,
    DiaFilter,
    DiaResponse,
    DiaSession,
)
from core.config import Settings, get_settings
from core.errors import ErpCommunicationError, InvalidRecordIdentity, UnsupportedTransactionType
from core.models.transactions import TransactionType
from core.observability.logging import get_logger, redact_payload

logger = get_logger(__name__)

FilterLike = Union[DiaFilter, Dict[str, Any]]


def _filter_dict(f: FilterLike) -> Dict[str, Any]:
    return f.to_dict() if isinstance(f, DiaFilter) else dict(f)


class DiaApiClient:
    """HTTP client for the DIA web-service API.

    Usage:
        client = DiaApiClient()
        await client.connect()
        rows = await client.fetch_list(session, "scf_fatura_listele", "scf/json")
        await client.disconnect()
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._session: Optional[aiohttp.ClientSession] = None

    async def connect(self) -> None:
        """Initialize the HTTP session."""
        if self._session is None:
            self._session = aiohttp.ClientSession()

    async def disconnect(self) -> None:
        """Close the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "DiaApiClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.disconnect()

    # =========================================================================
    # Transport
    # =========================================================================

    async def _post(self, url: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST a JSON body and return the decoded JSON response.

        Raises:
            ErpCommunicationError: Network failure, timeout, HTTP error
                status, or a body that is not UTF-8 JSON object text
        """
        await self.connect()
        timeout = aiohttp.ClientTimeout(total=self.settings.dia_http_timeout_seconds)

        try:
            async with self._session.post(
                url,
                json=payload,
                headers={"Content-Type": "application/json"},
                timeout=timeout,
            ) as response:
                raw_body = await response.read()
                if response.status >= 400:
                    raise ErpCommunicationError(
                        f"DIA HTTP error {response.status}: {raw_body[:200].decode('utf-8', 'replace')}",
                        code=str(response.status),
                    )
            response_text = raw_body.decode("utf-8")
        except UnicodeDecodeError:
            raise ErpCommunicationError("DIA returned undecodable body")
        except asyncio.TimeoutError:
            raise ErpCommunicationError(
                f"DIA request timed out after {self.settings.dia_http_timeout_seconds}s"
            )
        except aiohttp.ClientError as e:
            raise ErpCommunicationError(f"DIA request failed: {e}")

        try:
            body = json.loads(response_text) if response_text else {}
        except json.JSONDecodeError:
            raise ErpCommunicationError(f"DIA returned invalid JSON: {response_text[:200]}")

        if not isinstance(body, dict):
            raise ErpCommunicationError("DIA returned an unexpected response shape")
        return body

    async def call(
        self,
        session: DiaSession,
        endpoint: str,
        method: str,
        body: Dict[str, Any],
    ) -> DiaResponse:
        """Invoke an authenticated DIA method.

        Args:
            session: Valid DIA session
            endpoint: Module endpoint, e.g. "scf/json"
            method: DIA method name, e.g. "scf_fatura_listele"
            body: Method arguments (merged after the session envelope)

        Returns:
            Parsed response envelope
        """
        url = self.settings.dia_base_url(session.server_name, endpoint)
        payload = {method: {**session.request_envelope(), **body}}

        logger.debug(
            f"DIA call {method}",
            extra_fields={"url": url, "request": redact_payload(payload)},
        )
        response = DiaResponse.parse(await self._post(url, payload))
        logger.debug(
            f"DIA response {method} code={response.code}",
            extra_fields={"response": redact_payload(response.raw)},
        )
        return response

    # =========================================================================
    # Authentication
    # =========================================================================

    async def login(self, credentials: DiaCredentials) -> DiaResponse:
        """Open a new DIA session.

        The response body is never logged since `msg` carries the session id.
        """
        url = self.settings.dia_base_url(credentials.server_name, "sis/json")
        payload = {
            "login": {
                "username": credentials.username,
                "password": credentials.password,
                "disconnect_same_user": True,
                "lang": "tr",
                "params": {
                    "apikey": credentials.api_key,
                    "firma_kodu": credentials.firma_kodu,
                    "donem_kodu": credentials.donem_kodu,
                },
            }
        }
        logger.info(f"Attempting DIA login to {url}")
        return DiaResponse.parse(await self._post(url, payload))

    # =========================================================================
    # Reads
    # =========================================================================

    async def fetch_list(
        self,
        session: DiaSession,
        method: str,
        endpoint: str,
        filters: Optional[List[FilterLike]] = None,
    ) -> List[Dict[str, Any]]:
        """Fetch one page of a DIA list method, scoped to the session's company.

        Raises:
            ErpCommunicationError: Transport failure or non-200 code
        """
        company_filter = DiaFilter(field="_level1", value=str(session.firma_kodu))
        all_filters = [company_filter.to_dict()] + [_filter_dict(f) for f in filters or []]
        limit = self.settings.dia_list_limit

        response = await self.call(session, endpoint, method, {
            "filters": all_filters,
            "sorts": "",
            "params": "",
            "limit": limit,
            "offset": 0,
        })
        if not response.ok:
            raise ErpCommunicationError(response.error_message, code=response.code, response=response.raw)

        rows = response.rows
        if len(rows) >= limit:
            logger.warning(
                f"{method} returned a full page of {len(rows)} rows; later rows are not fetched",
                extra_fields={"method": method, "limit": limit},
            )
        return rows

    async def fetch_detail(
        self,
        session: DiaSession,
        transaction_type: Union[TransactionType, str],
        record_key: Union[int, str],
        detail_methods: Optional[Dict[TransactionType, DetailMethod]] = None,
    ) -> Dict[str, Any]:
        """Fetch a single record with the type's detail method.

        Returns:
            The raw DIA response body

        Raises:
            UnsupportedTransactionType: No detail method for the type
            InvalidRecordIdentity: record_key is not numeric
            ErpCommunicationError: Transport failure or non-200 code
        """
        methods = detail_methods or DETAIL_METHODS
        try:
            tx_type = TransactionType(transaction_type)
        except ValueError:
            raise UnsupportedTransactionType(str(transaction_type))
        detail = methods.get(tx_type)
        if detail is None:
            raise UnsupportedTransactionType(tx_type.value)

        try:
            key = int(str(record_key).strip())
        except ValueError:
            raise InvalidRecordIdentity(str(record_key))

        if detail.use_key_param:
            body = {"key": key, "params": ""}
        else:
            body = {
                "filters": [DiaFilter(field="_key", value=key).to_dict()],
                "sorts": "",
                "params": "",
                "limit": 1,
                "offset": 0,
            }

        response = await self.call(session, detail.endpoint, detail.method, body)
        if not response.ok:
            raise ErpCommunicationError(response.error_message, code=response.code, response=response.raw)
        return response.raw

    async def fetch_user_directory(self, session: DiaSession) -> Dict[int, str]:
        """Map DIA user keys to display names."""
        response = await self.call(session, "sis/json", "sis_kullanici_listele", {
            "filters": [],
            "sorts": "",
            "params": "",
            "limit": self.settings.dia_list_limit,
            "offset": 0,
        })
        if not response.ok:
            raise ErpCommunicationError(response.error_message, code=response.code, response=response.raw)

        directory: Dict[int, str] = {}
        for user in response.rows:
            key = user.get("_key")
            name = user.get("gercekadi") or user.get("kullaniciadi")
            if key is None or not name:
                continue
            try:
                directory[int(key)] = name
            except (TypeError, ValueError):
                continue
        return directory

    async def fetch_approval_category_list(self, session: DiaSession) -> List[ApprovalCategory]:
        """List active upper-operation-types usable as approval markers."""
        response = await self.call(session, "sis/json", "sis_ust_islem_turu_listele", {
            "filters": [DiaFilter(field="durum", value="A", operator="=").to_dict()],
            "sorts": [],
            "params": {},
            "limit": 100,
            "offset": 0,
        })
        if not response.ok:
            raise ErpCommunicationError(response.error_message, code=response.code, response=response.raw)

        categories = []
        for item in response.rows:
            key = item.get("_key")
            if key is None:
                continue
            label = item.get("aciklama") or item.get("ack") or f"Tür {key}"
            categories.append(ApprovalCategory(key=int(key), label=label))
        return categories

    # =========================================================================
    # Writes
    # =========================================================================

    async def update(
        self,
        session: DiaSession,
        endpoint: str,
        method: str,
        kart: Dict[str, Any],
    ) -> DiaResponse:
        """Send an update (`*_guncelle`) call.

        A non-200 code is returned, not raised.

        Raises:
            ErpCommunicationError: Transport failure
        """
        return await self.call(session, endpoint, method, {"kart": kart})
