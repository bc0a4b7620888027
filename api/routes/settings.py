"""Settings endpoints.

SMTP settings, notification schedule and DIA connection preferences.
Secrets are accepted on write and never returned.
"""

from datetime import datetime
from typing import Annotated, Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from api.dependencies import get_current_user_id, get_services
from core.models.transactions import OperationTypeKeys
from core.services import AppServices
from storage.settings import MailSettings, NotificationSettings


router = APIRouter()

PASSWORD_MASK = "********"

Hour = Annotated[int, Field(ge=0, le=23)]


# =============================================================================
# Mail
# =============================================================================

class MailSettingsRequest(BaseModel):
    """SMTP settings. Sending the mask as password keeps the stored one."""
    smtp_host: str
    smtp_port: int = Field(587, ge=1, le=65535)
    smtp_secure: bool = False
    smtp_user: str
    smtp_password: Optional[str] = None
    sender_email: str
    sender_name: Optional[str] = None


class MailSettingsResponse(BaseModel):
    smtp_host: str
    smtp_port: int
    smtp_secure: bool
    smtp_user: str
    smtp_password: str = PASSWORD_MASK
    sender_email: str
    sender_name: Optional[str] = None
    is_verified: bool

    @classmethod
    def from_settings(cls, mail: MailSettings) -> "MailSettingsResponse":
        return cls(
            smtp_host=mail.smtp_host,
            smtp_port=mail.smtp_port,
            smtp_secure=mail.smtp_secure,
            smtp_user=mail.smtp_user,
            sender_email=mail.sender_email,
            sender_name=mail.sender_name,
            is_verified=mail.is_verified,
        )


@router.get("/mail", response_model=Optional[MailSettingsResponse])
async def get_mail_settings(
    user_id: str = Depends(get_current_user_id),
    services: AppServices = Depends(get_services),
) -> Optional[MailSettingsResponse]:
    """Current SMTP settings, or null when none are saved."""
    mail = services.settings_repo.get_mail_settings(user_id)
    return MailSettingsResponse.from_settings(mail) if mail else None


@router.put("/mail", response_model=MailSettingsResponse)
async def save_mail_settings(
    request: MailSettingsRequest,
    user_id: str = Depends(get_current_user_id),
    services: AppServices = Depends(get_services),
) -> MailSettingsResponse:
    """Save SMTP settings. Verification is reset until the next successful test."""
    password = request.smtp_password
    if not password or password == PASSWORD_MASK:
        existing = services.settings_repo.get_mail_settings(user_id)
        if existing is None:
            raise HTTPException(status_code=400, detail="SMTP password is required")
        password = existing.smtp_password

    saved = services.settings_repo.save_mail_settings(
        user_id,
        MailSettings(
            smtp_host=request.smtp_host.strip(),
            smtp_port=request.smtp_port,
            smtp_secure=request.smtp_secure,
            smtp_user=request.smtp_user.strip(),
            smtp_password=password,
            sender_email=request.sender_email.strip(),
            sender_name=request.sender_name,
        ),
    )
    return MailSettingsResponse.from_settings(saved)


@router.post("/mail/test")
async def test_mail_settings(
    user_id: str = Depends(get_current_user_id),
    services: AppServices = Depends(get_services),
) -> Dict[str, Any]:
    """Send a test email to the sender address; marks the settings verified on success."""
    return await services.mail.test_connection(user_id)


# =============================================================================
# Notifications
# =============================================================================

class NotificationSettingsRequest(BaseModel):
    is_enabled: bool = False
    notification_hours: List[Hour] = Field(default_factory=list)
    invoice_emails: List[str] = Field(default_factory=list)
    current_account_emails: List[str] = Field(default_factory=list)
    bank_emails: List[str] = Field(default_factory=list)
    cash_emails: List[str] = Field(default_factory=list)
    check_note_emails: List[str] = Field(default_factory=list)
    order_emails: List[str] = Field(default_factory=list)


@router.get("/notifications", response_model=NotificationSettings)
async def get_notification_settings(
    user_id: str = Depends(get_current_user_id),
    services: AppServices = Depends(get_services),
) -> NotificationSettings:
    """Notification settings; disabled defaults when none are saved."""
    return (
        services.settings_repo.get_notification_settings(user_id)
        or NotificationSettings(user_id=user_id)
    )


@router.put("/notifications", response_model=NotificationSettings)
async def save_notification_settings(
    request: NotificationSettingsRequest,
    user_id: str = Depends(get_current_user_id),
    services: AppServices = Depends(get_services),
) -> NotificationSettings:
    """Save the schedule and per-type recipients."""
    data = request.model_dump()
    for key, value in data.items():
        if key.endswith("_emails"):
            data[key] = [e.strip() for e in value if e and e.strip()]
    return services.settings_repo.save_notification_settings(
        NotificationSettings(user_id=user_id, **data)
    )


# =============================================================================
# DIA
# =============================================================================

class DiaSettingsRequest(BaseModel):
    """Upper-operation-type keys used as approve/reject/analyze markers."""
    approve_key: Optional[int] = None
    reject_key: Optional[int] = None
    analyze_key: Optional[int] = None


class DiaSettingsResponse(BaseModel):
    server_name: Optional[str] = None
    username: Optional[str] = None
    firma_kodu: Optional[int] = None
    donem_kodu: Optional[int] = None
    is_connected: bool = False
    session_expires: Optional[datetime] = None
    operation_type_keys: OperationTypeKeys = OperationTypeKeys()


def _dia_settings(services: AppServices, user_id: str) -> DiaSettingsResponse:
    user = services.users.get_user(user_id)
    connection = services.users.get_dia_connection(user_id)
    session = connection.to_session() if connection else None
    return DiaSettingsResponse(
        server_name=user.dia_sunucu_adi,
        username=user.dia_ws_kullanici,
        firma_kodu=user.dia_firma_kodu,
        donem_kodu=user.dia_donem_kodu,
        is_connected=session is not None and session.expires_at > datetime.utcnow(),
        session_expires=session.expires_at if session else None,
        operation_type_keys=user.operation_type_keys,
    )


@router.get("/dia", response_model=DiaSettingsResponse)
async def get_dia_settings(
    user_id: str = Depends(get_current_user_id),
    services: AppServices = Depends(get_services),
) -> DiaSettingsResponse:
    """DIA connection summary. API key and password are never returned."""
    return _dia_settings(services, user_id)


@router.put("/dia", response_model=DiaSettingsResponse)
async def save_dia_settings(
    request: DiaSettingsRequest,
    user_id: str = Depends(get_current_user_id),
    services: AppServices = Depends(get_services),
) -> DiaSettingsResponse:
    """Save the operation-type keys."""
    services.users.update_operation_type_keys(
        user_id,
        OperationTypeKeys(
            approve_key=request.approve_key,
            reject_key=request.reject_key,
            analyze_key=request.analyze_key,
        ),
    )
    return _dia_settings(services, user_id)
