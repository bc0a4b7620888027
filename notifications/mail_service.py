"""Mail Service.

Sends notification and SMTP test emails through each user's own SMTP
account. smtplib is blocking, so delivery runs in a worker thread via
asyncio.to_thread. Subjects and bodies are Jinja2 templates.
"""

import asyncio
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Dict, List, Optional, Sequence, Union

from jinja2 import Template

from core.config import get_settings
from core.models.transactions import TransactionType
from core.observability.logging import get_logger
from storage.settings import MailSettings, SettingsRepository

logger = get_logger(__name__)


class MailSettingsNotFound(Exception):
    """The user has not saved SMTP settings."""

    def __init__(self, user_id: str):
        super().__init__("Mail ayarları bulunamadı")
        self.user_id = user_id


class MailDeliveryError(Exception):
    """SMTP connection, authentication or send failure."""
    pass


TRANSACTION_TYPE_LABELS: Dict[TransactionType, str] = {
    TransactionType.INVOICE: "Fatura",
    TransactionType.CURRENT_ACCOUNT: "Cari Hareket",
    TransactionType.BANK: "Banka Hareketi",
    TransactionType.CASH: "Kasa Hareketi",
    TransactionType.CHECK_NOTE: "Çek/Senet",
    TransactionType.ORDER: "Sipariş",
}

TRANSACTION_TYPE_ICONS: Dict[TransactionType, str] = {
    TransactionType.INVOICE: "📄",
    TransactionType.CURRENT_ACCOUNT: "💳",
    TransactionType.BANK: "🏦",
    TransactionType.CASH: "💵",
    TransactionType.CHECK_NOTE: "📝",
    TransactionType.ORDER: "📦",
}

EMAIL_TEMPLATES: Dict[str, Dict[str, str]] = {
    "PENDING_SUMMARY": {
        "subject": "Onay Bekleyen {{ count }} {{ label }} - Sumen",
        "body": """
        <!DOCTYPE html>
        <html>
        <head><meta charset="utf-8"></head>
        <body style="font-family: Arial, sans-serif; background-color: #f4f4f4; margin: 0; padding: 20px;">
          <div style="max-width: 600px; margin: 0 auto; background-color: #ffffff; border-radius: 8px;">
            <div style="background: #10b981; padding: 30px; text-align: center;">
              <h1 style="color: #ffffff; margin: 0; font-size: 24px;">Sumen Onay Sistemi</h1>
            </div>
            <div style="padding: 30px; text-align: center;">
              <span style="font-size: 48px;">{{ icon }}</span>
              <h2 style="color: #333;">{{ count }} Adet {{ label }}</h2>
              <p style="color: #666;">Onayınızı bekleyen işlemler bulunmaktadır.</p>
              <a href="{{ dashboard_url }}" style="display: inline-block; background: #10b981; color: #ffffff; padding: 12px 30px; text-decoration: none; border-radius: 6px; font-weight: bold;">
                İşlemleri Görüntüle
              </a>
            </div>
            <div style="background-color: #f8f8f8; padding: 20px; text-align: center;">
              <p style="color: #999; font-size: 12px; margin: 0;">
                Bu e-posta Sumen Onay Sistemi tarafından otomatik olarak gönderilmiştir.
              </p>
            </div>
          </div>
        </body>
        </html>
        """,
    },
    "SMTP_TEST": {
        "subject": "Sumen - SMTP Test",
        "body": """
        <div style="font-family: Arial, sans-serif; padding: 20px;">
          <h2 style="color: #10b981;">✅ SMTP Bağlantısı Başarılı</h2>
          <p>Bu bir test e-postasıdır. SMTP ayarlarınız doğru çalışıyor.</p>
          <p style="color: #666; font-size: 12px;">Sumen Onay Sistemi</p>
        </div>
        """,
    },
}


def render_email(template_name: str, **context: Any) -> Dict[str, str]:
    """Render a template's subject and HTML body."""
    template = EMAIL_TEMPLATES[template_name]
    return {
        "subject": Template(template["subject"]).render(**context).strip(),
        "html": Template(template["body"]).render(**context),
    }


class MailService:
    """Send email with a user's stored SMTP settings.

    Usage:
        mail = MailService(settings_repo)
        await mail.send_notification_email(user_id, "a@b.com", TransactionType.INVOICE, 3)
    """

    def __init__(self, settings_repo: SettingsRepository, dashboard_url: Optional[str] = None):
        self.settings_repo = settings_repo
        self.dashboard_url = dashboard_url or get_settings().dashboard_url

    def _deliver(
        self,
        mail: MailSettings,
        recipients: Sequence[str],
        subject: str,
        html: str,
        text: Optional[str] = None,
    ) -> None:
        """Blocking SMTP delivery. Runs in a worker thread."""
        smtp_cls = smtplib.SMTP_SSL if mail.use_ssl else smtplib.SMTP
        with smtp_cls(mail.smtp_host, mail.smtp_port, timeout=30) as server:
            if not mail.use_ssl:
                server.ehlo()
                if server.has_extn("starttls"):
                    server.starttls()
                    server.ehlo()
            server.login(mail.smtp_user, mail.smtp_password)

            msg = MIMEMultipart("alternative")
            msg["From"] = mail.from_header
            msg["To"] = ", ".join(recipients)
            msg["Subject"] = subject
            if text:
                msg.attach(MIMEText(text, "plain", "utf-8"))
            msg.attach(MIMEText(html, "html", "utf-8"))
            server.send_message(msg)

    def _load(self, user_id: str) -> MailSettings:
        mail = self.settings_repo.get_mail_settings(user_id)
        if mail is None:
            raise MailSettingsNotFound(user_id)
        return mail

    async def send_email(
        self,
        user_id: str,
        to: Union[str, List[str]],
        subject: str,
        html: str,
        text: Optional[str] = None,
    ) -> None:
        """Send one email with the user's SMTP account.

        Raises:
            MailSettingsNotFound: No SMTP settings saved
            MailDeliveryError: SMTP failure
        """
        mail = self._load(user_id)
        recipients = [to] if isinstance(to, str) else list(to)
        try:
            await asyncio.to_thread(self._deliver, mail, recipients, subject, html, text)
        except (smtplib.SMTPException, OSError) as e:
            raise MailDeliveryError(f"SMTP hatası: {e}")

    async def send_notification_email(
        self,
        user_id: str,
        recipient: str,
        transaction_type: TransactionType,
        count: int,
    ) -> bool:
        """Email one recipient about pending transactions of one type.

        Returns:
            False when the user's mail settings are missing or unverified
            (nothing is sent), True once the email is handed to SMTP

        Raises:
            MailDeliveryError: SMTP failure
        """
        mail = self.settings_repo.get_mail_settings(user_id)
        if mail is None or not mail.is_verified:
            logger.info("Mail settings not found or not verified, skipping notification")
            return False

        rendered = render_email(
            "PENDING_SUMMARY",
            count=count,
            label=TRANSACTION_TYPE_LABELS.get(transaction_type, transaction_type.value),
            icon=TRANSACTION_TYPE_ICONS.get(transaction_type, "📋"),
            dashboard_url=self.dashboard_url,
        )
        await self.send_email(user_id, recipient, rendered["subject"], rendered["html"])
        return True

    async def test_connection(self, user_id: str) -> Dict[str, Any]:
        """Verify SMTP login, send a test email to the sender, and mark settings verified.

        Raises:
            MailSettingsNotFound: No SMTP settings saved
        """
        mail = self._load(user_id)
        rendered = render_email("SMTP_TEST")
        try:
            await asyncio.to_thread(
                self._deliver,
                mail,
                [mail.sender_email],
                rendered["subject"],
                rendered["html"],
                "Bu bir test e-postasıdır. SMTP ayarlarınız doğru çalışıyor.",
            )
        except (smtplib.SMTPException, OSError) as e:
            logger.warning(f"SMTP test failed: {e}")
            return {"success": False, "message": f"SMTP hatası: {e}"}

        self.settings_repo.mark_mail_verified(user_id)
        return {"success": True, "message": "SMTP bağlantısı başarılı, test e-postası gönderildi"}
