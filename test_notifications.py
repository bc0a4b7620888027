"""Tests for mail delivery and the hourly notification scheduler."""

import asyncio
import smtplib
from datetime import datetime, timedelta

import pytest

from conftest import RecordingMailService
from core.models.transactions import ApprovalAction, StagedTransaction, TransactionType
from notifications.mail_service import MailDeliveryError, MailSettingsNotFound, render_email
from notifications.scheduler import NotificationScheduler, is_due
from storage.settings import MailSettings, NotificationSettings

NOW = datetime(2024, 3, 4, 9, 0, 0)


def save_mail(services, user_id, verified=True):
    services.settings_repo.save_mail_settings(user_id, MailSettings(
        smtp_host="smtp.example.com",
        smtp_port=587,
        smtp_user="bildirim@example.com",
        smtp_password="smtp-secret",
        sender_email="bildirim@example.com",
        sender_name="Sumen",
    ))
    if verified:
        services.settings_repo.mark_mail_verified(user_id)


def stage_pending(services, user_id, tx_type, *keys):
    services.transactions.write_sync_result(user_id, [
        StagedTransaction(
            user_id=user_id,
            dia_record_id=f"{tx_type.value}_{key}",
            transaction_type=tx_type,
            transaction_date="2024-03-01",
        )
        for key in keys
    ], [])


@pytest.fixture
def mail(services):
    return RecordingMailService(services.settings_repo)


@pytest.fixture
def scheduler(services, mail):
    return NotificationScheduler(services.settings_repo, services.transactions, mail)


class TestRenderEmail:

    def test_pending_summary(self):
        rendered = render_email("PENDING_SUMMARY", count=3, label="Fatura", icon="📄",
                                dashboard_url="http://dashboard.test")

        assert rendered["subject"] == "Onay Bekleyen 3 Fatura - Sumen"
        assert "3 Adet Fatura" in rendered["html"]
        assert 'href="http://dashboard.test"' in rendered["html"]


class TestMailService:

    def test_use_ssl_on_port_465(self):
        settings = MailSettings(smtp_host="h", smtp_port=465, smtp_user="u", smtp_password="p", sender_email="s@x")
        assert settings.use_ssl
        assert not settings.model_copy(update={"smtp_port": 587}).use_ssl

    def test_send_notification_email(self, services, user_id, mail):
        save_mail(services, user_id)

        sent = asyncio.run(mail.send_notification_email(user_id, "muhasebe@example.com", TransactionType.INVOICE, 2))

        assert sent
        assert len(mail.sent) == 1
        assert mail.sent[0]["from"] == "Sumen <bildirim@example.com>"
        assert mail.sent[0]["to"] == ["muhasebe@example.com"]
        assert mail.sent[0]["subject"] == "Onay Bekleyen 2 Fatura - Sumen"

    def test_unverified_settings_skip_sending(self, services, user_id, mail):
        save_mail(services, user_id, verified=False)

        sent = asyncio.run(mail.send_notification_email(user_id, "a@example.com", TransactionType.BANK, 1))

        assert not sent
        assert mail.sent == []

    def test_missing_settings_skip_sending(self, user_id, mail):
        assert not asyncio.run(mail.send_notification_email(user_id, "a@example.com", TransactionType.BANK, 1))

    def test_send_email_failure(self, services, user_id, mail):
        save_mail(services, user_id)
        mail.fail_for.add("down@example.com")

        with pytest.raises(MailDeliveryError):
            asyncio.run(mail.send_email(user_id, "down@example.com", "Konu", "<p>x</p>"))

    def test_send_email_without_settings(self, user_id, mail):
        with pytest.raises(MailSettingsNotFound):
            asyncio.run(mail.send_email(user_id, "a@example.com", "Konu", "<p>x</p>"))

    def test_connection_test_marks_verified(self, services, user_id, mail):
        save_mail(services, user_id, verified=False)

        result = asyncio.run(mail.test_connection(user_id))

        assert result["success"]
        assert mail.sent[0]["to"] == ["bildirim@example.com"]
        assert services.settings_repo.get_mail_settings(user_id).is_verified

    def test_connection_test_failure(self, services, user_id):
        save_mail(services, user_id, verified=False)

        class FailingMail(RecordingMailService):
            def _deliver(self, *args, **kwargs):
                raise smtplib.SMTPAuthenticationError(535, b"auth failed")

        result = asyncio.run(FailingMail(services.settings_repo).test_connection(user_id))

        assert not result["success"]
        assert "SMTP" in result["message"]
        assert not services.settings_repo.get_mail_settings(user_id).is_verified

    def test_saving_settings_resets_verification(self, services, user_id):
        save_mail(services, user_id)
        assert services.settings_repo.get_mail_settings(user_id).is_verified

        save_mail(services, user_id, verified=False)

        assert not services.settings_repo.get_mail_settings(user_id).is_verified


class TestIsDue:

    def test_hour_not_configured(self):
        assert not is_due(NotificationSettings(user_id="u", is_enabled=True, notification_hours=[10]), NOW)

    def test_hour_configured(self):
        assert is_due(NotificationSettings(user_id="u", is_enabled=True, notification_hours=[9]), NOW)

    def test_sent_within_the_hour(self):
        setting = NotificationSettings(
            user_id="u", is_enabled=True, notification_hours=[9],
            last_notification_sent=NOW - timedelta(minutes=30),
        )
        assert not is_due(setting, NOW)

    def test_sent_earlier_today(self):
        setting = NotificationSettings(
            user_id="u", is_enabled=True, notification_hours=[9],
            last_notification_sent=NOW - timedelta(hours=3),
        )
        assert is_due(setting, NOW)

    def test_invalid_hour_rejected(self):
        with pytest.raises(ValueError):
            NotificationSettings(user_id="u", notification_hours=[24])


class TestProcessNotifications:

    def enable(self, services, user_id, hours=(9,), **recipients):
        services.settings_repo.save_notification_settings(NotificationSettings(
            user_id=user_id, is_enabled=True, notification_hours=list(hours), **recipients,
        ))

    def test_sends_per_type_and_recipient(self, services, user_id, mail, scheduler):
        save_mail(services, user_id)
        stage_pending(services, user_id, TransactionType.INVOICE, 1, 2)
        stage_pending(services, user_id, TransactionType.BANK, 3)
        self.enable(
            services, user_id,
            invoice_emails=["a@example.com", "b@example.com"],
            bank_emails=["c@example.com"],
        )

        summary = asyncio.run(scheduler.process_notifications(NOW))

        assert summary.users_notified == 1
        assert summary.emails_sent == 3
        subjects = sorted(m["subject"] for m in mail.sent)
        assert subjects == [
            "Onay Bekleyen 1 Banka Hareketi - Sumen",
            "Onay Bekleyen 2 Fatura - Sumen",
            "Onay Bekleyen 2 Fatura - Sumen",
        ]
        assert services.settings_repo.get_notification_settings(user_id).last_notification_sent == NOW

    def test_only_pending_rows_are_counted(self, services, user_id, mail, scheduler):
        save_mail(services, user_id)
        stage_pending(services, user_id, TransactionType.INVOICE, 1)
        services.transactions.apply_decision(
            user_id,
            services.transactions.get_by_record_id(user_id, "invoice_1").id,
            ApprovalAction.APPROVE,
        )
        self.enable(services, user_id, invoice_emails=["a@example.com"])

        summary = asyncio.run(scheduler.process_notifications(NOW))

        assert summary.emails_sent == 0
        assert summary.users_skipped == 1
        assert services.settings_repo.get_notification_settings(user_id).last_notification_sent is None

    def test_not_due_hour_is_skipped(self, services, user_id, mail, scheduler):
        save_mail(services, user_id)
        stage_pending(services, user_id, TransactionType.INVOICE, 1)
        self.enable(services, user_id, hours=(14,), invoice_emails=["a@example.com"])

        summary = asyncio.run(scheduler.process_notifications(NOW))

        assert summary.users_skipped == 1
        assert mail.sent == []

    def test_disabled_users_are_ignored(self, services, user_id, mail, scheduler):
        services.settings_repo.save_notification_settings(NotificationSettings(
            user_id=user_id, is_enabled=False, notification_hours=[9], invoice_emails=["a@example.com"],
        ))

        summary = asyncio.run(scheduler.process_notifications(NOW))

        assert summary.users_checked == 0

    def test_second_run_in_same_hour_sends_nothing(self, services, user_id, mail, scheduler):
        save_mail(services, user_id)
        stage_pending(services, user_id, TransactionType.CASH, 1)
        self.enable(services, user_id, cash_emails=["a@example.com"])

        asyncio.run(scheduler.process_notifications(NOW))
        second = asyncio.run(scheduler.process_notifications(NOW + timedelta(minutes=20)))

        assert len(mail.sent) == 1
        assert second.emails_sent == 0

    def test_failed_recipient_does_not_stop_others(self, services, user_id, mail, scheduler):
        save_mail(services, user_id)
        stage_pending(services, user_id, TransactionType.INVOICE, 1)
        mail.fail_for.add("down@example.com")
        self.enable(services, user_id, invoice_emails=["down@example.com", "ok@example.com"])

        summary = asyncio.run(scheduler.process_notifications(NOW))

        assert summary.emails_failed == 1
        assert summary.emails_sent == 1
        assert mail.sent[0]["to"] == ["ok@example.com"]

    def test_unverified_mail_sends_nothing_but_stamps(self, services, user_id, mail, scheduler):
        save_mail(services, user_id, verified=False)
        stage_pending(services, user_id, TransactionType.INVOICE, 1)
        self.enable(services, user_id, invoice_emails=["a@example.com"])

        summary = asyncio.run(scheduler.process_notifications(NOW))

        assert summary.emails_sent == 0
        assert summary.users_notified == 1
        assert mail.sent == []

    @pytest.mark.parametrize("hours, invoice_emails", [("[24]", "[]"), ("[9]", "{not json")])
    def test_unreadable_settings_row_does_not_stop_others(
        self, services, user_id, mail, scheduler, hours, invoice_emails,
    ):
        save_mail(services, user_id)
        stage_pending(services, user_id, TransactionType.INVOICE, 1)
        self.enable(services, user_id, invoice_emails=["a@example.com"])

        broken = services.users.create_user("bozuk@example.com", user_id="user-2").id
        with services.db.transaction() as conn:
            conn.execute(
                """
                INSERT INTO notification_settings
                (user_id, is_enabled, notification_hours, invoice_emails, created_at, updated_at)
                VALUES (?, 1, ?, ?, 'now', 'now')
                """,
                (broken, hours, invoice_emails),
            )

        summary = asyncio.run(scheduler.process_notifications(NOW))

        assert summary.users_checked == 1
        assert summary.emails_sent == 1
        assert mail.sent[0]["to"] == ["a@example.com"]
