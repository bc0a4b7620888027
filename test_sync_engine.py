"""Tests for the transaction synchronization engine."""

import asyncio
from decimal import Decimal

import pytest

from connectors.dia.dia_models import TRANSACTION_MAPPINGS
from core.errors import NoSessionError
from core.models.transactions import (
    ApprovalAction,
    OperationTypeKeys,
    TransactionStatus,
    TransactionType,
)
from sync_engine.engine import normalize_record, parse_amount


def invoice(key, **extra):
    row = {"_key": key, "belgeno2": f"FTR-{key}", "net": "1250.50", "tarih": "2024-03-01",
           "unvan": "Tedarikçi A.Ş.", "dbirimkodu": "TL"}
    row.update(extra)
    return row


def sync(services, user_id):
    return asyncio.run(services.sync_engine.sync_transactions(user_id))


class TestNormalizeRecord:

    def test_fields(self):
        row = normalize_record(
            invoice(100, aciklama="Mart kirası"),
            TRANSACTION_MAPPINGS[TransactionType.INVOICE],
            "user-1",
            3,
            OperationTypeKeys(),
        )

        assert row.dia_record_id == "invoice_100"
        assert row.document_no == "FTR-100"
        assert row.amount == Decimal("1250.50")
        assert row.counterparty == "Tedarikçi A.Ş."
        assert row.description == "Mart kirası"
        assert row.transaction_date == "2024-03-01"
        assert row.dia_firma_kodu == 3
        assert row.status == TransactionStatus.PENDING

    def test_row_without_key_is_skipped(self):
        row = normalize_record(
            {"belgeno2": "X"}, TRANSACTION_MAPPINGS[TransactionType.INVOICE], "user-1", 1, OperationTypeKeys(),
        )
        assert row is None

    def test_currency_defaults_to_try(self):
        row = normalize_record(
            {"_key": 1}, TRANSACTION_MAPPINGS[TransactionType.CASH], "user-1", 1, OperationTypeKeys(),
        )
        assert row.currency == "TRY"
        assert row.amount == Decimal("0")

    @pytest.mark.parametrize("value, expected", [
        ("12.5", Decimal("12.5")),
        (-40, Decimal("-40")),
        (None, Decimal("0")),
        ("", Decimal("0")),
        ("n/a", Decimal("0")),
        ("NaN", Decimal("0")),
    ])
    def test_parse_amount(self, value, expected):
        assert parse_amount(value) == expected


class TestSyncTransactions:

    def test_two_invoices(self, services, connected_user, fake_client):
        fake_client.respond_rows("scf_fatura_listele", [invoice(100), invoice(101)])

        result = sync(services, connected_user)

        assert result.success
        assert result.errors == []
        assert result.synced == {"invoice": 2, "current_account": 0, "bank": 0, "cash": 0}
        for record_id in ("invoice_100", "invoice_101"):
            tx = services.transactions.get_by_record_id(connected_user, record_id)
            assert tx.status == TransactionStatus.PENDING
            assert tx.transaction_type == TransactionType.INVOICE

    def test_fetches_run_for_every_type_and_parent_list(self, services, connected_user, fake_client):
        sync(services, connected_user)

        methods = {m for _, m, _ in fake_client.requests}
        assert {
            "scf_fatura_listele",
            "scf_carihesap_fisi_listele_ayrintili",
            "bcs_banka_fisi_listele_ayrintili",
            "scf_kasaislemleri_listele",
            "scf_carihesap_fisi_listele",
            "bcs_banka_fisi_listele",
        } <= methods

    def test_idempotent(self, services, connected_user, fake_client):
        fake_client.respond_rows("scf_fatura_listele", [invoice(100), invoice(101)])

        def snapshot():
            rows, total = services.transactions.list_transactions(connected_user)
            return total, {r.dia_record_id: r.model_dump(exclude={"updated_at"}) for r in rows}

        sync(services, connected_user)
        first = snapshot()
        sync(services, connected_user)
        second = snapshot()

        assert first[0] == 2
        assert second == first

    def test_duplicate_rows_in_one_fetch_are_deduplicated(self, services, connected_user, fake_client):
        fake_client.respond_rows("scf_fatura_listele", [invoice(100), invoice(100, net="99")])

        result = sync(services, connected_user)

        assert result.synced["invoice"] == 1
        tx = services.transactions.get_by_record_id(connected_user, "invoice_100")
        assert tx.amount == Decimal("99")

    def test_stale_pending_rows_are_removed(self, services, connected_user, fake_client):
        fake_client.respond_rows("scf_fatura_listele", [invoice(100), invoice(101)])
        sync(services, connected_user)

        fake_client.respond_rows("scf_fatura_listele", [invoice(100)])
        result = sync(services, connected_user)

        assert result.removed == 1
        assert services.transactions.get_by_record_id(connected_user, "invoice_101") is None
        assert services.transactions.get_by_record_id(connected_user, "invoice_100") is not None

    def test_stale_decided_rows_are_kept(self, services, connected_user, fake_client):
        fake_client.respond_rows("scf_fatura_listele", [invoice(100), invoice(101)])
        sync(services, connected_user)
        tx = services.transactions.get_by_record_id(connected_user, "invoice_101")
        services.transactions.apply_decision(connected_user, tx.id, ApprovalAction.APPROVE)

        fake_client.respond_rows("scf_fatura_listele", [])
        result = sync(services, connected_user)

        assert result.removed == 1
        kept = services.transactions.get_by_record_id(connected_user, "invoice_101")
        assert kept.status == TransactionStatus.APPROVED

    def test_failed_fetch_keeps_existing_rows(self, services, connected_user, fake_client):
        fake_client.respond_rows("bcs_banka_fisi_listele_ayrintili", [{"_key": 9, "tutar": "10"}])
        sync(services, connected_user)

        fake_client.fail("bcs_banka_fisi_listele_ayrintili")
        fake_client.respond_rows("scf_fatura_listele", [invoice(100)])
        result = sync(services, connected_user)

        assert not result.success
        assert len(result.errors) == 1
        assert result.errors[0].startswith("bank: ")
        assert "bank" not in result.synced
        assert result.synced["invoice"] == 1
        assert services.transactions.get_by_record_id(connected_user, "bank_9") is not None

    def test_failed_parent_list_skips_line_type(self, services, connected_user, fake_client):
        fake_client.respond_rows("scf_carihesap_fisi_listele_ayrintili", [{"_key": 3, "borc": "5"}])
        fake_client.fail("scf_carihesap_fisi_listele")

        result = sync(services, connected_user)

        assert not result.success
        assert result.errors == ["current_account: parent receipts: Sunucu hatası"]
        assert "current_account" not in result.synced
        assert services.transactions.get_by_record_id(connected_user, "current_account_3") is None

    def test_status_from_parent_receipt(self, services, connected_user, fake_client):
        services.users.update_operation_type_keys(connected_user, OperationTypeKeys(approve_key=10, reject_key=20))
        fake_client.respond_rows("bcs_banka_fisi_listele_ayrintili", [
            {"_key": 1, "_key_bcs_banka_fisi": 555, "tutar": "10"},
            {"_key": 2, "_key_bcs_banka_fisi": 556, "tutar": "20"},
        ])
        fake_client.respond_rows("bcs_banka_fisi_listele", [
            {"_key": 555, "_key_sis_ust_islem_turu": 20},
        ])

        sync(services, connected_user)

        assert services.transactions.get_by_record_id(connected_user, "bank_1").status == TransactionStatus.REJECTED
        assert services.transactions.get_by_record_id(connected_user, "bank_2").status == TransactionStatus.PENDING

    def test_status_is_refreshed_from_dia(self, services, connected_user, fake_client):
        services.users.update_operation_type_keys(connected_user, OperationTypeKeys(approve_key=10))
        fake_client.respond_rows("scf_fatura_listele", [invoice(100)])
        sync(services, connected_user)

        fake_client.respond_rows("scf_fatura_listele", [invoice(100, _key_sis_ust_islem_turu=10)])
        sync(services, connected_user)

        tx = services.transactions.get_by_record_id(connected_user, "invoice_100")
        assert tx.status == TransactionStatus.APPROVED

    def test_firma_kodu_comes_from_session(self, services, connected_user, fake_client):
        fake_client.respond_rows("scf_fatura_listele", [invoice(100, _level1=99)])

        sync(services, connected_user)

        assert services.transactions.get_by_record_id(connected_user, "invoice_100").dia_firma_kodu == 1

    def test_rejected_session_is_cleared_and_replaced(self, services, connected_user, fake_client):
        fake_client.fail("scf_fatura_listele", code="401", msg="INVALID_SESSION")

        result = sync(services, connected_user)

        assert not result.success
        assert services.users.get_dia_connection(connected_user).session_id is None

        fake_client.respond_rows("scf_fatura_listele", [invoice(100)])
        result = sync(services, connected_user)

        assert result.success
        assert fake_client.login_count == 1
        assert fake_client.bodies("scf_fatura_listele")[-1]["session_id"] == "sess-1"

    def test_no_session(self, services, user_id):
        with pytest.raises(NoSessionError):
            sync(services, user_id)
