"""Tests for the approval dispatcher and DIA update payloads."""

import asyncio

import pytest

from approval_dispatcher.dispatcher import parse_record_identity, resolve_target_key
from approval_dispatcher.payloads import annotation_for, build_update_kart
from core.errors import InvalidRecordIdentity, NoSessionError, UnsupportedTransactionType
from core.models.transactions import (
    ApprovalAction,
    OperationTypeKeys,
    StagedTransaction,
    TransactionStatus,
    TransactionType,
)

KEYS = OperationTypeKeys(approve_key=10, reject_key=20, analyze_key=30)


def stage(services, user_id, tx_type, key, raw=None):
    """Insert one pending row the way a sync would and return its local id."""
    record_id = f"{tx_type.value}_{key}"
    services.transactions.write_sync_result(user_id, [StagedTransaction(
        user_id=user_id,
        dia_record_id=record_id,
        transaction_type=tx_type,
        dia_firma_kodu=1,
        dia_raw_data=raw or {"_key": key},
        document_no=f"DOC-{key}",
        amount="100",
        transaction_date="2024-03-01",
    )], [])
    return services.transactions.get_by_record_id(user_id, record_id).id


def dispatch(services, user_id, ids, action, reason=None):
    return asyncio.run(services.dispatcher.process_transactions(user_id, ids, action, reason))


class TestRecordIdentity:

    def test_parse(self):
        assert parse_record_identity("invoice_100") == (TransactionType.INVOICE, 100)
        assert parse_record_identity("current_account_7") == (TransactionType.CURRENT_ACCOUNT, 7)

    @pytest.mark.parametrize("value", ["invoice", "invoice_abc", "_12", ""])
    def test_invalid(self, value):
        with pytest.raises(InvalidRecordIdentity):
            parse_record_identity(value)

    def test_unknown_type(self):
        with pytest.raises(UnsupportedTransactionType):
            parse_record_identity("payroll_5")

    def test_bank_targets_parent_receipt(self):
        assert resolve_target_key(TransactionType.BANK, 1, {"_key_bcs_banka_fisi": 555}) == 555

    def test_current_account_without_parent_uses_own_key(self):
        assert resolve_target_key(TransactionType.CURRENT_ACCOUNT, 42, {"_key": 42}) == 42

    def test_invoice_ignores_parent_fields(self):
        assert resolve_target_key(TransactionType.INVOICE, 100, {"_key_bcs_banka_fisi": 555}) == 100


class TestUpdateKart:

    def test_invoice_approve(self):
        update, kart = build_update_kart(TransactionType.INVOICE, 100, ApprovalAction.APPROVE, KEYS)

        assert update.method == "scf_fatura_guncelle"
        assert kart == {"_key": 100, "_key_sis_ust_islem_turu": 10, "ekalan5": "Onaylandı"}

    def test_bank_reject_with_reason(self):
        update, kart = build_update_kart(TransactionType.BANK, 555, ApprovalAction.REJECT, KEYS, "Tutar hatalı")

        assert update.endpoint == "bcs/json"
        assert kart == {
            "_key": 555,
            "m_kalemler": [],
            "_key_sis_ust_islem_turu": 20,
            "aciklama3": "RED : Tutar hatalı",
        }

    def test_reject_without_reason(self):
        assert annotation_for(ApprovalAction.REJECT) == "RED : Belirtilmedi"

    def test_marker_omitted_without_key(self):
        _, kart = build_update_kart(TransactionType.CASH, 5, ApprovalAction.APPROVE, OperationTypeKeys())
        assert "_key_sis_ust_islem_turu" not in kart

    def test_no_update_method(self):
        with pytest.raises(UnsupportedTransactionType):
            build_update_kart(TransactionType.ORDER, 5, ApprovalAction.APPROVE, KEYS)


class TestProcessTransactions:

    @pytest.fixture(autouse=True)
    def configure_keys(self, services, connected_user):
        services.users.update_operation_type_keys(connected_user, KEYS)

    def test_approve_invoice(self, services, connected_user, fake_client):
        tx_id = stage(services, connected_user, TransactionType.INVOICE, 100)

        result = dispatch(services, connected_user, [tx_id], ApprovalAction.APPROVE)

        assert result.success
        assert result.message == "1 başarılı, 0 başarısız"
        assert result.results[0].warning is None
        kart = fake_client.bodies("scf_fatura_guncelle")[0]["kart"]
        assert kart["_key"] == 100
        assert kart["ekalan5"] == "Onaylandı"

        tx = services.transactions.get(connected_user, tx_id)
        assert tx.status == TransactionStatus.APPROVED
        assert tx.approved_by == connected_user
        assert tx.approved_at is not None
        history = services.transactions.get_history(connected_user, tx_id)
        assert [h.action for h in history] == [ApprovalAction.APPROVE]
        assert history[0].dia_response["code"] == "200"

    def test_bank_update_targets_parent(self, services, connected_user, fake_client):
        tx_id = stage(services, connected_user, TransactionType.BANK, 1, raw={"_key": 1, "_key_bcs_banka_fisi": 555})

        dispatch(services, connected_user, [tx_id], ApprovalAction.APPROVE)

        assert fake_client.bodies("bcs_banka_fisi_guncelle")[0]["kart"]["_key"] == 555

    def test_reject_without_reason(self, services, connected_user, fake_client):
        tx_id = stage(services, connected_user, TransactionType.CASH, 8)

        dispatch(services, connected_user, [tx_id], ApprovalAction.REJECT)

        assert fake_client.bodies("scf_kasa_fisi_guncelle")[0]["kart"]["aciklama3"] == "RED : Belirtilmedi"
        tx = services.transactions.get(connected_user, tx_id)
        assert tx.status == TransactionStatus.REJECTED
        assert tx.rejected_by == connected_user
        assert tx.rejection_reason is None

    def test_reject_with_reason_is_recorded(self, services, connected_user):
        tx_id = stage(services, connected_user, TransactionType.INVOICE, 5)

        dispatch(services, connected_user, [tx_id], ApprovalAction.REJECT, "Fiyat farkı")

        tx = services.transactions.get(connected_user, tx_id)
        assert tx.rejection_reason == "Fiyat farkı"
        assert services.transactions.get_history(connected_user, tx_id)[0].notes == "Fiyat farkı"

    def test_analyze(self, services, connected_user, fake_client):
        tx_id = stage(services, connected_user, TransactionType.INVOICE, 6)

        dispatch(services, connected_user, [tx_id], ApprovalAction.ANALYZE)

        assert fake_client.bodies("scf_fatura_guncelle")[0]["kart"]["_key_sis_ust_islem_turu"] == 30
        assert services.transactions.get(connected_user, tx_id).status == TransactionStatus.ANALYZING

    def test_middle_item_failure_is_isolated(self, services, connected_user, fake_client):
        ids = [stage(services, connected_user, TransactionType.INVOICE, k) for k in (1, 2, 3)]

        def answer(body):
            if body["kart"]["_key"] == 2:
                return {"code": "400", "msg": "Kayıt kilitli"}
            return {"code": "200", "msg": "ok"}

        fake_client.respond("scf_fatura_guncelle", answer)

        result = dispatch(services, connected_user, ids, ApprovalAction.APPROVE)

        assert not result.success
        assert [r.success for r in result.results] == [True, False, True]
        assert result.results[1].error == "Kayıt kilitli"
        assert result.message == "2 başarılı, 1 başarısız"
        statuses = [services.transactions.get(connected_user, i).status for i in ids]
        assert statuses == [TransactionStatus.APPROVED, TransactionStatus.PENDING, TransactionStatus.APPROVED]
        assert services.transactions.get_history(connected_user, ids[1]) == []

    def test_transport_error_is_per_item(self, services, connected_user, fake_client, transport_error):
        tx_id = stage(services, connected_user, TransactionType.INVOICE, 1)
        fake_client.respond("scf_fatura_guncelle", transport_error)

        result = dispatch(services, connected_user, [tx_id], ApprovalAction.APPROVE)

        assert not result.results[0].success
        assert "connection reset" in result.results[0].error
        assert services.transactions.get(connected_user, tx_id).status == TransactionStatus.PENDING

    def test_unknown_and_duplicate_ids(self, services, connected_user):
        tx_id = stage(services, connected_user, TransactionType.INVOICE, 1)

        result = dispatch(services, connected_user, ["missing", tx_id, tx_id], ApprovalAction.APPROVE)

        assert [r.transaction_id for r in result.results] == ["missing", tx_id]
        assert result.results[0].error == "Transaction not found"
        assert result.results[1].success

    def test_other_users_rows_are_not_found(self, services, connected_user):
        other = services.users.create_user("baska@example.com", user_id="user-2").id
        tx_id = stage(services, other, TransactionType.INVOICE, 1)

        result = dispatch(services, connected_user, [tx_id], ApprovalAction.APPROVE)

        assert result.results[0].error == "Transaction not found"

    def test_unsupported_type_fails_item(self, services, connected_user, fake_client):
        tx_id = stage(services, connected_user, TransactionType.ORDER, 4)

        result = dispatch(services, connected_user, [tx_id], ApprovalAction.APPROVE)

        assert not result.results[0].success
        assert "order" in result.results[0].error
        assert fake_client.bodies("scf_siparis_guncelle") == []

    def test_missing_key_succeeds_with_warning(self, services, connected_user):
        services.users.update_operation_type_keys(connected_user, OperationTypeKeys(approve_key=10))
        tx_id = stage(services, connected_user, TransactionType.INVOICE, 1)

        result = dispatch(services, connected_user, [tx_id], ApprovalAction.REJECT)

        item = result.results[0]
        assert item.success
        assert "reject" in item.warning
        assert item.to_dict()["warning"] == item.warning

    def test_unexpected_error_is_per_item(self, services, connected_user, fake_client):
        ids = [stage(services, connected_user, TransactionType.INVOICE, k) for k in (1, 2, 3)]

        def answer(body):
            if body["kart"]["_key"] == 2:
                raise UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte")
            return {"code": "200", "msg": "ok"}

        fake_client.respond("scf_fatura_guncelle", answer)

        result = dispatch(services, connected_user, ids, ApprovalAction.APPROVE)

        assert [r.success for r in result.results] == [True, False, True]
        assert "invalid start byte" in result.results[1].error
        statuses = [services.transactions.get(connected_user, i).status for i in ids]
        assert statuses == [TransactionStatus.APPROVED, TransactionStatus.PENDING, TransactionStatus.APPROVED]

    def test_unparsable_record_id_fails_only_that_item(self, services, connected_user, fake_client):
        ids = [stage(services, connected_user, TransactionType.INVOICE, k) for k in (1, 2, 3)]
        with services.db.transaction() as conn:
            conn.execute(
                "UPDATE pending_transactions SET dia_record_id = 'invoice_abc' WHERE id = ?", (ids[1],)
            )

        result = dispatch(services, connected_user, ids, ApprovalAction.APPROVE)

        assert [r.success for r in result.results] == [True, False, True]
        assert result.results[1].error == str(InvalidRecordIdentity("invoice_abc"))
        assert [b["kart"]["_key"] for b in fake_client.bodies("scf_fatura_guncelle")] == [1, 3]

    def test_rejected_session_is_cleared_and_replaced(self, services, connected_user, fake_client):
        tx_id = stage(services, connected_user, TransactionType.INVOICE, 1)
        fake_client.fail("scf_fatura_guncelle", code="401", msg="INVALID_SESSION")

        first = dispatch(services, connected_user, [tx_id], ApprovalAction.APPROVE)

        assert first.results[0].error == "INVALID_SESSION"
        assert services.users.get_dia_connection(connected_user).session_id is None

        fake_client.respond_rows("scf_fatura_guncelle", [])
        second = dispatch(services, connected_user, [tx_id], ApprovalAction.APPROVE)

        assert second.results[0].success
        assert fake_client.login_count == 1
        assert fake_client.bodies("scf_fatura_guncelle")[-1]["session_id"] == "sess-1"


def test_no_session(services, user_id):
    with pytest.raises(NoSessionError):
        dispatch(services, user_id, ["x"], ApprovalAction.APPROVE)
