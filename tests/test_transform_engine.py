"""Tests for the transform engine (clone, status_change, merge) and job lifecycle."""

from datetime import datetime, timezone

import pytest

from invoice_transform.core.errors import DataAccessError, TransformValidationError
from invoice_transform.core.schemas_documents import Contract, Estimate, Invoice
from invoice_transform.core.schemas_transform import TransformConfig, TransformJobStatus
from invoice_transform.core.transform_engine import (
    cancel_transform_job,
    execute_transform,
    get_transform_job,
    list_transform_jobs,
    validate_transform_config,
)
from invoice_transform.db import transform_jobs as jobs_db
from tests.fakes.fake_store import FakeStore
from tests.fixtures_transform import (
    CLIENT_LOPEZ_ID,
    CLIENT_REYES_ID,
    CONTRACT,
    CONTRACT_ID,
    ESTIMATE,
    ESTIMATE_ID,
    FOREIGN_INVOICE,
    FOREIGN_INVOICE_ID,
    INVOICE_A,
    INVOICE_A_ID,
    INVOICE_B,
    INVOICE_B_ID,
    OTHER_USER_ID,
    SAMPLE_CLIENTS,
    USER_ID,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

SEEDED_INVOICE_ROWS = 4


def _seed(store: FakeStore) -> FakeStore:
    store.seed("clients", *SAMPLE_CLIENTS)
    store.seed("invoices", INVOICE_A, INVOICE_B, ESTIMATE, FOREIGN_INVOICE)
    store.seed("contracts", CONTRACT)
    return store


def _clone(document_id=INVOICE_A_ID, source_type="invoice", **overrides) -> TransformConfig:
    return TransformConfig(
        operation="clone",
        source_document_id=document_id,
        source_document_type=source_type,
        **overrides,
    )


def _merge(*document_ids, **overrides) -> TransformConfig:
    return TransformConfig(
        operation="merge",
        source_document_ids=list(document_ids),
        source_document_type=overrides.pop("source_document_type", "invoice"),
        **overrides,
    )


class TestValidation:
    @pytest.mark.parametrize(
        "config",
        [
            TransformConfig(operation="clone", source_document_id=INVOICE_A_ID),
            TransformConfig(operation="clone", source_document_type="invoice"),
            TransformConfig(
                operation="clone",
                source_document_id=INVOICE_A_ID,
                source_document_ids=[INVOICE_A_ID, INVOICE_B_ID],
                source_document_type="invoice",
            ),
            TransformConfig(
                operation="status_change",
                source_document_id=INVOICE_A_ID,
                source_document_type="invoice",
            ),
            TransformConfig(
                operation="merge", source_document_ids=[INVOICE_A_ID], source_document_type="invoice"
            ),
            TransformConfig(
                operation="merge",
                source_document_ids=[INVOICE_A_ID, INVOICE_A_ID],
                source_document_type="invoice",
            ),
            TransformConfig(
                operation="merge",
                source_document_ids=[CONTRACT_ID, "contract-2"],
                source_document_type="contract",
            ),
            TransformConfig(
                operation="merge",
                source_document_ids=[INVOICE_A_ID, INVOICE_B_ID],
                source_document_type="invoice",
                target_document_type="contract",
            ),
            TransformConfig(
                operation="clone",
                source_document_id=CONTRACT_ID,
                source_document_type="contract",
                target_document_type="invoice",
            ),
        ],
    )
    def test_invalid_config_creates_no_job(self, seeded_store, config):
        with pytest.raises(TransformValidationError):
            execute_transform(seeded_store, config, USER_ID, now=NOW)

        assert seeded_store.rows("transform_jobs") == []

    def test_valid_configs_pass(self):
        validate_transform_config(_clone())
        validate_transform_config(_clone(ESTIMATE_ID, "estimate", target_document_type="invoice"))
        validate_transform_config(_merge(INVOICE_A_ID, INVOICE_B_ID))


class TestClone:
    def test_clone_recomputes_totals_and_resets_status(self, seeded_store):
        result = execute_transform(seeded_store, _clone(), USER_ID, now=NOW)

        assert result.success is True
        doc = result.generated_document
        assert isinstance(doc, Invoice)
        assert doc.id != INVOICE_A_ID
        assert doc.status == "draft"
        assert doc.paid_at is None
        assert doc.sent_at is None
        assert doc.document_number == "INV-2026-0003"
        # Stored source aggregates (90 / 99) are ignored
        assert doc.subtotal == 100.0
        assert doc.tax_amount == 10.0
        assert doc.total == 110.0
        assert [i.description for i in doc.line_items] == ["Labor", "Lumber"]
        assert doc.client_id == CLIENT_REYES_ID
        assert doc.source_document_ids == [INVOICE_A_ID]
        assert doc.transform_job_id == result.job.id

    def test_clone_completes_job_with_output(self, seeded_store):
        result = execute_transform(seeded_store, _clone(), USER_ID, now=NOW)

        job = get_transform_job(seeded_store, result.job.id, USER_ID)
        assert job.status == TransformJobStatus.COMPLETED
        assert job.result_document_id == result.generated_document.id
        assert job.output == {
            "document_number": "INV-2026-0003",
            "document_type": "invoice",
            "amount": 110.0,
            "line_item_count": 2,
        }
        assert job.started_at is not None
        assert job.completed_at is not None
        assert job.config["operation"] == "clone"

    def test_clone_persists_new_document(self, seeded_store):
        result = execute_transform(seeded_store, _clone(), USER_ID, now=NOW)

        stored = [r for r in seeded_store.rows("invoices") if r["id"] == result.generated_document.id]
        assert len(stored) == 1
        assert stored[0]["user_id"] == USER_ID

    def test_estimate_converts_to_invoice(self, seeded_store):
        config = _clone(ESTIMATE_ID, "estimate", target_document_type="invoice")
        result = execute_transform(seeded_store, config, USER_ID, now=NOW)

        doc = result.generated_document
        assert isinstance(doc, Invoice)
        assert doc.title == "Invoice - Converted from estimate"
        assert doc.document_number == "INV-2026-0003"
        assert (doc.subtotal, doc.tax_amount, doc.total) == (300.0, 15.0, 315.0)

    def test_client_override(self, seeded_store):
        result = execute_transform(
            seeded_store, _clone(client_override=CLIENT_LOPEZ_ID), USER_ID, now=NOW
        )
        assert result.generated_document.client_id == CLIENT_LOPEZ_ID

    def test_unknown_client_override_fails_job(self, seeded_store):
        result = execute_transform(
            seeded_store, _clone(client_override="client-missing"), USER_ID, now=NOW
        )

        assert result.success is False
        assert result.error_code == "not_found"
        assert result.job.status == TransformJobStatus.FAILED

    def test_type_mismatch_reads_as_not_found(self, seeded_store):
        result = execute_transform(seeded_store, _clone(ESTIMATE_ID, "invoice"), USER_ID, now=NOW)
        assert result.error_code == "not_found"


class TestStatusChange:
    def test_paid_sets_status_and_timestamp(self, seeded_store):
        config = TransformConfig(
            operation="status_change",
            source_document_id=INVOICE_B_ID,
            source_document_type="invoice",
            target_status="paid",
        )
        result = execute_transform(seeded_store, config, USER_ID, now=NOW)

        doc = result.generated_document
        assert doc.status == "paid"
        assert doc.paid_at == NOW
        assert doc.subtotal == 250.0
        assert doc.total == 250.0
        assert [i.total for i in doc.line_items] == [200.0, 50.0, 0.0]

    def test_contract_signed(self, seeded_store):
        config = TransformConfig(
            operation="status_change",
            source_document_id=CONTRACT_ID,
            source_document_type="contract",
            target_status="signed",
        )
        result = execute_transform(seeded_store, config, USER_ID, now=NOW)

        doc = result.generated_document
        assert isinstance(doc, Contract)
        assert doc.status == "signed"
        assert doc.signed_at == NOW
        assert doc.content == "Terms and conditions"
        assert doc.document_number == "CON-2026-0002"
        assert len(seeded_store.rows("contracts")) == 2

    def test_paid_to_sent_clears_paid_timestamp(self, seeded_store):
        config = TransformConfig(
            operation="status_change",
            source_document_id=INVOICE_A_ID,
            source_document_type="invoice",
            target_status="sent",
        )
        result = execute_transform(seeded_store, config, USER_ID, now=NOW)

        doc = result.generated_document
        assert doc.status == "sent"
        assert doc.sent_at == NOW
        assert doc.paid_at is None
        assert doc.signed_at is None


class TestMerge:
    def test_merge_two_and_three_items(self, seeded_store):
        result = execute_transform(
            seeded_store, _merge(INVOICE_A_ID, INVOICE_B_ID), USER_ID, now=NOW
        )

        doc = result.generated_document
        assert result.success is True
        assert len(doc.line_items) == 5
        assert [i.description for i in doc.line_items] == [
            "Labor", "Lumber", "Cabinets", "Hinges", "Delivery",
        ]
        assert doc.subtotal == sum(i.total for i in doc.line_items)
        assert doc.subtotal == 350.0

    def test_merge_uses_first_source_tax_and_client(self, seeded_store):
        result = execute_transform(
            seeded_store, _merge(INVOICE_A_ID, INVOICE_B_ID), USER_ID, now=NOW
        )

        doc = result.generated_document
        assert doc.tax_amount == 35.0
        assert doc.total == 385.0
        assert doc.client_id == CLIENT_REYES_ID
        assert doc.status == "draft"
        assert doc.paid_at is None
        assert doc.source_document_ids == [INVOICE_A_ID, INVOICE_B_ID]
        assert len({i.id for i in doc.line_items}) == 5

    def test_merge_into_estimate(self, seeded_store):
        result = execute_transform(
            seeded_store,
            _merge(INVOICE_A_ID, INVOICE_B_ID, target_document_type="estimate"),
            USER_ID,
            now=NOW,
        )

        assert isinstance(result.generated_document, Estimate)
        assert result.generated_document.document_number == "EST-2026-0002"

    def test_merge_with_foreign_document_is_not_found(self, seeded_store):
        result = execute_transform(
            seeded_store, _merge(INVOICE_A_ID, FOREIGN_INVOICE_ID), USER_ID, now=NOW
        )

        assert result.success is False
        assert result.error_code == "not_found"
        assert result.error == f"Document {FOREIGN_INVOICE_ID} not found"
        assert result.job.status == TransformJobStatus.FAILED
        assert len(seeded_store.rows("invoices")) == SEEDED_INVOICE_ROWS

    def test_missing_and_foreign_documents_look_the_same(self, seeded_store):
        missing = execute_transform(seeded_store, _clone("invoice-missing"), USER_ID, now=NOW)
        foreign = execute_transform(seeded_store, _clone(FOREIGN_INVOICE_ID), USER_ID, now=NOW)

        assert missing.error_code == foreign.error_code == "not_found"
        assert missing.error.replace("invoice-missing", "X") == foreign.error.replace(
            FOREIGN_INVOICE_ID, "X"
        )


class TestFailureAndCancellation:
    def test_persistence_failure_fails_job_without_document(self, seeded_store):
        seeded_store.fail_on.add(("invoices", "insert"))

        result = execute_transform(seeded_store, _clone(), USER_ID, now=NOW)

        assert result.success is False
        assert result.error_code == "execution_failed"
        job = get_transform_job(seeded_store, result.job.id, USER_ID)
        assert job.status == TransformJobStatus.FAILED
        assert "persist" in job.error
        assert len(seeded_store.rows("invoices")) == SEEDED_INVOICE_ROWS

    def test_cancel_after_insert_removes_document(self):
        class CancelAfterInsertStore(FakeStore):
            def insert(self, table, row):
                inserted = super().insert(table, row)
                if table == "invoices":
                    for job in self.rows("transform_jobs"):
                        job["status"] = "cancelled"
                return inserted

        store = _seed(CancelAfterInsertStore())
        result = execute_transform(store, _clone(), USER_ID, now=NOW)

        assert result.success is False
        assert result.error_code == "cancelled"
        assert result.job.status == TransformJobStatus.CANCELLED
        assert len(store.rows("invoices")) == SEEDED_INVOICE_ROWS

    def test_cancel_before_start(self):
        class CancelOnCreateStore(FakeStore):
            def insert(self, table, row):
                inserted = super().insert(table, row)
                if table == "transform_jobs":
                    self.rows(table)[-1]["status"] = "cancelled"
                return inserted

        store = _seed(CancelOnCreateStore())
        result = execute_transform(store, _clone(), USER_ID, now=NOW)

        assert result.error_code == "cancelled"
        assert result.job.status == TransformJobStatus.CANCELLED
        assert result.job.started_at is None
        assert len(store.rows("invoices")) == SEEDED_INVOICE_ROWS

    def test_job_store_failure_propagates(self, seeded_store):
        seeded_store.fail_on.add(("transform_jobs", "insert"))
        with pytest.raises(DataAccessError):
            execute_transform(seeded_store, _clone(), USER_ID, now=NOW)

    def test_unrecordable_failure_propagates(self, seeded_store):
        seeded_store.fail_on.add(("transform_jobs", "update"))
        with pytest.raises(DataAccessError):
            execute_transform(seeded_store, _clone(), USER_ID, now=NOW)

    def test_job_store_outage_after_insert_removes_document(self):
        class JobOutageAfterInsertStore(FakeStore):
            def insert(self, table, row):
                inserted = super().insert(table, row)
                if table == "invoices":
                    self.fail_on.add(("transform_jobs", "update"))
                return inserted

        store = _seed(JobOutageAfterInsertStore())
        with pytest.raises(DataAccessError):
            execute_transform(store, _clone(), USER_ID, now=NOW)

        assert len(store.rows("invoices")) == SEEDED_INVOICE_ROWS
        assert ("invoices", "delete") in store.calls


class TestJobQueries:
    def test_cancel_completed_job_is_refused(self, seeded_store):
        result = execute_transform(seeded_store, _clone(), USER_ID, now=NOW)
        before = dict(seeded_store.rows("transform_jobs")[0])

        assert cancel_transform_job(seeded_store, result.job.id, USER_ID) is False
        assert seeded_store.rows("transform_jobs")[0] == before

    def test_cancel_queued_job(self, store):
        job = jobs_db.create_job(store, USER_ID, {"operation": "clone"})

        assert cancel_transform_job(store, job.id, USER_ID) is True
        assert get_transform_job(store, job.id, USER_ID).status == TransformJobStatus.CANCELLED
        assert cancel_transform_job(store, job.id, USER_ID) is False

    def test_other_tenant_cannot_see_or_cancel(self, store):
        job = jobs_db.create_job(store, USER_ID, {"operation": "clone"})

        assert get_transform_job(store, job.id, OTHER_USER_ID) is None
        assert cancel_transform_job(store, job.id, OTHER_USER_ID) is False
        assert get_transform_job(store, job.id, USER_ID).status == TransformJobStatus.QUEUED

    def test_list_jobs_newest_first(self, seeded_store):
        first = execute_transform(seeded_store, _clone(), USER_ID, now=NOW)
        second = execute_transform(seeded_store, _clone(INVOICE_B_ID), USER_ID, now=NOW)

        jobs = list_transform_jobs(seeded_store, USER_ID)
        assert [j.id for j in jobs] == [second.job.id, first.job.id]
        assert list_transform_jobs(seeded_store, OTHER_USER_ID) == []
