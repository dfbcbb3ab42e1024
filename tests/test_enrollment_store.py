from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from app.models.audit_log import AuditLog
from app.models.submission_result import SubmissionResult
from app.services.carriers.adapter import CarrierPolicyOutcome
from app.services.enrollment_store import EnrollmentStore, stale_claim_cutoff
from conftest import FakeResult, make_application, make_coverage


@pytest.mark.asyncio
async def test_claim_succeeds_when_one_row_matches(fake_db):
    fake_db.on_execute_return(FakeResult(rowcount=1))
    store = EnrollmentStore(fake_db)

    claimed = await store.claim_for_submission(uuid4(), expected_status="approved")

    assert claimed is True
    assert fake_db.commits == 1
    sql = str(fake_db.executed[0])
    assert "UPDATE applications" in sql
    assert "applications.status =" in sql
    assert "applications.submission_started_at <" not in sql


@pytest.mark.asyncio
async def test_claim_loses_when_no_row_matches(fake_db):
    fake_db.on_execute_return(FakeResult(rowcount=0))

    claimed = await EnrollmentStore(fake_db).claim_for_submission(
        uuid4(), expected_status="approved"
    )

    assert claimed is False


@pytest.mark.asyncio
async def test_stale_claim_requires_old_start_time(fake_db):
    fake_db.on_execute_return(FakeResult(rowcount=1))

    await EnrollmentStore(fake_db).claim_for_submission(
        uuid4(), expected_status="submitting", stale_before=stale_claim_cutoff(10)
    )

    sql = str(fake_db.executed[0])
    assert "applications.submission_started_at <" in sql
    assert "applications.carrier_submitted_at IS NULL" in sql


@pytest.mark.asyncio
async def test_carrier_call_marker_is_committed(fake_db):
    await EnrollmentStore(fake_db).mark_carrier_call_started(uuid4())

    assert fake_db.commits == 1
    sql = str(fake_db.executed[0])
    assert "UPDATE applications" in sql
    assert "carrier_submitted_at=" in sql


def test_stale_claim_cutoff_is_in_the_past():
    cutoff = stale_claim_cutoff(10)

    assert datetime.now(timezone.utc) - cutoff >= timedelta(minutes=10)


@pytest.mark.asyncio
async def test_get_application_loads_coverages(fake_db):
    application = make_application(coverages=[make_coverage()])
    fake_db.on_execute_return(FakeResult(items=[application]))

    loaded = await EnrollmentStore(fake_db).get_application(application.id)

    assert loaded is application
    assert loaded.coverages[0].plan_key == "PLAN-A"


@pytest.mark.asyncio
async def test_append_results_and_status_change_are_staged(fake_db):
    store = EnrollmentStore(fake_db)
    application_id = uuid4()

    rows = store.append_results(
        application_id,
        "allstate",
        [CarrierPolicyOutcome("PLAN-A", True, policy_no="P-1", total_rate=Decimal("312.50"))],
    )
    store.record_status_change(
        application_id,
        actor_id=None,
        old_status="approved",
        new_status="submitted",
        carrier_slug="allstate",
    )

    assert rows[0].policy_no == "P-1"
    result_rows = [obj for obj in fake_db.added if isinstance(obj, SubmissionResult)]
    audit_rows = [obj for obj in fake_db.added if isinstance(obj, AuditLog)]
    assert result_rows == rows
    assert audit_rows[0].action == "application.status_changed"
    assert audit_rows[0].new_values == {"status": "submitted"}
    assert audit_rows[0].activity_metadata["changes"] == {
        "status": {"from": "approved", "to": "submitted"}
    }
    assert fake_db.commits == 0


@pytest.mark.asyncio
async def test_mark_failed_clears_claim(fake_db):
    await EnrollmentStore(fake_db).mark_failed(uuid4(), {"message": "boom"})

    sql = str(fake_db.executed[0])
    assert "UPDATE applications" in sql
    assert "api_error" in sql


@pytest.mark.asyncio
async def test_list_results_returns_rows(fake_db):
    rows = [SubmissionResult(id=uuid4(), plan_key="PLAN-A", submission_received=True)]
    fake_db.on_execute_return(FakeResult(items=rows))

    assert await EnrollmentStore(fake_db).list_results(uuid4()) == rows
