"""
Tests for BatchRepository against an in-memory Supabase client: row mapping,
processed-id appends and progress writes on terminal batches.
"""

import asyncio

from backend.app.integrations.supabase import BatchRepository
from backend.app.models import AssignmentBatch, BatchStats, BatchStatus, PlatformStats

from fakes import NOW, FakeSupabase, make_candidate


def processing_batch(batch_id="batch_1", **overrides):
    candidates = [make_candidate(i) for i in range(3)]
    data = {
        "batch_id": batch_id,
        "status": BatchStatus.PROCESSING,
        "candidates": candidates,
        "candidate_ids": [c.id for c in candidates],
        "stats": BatchStats(total_candidates=3),
        "started_at": NOW,
    }
    data.update(overrides)
    return AssignmentBatch(**data)


def stored_row(db, batch_id):
    return next(r for r in db.tables["campaign_assignment_batches"] if r["batch_id"] == batch_id)


def test_batch_survives_save_and_load():
    repo = BatchRepository(FakeSupabase())
    batch = processing_batch(
        processed_ids=["contact-0"],
        dry_run=True,
        platform_id="platform-westland",
        stats=BatchStats(
            total_candidates=3, processed=1, added=1,
            platform_stats={"WestlandseBanen": PlatformStats(total=1, added=1)},
        ),
    )

    asyncio.run(repo.save(batch))
    restored = asyncio.run(repo.get("batch_1"))

    assert restored.status == BatchStatus.PROCESSING
    assert restored.candidates == batch.candidates
    assert restored.candidate_ids == batch.candidate_ids
    assert restored.processed_ids == ["contact-0"]
    assert restored.stats == batch.stats
    assert restored.dry_run
    assert restored.platform_id == "platform-westland"
    assert restored.started_at == NOW
    assert [c.id for c in restored.pending_candidates()] == ["contact-1", "contact-2"]


def test_missing_batch_is_none():
    repo = BatchRepository(FakeSupabase())

    assert asyncio.run(repo.get("batch_missing")) is None
    assert asyncio.run(repo.get_status("batch_missing")) is None


def test_append_processed_id_uses_rpc():
    db = FakeSupabase()
    repo = BatchRepository(db)
    asyncio.run(repo.save(processing_batch()))

    asyncio.run(repo.append_processed_id("batch_1", "contact-0"))

    assert db.rpc_calls == [("append_processed_contact_id", {"p_batch_id": "batch_1", "p_contact_id": "contact-0"})]
    assert stored_row(db, "batch_1")["processed_ids"] == ["contact-0"]
    assert ("campaign_assignment_batches", "update") not in db.calls


def test_append_fallback_never_duplicates():
    db = FakeSupabase(rpc_available=False)
    repo = BatchRepository(db)
    asyncio.run(repo.save(processing_batch()))

    for contact_id in ("contact-0", "contact-0", "contact-1"):
        asyncio.run(repo.append_processed_id("batch_1", contact_id))

    assert stored_row(db, "batch_1")["processed_ids"] == ["contact-0", "contact-1"]
    assert len(db.rpc_calls) == 3


def test_progress_is_frozen_once_batch_is_terminal():
    db = FakeSupabase()
    repo = BatchRepository(db)
    asyncio.run(repo.save(processing_batch()))

    written = asyncio.run(repo.update_progress("batch_1", BatchStats(total_candidates=3, processed=1, added=1)))
    assert written
    assert stored_row(db, "batch_1")["added"] == 1

    asyncio.run(repo.set_status("batch_1", BatchStatus.CANCELLED, completed=True))
    written = asyncio.run(repo.update_progress("batch_1", BatchStats(total_candidates=3, processed=2, added=2)))

    row = stored_row(db, "batch_1")
    assert not written
    assert (row["status"], row["processed"], row["added"]) == ("cancelled", 1, 1)
    assert row["completed_at"] is not None


def test_find_active_matches_mode_and_skips_channel_workers():
    repo = BatchRepository(FakeSupabase())
    asyncio.run(repo.save(processing_batch("batch_real")))
    asyncio.run(repo.save(processing_batch("batch_preview", dry_run=True)))
    asyncio.run(repo.save(processing_batch("batch_worker", orchestration_id="orch_1")))

    assert asyncio.run(repo.find_active()).batch_id == "batch_real"
    assert asyncio.run(repo.find_active(dry_run=True)).batch_id == "batch_preview"


def test_latest_active_id_ignores_stale_selection():
    repo = BatchRepository(FakeSupabase())
    asyncio.run(repo.save(processing_batch("batch_running")))
    asyncio.run(repo.save(processing_batch("batch_stale", status=BatchStatus.SELECTING)))

    assert asyncio.run(repo.find_latest_active_id()) == "batch_running"


def test_record_error_keeps_status():
    db = FakeSupabase()
    repo = BatchRepository(db)
    asyncio.run(repo.save(processing_batch()))

    asyncio.run(repo.record_error("batch_1", "TimeoutError: read timed out"))

    row = stored_row(db, "batch_1")
    assert row["status"] == "processing"
    assert row["last_error"] == "TimeoutError: read timed out"
