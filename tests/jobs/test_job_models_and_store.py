from __future__ import annotations

import random

import pytest
from pydantic import ValidationError

from trainwatch.jobs import (
    JobCollection,
    JobRecord,
    decode_json_object,
    parse_realtime_job,
)


def _job(job_id: str, status: str = "running", **extra) -> JobRecord:
    return JobRecord.from_payload({"job_id": job_id, "status": status, **extra})


def test_from_payload_keeps_unknown_fields_as_extra():
    record = JobRecord.from_payload(
        {
            "job_id": "abc",
            "status": "running",
            "current_epoch": 3,
            "total_epochs": 10,
            "metrics": '{"loss": 0.4}',
            "model_type": "lstm",
            "dataset_id": 12,
        }
    )
    assert record.metrics == {"loss": 0.4}
    assert record.extra == {"model_type": "lstm", "dataset_id": 12}
    assert record.is_active
    assert record.to_dict()["model_type"] == "lstm"


def test_from_payload_requires_job_id():
    with pytest.raises(ValueError):
        JobRecord.from_payload({"status": "running"})


def test_merge_is_field_level_and_preserves_local_fields():
    local = _job("abc", model_name="My model", current_epoch=1, total_epochs=5)
    merged = local.merged({"job_id": "abc", "status": "completed", "current_epoch": 5})

    assert merged.status == "completed"
    assert merged.current_epoch == 5
    assert merged.total_epochs == 5
    assert merged.extra["model_name"] == "My model"


def test_merge_rejects_a_different_job():
    with pytest.raises(ValueError):
        _job("abc").merged({"job_id": "other"})


def test_malformed_json_subfields_decode_to_empty_objects():
    row = parse_realtime_job(
        {
            "job_id": "abc",
            "user_id": 7,
            "status": "running",
            "metrics": "{not json",
            "best_metrics": '{"acc": 0.9}',
            "config": "[1, 2]",
        }
    )
    assert row["metrics"] == {}
    assert row["best_metrics"] == {"acc": 0.9}
    assert row["config"] == {}
    assert row["user_id"] == 7


def test_parse_realtime_job_only_returns_carried_fields():
    row = parse_realtime_job({"job_id": 5, "status": "failed"})
    assert row == {"job_id": "5", "status": "failed"}


def test_parse_realtime_job_without_job_id_fails_validation():
    with pytest.raises(ValidationError):
        parse_realtime_job({"status": "running"})


def test_decode_json_object_variants():
    assert decode_json_object(None) == {}
    assert decode_json_object({"a": 1}) == {"a": 1}
    assert decode_json_object('{"a": 1}') == {"a": 1}
    assert decode_json_object("null") == {}
    assert decode_json_object(3) == {}


def test_insert_for_existing_id_is_a_noop():
    jobs = JobCollection([_job("abc", "running")])
    assert not jobs.apply_insert(_job("abc", "pending"))
    assert len(jobs) == 1
    assert jobs.get("abc").status == "running"


def test_insert_appends_new_jobs():
    jobs = JobCollection([_job("a")])
    assert jobs.apply_insert(_job("b"))
    assert [j.job_id for j in jobs] == ["a", "b"]


def test_update_for_unknown_id_leaves_collection_untouched():
    jobs = JobCollection([_job("a")])
    assert jobs.apply_update({"job_id": "zzz", "status": "failed"}) is None
    assert jobs.snapshot() == (_job("a"),)


def test_delete_for_absent_id_is_a_noop():
    jobs = JobCollection([_job("a")])
    assert not jobs.apply_delete("missing")
    assert jobs.apply_delete("a")
    assert not jobs.apply_delete("a")
    assert len(jobs) == 0


def test_replace_all_deduplicates_snapshot_rows():
    jobs = JobCollection()
    jobs.replace_all([_job("a", "pending"), _job("b"), _job("a", "completed")])
    assert [j.job_id for j in jobs] == ["a", "b"]
    assert jobs.get("a").status == "completed"


def test_random_event_sequences_keep_ids_unique():
    rng = random.Random(1234)
    ids = ["a", "b", "c"]
    for _ in range(200):
        jobs = JobCollection()
        last: dict[str, str | None] = {}
        for step in range(30):
            job_id = rng.choice(ids)
            op = rng.choice(["insert", "update", "delete"])
            status = rng.choice(["pending", "running", "completed"])
            if op == "insert":
                if jobs.apply_insert(_job(job_id, status)):
                    last[job_id] = status
            elif op == "update":
                if jobs.apply_update({"job_id": job_id, "status": status}) is not None:
                    last[job_id] = status
            else:
                jobs.apply_delete(job_id)
                last[job_id] = None

            seen = [j.job_id for j in jobs]
            assert len(seen) == len(set(seen))

        for job_id, status in last.items():
            current = jobs.get(job_id)
            assert (current.status if current else None) == status


def test_has_active_jobs():
    assert not JobCollection([_job("a", "completed"), _job("b", "failed")]).has_active_jobs
    assert JobCollection([_job("a", "completed"), _job("b", "pending")]).has_active_jobs
