"""Tests for the follow-on suggestion job."""

from datetime import datetime
from unittest.mock import patch

import pytest

from metaledger_api.events.suggestions import eligible_candidates, should_generate_suggestions
from metaledger_api.metadata.enums import ValueSource
from metaledger_api.models import MetadataCandidate
from metaledger_worker.settings import Settings as WorkerSettings
from metaledger_worker.tasks import run_suggestion_job


@pytest.fixture
def worker_settings():
    return WorkerSettings(suggestion_min_confidence=0.9, suggestion_pipeline_task="suggestions.offer")


@pytest.fixture
def make_candidate(db, asset, tags_field):
    def _make(tag, confidence):
        candidate = MetadataCandidate(
            asset_id=asset.id,
            field_id=tags_field.id,
            value_json=tag,
            canonical_key=tag,
            confidence=confidence,
        )
        db.add(candidate)
        db.commit()
        return candidate

    return _make


class TestPreconditions:
    def test_pending_metadata_blocks_the_job(self, db, asset, quality_rating, seed_value):
        seed_value(asset, quality_rating, 3, source=ValueSource.USER, approved=False)
        assert should_generate_suggestions(db, asset) is False

    def test_completed_job_is_not_repeated(self, db, asset):
        asset.suggestions_completed_at = datetime(2026, 1, 1)
        db.commit()
        assert should_generate_suggestions(db, asset) is False

    def test_missing_asset(self, db):
        assert should_generate_suggestions(db, None) is False

    def test_only_confident_open_candidates_are_eligible(self, db, asset, make_candidate):
        high = make_candidate("sunset", 0.95)
        make_candidate("beach", 0.5)
        dismissed = make_candidate("forest", 0.99)
        dismissed.dismissed_at = datetime(2026, 1, 1)
        db.commit()

        assert [c.id for c in eligible_candidates(db, asset.id, 0.9)] == [high.id]


class TestRunSuggestionJob:
    def test_forwards_eligible_candidates_and_marks_completion(self, db, asset, tenant, make_candidate, worker_settings):
        candidate = make_candidate("sunset", 0.95)

        with patch("metaledger_worker.tasks.celery_app") as celery_app:
            result = run_suggestion_job(db, asset.id, tenant.id, worker_settings, correlation_id="req-1")

        assert result == [candidate.id]
        celery_app.signature.assert_called_once_with(
            "suggestions.offer",
            kwargs={
                "asset_id": asset.id,
                "tenant_id": tenant.id,
                "candidate_ids": [candidate.id],
                "correlation_id": "req-1",
            },
        )
        celery_app.signature.return_value.apply_async.assert_called_once()
        db.refresh(asset)
        assert asset.suggestions_completed_at is not None

    def test_second_delivery_is_skipped(self, db, asset, tenant, make_candidate, worker_settings):
        make_candidate("sunset", 0.95)

        with patch("metaledger_worker.tasks.celery_app") as celery_app:
            run_suggestion_job(db, asset.id, tenant.id, worker_settings)
            assert run_suggestion_job(db, asset.id, tenant.id, worker_settings) is None

        assert celery_app.signature.call_count == 1

    def test_pending_asset_is_skipped(self, db, asset, tenant, quality_rating, seed_value, worker_settings):
        seed_value(asset, quality_rating, 3, source=ValueSource.USER, approved=False)

        with patch("metaledger_worker.tasks.celery_app") as celery_app:
            assert run_suggestion_job(db, asset.id, tenant.id, worker_settings) is None

        celery_app.signature.assert_not_called()
        db.refresh(asset)
        assert asset.suggestions_completed_at is None

    def test_asset_of_another_tenant_is_skipped(self, db, asset, other_tenant, worker_settings):
        assert run_suggestion_job(db, asset.id, other_tenant.id, worker_settings) is None

    def test_no_candidates_still_completes(self, db, asset, tenant, worker_settings):
        with patch("metaledger_worker.tasks.celery_app") as celery_app:
            assert run_suggestion_job(db, asset.id, tenant.id, worker_settings) == []

        celery_app.signature.assert_not_called()
        db.refresh(asset)
        assert asset.suggestions_completed_at is not None
