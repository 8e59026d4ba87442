"""
Tests for the in-memory Firestore stand-in used in development and tests.
"""

import pytest
from datetime import datetime, timezone

from firebase_admin import firestore
from google.api_core import exceptions as gcp_exceptions

from safety_alerts.config.mock_firestore import MockFirestore


class TestMockFirestore:

    def test_transforms(self, db):
        ref = db.collection("c").document("d")
        ref.set({"count": 1, "stale": True, "at": None})
        ref.update({"count": firestore.Increment(2), "stale": firestore.DELETE_FIELD, "at": firestore.SERVER_TIMESTAMP})

        data = ref.get().to_dict()
        assert data["count"] == 3
        assert "stale" not in data
        assert isinstance(data["at"], datetime)

    def test_update_precondition(self, db):
        ref = db.collection("c").document("d")
        ref.set({"n": 1})
        snapshot = ref.get()
        ref.update({"n": 2})

        with pytest.raises(gcp_exceptions.FailedPrecondition):
            ref.update({"n": 3}, option=db.write_option(last_update_time=snapshot.update_time))
        assert ref.get().to_dict()["n"] == 2

    def test_create_and_update_errors(self, db):
        ref = db.collection("c").document("d")
        with pytest.raises(gcp_exceptions.NotFound):
            ref.update({"n": 1})
        ref.create({"n": 1})
        with pytest.raises(gcp_exceptions.Conflict):
            ref.create({"n": 2})

    def test_queries(self, db):
        col = db.collection("c")
        col.document("a").set({"kind": "x", "rank": 2})
        col.document("b").set({"kind": "y", "rank": 3})
        col.document("c").set({"kind": "x", "rank": 1})
        col.document("d").set({"kind": "x"})

        ordered = col.order_by("rank", direction=firestore.Query.DESCENDING).get()
        assert [doc.id for doc in ordered] == ["b", "a", "c"]
        assert [doc.id for doc in col.where("kind", "==", "x").order_by("rank").limit(1).stream()] == ["c"]

    def test_batch_is_all_or_nothing(self, db):
        target = db.collection("c").document("d")
        target.set({"count": 0})
        ledger = db.collection("ledger").document("entry")

        batch = db.batch()
        batch.create(ledger, {"n": 1})
        batch.update(target, {"count": firestore.Increment(1)})
        batch.update(db.collection("c").document("missing"), {"count": 1})
        with pytest.raises(gcp_exceptions.NotFound):
            batch.commit()

        assert not ledger.get().exists
        assert target.get().to_dict()["count"] == 0

        batch = db.batch()
        batch.create(ledger, {"n": 1})
        batch.update(target, {"count": firestore.Increment(1)})
        batch.commit()

        assert ledger.get().exists
        assert target.get().to_dict()["count"] == 1

    def test_snapshot_is_a_copy(self, db):
        ref = db.collection("c").document("d")
        ref.set({"tags": ["a"]})
        ref.get().to_dict()["tags"].append("b")
        assert ref.get().to_dict()["tags"] == ["a"]

    def test_persistence(self, tmp_path):
        path = str(tmp_path / "mock_db.json")
        when = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        MockFirestore(path).collection("alerts").document("a").set({"created_at": when, "title": "x"})

        reloaded = MockFirestore(path).collection("alerts").document("a").get()
        assert reloaded.to_dict() == {"created_at": when, "title": "x"}
