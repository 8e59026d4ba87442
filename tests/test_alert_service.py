"""
Tests for the alert lifecycle: creation, expiry, transitions and votes.
"""

import threading
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

from firebase_admin import firestore

from safety_alerts.config.mock_firestore import MockDocumentReference
from safety_alerts.core.errors import (
    AuthenticationError,
    AuthorizationError,
    BackendError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from safety_alerts.models.alert import AlertStatus
from safety_alerts.models.user import Session
from safety_alerts.services.alert_service import AlertService
from safety_alerts.services.geocoding import GeocodingProvider
from safety_alerts.services.status_workflow import StatusWorkflowEngine
from safety_alerts.services.visibility import AlertFilter, StatusFilter, apply_filters
from tests.conftest import make_session


ROBBERY = {
    "type": "type1",
    "title": "Robbery reported",
    "description": "Armed robbery near market",
    "latitude": 6.52,
    "longitude": 3.37,
    "ttlMinutes": 30,
}


def store_alert(db, alert_id, **overrides):
    now = datetime.now(timezone.utc)
    data = {
        "creator_uid": "admin-1",
        "type": "test",
        "title": "Stored alert",
        "description": "Written straight to the store",
        "latitude": 0.0,
        "longitude": 0.0,
        "created_at": now,
        "expires_at": now + timedelta(minutes=15),
        "status": "active",
        "upvotes": 0,
        "downvotes": 0,
    }
    data.update(overrides)
    db.collection("alerts").document(alert_id).set(data)


class FixedGeocoder(GeocodingProvider):
    def __init__(self):
        self.calls = []

    def reverse_geocode(self, latitude, longitude):
        self.calls.append((latitude, longitude))
        return {
            "formatted": "Ikeja, Lagos State, Nigeria",
            "locality": "Ikeja",
            "state": "Lagos State",
            "country": "Nigeria",
            "provider": "fixed",
        }


class TestCreateAlert:

    def test_created_alert_is_listed_as_active(self, service, admin_session):
        """create then list_active includes the alert with expires_at = now + ttl."""
        before = datetime.now(timezone.utc)
        alert_id = service.create_alert(ROBBERY, admin_session)

        active = service.list_active()
        assert [a.id for a in active] == [alert_id]
        alert = active[0]
        assert alert.status == AlertStatus.ACTIVE
        assert alert.creator_uid == "admin-1"
        assert alert.upvotes == 0 and alert.downvotes == 0
        assert alert.expires_at - alert.created_at == timedelta(minutes=30)
        assert abs(alert.expires_at - (before + timedelta(minutes=30))) < timedelta(seconds=1)

    def test_default_ttl(self, service, admin_session):
        data = {k: v for k, v in ROBBERY.items() if k != "ttlMinutes"}
        alert = service.get_alert(service.create_alert(data, admin_session))
        assert alert.expires_at - alert.created_at == timedelta(minutes=15)

    @pytest.mark.parametrize("ttl", [0, 721, -5])
    def test_ttl_out_of_range(self, service, admin_session, ttl):
        with pytest.raises(ValidationError):
            service.create_alert({**ROBBERY, "ttlMinutes": ttl}, admin_session)

    @pytest.mark.parametrize("field,value", [
        ("title", "ab"),
        ("title", "x" * 101),
        ("description", "too short"),
        ("description", "x" * 501),
        ("type", "type9"),
        ("latitude", 91),
    ])
    def test_invalid_fields(self, service, admin_session, field, value):
        with pytest.raises(ValidationError):
            service.create_alert({**ROBBERY, field: value}, admin_session)
        assert service.list_history() == []

    def test_anonymous_creator(self, service):
        alert = service.get_alert(service.create_alert(ROBBERY, Session.anonymous()))
        assert alert.creator_uid == "anonymous"

    def test_notifies_matching_registered_phones(self, service, registry, transport, admin_session):
        registry.register("admin-1", {"name": "All", "phone_number": "+2348000000001"})
        registry.register("admin-1", {"name": "Robbery", "phone_number": "+2348000000002", "categories": ["type1"]})
        registry.register("admin-1", {"name": "Floods", "phone_number": "+2348000000003", "categories": ["type2"]})
        off_id = registry.register("admin-1", {"name": "Off", "phone_number": "+2348000000004"})
        registry.deactivate(off_id)

        service.create_alert(ROBBERY, admin_session)

        assert sorted(to for to, _ in transport.sent) == ["+2348000000001", "+2348000000002"]
        assert transport.sent[0][1] == "[TYPE1] Robbery reported: Armed robbery near market"

    def test_dispatch_failure_does_not_fail_creation(self, db, registry, admin_session):
        registry.register("admin-1", {"name": "All", "phone_number": "+2348000000001"})
        broken = MagicMock()
        broken.send.side_effect = RuntimeError("SMS service not configured")
        service = AlertService(db=db, dispatcher=broken, phone_registry=registry, geocoder=None)

        alert_id = service.create_alert(ROBBERY, admin_session)

        broken.send.assert_called_once()
        assert service.get_alert(alert_id).status == AlertStatus.ACTIVE

    def test_notification_disabled(self, service, registry, transport, admin_session, test_settings, monkeypatch):
        monkeypatch.setattr(test_settings, "ALERT_SMS_ON_CREATE", False)
        registry.register("admin-1", {"name": "All", "phone_number": "+2348000000001"})
        service.create_alert(ROBBERY, admin_session)
        assert transport.sent == []

    def test_geocoder_fills_missing_location(self, db, dispatcher, registry, admin_session):
        geocoder = FixedGeocoder()
        service = AlertService(db=db, dispatcher=dispatcher, phone_registry=registry, geocoder=geocoder)

        alert = service.get_alert(service.create_alert({**ROBBERY, "locationName": "Allen Avenue"}, admin_session))

        assert geocoder.calls == [(6.52, 3.37)]
        assert alert.location_name == "Allen Avenue"
        assert alert.location_state == "Lagos State"
        assert alert.location_country == "Nigeria"

    def test_geocoder_skipped_when_location_complete(self, db, dispatcher, registry, admin_session):
        geocoder = FixedGeocoder()
        service = AlertService(db=db, dispatcher=dispatcher, phone_registry=registry, geocoder=geocoder)
        service.create_alert(
            {**ROBBERY, "locationName": "Ikeja", "locationState": "Lagos", "locationCountry": "Nigeria"},
            admin_session,
        )
        assert geocoder.calls == []


class TestExpiry:

    def test_expired_alert_only_in_history(self, db, service):
        """Expired but still active: out of the live view, kept in history."""
        past = datetime.now(timezone.utc) - timedelta(hours=2)
        store_alert(db, "old", created_at=past, expires_at=past + timedelta(minutes=15))
        store_alert(db, "fresh")

        assert [a.id for a in service.list_active()] == ["fresh"]
        history = service.list_history()
        assert [a.id for a in history] == ["fresh", "old"]
        assert history[1].status == AlertStatus.ACTIVE

    def test_alert_without_expiry_stays_active(self, db, service):
        store_alert(db, "forever", expires_at=None)
        assert [a.id for a in service.list_active()] == ["forever"]

    def test_unknown_status_is_read_as_active(self, db, service):
        store_alert(db, "legacy")
        db.collection("alerts").document("legacy").update({"status": "unknown"})
        assert service.get_alert("legacy").status == AlertStatus.ACTIVE

    def test_list_active_at_given_time(self, service, admin_session):
        service.create_alert(ROBBERY, admin_session)
        later = datetime.now(timezone.utc) + timedelta(minutes=31)
        assert service.list_active(now=later) == []


class TestTransitions:

    def test_resolve(self, service, admin_session):
        alert_id = service.create_alert(ROBBERY, admin_session)

        alert = service.resolve(alert_id, admin_session)

        assert alert.status == AlertStatus.RESOLVED
        assert alert.resolved_by == "admin-1"
        assert alert.resolved_at is not None
        assert alert.false_flagged_at is None

    def test_second_resolve_keeps_first(self, service, admin_session):
        alert_id = service.create_alert(ROBBERY, admin_session)
        first = service.resolve(alert_id, admin_session)

        with pytest.raises(InvalidTransitionError):
            service.resolve(alert_id, make_session(uid="admin-2", email="two@example.com"))

        again = service.get_alert(alert_id)
        assert again.status == AlertStatus.RESOLVED
        assert again.resolved_by == "admin-1"
        assert again.resolved_at == first.resolved_at

    def test_mark_false(self, service, admin_session):
        alert_id = service.create_alert(ROBBERY, admin_session)
        alert = service.mark_false(alert_id, admin_session)

        assert alert.status == AlertStatus.FALSE
        assert alert.false_flagged_by == "admin-1"
        assert alert.resolved_at is None

    def test_terminal_states_do_not_flip(self, service, admin_session):
        resolved_id = service.create_alert(ROBBERY, admin_session)
        false_id = service.create_alert(ROBBERY, admin_session)
        service.resolve(resolved_id, admin_session)
        service.mark_false(false_id, admin_session)

        with pytest.raises(InvalidTransitionError):
            service.mark_false(resolved_id, admin_session)
        with pytest.raises(InvalidTransitionError):
            service.resolve(false_id, admin_session)

    def test_expired_active_alert_can_be_resolved(self, db, service, admin_session):
        past = datetime.now(timezone.utc) - timedelta(hours=2)
        store_alert(db, "old", created_at=past, expires_at=past + timedelta(minutes=15))
        assert service.resolve("old", admin_session).status == AlertStatus.RESOLVED

    def test_non_admin_cannot_transition(self, service, admin_session, user_session):
        alert_id = service.create_alert(ROBBERY, admin_session)
        with pytest.raises(AuthorizationError):
            service.resolve(alert_id, user_session)

    def test_missing_alert(self, service, admin_session):
        with pytest.raises(NotFoundError):
            service.resolve("nope", admin_session)

    def test_transition_retries_after_concurrent_write(self, db, service, admin_session):
        """A vote landing between read and write only forces a re-check."""
        alert_id = service.create_alert(ROBBERY, admin_session)
        original_write_option = db.write_option
        raced = []

        def racing_write_option(**kwargs):
            if not raced:
                raced.append(True)
                db.collection("alerts").document(alert_id).update({"upvotes": 1})
            return original_write_option(**kwargs)

        db.write_option = racing_write_option
        alert = service.resolve(alert_id, admin_session)

        assert raced
        assert alert.status == AlertStatus.RESOLVED
        assert alert.upvotes == 1

    def test_transition_that_never_settles_is_a_server_error(self, db, service, admin_session):
        alert_id = service.create_alert(ROBBERY, admin_session)
        original_write_option = db.write_option

        def always_racing_write_option(**kwargs):
            db.collection("alerts").document(alert_id).update({"upvotes": firestore.Increment(1)})
            return original_write_option(**kwargs)

        db.write_option = always_racing_write_option
        with pytest.raises(BackendError) as exc_info:
            service.resolve(alert_id, admin_session)

        assert exc_info.value.status_code == 500
        assert service.get_alert(alert_id).status == AlertStatus.ACTIVE

    def test_terminal_status_error_names_the_final_status(self, service, admin_session):
        alert_id = service.create_alert(ROBBERY, admin_session)
        service.resolve(alert_id, admin_session)

        with pytest.raises(InvalidTransitionError, match="already resolved"):
            service.mark_false(alert_id, admin_session)

    def test_end_to_end_resolve_leaves_active_view(self, service, admin_session):
        alert_id = service.create_alert(ROBBERY, admin_session)
        assert alert_id in [a.id for a in service.list_active()]

        service.resolve(alert_id, admin_session)

        assert apply_filters(service.list_history(), AlertFilter(status=StatusFilter.ACTIVE)) == []
        history = service.list_history()
        assert [(a.id, a.status) for a in history] == [(alert_id, AlertStatus.RESOLVED)]
        assert service.list_active() == []


class TestVotes:

    def test_upvote_only_touches_upvotes(self, service, admin_session):
        alert_id = service.create_alert(ROBBERY, admin_session)
        result = service.vote(alert_id, "up", Session.anonymous())
        assert (result.upvotes, result.downvotes) == (1, 0)

        result = service.vote(alert_id, "down", Session.anonymous())
        assert (result.upvotes, result.downvotes) == (1, 1)

    def test_one_vote_per_signed_in_user(self, service, admin_session, user_session):
        alert_id = service.create_alert(ROBBERY, admin_session)
        service.vote(alert_id, "up", user_session)

        with pytest.raises(ValidationError):
            service.vote(alert_id, "down", user_session)
        alert = service.get_alert(alert_id)
        assert (alert.upvotes, alert.downvotes) == (1, 0)

    def test_anonymous_votes_can_be_disabled(self, service, admin_session, test_settings, monkeypatch):
        monkeypatch.setattr(test_settings, "ALLOW_ANONYMOUS_VOTES", False)
        alert_id = service.create_alert(ROBBERY, admin_session)
        with pytest.raises(AuthenticationError):
            service.vote(alert_id, "up", Session.anonymous())

    def test_invalid_direction(self, service, admin_session):
        alert_id = service.create_alert(ROBBERY, admin_session)
        with pytest.raises(ValidationError):
            service.vote(alert_id, "sideways", admin_session)

    def test_vote_on_missing_alert(self, service, user_session):
        with pytest.raises(NotFoundError):
            service.vote("nope", "up", user_session)

    def test_concurrent_votes_are_not_lost(self, service, admin_session):
        alert_id = service.create_alert(ROBBERY, admin_session)
        voters = [make_session(uid=f"voter-{i}", email=None) for i in range(20)]

        threads = [threading.Thread(target=service.vote, args=(alert_id, "up", s)) for s in voters]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        alert = service.get_alert(alert_id)
        assert alert.upvotes == 20
        assert alert.downvotes == 0

    def test_failed_increment_leaves_no_ledger_entry(self, db, service, admin_session, user_session):
        """An alert removed between the existence check and the commit records no vote."""
        alert_id = service.create_alert(ROBBERY, admin_session)
        original_get = MockDocumentReference.get

        def get_then_remove(ref, *args, **kwargs):
            snapshot = original_get(ref, *args, **kwargs)
            if ref.path == f"alerts/{alert_id}" and snapshot.exists:
                ref.delete()
            return snapshot

        with patch.object(MockDocumentReference, "get", get_then_remove):
            with pytest.raises(NotFoundError):
                service.vote(alert_id, "up", user_session)

        assert not db.collection("alert_votes").document(f"{alert_id}_user-1").get().exists

    def test_vote_after_failed_commit_is_accepted(self, db, service, admin_session, user_session):
        alert_id = service.create_alert(ROBBERY, admin_session)
        failing_batch = MagicMock()
        failing_batch.commit.side_effect = RuntimeError("store unavailable")

        with patch.object(db, "batch", return_value=failing_batch):
            with pytest.raises(RuntimeError):
                service.vote(alert_id, "up", user_session)

        result = service.vote(alert_id, "up", user_session)
        assert (result.upvotes, result.downvotes) == (1, 0)


class TestQueries:

    def test_list_by_creator(self, service, admin_session):
        mine = service.create_alert(ROBBERY, admin_session)
        service.create_alert(ROBBERY, make_session(uid="admin-2", email="two@example.com"))
        assert [a.id for a in service.list_by_creator("admin-1")] == [mine]

    def test_list_near_orders_by_distance(self, db, service):
        store_alert(db, "market", latitude=6.5244, longitude=3.3792)
        store_alert(db, "island", latitude=6.4541, longitude=3.3947)
        store_alert(db, "abuja", latitude=9.0765, longitude=7.3986)

        nearby = service.list_near(6.5244, 3.3792, 10000)

        assert [item.alert.id for item in nearby] == ["market", "island"]
        assert nearby[0].distance_meters == 0

    def test_list_near_rejects_bad_radius(self, service):
        with pytest.raises(ValidationError):
            service.list_near(0, 0, 0)

    def test_subscribe_active_replaces_snapshots(self, service, admin_session):
        snapshots = []
        subscription = service.subscribe_active(snapshots.append)
        assert snapshots == [[]]

        alert_id = service.create_alert(ROBBERY, admin_session)
        assert [a.id for a in snapshots[-1]] == [alert_id]

        service.resolve(alert_id, admin_session)
        assert snapshots[-1] == []

        subscription.cancel()
        count = len(snapshots)
        service.create_alert(ROBBERY, admin_session)
        assert len(snapshots) == count

    def test_subscribe_history_keeps_resolved(self, service, admin_session):
        snapshots = []
        subscription = service.subscribe_history(snapshots.append)
        alert_id = service.create_alert(ROBBERY, admin_session)
        service.resolve(alert_id, admin_session)

        assert [(a.id, a.status) for a in snapshots[-1]] == [(alert_id, AlertStatus.RESOLVED)]
        subscription.cancel()


class TestStatusWorkflow:

    @pytest.mark.parametrize("status_value,terminal", [
        ("active", False),
        ("resolved", True),
        ("false", True),
        ("unknown", False),
    ])
    def test_is_terminal(self, status_value, terminal):
        assert StatusWorkflowEngine.is_terminal(status_value) is terminal

    def test_active_lists_both_exits(self):
        assert StatusWorkflowEngine.get_allowed_transitions("active") == ["resolved", "false"]
        StatusWorkflowEngine.validate_transition("active", "false")

    def test_reopening_is_rejected(self):
        with pytest.raises(InvalidTransitionError, match="final status"):
            StatusWorkflowEngine.validate_transition("false", "active")
