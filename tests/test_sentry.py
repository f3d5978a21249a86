"""Tests for the error-report filters."""

from fastapi import HTTPException

from elan.integrations.sentry import _filter_events, _filter_transactions, capture_exception
from elan.storage import ConflictError, StorageError


def hint_for(error):
    return {"exc_info": (type(error), error, None)}


class TestFilterEvents:
    def test_expected_http_errors_dropped(self):
        for status in (401, 403, 404, 409, 422):
            assert _filter_events({}, hint_for(HTTPException(status_code=status))) is None

    def test_server_errors_kept(self):
        event = {"level": "error"}
        assert _filter_events(event, hint_for(HTTPException(status_code=500))) is event
        assert _filter_events(event, hint_for(StorageError("db down"))) is event

    def test_conflicts_dropped(self):
        assert _filter_events({}, hint_for(ConflictError("duplicate"))) is None

    def test_credentials_scrubbed(self):
        event = {"request": {"headers": {"Authorization": "Bearer abc", "Accept": "text/html"}}}
        filtered = _filter_events(event, {})

        assert filtered["request"]["headers"]["Authorization"] == "[Filtered]"
        assert filtered["request"]["headers"]["Accept"] == "text/html"


class TestFilterTransactions:
    def test_health_dropped(self):
        assert _filter_transactions({"transaction": "/health"}, {}) is None
        assert _filter_transactions({"transaction": "/events"}, {}) is not None


def test_capture_without_sentry_is_noop():
    assert capture_exception(ValueError("x"), location_id="loc") is None
