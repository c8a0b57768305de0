"""Error Hierarchy — envelopes and status codes.

Tests:
    - to_response carries code, category and attempt context
    - Persistence failures carry a user-facing message in the SSE envelope
    - Fetch and persistence errors stay distinct
    - Already-enrolled is a 409 business-rule conflict
"""

from enrollment.core.errors import (
    AlreadyEnrolledError, ErrorContext, FetchError, PersistenceError, ResourceNotFoundError,
)


def test_not_found_response_envelope():
    error = ResourceNotFoundError("Program", "p1", ErrorContext(person_uid="tei"))
    body = error.to_response()["error"]
    assert error.http_status == 404
    assert body["code"] == "RESOURCE_NOT_FOUND"
    assert body["message"] == "Program 'p1' not found"
    assert body["context"]["person_uid"] == "tei"


def test_persistence_error_sse_uses_user_message():
    error = PersistenceError("disk full", ErrorContext(attempt_id="att"))
    data = error.to_sse_event()["data"]
    assert data["code"] == "PERSISTENCE_ERROR"
    assert data["message"] == "The enrollment could not be saved."
    assert data["attempt_id"] == "att"
    assert data["recoverable"] is False


def test_fetch_and_persistence_errors_differ():
    fetch = FetchError("timeout", "org units")
    persist = PersistenceError("timeout")
    assert fetch.code != persist.code
    assert fetch.message == "Fetching org units failed: timeout"


def test_already_enrolled_is_a_conflict_with_user_message():
    error = AlreadyEnrolledError("anc", ErrorContext(person_uid="tei", program_uid="anc"))
    body = error.to_response()["error"]
    assert error.http_status == 409
    assert body["code"] == "ALREADY_ENROLLED"
    assert body["category"] == "business_rule"
    assert body["context"]["program_uid"] == "anc"
    assert error.to_sse_event()["data"]["message"] == (
        "The person is already enrolled in this program."
    )
