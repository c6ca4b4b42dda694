"""Tests for the Python SDK."""

from unittest.mock import Mock

import pytest

from metaledger_sdk import MetaLedgerClient, MetaLedgerError


def _response(status_code, body):
    response = Mock(status_code=status_code)
    response.json.return_value = body
    return response


@pytest.fixture
def session():
    session = Mock()
    session.headers = {}
    return session


def test_api_key_header_is_set(session):
    MetaLedgerClient("mlk_test_key", session=session)
    assert session.headers["x-api-key"] == "mlk_test_key"


def test_write_value_posts_payload(session):
    session.request.return_value = _response(200, {"entry_id": 7, "pending": True, "skipped": False})
    client = MetaLedgerClient("mlk_test_key", base_url="http://api:8000/", session=session)

    result = client.write_value(3, 5, 4)

    assert result["entry_id"] == 7
    session.request.assert_called_once_with(
        "POST",
        "http://api:8000/v1/assets/3/metadata",
        json={"field_id": 5, "value": 4, "override_intent": False},
    )


def test_error_body_becomes_metaledger_error(session):
    session.request.return_value = _response(
        422,
        {"error": "requires_override_intent", "detail": "Field is hybrid", "requires_override": True},
    )
    client = MetaLedgerClient("mlk_test_key", session=session)

    with pytest.raises(MetaLedgerError) as exc_info:
        client.write_value(3, 9, "indoor")

    error = exc_info.value
    assert error.status_code == 422
    assert error.code == "requires_override_intent"
    assert error.message == "Field is hybrid"
    assert error.details == {"requires_override": True}


def test_bulk_execute(session):
    session.request.return_value = _response(200, {"total": 1, "successes": [{"asset_id": 1}], "failures": []})
    client = MetaLedgerClient("mlk_test_key", session=session)

    assert client.bulk_execute("token-1")["total"] == 1
    assert session.request.call_args.kwargs["json"] == {"token": "token-1"}
