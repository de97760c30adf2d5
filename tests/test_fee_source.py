"""Tests for the mempool.space fee source client."""

import json
from unittest.mock import Mock
import requests
from feetracker.fee_source import FeeSourceClient
from feetracker.fees import FeeSnapshot, FeeRange, BlockHeight


def make_client(payload=None, status_code=200, side_effect=None):
    """Client whose session returns one canned response."""
    session = Mock()
    session.headers = {}
    if side_effect is not None:
        session.get.side_effect = side_effect
    else:
        response = Mock(status_code=status_code, reason="OK" if status_code < 400 else "Error")
        response.json.return_value = payload
        session.get.return_value = response
    return FeeSourceClient("https://mempool.test/api/v1/", timeout_secs=10, session=session), session


def test_fetch_fees_success():
    """Test a valid fee response becomes a snapshot."""
    client, session = make_client({"fastestFee": 21, "halfHourFee": 14, "hourFee": 9, "minimumFee": 1})

    result = client.fetch_fees()

    assert result.success is True
    assert result.data == FeeSnapshot(21, 14, 9)
    assert result.error is None
    session.get.assert_called_once_with("https://mempool.test/api/v1/fees/recommended", timeout=10)
    assert session.headers["Accept"] == "application/json"


def test_fetch_fees_malformed_response():
    """Test that negative or missing fee fields are rejected."""
    client, _ = make_client({"fastestFee": -1, "halfHourFee": 14, "hourFee": 9})
    result = client.fetch_fees()
    assert result.success is False
    assert result.data is None
    assert result.error_type == "MalformedResponse"

    client, _ = make_client({"fastestFee": 20, "halfHourFee": 14})
    assert client.fetch_fees().error_type == "MalformedResponse"


def test_fetch_fees_rejects_infinity():
    """Test that a non-finite fee in the JSON body is a malformed response."""
    client, _ = make_client(json.loads('{"fastestFee": Infinity, "halfHourFee": 5, "hourFee": 3}'))
    result = client.fetch_fees()
    assert result.success is False
    assert result.data is None
    assert result.error_type == "MalformedResponse"


def test_fetch_fees_invalid_json():
    client, session = make_client()
    session.get.return_value.json.side_effect = ValueError("Expecting value")
    result = client.fetch_fees()
    assert result.success is False
    assert result.error_type == "MalformedResponse"


def test_fetch_fees_http_error():
    """Test that non-2xx statuses are network errors."""
    client, _ = make_client({"fastestFee": 1, "halfHourFee": 1, "hourFee": 1}, status_code=503)
    result = client.fetch_fees()
    assert result.success is False
    assert result.error_type == "NetworkError"
    assert "503" in result.error


def test_fetch_fees_timeout_and_connection_errors():
    """Test that transport failures never raise past the client."""
    client, _ = make_client(side_effect=requests.Timeout("read timed out"))
    result = client.fetch_fees()
    assert result.success is False
    assert result.error_type == "NetworkError"
    assert "timed out" in result.error

    client, _ = make_client(side_effect=requests.ConnectionError("connection refused"))
    result = client.fetch_fees()
    assert result.success is False
    assert result.error_type == "NetworkError"
    assert client.test_connection() is False


def test_fetch_block_height():
    client, session = make_client(870123)
    result = client.fetch_block_height()
    assert result.success is True
    assert result.data == BlockHeight(height=870123)
    session.get.assert_called_once_with("https://mempool.test/api/v1/blocks/tip/height", timeout=10)

    client, _ = make_client(0)
    assert client.fetch_block_height().error_type == "MalformedResponse"

    client, _ = make_client("870123")
    assert client.fetch_block_height().success is False


def test_fetch_next_block_fee_range():
    client, _ = make_client([{"feeRange": [2, 3, 5, 60]}, {"feeRange": [1, 2]}])
    result = client.fetch_next_block_fee_range()
    assert result.success is True
    assert result.data == FeeRange(min=2, max=60)

    client, _ = make_client([])
    assert client.fetch_next_block_fee_range().error_type == "MalformedResponse"
