"""
Tests for the IPFS pinning service client.
"""
import json

import pytest
import requests

from nftmint_sdk.exceptions import InvalidInput, NetworkError, ServiceError
from nftmint_sdk.storage import PinnerClient

from test_helpers.fakes import PNG_STUB, TEST_GATEWAY, TEST_PINNER_URL

CID = "QmYwAPJzv5CZsnA625s3Xf2nemtYgPpHdWEz79ojWnPbdG"


@pytest.fixture
def client():
    return PinnerClient(TEST_PINNER_URL, gateway=TEST_GATEWAY, api_token="secret-token")


def test_upload_posts_multipart_file(client, requests_mock):
    requests_mock.post(f"{TEST_PINNER_URL}/pin/file", json={"cid": CID})

    uri = client.upload(PNG_STUB, "image/png")

    assert uri == f"ipfs://{CID}"
    request = requests_mock.last_request
    assert request.headers["Authorization"] == "Bearer secret-token"
    assert request.headers["User-Agent"].startswith("nftmint-sdk/")
    assert request.headers["Content-Type"].startswith("multipart/form-data")
    assert b"image/png" in request.body
    assert PNG_STUB in request.body


def test_upload_json_posts_canonical_body(client, requests_mock):
    requests_mock.post(f"{TEST_PINNER_URL}/pin", json={"cid": CID})

    uri = client.upload_json({"symbol": "X", "name": "X"})

    assert uri == f"ipfs://{CID}"
    request = requests_mock.last_request
    assert request.headers["Content-Type"] == "application/json"
    assert request.body == b'{"name":"X","symbol":"X"}'


@pytest.mark.parametrize("status, transient", [(500, True), (503, True), (429, True), (400, False), (401, False)])
def test_error_status_maps_to_service_error(client, requests_mock, status, transient):
    requests_mock.post(f"{TEST_PINNER_URL}/pin", status_code=status, text="nope")

    with pytest.raises(ServiceError) as exc_info:
        client.upload_json({"name": "X"})

    assert exc_info.value.status_code == status
    assert exc_info.value.transient is transient


@pytest.mark.parametrize("exc", [requests.ConnectionError("refused"), requests.Timeout("slow")])
def test_connection_failures_are_network_errors(client, requests_mock, exc):
    requests_mock.post(f"{TEST_PINNER_URL}/pin/file", exc=exc)

    with pytest.raises(NetworkError):
        client.upload(PNG_STUB, "image/png")


@pytest.mark.parametrize("response_kwargs", [
    {"text": "not json"},
    {"json": {"status": "ok"}},
    {"json": {"cid": "not-a-cid"}},
    {"json": ["list"]},
])
def test_malformed_responses_are_permanent_errors(client, requests_mock, response_kwargs):
    requests_mock.post(f"{TEST_PINNER_URL}/pin", **response_kwargs)

    with pytest.raises(ServiceError) as exc_info:
        client.upload_json({"name": "X"})

    assert exc_info.value.transient is False


def test_unexpected_content_type_is_logged(client, requests_mock, caplog):
    requests_mock.post(
        f"{TEST_PINNER_URL}/pin",
        text=json.dumps({"cid": CID}),
        headers={"Content-Type": "text/plain"},
    )

    assert client.upload_json({"name": "X"}) == f"ipfs://{CID}"
    assert "Unexpected Content-Type" in caplog.text


def test_empty_inputs_are_rejected_locally(client, requests_mock):
    with pytest.raises(InvalidInput):
        client.upload(b"", "image/png")
    with pytest.raises(InvalidInput):
        client.upload(PNG_STUB, "")
    with pytest.raises(InvalidInput):
        client.upload_json({})
    assert requests_mock.call_count == 0


def test_exists(client, requests_mock):
    url = f"{TEST_GATEWAY}/ipfs/{CID}"

    requests_mock.head(url, status_code=200)
    assert client.exists(f"ipfs://{CID}") is True

    requests_mock.head(url, status_code=404)
    assert client.exists(f"ipfs://{CID}") is False

    requests_mock.head(url, status_code=502)
    with pytest.raises(ServiceError):
        client.exists(f"ipfs://{CID}")


def test_fetch_json(client, requests_mock):
    requests_mock.get(f"{TEST_GATEWAY}/ipfs/{CID}", json={"name": "X", "seller_fee_basis_points": 500})

    assert client.fetch_json(f"ipfs://{CID}") == {"name": "X", "seller_fee_basis_points": 500}


def test_fetch_json_rejects_non_objects(client, requests_mock):
    requests_mock.get(f"{TEST_GATEWAY}/ipfs/{CID}", json=[1, 2])

    with pytest.raises(ServiceError):
        client.fetch_json(f"ipfs://{CID}")


@pytest.mark.parametrize("url", ["http://pin.example.com", "ftp://pin.example.com"])
def test_insecure_pinner_url_is_rejected(url):
    with pytest.raises(ValueError):
        PinnerClient(url)


def test_localhost_may_use_http():
    client = PinnerClient("http://localhost:5001/", gateway="http://127.0.0.1:8080")
    assert client.pinner_url == "http://localhost:5001"
    assert "Authorization" not in client.session.headers
