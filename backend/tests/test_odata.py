import httpx
import pytest

from rfcbridge.core.config import settings
from rfcbridge.core.exceptions import ConfigError, ODataError
from rfcbridge.odata.client import ODataClient

BASE_URL = "https://sap.example.com/sap/opu/odata/sap"


def make_client(handler, **kwargs):
    kwargs.setdefault("retries", 2)
    return ODataClient(
        BASE_URL,
        username="ODATA_USER",
        password="secret",
        retry_base_delay=0,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


async def test_get_adds_json_format():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"d": {"results": [{"CompanyCode": "1000"}]}})

    async with make_client(handler) as client:
        data = await client.get("API_COMPANYCODE_SRV/A_CompanyCode", {"$top": 5})

    assert data["d"]["results"][0]["CompanyCode"] == "1000"
    assert seen[0].url.params["$format"] == "json"
    assert seen[0].url.params["$top"] == "5"
    assert seen[0].headers["Authorization"].startswith("Basic ")


async def test_get_all_follows_v2_next_links():
    def handler(request):
        if "$skiptoken" in request.url.params:
            return httpx.Response(200, json={"d": {"results": [{"ID": "3"}]}})
        return httpx.Response(200, json={
            "d": {
                "results": [{"ID": "1"}, {"ID": "2"}],
                "__next": f"{BASE_URL}/API_SRV/Items?$skiptoken=2",
            }
        })

    async with make_client(handler) as client:
        rows = await client.get_all("API_SRV/Items")
    assert [row["ID"] for row in rows] == ["1", "2", "3"]


async def test_get_all_follows_v4_next_links():
    def handler(request):
        if "$skip" in request.url.params:
            return httpx.Response(200, json={"value": [{"ID": "b"}]})
        return httpx.Response(200, json={
            "value": [{"ID": "a"}],
            "@odata.nextLink": f"{BASE_URL}/api/Items?$skip=1",
        })

    async with make_client(handler) as client:
        rows = await client.get_all("api/Items")
    assert [row["ID"] for row in rows] == ["a", "b"]


def test_extract_results_shapes():
    assert ODataClient.extract_results({"value": [{"A": 1}]}) == [{"A": 1}]
    assert ODataClient.extract_results({"d": {"results": [{"A": 2}]}}) == [{"A": 2}]
    assert ODataClient.extract_results({"d": {"A": 3}}) == [{"A": 3}]
    assert ODataClient.extract_results({}) == []


async def test_server_errors_are_retried():
    attempts = []

    def handler(request):
        attempts.append(request)
        if len(attempts) < 3:
            return httpx.Response(503)
        return httpx.Response(200, json={"value": []})

    async with make_client(handler) as client:
        assert await client.get("api/Items") == {"value": []}
    assert len(attempts) == 3


async def test_retries_exhausted_raise_odata_error():
    def handler(request):
        return httpx.Response(429)

    async with make_client(handler, retries=1) as client:
        with pytest.raises(ODataError) as exc_info:
            await client.get("api/Items")
    assert exc_info.value.status_code == 429


async def test_client_errors_are_not_retried():
    attempts = []

    def handler(request):
        attempts.append(request)
        return httpx.Response(404, json={"error": {"message": "Resource not found"}})

    async with make_client(handler) as client:
        with pytest.raises(ODataError) as exc_info:
            await client.get("api/Missing")
    assert exc_info.value.status_code == 404
    assert len(attempts) == 1


async def test_transport_errors_are_retried():
    attempts = []

    def handler(request):
        attempts.append(request)
        if len(attempts) == 1:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json={"value": [{"ID": "1"}]})

    async with make_client(handler) as client:
        assert await client.get_all("api/Items") == [{"ID": "1"}]
    assert len(attempts) == 2


def test_base_url_is_required():
    with pytest.raises(ConfigError):
        ODataClient("")


def test_from_settings_without_base_url(monkeypatch):
    monkeypatch.setattr(settings, "SAP_ODATA_BASE_URL", None)
    assert ODataClient.from_settings() is None


async def test_non_json_reply_raises_odata_error():
    attempts = []

    def handler(request):
        attempts.append(request)
        return httpx.Response(200, text="<html>login</html>", headers={"Content-Type": "text/html"})

    async with make_client(handler) as client:
        with pytest.raises(ODataError) as exc_info:
            await client.get_all("api/Items")
    assert exc_info.value.status_code == 200
    assert exc_info.value.details["content_type"].startswith("text/html")
    assert len(attempts) == 1
