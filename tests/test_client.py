"""Tests for the Iterable API client, using httpx.MockTransport."""

import asyncio
import json

import httpx
import pytest

from core.client import (
    IterableApiError,
    IterableClient,
    encode_params,
    lift_emails,
    lift_size,
    normalize_body,
    path_segment,
)
from core.models import RequestSpec


class Recorder:
    """MockTransport handler that records requests and replays one response."""

    def __init__(self, status=200, text="", exc=None):
        self.status = status
        self.text = text
        self.exc = exc
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.exc is not None:
            raise self.exc
        return httpx.Response(self.status, text=self.text)

    @property
    def request(self) -> httpx.Request:
        return self.requests[-1]


def call(recorder, method_name, *args, base_url="https://api.iterable.com", **kwargs):
    async def run():
        async with IterableClient("test-api-key", base_url, transport=httpx.MockTransport(recorder)) as client:
            return await getattr(client, method_name)(*args, **kwargs)

    return asyncio.run(run())


# -----------------------------------------------------------------------------
# Pure helpers
# -----------------------------------------------------------------------------
def test_encode_params_repeats_arrays_and_drops_none():
    pairs = encode_params({"email": "a@x.com", "campaignIds": [1, 2, 3], "limit": None, "flag": True})
    assert pairs == [
        ("email", "a@x.com"),
        ("campaignIds", "1"),
        ("campaignIds", "2"),
        ("campaignIds", "3"),
        ("flag", "true"),
    ]
    assert encode_params(None) == []


def test_path_segment_encodes_reserved_characters():
    assert path_segment("test+user@example.com") == "test%2Buser%40example.com"
    assert path_segment("a/b") == "a%2Fb"
    assert path_segment(42) == "42"


def test_normalize_body_shapes():
    assert normalize_body("") == {}
    assert normalize_body('{"campaigns":[]}') == {"campaigns": []}
    assert normalize_body("[1, 2]") == [1, 2]
    assert normalize_body("a,b\n1,2") == "a,b\n1,2"


def test_lift_size():
    assert lift_size(1234) == {"size": 1234}
    assert lift_size("1234") == {"size": 1234}
    assert lift_size(" 56\n") == {"size": 56}
    assert lift_size("not a number") == {"size": None}


def test_lift_emails():
    assert lift_emails("a@x.com\nb@x.com\n\n") == {
        "users": [{"email": "a@x.com"}, {"email": "b@x.com"}],
    }
    assert lift_emails("  c@x.com \r\n") == {"users": [{"email": "c@x.com"}]}
    assert lift_emails("") == {"users": []}
    assert lift_emails({"users": []}) == {"users": []}


# -----------------------------------------------------------------------------
# Request construction
# -----------------------------------------------------------------------------
def test_every_call_sends_key_and_content_type():
    recorder = Recorder(text=json.dumps({"campaigns": []}))
    call(recorder, "get_campaigns")

    request = recorder.request
    assert request.method == "GET"
    assert request.url.path == "/api/campaigns"
    assert request.headers["Api-Key"] == "test-api-key"
    assert request.headers["Content-Type"] == "application/json"


def test_get_campaigns_default_and_custom_pagination():
    recorder = Recorder(text="{}")
    call(recorder, "get_campaigns")
    assert recorder.request.url.params["page"] == "1"
    assert recorder.request.url.params["pageSize"] == "20"
    assert "sort" not in recorder.request.url.params

    call(recorder, "get_campaigns", page=2, page_size=50)
    assert recorder.request.url.params["page"] == "2"
    assert recorder.request.url.params["pageSize"] == "50"


def test_get_campaign_url():
    recorder = Recorder(text=json.dumps({"id": 123, "name": "Test Campaign"}))
    result = call(recorder, "get_campaign", 123)

    assert str(recorder.request.url) == "https://api.iterable.com/api/campaigns/123"
    assert result["id"] == 123


def test_regional_base_url():
    recorder = Recorder(text="{}")
    call(recorder, "get_lists", base_url="https://api.eu.iterable.com/")
    assert str(recorder.request.url) == "https://api.eu.iterable.com/api/lists"


def test_sent_messages_repeats_campaign_ids():
    recorder = Recorder(text=json.dumps({"messages": []}))
    call(recorder, "get_sent_messages", email="test@example.com", campaign_ids=[1, 2, 3])

    url = str(recorder.request.url)
    assert "campaignIds=1" in url
    assert "campaignIds=2" in url
    assert "campaignIds=3" in url
    assert "campaignIds=1%2C2%2C3" not in url
    assert "campaignIds=1,2,3" not in url
    assert recorder.request.url.params.get_list("campaignIds") == ["1", "2", "3"]
    assert "limit" not in recorder.request.url.params


def test_user_email_is_encoded_in_path():
    recorder = Recorder(text=json.dumps({"user": {"email": "test+user@example.com"}}))
    call(recorder, "get_user_by_email", "test+user@example.com")

    assert recorder.request.url.path == "/api/users/test+user@example.com"
    assert b"test%2Buser%40example.com" in recorder.request.url.raw_path


def test_template_query_params():
    recorder = Recorder(text=json.dumps({"templates": []}))
    call(recorder, "get_templates", template_type="Base", message_medium="Email")

    assert recorder.request.url.params["templateType"] == "Base"
    assert recorder.request.url.params["messageMedium"] == "Email"


def test_post_body_is_json():
    recorder = Recorder(text=json.dumps({"listId": 7}))
    result = call(recorder, "create_list", "Newsletter")

    assert recorder.request.method == "POST"
    assert recorder.request.url.path == "/api/lists"
    assert json.loads(recorder.request.content) == {"name": "Newsletter"}
    assert result == {"listId": 7}


def test_optional_body_fields_are_left_out():
    recorder = Recorder(text="{}")
    call(recorder, "track_event", "purchase", email="a@x.com")

    assert json.loads(recorder.request.content) == {"eventName": "purchase", "email": "a@x.com"}


def test_get_request_has_no_body():
    recorder = Recorder(text="{}")
    call(recorder, "get_lists")
    assert recorder.request.content == b""


# -----------------------------------------------------------------------------
# Response normalization
# -----------------------------------------------------------------------------
def test_empty_body_becomes_empty_dict():
    assert call(Recorder(text=""), "get_campaigns") == {}


def test_json_passes_through():
    payload = {"campaigns": [{"id": 1, "name": "Test"}]}
    assert call(Recorder(text=json.dumps(payload)), "get_campaigns") == payload


def test_list_size_from_bare_number():
    assert call(Recorder(text="1234"), "get_list_size", 1) == {"size": 1234}


def test_list_users_from_newline_text():
    result = call(Recorder(text="a@x.com\nb@x.com\n\n"), "get_list_users", 1)
    assert result == {"users": [{"email": "a@x.com"}, {"email": "b@x.com"}]}


def test_campaign_metrics_csv_is_raw():
    csv_data = "campaignId,metric,value\n123,opens,100"
    assert call(Recorder(text=csv_data), "get_campaign_metrics", 123) == csv_data


def test_content_type_header_is_ignored():
    def handler(request):
        return httpx.Response(200, text='{"ok": true}', headers={"Content-Type": "text/plain"})

    async def run():
        async with IterableClient("k", transport=httpx.MockTransport(handler)) as client:
            return await client.call(RequestSpec("GET", "/api/anything"))

    assert asyncio.run(run()) == {"ok": True}


# -----------------------------------------------------------------------------
# Errors
# -----------------------------------------------------------------------------
def test_http_error_status_is_preserved():
    with pytest.raises(IterableApiError) as excinfo:
        call(Recorder(status=404, text="Not found"), "get_campaign", 999)

    error = excinfo.value
    assert error.status == 404
    assert error.status_text == "Not Found"
    assert error.body == "Not found"
    assert not error.is_network_error
    assert "404" in str(error)


def test_unauthorized_does_not_echo_key():
    with pytest.raises(IterableApiError) as excinfo:
        call(Recorder(status=401, text="Invalid API key"), "get_campaigns")
    assert excinfo.value.status == 401
    assert "test-api-key" not in str(excinfo.value)


def test_transport_failure_is_network_error():
    recorder = Recorder(exc=httpx.ConnectError("connection refused"))
    with pytest.raises(IterableApiError) as excinfo:
        call(recorder, "get_lists")

    error = excinfo.value
    assert error.status == 0
    assert error.status_text == "Network Error"
    assert "connection refused" in error.body
    assert error.is_network_error


def test_timeout_is_network_error():
    recorder = Recorder(exc=httpx.ReadTimeout("timed out"))
    with pytest.raises(IterableApiError) as excinfo:
        call(recorder, "get_lists")
    assert excinfo.value.status == 0


def test_non_ascii_key_is_an_api_error():
    recorder = Recorder(text="{}")

    async def run():
        async with IterableClient("clé", transport=httpx.MockTransport(recorder)) as client:
            return await client.call(RequestSpec("GET", "/api/lists"))

    with pytest.raises(IterableApiError) as excinfo:
        asyncio.run(run())

    error = excinfo.value
    assert error.status == 0
    assert error.status_text == "Network Error"
    assert "clé" not in str(error)
    assert "clé" not in error.body
    assert recorder.requests == []
