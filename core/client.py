# =============================================================================
# core/client.py  —  Iterable REST API Client (request/response adapter)
# =============================================================================
#
# WHAT THIS MODULE DOES:
#   Turns a RequestSpec (method, path, query params, body) into one HTTP call
#   against the Iterable API and turns the reply into a Python value.
#
# REQUEST CONSTRUCTION:
#   - URL = base URL + path.  Path segments built from caller input (emails,
#     user ids, catalog names) go through path_segment().
#   - Query params: None values are dropped, list values become repeated
#     keys (campaignIds=1&campaignIds=2), booleans become "true"/"false".
#   - Every call carries the Api-Key header and Content-Type: application/json.
#     A body, when present, is sent as JSON.
#
# RESPONSE NORMALIZATION (the API is not consistent about content types, so
# the body is sniffed instead of trusting the Content-Type header):
#   1. Non-2xx status  → IterableApiError(status, reason, body text)
#   2. Empty body      → {}
#   3. Valid JSON      → parsed value, unchanged
#   4. Anything else   → the raw string (CSV metrics, email lists, counts)
#
#   Call sites that know what the plain text means lift it further:
#   lift_size() for GET /api/lists/{id}/size, lift_emails() for
#   GET /api/lists/getUsers.
#
# ERRORS:
#   Transport failures (DNS, refused connection, broken stream) are raised as
#   IterableApiError with status 0 and status_text "Network Error", so callers
#   deal with a single exception type and tell the cases apart by status.
#   An API key that cannot be sent as a header (non-ASCII) fails the same
#   way, without the key in the message.
#   There is no retry and no client-side timeout.
# =============================================================================

import json
import logging
import re
from typing import Any, Mapping, Optional, Sequence
from urllib.parse import quote

import httpx

from core.config import DEFAULT_BASE_URL
from core.models import ParamValue, RequestSpec


logger = logging.getLogger(__name__)

USER_AGENT = "iterable-mcp-python/1.0.0"
NETWORK_ERROR = "Network Error"
INVALID_KEY = "API key contains characters that cannot be sent in an HTTP header"

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


class IterableApiError(Exception):
    """A failed Iterable API call.

    Attributes:
        status: HTTP status code, or 0 for a transport-level failure.
        status_text: HTTP reason phrase, or "Network Error".
        body: Response body text (or the transport error message).
    """

    def __init__(self, status: int, status_text: str, body: Any):
        self.status = status
        self.status_text = status_text
        self.body = body
        super().__init__(f"Iterable API error: {status} {status_text}")

    @property
    def is_network_error(self) -> bool:
        return self.status == 0


# =============================================================================
# Request helpers
# =============================================================================
def _render(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def encode_params(params: Optional[Mapping[str, ParamValue]]) -> list[tuple[str, str]]:
    """Serialize query params as (key, value) pairs.

    None values are omitted entirely.  Sequences produce one pair per item,
    which is how Iterable expects multi-value filters:

        >>> encode_params({"email": "a@x.com", "campaignIds": [1, 2], "limit": None})
        [('email', 'a@x.com'), ('campaignIds', '1'), ('campaignIds', '2')]
    """
    pairs: list[tuple[str, str]] = []
    for key, value in (params or {}).items():
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            pairs.extend((key, _render(item)) for item in value if item is not None)
        else:
            pairs.append((key, _render(value)))
    return pairs


def path_segment(value: Any) -> str:
    """Percent-encode a value for use as a single URL path segment."""
    return quote(str(value), safe="")


def _compact(body: Mapping[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in body.items() if value is not None}


# =============================================================================
# Response helpers
# =============================================================================
def normalize_body(text: str) -> Any:
    """Classify a successful response body by its shape."""
    if not text:
        return {}
    try:
        return json.loads(text)
    except ValueError:
        return text


def lift_size(value: Any) -> dict[str, Optional[int]]:
    """Interpret a bare numeric body (e.g. "1234") as {"size": 1234}.

    The body may already have been parsed as a JSON number.  Text that does
    not start with an integer gives {"size": None}.
    """
    if isinstance(value, int) and not isinstance(value, bool):
        return {"size": value}
    match = _LEADING_INT.match(str(value))
    return {"size": int(match.group(1)) if match else None}


def lift_emails(value: Any) -> Any:
    """Interpret a newline-delimited body as {"users": [{"email": ...}, ...]}.

    Lines are trimmed and blank lines dropped.  A non-string value (the API
    answered with JSON after all) is returned unchanged.
    """
    if not isinstance(value, str):
        return value
    emails = [line.strip() for line in value.splitlines() if line.strip()]
    return {"users": [{"email": email} for email in emails]}


async def _read_text_best_effort(response: httpx.Response) -> str:
    try:
        await response.aread()
    except httpx.HTTPError:
        return ""
    return response.text


# =============================================================================
# The client
# =============================================================================
class IterableClient:
    """Async client for the Iterable REST API.

    One instance per tool invocation: it holds the caller's API key and an
    httpx.AsyncClient, and is closed when the invocation ends.

        async with IterableClient(api_key, base_url) as client:
            lists = await client.get_lists()

    Args:
        api_key: The Iterable API key for this request.
        base_url: API root, e.g. https://api.eu.iterable.com for the EU region.
        transport: Optional httpx transport (tests pass httpx.MockTransport).
        timeout: httpx timeout.  None disables client-side timeouts.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
    ):
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self._api_key = api_key
        self._http = httpx.AsyncClient(
            transport=transport,
            timeout=timeout,
            headers={
                "Content-Type": "application/json",
                "User-Agent": USER_AGENT,
            },
        )

    async def __aenter__(self) -> "IterableClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    # -------------------------------------------------------------------------
    # The single code path every endpoint goes through
    # -------------------------------------------------------------------------
    async def call(self, spec: RequestSpec) -> Any:
        """Perform one API call and normalize the response.

        Raises:
            IterableApiError: on a non-2xx status (status preserved) or a
                transport failure (status 0, "Network Error").
        """
        content = json.dumps(spec.body) if spec.body is not None else None
        try:
            request = self._http.build_request(
                spec.method,
                f"{self.base_url}{spec.path}",
                params=encode_params(spec.params) or None,
                headers={"Api-Key": self._api_key},
                content=content,
            )
            response = await self._http.send(request, stream=True)
        except UnicodeEncodeError as exc:
            # Header values must be ASCII.
            logger.debug("%s %s failed: API key is not ASCII", spec.method, spec.path)
            raise IterableApiError(0, NETWORK_ERROR, INVALID_KEY) from exc
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.debug("%s %s failed: %s", spec.method, spec.path, type(exc).__name__)
            raise IterableApiError(0, NETWORK_ERROR, str(exc)) from exc

        try:
            logger.debug("%s %s -> %d", spec.method, spec.path, response.status_code)
            if not response.is_success:
                body = await _read_text_best_effort(response)
                raise IterableApiError(response.status_code, response.reason_phrase, body)

            try:
                await response.aread()
            except httpx.HTTPError as exc:
                raise IterableApiError(0, NETWORK_ERROR, str(exc)) from exc
            return normalize_body(response.text)
        finally:
            await response.aclose()

    # ==================== CAMPAIGNS ====================

    async def get_campaigns(self, page: int = 1, page_size: int = 20, sort: Optional[str] = None) -> Any:
        return await self.call(RequestSpec("GET", "/api/campaigns", {
            "page": page,
            "pageSize": page_size,
            "sort": sort,
        }))

    async def get_campaign(self, campaign_id: int) -> Any:
        return await self.call(RequestSpec("GET", f"/api/campaigns/{path_segment(campaign_id)}"))

    async def get_campaign_metrics(
        self,
        campaign_id: int,
        start_date_time: Optional[str] = None,
        end_date_time: Optional[str] = None,
    ) -> Any:
        """Campaign metrics.  Iterable answers with CSV, returned as a string."""
        return await self.call(RequestSpec("GET", "/api/campaigns/metrics", {
            "campaignId": campaign_id,
            "startDateTime": start_date_time,
            "endDateTime": end_date_time,
        }))

    async def get_child_campaigns(self, campaign_id: int, page: int = 1, page_size: int = 20) -> Any:
        return await self.call(RequestSpec(
            "GET",
            f"/api/campaigns/recurring/{path_segment(campaign_id)}/childCampaigns",
            {"page": page, "pageSize": page_size},
        ))

    async def abort_campaign(self, campaign_id: int) -> Any:
        return await self.call(RequestSpec("POST", "/api/campaigns/abort", body={"campaignId": campaign_id}))

    async def trigger_campaign(
        self,
        campaign_id: int,
        list_ids: Sequence[int],
        suppression_list_ids: Optional[Sequence[int]] = None,
        data_fields: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        return await self.call(RequestSpec("POST", "/api/campaigns/trigger", body=_compact({
            "campaignId": campaign_id,
            "listIds": list(list_ids),
            "suppressionListIds": list(suppression_list_ids) if suppression_list_ids else None,
            "dataFields": data_fields,
        })))

    # ==================== TEMPLATES ====================

    async def get_templates(
        self,
        template_type: Optional[str] = None,
        message_medium: Optional[str] = None,
        start_date_time: Optional[str] = None,
        end_date_time: Optional[str] = None,
    ) -> Any:
        return await self.call(RequestSpec("GET", "/api/templates", {
            "templateType": template_type,
            "messageMedium": message_medium,
            "startDateTime": start_date_time,
            "endDateTime": end_date_time,
        }))

    async def _get_template(self, medium: str, template_id: int, locale: Optional[str]) -> Any:
        return await self.call(RequestSpec("GET", f"/api/templates/{medium}/get", {
            "templateId": template_id,
            "locale": locale,
        }))

    async def get_email_template(self, template_id: int, locale: Optional[str] = None) -> Any:
        return await self._get_template("email", template_id, locale)

    async def get_sms_template(self, template_id: int, locale: Optional[str] = None) -> Any:
        return await self._get_template("sms", template_id, locale)

    async def get_push_template(self, template_id: int, locale: Optional[str] = None) -> Any:
        return await self._get_template("push", template_id, locale)

    async def get_inapp_template(self, template_id: int, locale: Optional[str] = None) -> Any:
        return await self._get_template("inapp", template_id, locale)

    async def get_template_by_client_id(self, client_template_id: str) -> Any:
        return await self.call(RequestSpec("GET", "/api/templates/getByClientTemplateId", {
            "clientTemplateId": client_template_id,
        }))

    # ==================== USERS ====================

    async def get_user_by_email(self, email: str) -> Any:
        return await self.call(RequestSpec("GET", f"/api/users/{path_segment(email)}"))

    async def get_user_by_user_id(self, user_id: str) -> Any:
        return await self.call(RequestSpec("GET", f"/api/users/byUserId/{path_segment(user_id)}"))

    async def get_user_fields(self) -> Any:
        return await self.call(RequestSpec("GET", "/api/users/getFields"))

    async def get_sent_messages(
        self,
        email: Optional[str] = None,
        user_id: Optional[str] = None,
        limit: Optional[int] = None,
        campaign_ids: Optional[Sequence[int]] = None,
        start_date_time: Optional[str] = None,
        end_date_time: Optional[str] = None,
        message_medium: Optional[str] = None,
    ) -> Any:
        return await self.call(RequestSpec("GET", "/api/users/getSentMessages", {
            "email": email,
            "userId": user_id,
            "limit": limit,
            "startDateTime": start_date_time,
            "endDateTime": end_date_time,
            "messageMedium": message_medium,
            "campaignIds": campaign_ids,
        }))

    # ==================== LISTS ====================

    async def get_lists(self) -> Any:
        return await self.call(RequestSpec("GET", "/api/lists"))

    async def get_list_size(self, list_id: int) -> dict[str, Optional[int]]:
        result = await self.call(RequestSpec("GET", f"/api/lists/{path_segment(list_id)}/size"))
        return lift_size(result)

    async def get_list_users(self, list_id: int, max_results: Optional[int] = None) -> Any:
        result = await self.call(RequestSpec("GET", "/api/lists/getUsers", {
            "listId": list_id,
            "maxResults": max_results,
        }))
        return lift_emails(result)

    async def create_list(self, name: str) -> Any:
        return await self.call(RequestSpec("POST", "/api/lists", body={"name": name}))

    async def delete_list(self, list_id: int) -> Any:
        return await self.call(RequestSpec("DELETE", f"/api/lists/{path_segment(list_id)}"))

    # ==================== CHANNELS ====================

    async def get_channels(self) -> Any:
        return await self.call(RequestSpec("GET", "/api/channels"))

    async def get_message_types(self) -> Any:
        return await self.call(RequestSpec("GET", "/api/messageTypes"))

    # ==================== EVENTS ====================

    async def get_user_events_by_email(self, email: str, limit: Optional[int] = None) -> Any:
        return await self.call(RequestSpec("GET", "/api/events", {"email": email, "limit": limit}))

    async def get_user_events_by_user_id(self, user_id: str, limit: Optional[int] = None) -> Any:
        return await self.call(RequestSpec("GET", "/api/events", {"userId": user_id, "limit": limit}))

    async def track_event(
        self,
        event_name: str,
        email: Optional[str] = None,
        user_id: Optional[str] = None,
        data_fields: Optional[Mapping[str, Any]] = None,
        created_at: Optional[int] = None,
    ) -> Any:
        return await self.call(RequestSpec("POST", "/api/events/track", body=_compact({
            "eventName": event_name,
            "email": email,
            "userId": user_id,
            "dataFields": data_fields,
            "createdAt": created_at,
        })))

    # ==================== MESSAGING ====================

    async def send_email(
        self,
        campaign_id: int,
        recipient_email: str,
        data_fields: Optional[Mapping[str, Any]] = None,
        send_at: Optional[str] = None,
    ) -> Any:
        return await self.call(RequestSpec("POST", "/api/email/target", body=_compact({
            "campaignId": campaign_id,
            "recipientEmail": recipient_email,
            "dataFields": data_fields,
            "sendAt": send_at,
        })))

    # ==================== JOURNEYS / EXPERIMENTS / WEBHOOKS ====================

    async def get_journeys(self) -> Any:
        return await self.call(RequestSpec("GET", "/api/journeys"))

    async def get_experiment_metrics(self, experiment_id: int) -> Any:
        return await self.call(RequestSpec("GET", f"/api/experiments/metrics/{path_segment(experiment_id)}"))

    async def get_webhooks(self) -> Any:
        return await self.call(RequestSpec("GET", "/api/webhooks"))

    # ==================== SNIPPETS ====================

    async def get_snippets(self) -> Any:
        return await self.call(RequestSpec("GET", "/api/snippets"))

    async def get_snippet(self, snippet_id: int) -> Any:
        return await self.call(RequestSpec("GET", f"/api/snippets/{path_segment(snippet_id)}"))

    # ==================== CATALOGS ====================

    async def get_catalogs(self) -> Any:
        return await self.call(RequestSpec("GET", "/api/catalogs"))

    async def get_catalog_items(
        self,
        catalog_name: str,
        page: Optional[int] = None,
        page_size: Optional[int] = None,
    ) -> Any:
        return await self.call(RequestSpec("GET", f"/api/catalogs/{path_segment(catalog_name)}/items", {
            "page": page,
            "pageSize": page_size,
        }))

    async def get_catalog_item(self, catalog_name: str, item_id: str) -> Any:
        return await self.call(RequestSpec(
            "GET",
            f"/api/catalogs/{path_segment(catalog_name)}/items/{path_segment(item_id)}",
        ))
