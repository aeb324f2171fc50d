"""Tests for the capability taxonomy and the permission evaluator."""

import itertools

import pytest

from core.capabilities import (
    NON_PII_TOOLS,
    READ_ONLY_TOOLS,
    SEND_TOOLS,
    is_non_pii,
    is_read_only,
    is_send,
)
from core.models import PermissionConfig
from core.permissions import (
    PII_REASON,
    SEND_REASON,
    UNKNOWN_REASON,
    WRITE_REASON,
    PermissionDenied,
    allowed_tools,
    blocked_reason,
    ensure_tool_allowed,
    is_tool_allowed,
)


ALL_CONFIGS = [
    PermissionConfig(allow_user_pii=pii, allow_writes=writes, allow_sends=sends)
    for pii, writes, sends in itertools.product((False, True), repeat=3)
]

KNOWN_NAMES = sorted(NON_PII_TOOLS | READ_ONLY_TOOLS | SEND_TOOLS)
SAMPLE_NAMES = KNOWN_NAMES + ["", "unknown_tool", "totally_unknown_tool", "update_user"]

RESTRICTED = PermissionConfig()
FULL_ACCESS = PermissionConfig(allow_user_pii=True, allow_writes=True, allow_sends=True)


# -----------------------------------------------------------------------------
# Taxonomy
# -----------------------------------------------------------------------------
def test_pii_tools_are_not_in_non_pii_list():
    assert not is_non_pii("get_user_by_email")
    assert not is_non_pii("get_user_by_user_id")
    assert not is_non_pii("get_sent_messages")


def test_read_only_list_has_get_tools_and_no_writes():
    assert is_read_only("get_campaigns")
    assert is_read_only("get_templates")
    assert is_read_only("get_lists")
    assert not is_read_only("create_campaign")
    assert not is_read_only("update_user")
    assert not is_read_only("delete_list")


def test_send_list():
    for name in ("send_campaign", "send_email", "trigger_campaign", "track_event"):
        assert is_send(name)
    assert not is_send("get_campaigns")
    assert not is_send("get_user_by_email")


def test_categories_overlap():
    assert is_non_pii("send_campaign") and is_send("send_campaign")
    assert is_non_pii("preview_email_template") and is_read_only("preview_email_template")


def test_sets_are_immutable():
    with pytest.raises(AttributeError):
        NON_PII_TOOLS.add("get_user_by_email")


# -----------------------------------------------------------------------------
# Evaluator
# -----------------------------------------------------------------------------
def test_default_config_allows_basic_campaign_browsing():
    for name in ("get_campaigns", "get_campaign", "get_campaign_metrics", "get_templates", "get_lists"):
        assert is_tool_allowed(name, RESTRICTED)


def test_pii_tools_need_pii_permission():
    assert not is_tool_allowed("get_user_by_email", RESTRICTED)
    assert not is_tool_allowed("get_user_events_by_email", RESTRICTED)

    analytics = PermissionConfig(allow_user_pii=True)
    assert is_tool_allowed("get_user_by_email", analytics)
    assert is_tool_allowed("get_user_events_by_email", analytics)
    assert is_tool_allowed("get_sent_messages", analytics)


def test_write_tools_need_write_permission():
    assert not is_tool_allowed("abort_campaign", PermissionConfig(allow_user_pii=True))
    assert is_tool_allowed("abort_campaign", PermissionConfig(allow_user_pii=True, allow_writes=True))


def test_send_tools_need_send_permission():
    no_sends = PermissionConfig(allow_user_pii=True, allow_writes=True)
    assert not is_tool_allowed("send_campaign", no_sends)
    assert not is_tool_allowed("trigger_campaign", no_sends)
    assert not is_tool_allowed("send_email", no_sends)

    assert is_tool_allowed("send_campaign", FULL_ACCESS)
    assert is_tool_allowed("send_email", FULL_ACCESS)


def test_reasons_name_the_failing_check():
    assert blocked_reason("get_user_by_email", RESTRICTED) == PII_REASON
    assert "ITERABLE_USER_PII=true" in PII_REASON

    assert blocked_reason("create_campaign", PermissionConfig(allow_user_pii=True)) == WRITE_REASON
    assert "modifies data" in WRITE_REASON

    no_sends = PermissionConfig(allow_user_pii=True, allow_writes=True)
    assert blocked_reason("send_campaign", no_sends) == SEND_REASON
    assert "send messages" in SEND_REASON

    assert blocked_reason("get_campaigns", RESTRICTED) is None


def test_pii_reason_wins_over_write_and_send():
    # send_email needs PII, writes and sends
    assert blocked_reason("send_email", RESTRICTED) == PII_REASON
    assert blocked_reason("track_event", RESTRICTED) == PII_REASON


def test_write_reason_wins_over_send():
    # trigger_campaign is non-PII but writes and sends
    assert blocked_reason("trigger_campaign", RESTRICTED) == WRITE_REASON


@pytest.mark.parametrize("config", ALL_CONFIGS)
def test_unknown_and_empty_names_are_denied(config):
    assert not is_tool_allowed("", config)
    assert not is_tool_allowed("totally_unknown_tool", config)


@pytest.mark.parametrize("config", ALL_CONFIGS)
def test_allowed_iff_no_reason(config):
    for name in SAMPLE_NAMES:
        assert is_tool_allowed(name, config) == (blocked_reason(name, config) is None)


def test_more_permissive_config_never_blocks_more():
    def at_most(a, b):
        return (
            a.allow_user_pii <= b.allow_user_pii
            and a.allow_writes <= b.allow_writes
            and a.allow_sends <= b.allow_sends
        )

    for lower, upper in itertools.product(ALL_CONFIGS, repeat=2):
        if not at_most(lower, upper):
            continue
        for name in SAMPLE_NAMES:
            if is_tool_allowed(name, lower):
                assert is_tool_allowed(name, upper), (name, lower, upper)


def test_allowed_tools_filters_and_keeps_order():
    names = ["get_lists", "get_user_by_email", "create_list", "get_campaigns", "nope"]
    assert allowed_tools(names, RESTRICTED) == ["get_lists", "get_campaigns"]
    assert allowed_tools(names, FULL_ACCESS) == ["get_lists", "get_user_by_email", "create_list", "get_campaigns"]


def test_ensure_tool_allowed():
    ensure_tool_allowed("get_lists", RESTRICTED)

    with pytest.raises(PermissionDenied) as excinfo:
        ensure_tool_allowed("get_user_by_email", RESTRICTED)
    assert excinfo.value.tool_name == "get_user_by_email"
    assert excinfo.value.reason == PII_REASON
    assert "get_user_by_email" in str(excinfo.value)


def test_unknown_name_reason_with_every_flag_on():
    assert blocked_reason("totally_unknown_tool", FULL_ACCESS) == UNKNOWN_REASON
    assert blocked_reason("totally_unknown_tool", RESTRICTED) == PII_REASON
