# =============================================================================
# core/capabilities.py  —  Tool Capability Taxonomy
# =============================================================================
#
# WHAT THIS MODULE DOES:
#   Classifies every Iterable tool name into three independent categories:
#
#     NON_PII_TOOLS    tools that never return user-identifying data
#     READ_ONLY_TOOLS  tools that never modify anything in the project
#     SEND_TOOLS       tools that can (directly or indirectly) send a message
#
#   The sets overlap freely.  send_campaign is non-PII AND send; the
#   preview_*_template tools are non-PII AND read-only.
#
# SAFE-LIST SEMANTICS:
#   NON_PII_TOOLS and READ_ONLY_TOOLS are allow-lists.  A tool name missing
#   from them is treated as exposing PII and as writing data.  A new tool
#   that nobody has classified yet is therefore blocked by every gate until
#   it is added here.
#
#   The lists also cover tools this server has no handler for.  They mirror
#   the full Iterable tool catalog so a handler added later is governed the
#   moment it is registered.
# =============================================================================


# -----------------------------------------------------------------------------
# Tools that don't expose user PII
# -----------------------------------------------------------------------------
NON_PII_TOOLS: frozenset[str] = frozenset({
    "abort_campaign",
    "activate_triggered_campaign",
    "archive_campaigns",
    "bulk_delete_catalog_items",
    "cancel_campaign",
    "create_campaign",
    "create_catalog",
    "create_list",
    "create_snippet",
    "deactivate_triggered_campaign",
    "delete_catalog",
    "delete_catalog_item",
    "delete_list",
    "delete_snippet",
    "delete_templates",
    "get_campaign",
    "get_campaign_metrics",
    "get_campaigns",
    "get_catalog_field_mappings",
    "get_catalog_item",
    "get_catalog_items",
    "get_catalogs",
    "get_channels",
    "get_child_campaigns",
    "get_email_template",
    "get_experiment_metrics",
    "get_inapp_template",
    "get_journeys",
    "get_list_size",
    "get_lists",
    "get_message_types",
    "get_push_template",
    "get_sms_template",
    "get_snippet",
    "get_snippets",
    "get_template_by_client_id",
    "get_templates",
    "get_user_fields",
    "get_webhooks",
    "partial_update_catalog_item",
    "preview_email_template",
    "preview_inapp_template",
    "replace_catalog_item",
    "schedule_campaign",
    "send_campaign",
    "trigger_campaign",
    "update_catalog_field_mappings",
    "update_catalog_items",
    "update_email_template",
    "update_inapp_template",
    "update_push_template",
    "update_sms_template",
    "update_snippet",
    "update_webhook",
    "upsert_email_template",
    "upsert_inapp_template",
    "upsert_push_template",
    "upsert_sms_template",
})


# -----------------------------------------------------------------------------
# Tools that only read data (no modifications)
# -----------------------------------------------------------------------------
READ_ONLY_TOOLS: frozenset[str] = frozenset({
    "get_campaign",
    "get_campaign_metrics",
    "get_campaigns",
    "get_catalog_field_mappings",
    "get_catalog_item",
    "get_catalog_items",
    "get_catalogs",
    "get_channels",
    "get_child_campaigns",
    "get_email_template",
    "get_embedded_messages",
    "get_experiment_metrics",
    "get_export_files",
    "get_export_jobs",
    "get_in_app_messages",
    "get_inapp_template",
    "get_journeys",
    "get_list_preview_users",
    "get_list_size",
    "get_list_users",
    "get_lists",
    "get_message_types",
    "get_push_template",
    "get_sent_messages",
    "get_sms_template",
    "get_snippet",
    "get_snippets",
    "get_template_by_client_id",
    "get_templates",
    "get_user_by_email",
    "get_user_by_user_id",
    "get_user_events_by_email",
    "get_user_events_by_user_id",
    "get_user_fields",
    "get_webhooks",
    "preview_email_template",
    "preview_inapp_template",
})


# -----------------------------------------------------------------------------
# Tools that can directly or indirectly trigger sending messages
# -----------------------------------------------------------------------------
SEND_TOOLS: frozenset[str] = frozenset({
    # Campaign sends and enablers
    "send_campaign",
    "trigger_campaign",
    "schedule_campaign",
    "create_campaign",
    "activate_triggered_campaign",
    # Journey triggers
    "trigger_journey",
    # Events may drive sends
    "track_event",
    "track_bulk_events",
    # Direct messaging
    "send_email",
    "send_sms",
    "send_whatsapp",
    "send_web_push",
    "send_push",
    "send_in_app",
    # Template proofs
    "send_email_template_proof",
    "send_sms_template_proof",
    "send_push_template_proof",
    "send_inapp_template_proof",
})


def is_non_pii(tool_name: str) -> bool:
    """True if the tool is known not to expose user PII."""
    return tool_name in NON_PII_TOOLS


def is_read_only(tool_name: str) -> bool:
    """True if the tool is known to only read data."""
    return tool_name in READ_ONLY_TOOLS


def is_send(tool_name: str) -> bool:
    """True if the tool can cause a message to be sent."""
    return tool_name in SEND_TOOLS


def is_classified(tool_name: str) -> bool:
    """True if the tool appears in at least one of the three lists."""
    return tool_name in NON_PII_TOOLS or tool_name in READ_ONLY_TOOLS or tool_name in SEND_TOOLS
