"""Comment marker protocol and the event-log replay built on it."""

from .codec import (
    CHECK_HEADER,
    CHECK_RESULT,
    COMMAND_REPLY,
    CONTRIBUTOR,
    INTEGRATION_REQUEST,
    MARKER_KINDS,
    SUMMARY,
    CheckHeader,
    CheckResult,
    CheckStatus,
    CommandReply,
    ContributorAction,
    ContributorOp,
    IntegrationRequest,
    MarkerKind,
    Summary,
)
from .eventlog import contributors, latest_summary, pending_integration, reduce_contributors, replay

__all__ = [
    "CHECK_HEADER",
    "CHECK_RESULT",
    "COMMAND_REPLY",
    "CONTRIBUTOR",
    "CheckHeader",
    "CheckResult",
    "CheckStatus",
    "CommandReply",
    "ContributorAction",
    "ContributorOp",
    "INTEGRATION_REQUEST",
    "IntegrationRequest",
    "MARKER_KINDS",
    "MarkerKind",
    "SUMMARY",
    "Summary",
    "contributors",
    "latest_summary",
    "pending_integration",
    "reduce_contributors",
    "replay",
]
