"""Single-line markers embedded in comment bodies.

Every piece of state the bots persist on the hosting platform is written as an
HTML comment inside an otherwise human-readable comment. Each marker kind owns
its own pattern, so kinds never match each other's text and several markers
may share one body.

The formats are a wire protocol: earlier runs of the bot wrote them, and later
runs must keep reading them, so they cannot change.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Generic, Iterator, List, Optional, Pattern, TypeVar

from ..errors import ProtocolDecodeError

LOGGER = logging.getLogger(__name__)

R = TypeVar("R")

NO_METADATA = "NONE"

_CHECK_NAME = r"[-\w.]+"
_CHECK_NAME_RE = re.compile(rf"^{_CHECK_NAME}$")
_HASH_RE = re.compile(r"^[0-9a-fA-F]+$")
_COMMENT_ID_RE = re.compile(r"^\S+$")


def encode_text(value: str) -> str:
    """Encode free-form text so it survives inside a single-line marker."""
    return base64.b64encode(value.encode("utf-8")).decode("ascii")


def decode_text(value: str) -> str:
    """Reverse :func:`encode_text`, raising :class:`ProtocolDecodeError` on bad input."""
    try:
        return base64.b64decode(value.encode("ascii"), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeError, ValueError) as error:
        raise ProtocolDecodeError(f"Invalid base64 payload {value!r}: {error}") from error


class ContributorOp(str, Enum):
    """Action recorded by a contributor marker."""

    ADD = "add"
    REMOVE = "remove"


class CheckStatus(str, Enum):
    """Lifecycle states of a check; SUCCESS and FAILURE are terminal."""

    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"

    @property
    def terminal(self) -> bool:
        return self is not CheckStatus.RUNNING


@dataclass(frozen=True, slots=True)
class ContributorAction:
    op: ContributorOp
    address: str


@dataclass(frozen=True, slots=True)
class CommandReply:
    comment_id: str


@dataclass(frozen=True, slots=True)
class CheckHeader:
    name: str


@dataclass(frozen=True, slots=True)
class CheckResult:
    name: str
    status: CheckStatus
    hash: str
    metadata: Optional[str] = None


@dataclass(frozen=True, slots=True)
class Summary:
    text: str


@dataclass(frozen=True, slots=True)
class IntegrationRequest:
    hash: str


class MarkerKind(Generic[R]):
    """Encoder/decoder pair for one marker kind.

    ``decode`` is strict and raises :class:`ProtocolDecodeError` for text that
    carries this kind's prefix but does not parse. ``find_all`` is what comment
    scanners use: malformed markers are logged and treated as absent.
    """

    name: str = ""
    prefixes: tuple[str, ...] = ()
    pattern: Pattern[str]

    def encode(self, record: R) -> str:
        raise NotImplementedError

    def _from_match(self, match: "re.Match[str]") -> R:
        raise NotImplementedError

    def _looks_like(self, line: str) -> bool:
        return any(prefix in line for prefix in self.prefixes)

    def _iter_line(self, line: str) -> Iterator[R]:
        matched = False
        for match in self.pattern.finditer(line):
            matched = True
            yield self._from_match(match)
        if not matched and self._looks_like(line):
            raise ProtocolDecodeError(f"Malformed {self.name} marker: {line.strip()!r}")

    def decode(self, text: str) -> Optional[R]:
        """Return the first marker of this kind in ``text`` or ``None``."""
        for line in text.splitlines():
            for record in self._iter_line(line):
                return record
        return None

    def decode_all(self, text: str) -> List[R]:
        """Return every marker of this kind in body order (strict)."""
        records: List[R] = []
        for line in text.splitlines():
            records.extend(self._iter_line(line))
        return records

    def find_all(self, text: str) -> List[R]:
        """Return every well-formed marker of this kind, skipping malformed lines."""
        records: List[R] = []
        for line in text.splitlines():
            try:
                records.extend(self._iter_line(line))
            except ProtocolDecodeError as error:
                LOGGER.warning("Ignoring marker: %s", error)
        return records

    def __repr__(self) -> str:
        return f"<MarkerKind {self.name}>"


class _ContributorMarker(MarkerKind[ContributorAction]):
    name = "contributor"
    prefixes = ("<!-- add contributor:", "<!-- remove contributor:")
    pattern = re.compile(r"<!-- (add|remove) contributor: '(.*?)' -->")

    def encode(self, record: ContributorAction) -> str:
        address = record.address
        if not address or "\n" in address or "\r" in address or "' -->" in address:
            raise ValueError(f"Contributor address cannot be stored in a marker: {address!r}")
        return f"<!-- {ContributorOp(record.op).value} contributor: '{address}' -->"

    def _from_match(self, match: "re.Match[str]") -> ContributorAction:
        return ContributorAction(op=ContributorOp(match.group(1)), address=match.group(2))


class _CommandReplyMarker(MarkerKind[CommandReply]):
    name = "command reply"
    prefixes = ("<!-- command reply message",)
    pattern = re.compile(r"<!-- command reply message \((\S+)\) -->")

    def encode(self, record: CommandReply) -> str:
        if not _COMMENT_ID_RE.match(record.comment_id):
            raise ValueError(f"Comment id cannot be stored in a marker: {record.comment_id!r}")
        return f"<!-- command reply message ({record.comment_id}) -->"

    def _from_match(self, match: "re.Match[str]") -> CommandReply:
        return CommandReply(comment_id=match.group(1))


class _CheckHeaderMarker(MarkerKind[CheckHeader]):
    name = "check header"
    prefixes = ("<!-- status check message",)
    pattern = re.compile(rf"<!-- status check message \(({_CHECK_NAME})\) -->")

    def encode(self, record: CheckHeader) -> str:
        _require_check_name(record.name)
        return f"<!-- status check message ({record.name}) -->"

    def _from_match(self, match: "re.Match[str]") -> CheckHeader:
        return CheckHeader(name=match.group(1))


class _CheckResultMarker(MarkerKind[CheckResult]):
    name = "check result"
    prefixes = ("<!-- status check result",)
    pattern = re.compile(
        rf"<!-- status check result \(({_CHECK_NAME})\) \((\w+)\) \(([0-9a-fA-F]+)\) \((\S*)\) -->"
    )

    def encode(self, record: CheckResult) -> str:
        _require_check_name(record.name)
        if not _HASH_RE.match(record.hash):
            raise ValueError(f"Check hash must be hexadecimal: {record.hash!r}")
        if record.metadata is None:
            metadata = NO_METADATA
        else:
            metadata = encode_text(record.metadata)
            if metadata == NO_METADATA:
                raise ValueError(f"Metadata {record.metadata!r} collides with the absence marker")
        status = CheckStatus(record.status).value
        return f"<!-- status check result ({record.name}) ({status}) ({record.hash}) ({metadata}) -->"

    def _from_match(self, match: "re.Match[str]") -> CheckResult:
        try:
            status = CheckStatus(match.group(2))
        except ValueError as error:
            raise ProtocolDecodeError(f"Unknown check status {match.group(2)!r}") from error
        raw_metadata = match.group(4)
        metadata = None if raw_metadata == NO_METADATA else decode_text(raw_metadata)
        return CheckResult(name=match.group(1), status=status, hash=match.group(3), metadata=metadata)


class _SummaryMarker(MarkerKind[Summary]):
    name = "summary"
    prefixes = ("<!-- summary:",)
    pattern = re.compile(r"<!-- summary: '([A-Za-z0-9+/=]*)' -->")

    def encode(self, record: Summary) -> str:
        return f"<!-- summary: '{encode_text(record.text)}' -->"

    def _from_match(self, match: "re.Match[str]") -> Summary:
        return Summary(text=decode_text(match.group(1)))


class _IntegrationRequestMarker(MarkerKind[IntegrationRequest]):
    name = "integration request"
    prefixes = ("<!-- integration requested:",)
    pattern = re.compile(r"<!-- integration requested: '([0-9a-fA-F]+)' -->")

    def encode(self, record: IntegrationRequest) -> str:
        if not _HASH_RE.match(record.hash):
            raise ValueError(f"Integration hash must be hexadecimal: {record.hash!r}")
        return f"<!-- integration requested: '{record.hash}' -->"

    def _from_match(self, match: "re.Match[str]") -> IntegrationRequest:
        return IntegrationRequest(hash=match.group(1))


def _require_check_name(name: str) -> None:
    if not _CHECK_NAME_RE.match(name):
        raise ValueError(f"Check name may only contain word characters, '-' and '.': {name!r}")


CONTRIBUTOR = _ContributorMarker()
COMMAND_REPLY = _CommandReplyMarker()
CHECK_HEADER = _CheckHeaderMarker()
CHECK_RESULT = _CheckResultMarker()
SUMMARY = _SummaryMarker()
INTEGRATION_REQUEST = _IntegrationRequestMarker()

MARKER_KINDS: Dict[str, MarkerKind] = {
    kind.name: kind
    for kind in (CONTRIBUTOR, COMMAND_REPLY, CHECK_HEADER, CHECK_RESULT, SUMMARY, INTEGRATION_REQUEST)
}


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
    "NO_METADATA",
    "SUMMARY",
    "Summary",
    "decode_text",
    "encode_text",
]
