"""Canonical record types for Copilot metrics, seats and usage.

Every top-level record (``MetricsRecord``, ``SeatAssignment``,
``UsageSummary``) carries its scope fields and an ``id`` that is derived by
:mod:`copilot_ingest.processing.identity` before persistence. ``from_dict``
decodes the GitHub REST payloads; ``to_dict`` produces the stored document.
"""

import json
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, Dict, List, Optional


class DecodeError(Exception):
    """Malformed API payload."""
    pass


def _mapping(data: Any, what: str) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise DecodeError(f"Expected object for {what}, got {type(data).__name__}")
    return data


def _list(data: Dict[str, Any], key: str) -> List[Any]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise DecodeError(f"Expected list for '{key}', got {type(value).__name__}")
    return value


def _int(data: Dict[str, Any], key: str) -> int:
    value = data.get(key)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise DecodeError(f"Expected number for '{key}', got {value!r}")
    return int(value)


def _str(data: Dict[str, Any], key: str, default: Optional[str] = None) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return default
    if not isinstance(value, str):
        raise DecodeError(f"Expected string for '{key}', got {value!r}")
    return value


def _required_str(data: Dict[str, Any], key: str) -> str:
    value = _str(data, key)
    if not value:
        raise DecodeError(f"Missing required field '{key}'")
    return value


def _timestamp(data: Dict[str, Any], key: str) -> Optional[datetime]:
    value = _str(data, key)
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as e:
        raise DecodeError(f"Invalid timestamp for '{key}': {value!r}") from e


def _drop_none(document: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in document.items() if value is not None}


# --- IDE code completions -------------------------------------------------

@dataclass
class IdeCodeCompletionModelLanguage:
    name: str
    total_engaged_users: int = 0
    total_code_suggestions: int = 0
    total_code_acceptances: int = 0
    total_code_lines_suggested: int = 0
    total_code_lines_accepted: int = 0

    @classmethod
    def from_dict(cls, data: Any) -> "IdeCodeCompletionModelLanguage":
        data = _mapping(data, "code completion language")
        return cls(
            name=_str(data, "name", ""),
            total_engaged_users=_int(data, "total_engaged_users"),
            total_code_suggestions=_int(data, "total_code_suggestions"),
            total_code_acceptances=_int(data, "total_code_acceptances"),
            total_code_lines_suggested=_int(data, "total_code_lines_suggested"),
            total_code_lines_accepted=_int(data, "total_code_lines_accepted"),
        )


@dataclass
class IdeCodeCompletionModel:
    name: str
    is_custom_model: bool = False
    custom_model_training_date: Optional[str] = None
    total_engaged_users: int = 0
    languages: List[IdeCodeCompletionModelLanguage] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> "IdeCodeCompletionModel":
        data = _mapping(data, "code completion model")
        return cls(
            name=_str(data, "name", ""),
            is_custom_model=bool(data.get("is_custom_model", False)),
            custom_model_training_date=_str(data, "custom_model_training_date"),
            total_engaged_users=_int(data, "total_engaged_users"),
            languages=[IdeCodeCompletionModelLanguage.from_dict(item) for item in _list(data, "languages")],
        )


@dataclass
class IdeCodeCompletionEditor:
    name: str
    total_engaged_users: int = 0
    models: List[IdeCodeCompletionModel] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> "IdeCodeCompletionEditor":
        data = _mapping(data, "code completion editor")
        return cls(
            name=_str(data, "name", ""),
            total_engaged_users=_int(data, "total_engaged_users"),
            models=[IdeCodeCompletionModel.from_dict(item) for item in _list(data, "models")],
        )


@dataclass
class IdeCodeCompletionLanguage:
    name: str
    total_engaged_users: int = 0

    @classmethod
    def from_dict(cls, data: Any) -> "IdeCodeCompletionLanguage":
        data = _mapping(data, "code completion language summary")
        return cls(name=_str(data, "name", ""), total_engaged_users=_int(data, "total_engaged_users"))


@dataclass
class IdeCodeCompletions:
    total_engaged_users: int = 0
    languages: List[IdeCodeCompletionLanguage] = field(default_factory=list)
    editors: List[IdeCodeCompletionEditor] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> "IdeCodeCompletions":
        data = _mapping(data, "copilot_ide_code_completions")
        return cls(
            total_engaged_users=_int(data, "total_engaged_users"),
            languages=[IdeCodeCompletionLanguage.from_dict(item) for item in _list(data, "languages")],
            editors=[IdeCodeCompletionEditor.from_dict(item) for item in _list(data, "editors")],
        )


# --- IDE chat -------------------------------------------------------------

@dataclass
class IdeChatModel:
    name: str
    is_custom_model: bool = False
    custom_model_training_date: Optional[str] = None
    total_engaged_users: int = 0
    total_chats: int = 0
    total_chat_insertion_events: int = 0
    total_chat_copy_events: int = 0

    @classmethod
    def from_dict(cls, data: Any) -> "IdeChatModel":
        data = _mapping(data, "IDE chat model")
        return cls(
            name=_str(data, "name", ""),
            is_custom_model=bool(data.get("is_custom_model", False)),
            custom_model_training_date=_str(data, "custom_model_training_date"),
            total_engaged_users=_int(data, "total_engaged_users"),
            total_chats=_int(data, "total_chats"),
            total_chat_insertion_events=_int(data, "total_chat_insertion_events"),
            total_chat_copy_events=_int(data, "total_chat_copy_events"),
        )


@dataclass
class IdeChatEditor:
    name: str
    total_engaged_users: int = 0
    models: List[IdeChatModel] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> "IdeChatEditor":
        data = _mapping(data, "IDE chat editor")
        return cls(
            name=_str(data, "name", ""),
            total_engaged_users=_int(data, "total_engaged_users"),
            models=[IdeChatModel.from_dict(item) for item in _list(data, "models")],
        )


@dataclass
class IdeChat:
    total_engaged_users: int = 0
    editors: List[IdeChatEditor] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> "IdeChat":
        data = _mapping(data, "copilot_ide_chat")
        return cls(
            total_engaged_users=_int(data, "total_engaged_users"),
            editors=[IdeChatEditor.from_dict(item) for item in _list(data, "editors")],
        )


# --- github.com chat and pull requests ------------------------------------

@dataclass
class DotComChatModel:
    name: str
    is_custom_model: bool = False
    custom_model_training_date: Optional[str] = None
    total_engaged_users: int = 0
    total_chats: int = 0

    @classmethod
    def from_dict(cls, data: Any) -> "DotComChatModel":
        data = _mapping(data, "dotcom chat model")
        return cls(
            name=_str(data, "name", ""),
            is_custom_model=bool(data.get("is_custom_model", False)),
            custom_model_training_date=_str(data, "custom_model_training_date"),
            total_engaged_users=_int(data, "total_engaged_users"),
            total_chats=_int(data, "total_chats"),
        )


@dataclass
class DotComChat:
    total_engaged_users: int = 0
    models: List[DotComChatModel] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> "DotComChat":
        data = _mapping(data, "copilot_dotcom_chat")
        return cls(
            total_engaged_users=_int(data, "total_engaged_users"),
            models=[DotComChatModel.from_dict(item) for item in _list(data, "models")],
        )


@dataclass
class DotComPullRequestModel:
    name: str
    is_custom_model: bool = False
    custom_model_training_date: Optional[str] = None
    total_engaged_users: int = 0
    total_pr_summaries_created: int = 0

    @classmethod
    def from_dict(cls, data: Any) -> "DotComPullRequestModel":
        data = _mapping(data, "pull request model")
        return cls(
            name=_str(data, "name", ""),
            is_custom_model=bool(data.get("is_custom_model", False)),
            custom_model_training_date=_str(data, "custom_model_training_date"),
            total_engaged_users=_int(data, "total_engaged_users"),
            total_pr_summaries_created=_int(data, "total_pr_summaries_created"),
        )


@dataclass
class DotComPullRequestRepository:
    name: str
    total_engaged_users: int = 0
    models: List[DotComPullRequestModel] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> "DotComPullRequestRepository":
        data = _mapping(data, "pull request repository")
        return cls(
            name=_str(data, "name", ""),
            total_engaged_users=_int(data, "total_engaged_users"),
            models=[DotComPullRequestModel.from_dict(item) for item in _list(data, "models")],
        )


@dataclass
class DotComPullRequests:
    total_engaged_users: int = 0
    repositories: List[DotComPullRequestRepository] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> "DotComPullRequests":
        data = _mapping(data, "copilot_dotcom_pull_requests")
        return cls(
            total_engaged_users=_int(data, "total_engaged_users"),
            repositories=[DotComPullRequestRepository.from_dict(item) for item in _list(data, "repositories")],
        )


# --- top-level records ----------------------------------------------------

@dataclass
class MetricsRecord:
    """One calendar day of Copilot metrics for one scope."""
    date: str
    total_active_users: int = 0
    total_engaged_users: int = 0
    copilot_ide_code_completions: Optional[IdeCodeCompletions] = None
    copilot_ide_chat: Optional[IdeChat] = None
    copilot_dotcom_chat: Optional[DotComChat] = None
    copilot_dotcom_pull_requests: Optional[DotComPullRequests] = None
    enterprise: Optional[str] = None
    organization: Optional[str] = None
    team: Optional[str] = None
    last_update: Optional[datetime] = None
    id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "MetricsRecord":
        data = _mapping(data, "metrics record")
        sections = {
            "copilot_ide_code_completions": IdeCodeCompletions,
            "copilot_ide_chat": IdeChat,
            "copilot_dotcom_chat": DotComChat,
            "copilot_dotcom_pull_requests": DotComPullRequests,
        }
        decoded = {
            key: section.from_dict(data[key]) if data.get(key) is not None else None
            for key, section in sections.items()
        }
        return cls(
            date=_required_str(data, "date"),
            total_active_users=_int(data, "total_active_users"),
            total_engaged_users=_int(data, "total_engaged_users"),
            enterprise=_str(data, "enterprise"),
            organization=_str(data, "organization"),
            team=_str(data, "team"),
            last_update=_timestamp(data, "last_update"),
            id=_str(data, "id"),
            **decoded,
        )

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none(asdict(self))


@dataclass
class UsageBreakdown:
    """Usage for one (day, language, editor) combination."""
    language: str
    editor: str
    day: Optional[str] = None
    suggestions_count: int = 0
    acceptances_count: int = 0
    lines_suggested: int = 0
    lines_accepted: int = 0
    active_users: int = 0
    organization: Optional[str] = None
    enterprise: Optional[str] = None
    team: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any, day: Optional[str] = None) -> "UsageBreakdown":
        data = _mapping(data, "usage breakdown")
        return cls(
            language=_str(data, "language", ""),
            editor=_str(data, "editor", ""),
            day=_str(data, "day", day),
            suggestions_count=_int(data, "suggestions_count"),
            acceptances_count=_int(data, "acceptances_count"),
            lines_suggested=_int(data, "lines_suggested"),
            lines_accepted=_int(data, "lines_accepted"),
            active_users=_int(data, "active_users"),
            organization=_str(data, "organization"),
            enterprise=_str(data, "enterprise"),
            team=_str(data, "team"),
        )


@dataclass
class UsageSummary:
    """Aggregated Copilot usage for one day and one scope."""
    day: str
    total_suggestions_count: int = 0
    total_acceptances_count: int = 0
    total_lines_suggested: int = 0
    total_lines_accepted: int = 0
    total_active_users: int = 0
    total_chat_acceptances: int = 0
    total_chat_turns: int = 0
    total_active_chat_users: int = 0
    breakdown: List[UsageBreakdown] = field(default_factory=list)
    organization: Optional[str] = None
    enterprise: Optional[str] = None
    team: Optional[str] = None
    id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "UsageSummary":
        data = _mapping(data, "usage summary")
        day = _required_str(data, "day")
        return cls(
            day=day,
            total_suggestions_count=_int(data, "total_suggestions_count"),
            total_acceptances_count=_int(data, "total_acceptances_count"),
            total_lines_suggested=_int(data, "total_lines_suggested"),
            total_lines_accepted=_int(data, "total_lines_accepted"),
            total_active_users=_int(data, "total_active_users"),
            total_chat_acceptances=_int(data, "total_chat_acceptances"),
            total_chat_turns=_int(data, "total_chat_turns"),
            total_active_chat_users=_int(data, "total_active_chat_users"),
            breakdown=[UsageBreakdown.from_dict(item, day=day) for item in _list(data, "breakdown")],
            organization=_str(data, "organization"),
            enterprise=_str(data, "enterprise"),
            team=_str(data, "team"),
            id=_str(data, "id"),
        )

    def to_dict(self) -> Dict[str, Any]:
        document = _drop_none(asdict(self))
        document["breakdown"] = [_drop_none(row) for row in document["breakdown"]]
        return document


# --- seats ----------------------------------------------------------------

@dataclass
class GitHubUser:
    login: str
    id: int = 0
    node_id: Optional[str] = None
    name: Optional[str] = None
    type: Optional[str] = None
    site_admin: bool = False
    avatar_url: Optional[str] = None
    url: Optional[str] = None
    html_url: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "GitHubUser":
        data = _mapping(data, "assignee")
        return cls(
            login=_str(data, "login", ""),
            id=_int(data, "id"),
            node_id=_str(data, "node_id"),
            name=_str(data, "name"),
            type=_str(data, "type"),
            site_admin=bool(data.get("site_admin", False)),
            avatar_url=_str(data, "avatar_url"),
            url=_str(data, "url"),
            html_url=_str(data, "html_url"),
        )


@dataclass
class GitHubTeam:
    name: str
    id: int = 0
    slug: Optional[str] = None
    node_id: Optional[str] = None
    description: Optional[str] = None
    privacy: Optional[str] = None
    url: Optional[str] = None
    html_url: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "GitHubTeam":
        data = _mapping(data, "assigning_team")
        return cls(
            name=_str(data, "name", ""),
            id=_int(data, "id"),
            slug=_str(data, "slug"),
            node_id=_str(data, "node_id"),
            description=_str(data, "description"),
            privacy=_str(data, "privacy"),
            url=_str(data, "url"),
            html_url=_str(data, "html_url"),
        )


@dataclass
class GitHubOrganization:
    login: str
    id: int = 0
    node_id: Optional[str] = None
    url: Optional[str] = None
    description: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "GitHubOrganization":
        data = _mapping(data, "organization")
        return cls(
            login=_str(data, "login", ""),
            id=_int(data, "id"),
            node_id=_str(data, "node_id"),
            url=_str(data, "url"),
            description=_str(data, "description"),
        )


@dataclass
class Seat:
    """A Copilot seat assigned to one user."""
    assignee: GitHubUser
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    pending_cancellation_date: Optional[str] = None
    last_activity_at: Optional[datetime] = None
    last_activity_editor: Optional[str] = None
    plan_type: Optional[str] = None
    assigning_team: Optional[GitHubTeam] = None
    organization: Optional[GitHubOrganization] = None

    @classmethod
    def from_dict(cls, data: Any) -> "Seat":
        data = _mapping(data, "seat")
        if data.get("assignee") is None:
            raise DecodeError("Seat is missing 'assignee'")
        return cls(
            assignee=GitHubUser.from_dict(data["assignee"]),
            created_at=_timestamp(data, "created_at"),
            updated_at=_timestamp(data, "updated_at"),
            pending_cancellation_date=_str(data, "pending_cancellation_date"),
            last_activity_at=_timestamp(data, "last_activity_at"),
            last_activity_editor=_str(data, "last_activity_editor"),
            plan_type=_str(data, "plan_type"),
            assigning_team=GitHubTeam.from_dict(data["assigning_team"]) if data.get("assigning_team") else None,
            organization=GitHubOrganization.from_dict(data["organization"]) if data.get("organization") else None,
        )


@dataclass
class SeatAssignment:
    """Snapshot of every assigned Copilot seat for one scope on one date."""
    date: str
    seats: List[Seat] = field(default_factory=list)
    total_seats: int = 0
    enterprise: Optional[str] = None
    organization: Optional[str] = None
    last_update: Optional[datetime] = None
    id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "SeatAssignment":
        data = _mapping(data, "seat assignment")
        seats = [Seat.from_dict(item) for item in _list(data, "seats")]
        return cls(
            date=_str(data, "date", ""),
            seats=seats,
            total_seats=_int(data, "total_seats") or len(seats),
            enterprise=_str(data, "enterprise"),
            organization=_str(data, "organization"),
            last_update=_timestamp(data, "last_update"),
            id=_str(data, "id"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none(asdict(self))


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def to_json(record: Any) -> str:
    """Serialize a top-level record to the JSON document that gets stored."""
    return json.dumps(record.to_dict(), default=_json_default, sort_keys=True)
