"""Typed records for history, statistics, todos and transcripts."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable

from .errors import JsonParseError

_MISSING = object()
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _is_str(value: Any) -> bool:
    return isinstance(value, str)


def _is_opt_str(value: Any) -> bool:
    return value is None or isinstance(value, str)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_uint(value: Any) -> bool:
    return _is_int(value) and value >= 0


def _is_u32(value: Any) -> bool:
    return _is_uint(value) and value < 2**32


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _require_object(data: Any, name: str) -> dict:
    if not isinstance(data, dict):
        raise JsonParseError(f"invalid type: expected {name} object")
    return data


def _get(data: dict, key: str, check: Callable[[Any], bool], label: str,
         default: Any = _MISSING) -> Any:
    if key not in data:
        if default is _MISSING:
            raise JsonParseError(f"missing field `{key}`")
        return default
    value = data[key]
    if not check(value):
        raise JsonParseError(f"invalid type for `{key}`: expected {label}")
    return value


def _uint_map(data: dict, key: str) -> dict[str, int]:
    mapping = _get(data, key, lambda v: isinstance(v, dict), "map", {})
    if not all(_is_uint(v) for v in mapping.values()):
        raise JsonParseError(f"invalid value in `{key}`: expected unsigned integer")
    return dict(mapping)


def _opt_str(data: dict, key: str) -> str | None:
    return _get(data, key, _is_opt_str, "string", None)


@dataclass
class HistoryEntry:
    """One line of the prompt history file."""

    display: str
    timestamp: int
    project: str | None = None
    session_id: str | None = None
    pasted_contents: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_json(cls, data: Any) -> "HistoryEntry":
        data = _require_object(data, "HistoryEntry")
        return cls(
            display=_get(data, "display", _is_str, "string"),
            timestamp=_get(data, "timestamp", _is_int, "integer"),
            project=_opt_str(data, "project"),
            session_id=_opt_str(data, "sessionId"),
            pasted_contents=dict(
                _get(data, "pastedContents", lambda v: isinstance(v, dict), "map", {})
            ),
        )

    def to_json(self) -> dict[str, Any]:
        out: dict[str, Any] = {"display": self.display, "timestamp": self.timestamp}
        if self.project is not None:
            out["project"] = self.project
        if self.session_id is not None:
            out["sessionId"] = self.session_id
        out["pastedContents"] = dict(self.pasted_contents)
        return out

    def is_user_prompt(self) -> bool:
        return bool(self.display) and not self.display.startswith("/")

    def is_command(self) -> bool:
        return self.display.startswith("/")

    def timestamp_datetime(self) -> datetime:
        """The timestamp (milliseconds) as UTC time, or now if out of range."""
        try:
            return _EPOCH + timedelta(milliseconds=self.timestamp)
        except OverflowError:
            return datetime.now(timezone.utc)

    def formatted_time(self) -> str:
        return self.timestamp_datetime().strftime("%Y-%m-%d %H:%M:%S")

    def project_name(self) -> str | None:
        if self.project is None:
            return None
        return self.project.split("/")[-1]


@dataclass
class DailyActivity:
    date: str
    message_count: int
    session_count: int
    tool_call_count: int

    @classmethod
    def from_json(cls, data: Any) -> "DailyActivity":
        data = _require_object(data, "DailyActivity")
        return cls(
            date=_get(data, "date", _is_str, "string"),
            message_count=_get(data, "messageCount", _is_uint, "unsigned integer"),
            session_count=_get(data, "sessionCount", _is_uint, "unsigned integer"),
            tool_call_count=_get(data, "toolCallCount", _is_uint, "unsigned integer"),
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "date": self.date,
            "messageCount": self.message_count,
            "sessionCount": self.session_count,
            "toolCallCount": self.tool_call_count,
        }


@dataclass
class DailyModelTokens:
    date: str
    tokens_by_model: dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_json(cls, data: Any) -> "DailyModelTokens":
        data = _require_object(data, "DailyModelTokens")
        return cls(
            date=_get(data, "date", _is_str, "string"),
            tokens_by_model=_uint_map(data, "tokensByModel"),
        )

    def to_json(self) -> dict[str, Any]:
        return {"date": self.date, "tokensByModel": dict(self.tokens_by_model)}


@dataclass
class ModelUsageData:
    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_input_tokens: int = 0
    cache_creation_input_tokens: int = 0
    web_search_requests: int = 0
    cost_usd: float = 0.0
    context_window: int = 0

    @classmethod
    def from_json(cls, data: Any) -> "ModelUsageData":
        data = _require_object(data, "ModelUsageData")
        uint = "unsigned integer"
        return cls(
            input_tokens=_get(data, "inputTokens", _is_uint, uint, 0),
            output_tokens=_get(data, "outputTokens", _is_uint, uint, 0),
            cache_read_input_tokens=_get(data, "cacheReadInputTokens", _is_uint, uint, 0),
            cache_creation_input_tokens=_get(
                data, "cacheCreationInputTokens", _is_uint, uint, 0
            ),
            web_search_requests=_get(data, "webSearchRequests", _is_uint, uint, 0),
            cost_usd=float(_get(data, "costUSD", _is_number, "number", 0.0)),
            context_window=_get(data, "contextWindow", _is_uint, uint, 0),
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "inputTokens": self.input_tokens,
            "outputTokens": self.output_tokens,
            "cacheReadInputTokens": self.cache_read_input_tokens,
            "cacheCreationInputTokens": self.cache_creation_input_tokens,
            "webSearchRequests": self.web_search_requests,
            "costUSD": self.cost_usd,
            "contextWindow": self.context_window,
        }


@dataclass
class LongestSession:
    session_id: str
    message_count: int
    duration: int = 0
    timestamp: str = ""

    @classmethod
    def from_json(cls, data: Any) -> "LongestSession":
        data = _require_object(data, "LongestSession")
        return cls(
            session_id=_get(data, "sessionId", _is_str, "string"),
            message_count=_get(data, "messageCount", _is_uint, "unsigned integer"),
            duration=_get(data, "duration", _is_uint, "unsigned integer", 0),
            timestamp=_get(data, "timestamp", _is_str, "string", ""),
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "duration": self.duration,
            "messageCount": self.message_count,
            "timestamp": self.timestamp,
        }


@dataclass
class StatsCache:
    """The precomputed usage statistics file."""

    version: int
    last_computed_date: str
    daily_activity: list[DailyActivity]
    total_messages: int
    total_sessions: int
    first_session_date: str
    daily_model_tokens: list[DailyModelTokens] = field(default_factory=list)
    hour_counts: dict[str, int] = field(default_factory=dict)
    model_usage: dict[str, ModelUsageData] = field(default_factory=dict)
    longest_session: LongestSession | None = None

    @classmethod
    def from_json(cls, data: Any) -> "StatsCache":
        data = _require_object(data, "StatsCache")
        is_list = lambda v: isinstance(v, list)  # noqa: E731
        is_map = lambda v: isinstance(v, dict)  # noqa: E731
        longest = _get(data, "longestSession", lambda v: v is None or is_map(v),
                       "object", None)
        return cls(
            version=_get(data, "version", _is_u32, "u32"),
            last_computed_date=_get(data, "lastComputedDate", _is_str, "string"),
            daily_activity=[
                DailyActivity.from_json(item)
                for item in _get(data, "dailyActivity", is_list, "array")
            ],
            daily_model_tokens=[
                DailyModelTokens.from_json(item)
                for item in _get(data, "dailyModelTokens", is_list, "array", [])
            ],
            hour_counts=_uint_map(data, "hourCounts"),
            model_usage={
                name: ModelUsageData.from_json(usage)
                for name, usage in _get(data, "modelUsage", is_map, "map", {}).items()
            },
            total_messages=_get(data, "totalMessages", _is_uint, "unsigned integer"),
            total_sessions=_get(data, "totalSessions", _is_uint, "unsigned integer"),
            first_session_date=_get(data, "firstSessionDate", _is_str, "string"),
            longest_session=None if longest is None else LongestSession.from_json(longest),
        )

    def to_json(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "version": self.version,
            "lastComputedDate": self.last_computed_date,
            "dailyActivity": [a.to_json() for a in self.daily_activity],
            "dailyModelTokens": [t.to_json() for t in self.daily_model_tokens],
            "hourCounts": dict(self.hour_counts),
            "modelUsage": {name: u.to_json() for name, u in self.model_usage.items()},
            "totalMessages": self.total_messages,
            "totalSessions": self.total_sessions,
            "firstSessionDate": self.first_session_date,
        }
        if self.longest_session is not None:
            out["longestSession"] = self.longest_session.to_json()
        return out

    def total_tokens(self) -> int:
        return sum(u.input_tokens + u.output_tokens for u in self.model_usage.values())

    def activity_by_date(self, date: str) -> DailyActivity | None:
        return next((a for a in self.daily_activity if a.date == date), None)


class TodoStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"

    def __str__(self) -> str:
        return self.value


@dataclass
class TodoEntry:
    content: str
    status: TodoStatus
    active_form: str

    @classmethod
    def from_json(cls, data: Any) -> "TodoEntry":
        data = _require_object(data, "TodoEntry")
        raw_status = _get(data, "status", _is_str, "string")
        try:
            status = TodoStatus(raw_status)
        except ValueError:
            raise JsonParseError(f"unknown variant `{raw_status}`") from None
        return cls(
            content=_get(data, "content", _is_str, "string"),
            status=status,
            active_form=_get(data, "activeForm", _is_str, "string"),
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "content": self.content,
            "status": self.status.value,
            "activeForm": self.active_form,
        }


@dataclass
class TodoFile:
    """The todo list of one agent in one workspace."""

    workspace_id: str
    agent_id: str
    todos: list[TodoEntry] = field(default_factory=list)

    @classmethod
    def from_filename(cls, filename: str, todos: list[TodoEntry]) -> "TodoFile | None":
        """Build from a '<workspace>-agent-<agent>.json' name, or None if it does not fit."""
        stem = filename
        while stem.endswith(".json"):
            stem = stem[: -len(".json")]
        parts = stem.split("-agent-")
        if len(parts) != 2:
            return None
        return cls(workspace_id=parts[0], agent_id=parts[1], todos=list(todos))

    def to_json(self) -> dict[str, Any]:
        return {
            "workspace_id": self.workspace_id,
            "agent_id": self.agent_id,
            "todos": [t.to_json() for t in self.todos],
        }


class TranscriptKind(Enum):
    MESSAGE = "message"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    GENERIC = "generic"


def _classify(data: dict) -> TranscriptKind:
    type_ = data.get("type")
    if isinstance(type_, str):
        message = data.get("message")
        if (isinstance(message, dict) and isinstance(message.get("role"), str)
                and "content" in message):
            return TranscriptKind.MESSAGE
        if isinstance(data.get("tool_name"), str):
            if "tool_input" in data:
                return TranscriptKind.TOOL_CALL
            if "result" in data:
                return TranscriptKind.TOOL_RESULT
    if type_ is None or isinstance(type_, str):
        return TranscriptKind.GENERIC
    raise JsonParseError("data did not match any variant of TranscriptEntry")


def _extract_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return " ".join(
            item["text"]
            for item in content
            if isinstance(item, dict) and item.get("type") == "text"
            and isinstance(item.get("text"), str)
        )
    return ""


@dataclass
class TranscriptEntry:
    """One line of a session transcript, classified by its shape."""

    kind: TranscriptKind
    data: dict[str, Any]

    @classmethod
    def from_json(cls, data: Any) -> "TranscriptEntry":
        if not isinstance(data, dict):
            raise JsonParseError("data did not match any variant of TranscriptEntry")
        return cls(kind=_classify(data), data=dict(data))

    def message_type(self) -> str:
        type_ = self.data.get("type")
        return type_ if isinstance(type_, str) else "unknown"

    def is_user(self) -> bool:
        if self.kind is TranscriptKind.MESSAGE:
            return True
        return self.kind is TranscriptKind.GENERIC and self.data.get("type") == "user"

    def content_preview(self, max_len: int) -> str:
        if self.kind is TranscriptKind.MESSAGE:
            content = _extract_text(self.data["message"]["content"])
        elif self.kind is TranscriptKind.TOOL_CALL:
            content = f"{self.data['tool_name']}()"
        elif self.kind is TranscriptKind.TOOL_RESULT:
            content = f"{self.data['tool_name']} result"
        else:
            value = self.data.get("content")
            content = value if isinstance(value, str) else ""
        if len(content) > max_len:
            return f"{content[:max_len]}..."
        return content