"""
Timer State Engine

Clock-based timer state machine for timer boards. Elapsed time is derived from
stored timestamps whenever a command is applied; nothing ticks in the background.
"""

import logging
import math
import uuid
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
)
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

# ============================================================
# CONSTANTS
# ============================================================

DEFAULT_LABEL = "Timer"
ONE_MS = timedelta(milliseconds=1)


# ============================================================
# MODELS
# ============================================================


class TimerState(StrEnum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    FINISHED = "finished"


class TimerControl(StrEnum):
    START = "start"
    PAUSE = "pause"
    RESET = "reset"


STARTABLE_STATES = (TimerState.IDLE, TimerState.PAUSED)


def truncate_ms(dt: datetime) -> datetime:
    """Drop sub-millisecond precision so stored timestamps and arithmetic agree."""
    return dt.replace(microsecond=dt.microsecond // 1000 * 1000)


def format_ts(dt: datetime) -> str:
    """Format a datetime as UTC ISO 8601 with milliseconds and a Z suffix."""
    dt = dt.astimezone(UTC)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def parse_ts(value: str) -> datetime:
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt


class _WireModel(BaseModel):
    """Snake-case attributes, camelCase JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Timer(_WireModel):
    id: str
    label: str = DEFAULT_LABEL
    duration_ms: int = 0
    state: TimerState = TimerState.IDLE
    created_at: str
    updated_at: str
    started_at: str | None = None
    elapsed_ms: int = 0

    @field_validator("started_at")
    @classmethod
    def validate_started_at(cls, v: str | None) -> str | None:
        if v is not None:
            parse_ts(v)
        return v


class Board(_WireModel):
    board_id: str
    timers: list[Timer] = Field(default_factory=list)

    @classmethod
    def empty(cls, board_id: str) -> "Board":
        return cls(board_id=board_id)

    def find_timer(self, timer_id: str) -> Timer | None:
        for timer in self.timers:
            if timer.id == timer_id:
                return timer
        return None


# ============================================================
# COMMANDS
# ============================================================


def _coerce_duration(value: Any) -> int:
    """Turn a client-supplied duration into non-negative whole milliseconds, else 0."""
    if isinstance(value, bool) or not isinstance(value, int | float | str):
        return 0
    try:
        number = float(value)
    except (ValueError, OverflowError):
        return 0
    if not math.isfinite(number) or number < 0:
        return 0
    return int(number)


class CreatePayload(BaseModel):
    label: str = DEFAULT_LABEL
    duration_ms: int = Field(0, alias="durationMs")

    @field_validator("label", mode="before")
    @classmethod
    def default_label(cls, v: Any) -> str:
        return v if isinstance(v, str) and v else DEFAULT_LABEL

    @field_validator("duration_ms", mode="before")
    @classmethod
    def coerce_duration(cls, v: Any) -> int:
        return _coerce_duration(v)


class ControlPayload(BaseModel):
    id: str
    # Any value is accepted; unrecognized controls only trigger the finish check.
    command: Any = None


class DeletePayload(BaseModel):
    id: str


class CreateCommand(BaseModel):
    action: Literal["create"]
    payload: CreatePayload = Field(default_factory=CreatePayload)

    @field_validator("payload", mode="before")
    @classmethod
    def missing_payload(cls, v: Any) -> Any:
        return v if isinstance(v, dict) else {}


class TimerCommand(BaseModel):
    action: Literal["command"]
    payload: ControlPayload


class DeleteCommand(BaseModel):
    action: Literal["delete"]
    payload: DeletePayload


class NoOpCommand(BaseModel):
    """Anything that is not a well-formed create, command or delete."""

    action: Any = None


Command = CreateCommand | TimerCommand | DeleteCommand | NoOpCommand

_command_adapter: TypeAdapter[CreateCommand | TimerCommand | DeleteCommand] = TypeAdapter(
    Annotated[CreateCommand | TimerCommand | DeleteCommand, Field(discriminator="action")]
)


def parse_command(body: Any) -> Command:
    """Parse a decoded request body into one of the command variants."""
    if not isinstance(body, dict) or not isinstance(body.get("action"), str):
        return NoOpCommand()
    try:
        return _command_adapter.validate_python(body)
    except ValidationError:
        return NoOpCommand(action=body["action"])


# ============================================================
# ENGINE
# ============================================================


def _ms_since(started_at: str, now: datetime) -> int:
    return max((now - parse_ts(started_at)) // ONE_MS, 0)


def effective_elapsed(timer: Timer, now: datetime) -> int:
    """Active milliseconds accrued by the timer as of ``now``."""
    if timer.state == TimerState.RUNNING and timer.started_at:
        return timer.elapsed_ms + _ms_since(timer.started_at, now)
    return timer.elapsed_ms


def remaining_ms(timer: Timer, now: datetime) -> int:
    return max(timer.duration_ms - effective_elapsed(timer, now), 0)


def _new_timer(payload: CreatePayload, now: datetime) -> Timer:
    stamp = format_ts(now)
    return Timer(
        id=str(uuid.uuid4()),
        label=payload.label,
        duration_ms=payload.duration_ms,
        state=TimerState.IDLE,
        created_at=stamp,
        updated_at=stamp,
        started_at=None,
        elapsed_ms=0,
    )


def _control_timer(timer: Timer, control: Any, now: datetime) -> None:
    match control:
        case TimerControl.START:
            if timer.state in STARTABLE_STATES:
                timer.started_at = format_ts(now)
                timer.state = TimerState.RUNNING
        case TimerControl.PAUSE:
            if timer.state == TimerState.RUNNING and timer.started_at:
                timer.elapsed_ms += _ms_since(timer.started_at, now)
                timer.started_at = None
                timer.state = TimerState.PAUSED
        case TimerControl.RESET:
            timer.elapsed_ms = 0
            timer.started_at = None
            timer.state = TimerState.IDLE
        case _:
            logger.debug("Ignoring unknown control %r for timer %s", control, timer.id)

    # Auto-finish
    if effective_elapsed(timer, now) >= timer.duration_ms:
        timer.state = TimerState.FINISHED
        timer.started_at = None
        timer.elapsed_ms = timer.duration_ms

    timer.updated_at = format_ts(now)


def apply_command(board: Board, body: Any, now: datetime | None = None) -> Board:
    """
    Apply a client command to the board and return it.

    The board is mutated in place. Malformed bodies, unknown actions and unknown
    timer ids leave it unchanged. ``now`` is read once, defaulting to the current
    UTC time, so every calculation in one call sees the same instant.
    """
    now = truncate_ms(now if now is not None else datetime.now(UTC))
    command = parse_command(body)

    match command:
        case CreateCommand(payload=payload):
            board.timers.append(_new_timer(payload, now))
        case TimerCommand(payload=payload):
            timer = board.find_timer(payload.id)
            if timer is not None:
                _control_timer(timer, payload.command, now)
        case DeleteCommand(payload=payload):
            board.timers = [t for t in board.timers if t.id != payload.id]
        case NoOpCommand():
            logger.debug("Ignoring command %r on board %s", command.action, board.board_id)

    return board
