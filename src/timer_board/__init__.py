"""Timer boards: named countdown/stopwatch timers over a key-value store."""

from .engine import (
    Board,
    Timer,
    TimerControl,
    TimerState,
    apply_command,
    effective_elapsed,
    parse_command,
    remaining_ms,
)

__all__ = [
    "Board",
    "Timer",
    "TimerControl",
    "TimerState",
    "apply_command",
    "effective_elapsed",
    "parse_command",
    "remaining_ms",
]
