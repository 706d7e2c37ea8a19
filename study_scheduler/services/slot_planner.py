"""Urgency-first greedy placement of study sessions into weekly availability.

This module is pure: it knows nothing about the database. Callers hand it the
user's weekly blocks, the time already committed on specific dates and the
assignments that still need work, and get back concrete date-stamped sessions.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
from uuid import UUID

MINUTES_PER_DAY = 24 * 60
PRIORITY_RANK = {"high": 2, "medium": 1, "low": 0}
DAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")


@dataclass(frozen=True)
class WeeklyBlock:
    day_of_week: int
    start: time
    end: time
    block_type: str
    label: Optional[str] = None
    location: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.label or f"{self.block_type} block"


@dataclass(frozen=True)
class AssignmentDemand:
    assignment_id: UUID
    title: str
    duration_min: int
    priority: str = "medium"
    due_date: Optional[datetime] = None


@dataclass(frozen=True)
class BusyInterval:
    day: date
    start: time
    end: time


@dataclass
class FreeWindow:
    day: date
    start_min: int
    end_min: int
    sources: List[Tuple[int, int, WeeklyBlock]] = field(default_factory=list)

    @property
    def length(self) -> int:
        return self.end_min - self.start_min

    def block_at(self, minute: int) -> Optional[WeeklyBlock]:
        for start_min, end_min, block in self.sources:
            if start_min <= minute < end_min:
                return block
        return self.sources[0][2] if self.sources else None


@dataclass(frozen=True)
class PlacedSession:
    assignment_id: UUID
    day: date
    start: time
    end: time
    reason: str
    on_time: bool


@dataclass
class PlacementResult:
    sessions: List[PlacedSession]
    unplaced: List[UUID]


def day_of_week(day: date) -> int:
    """Return the stored weekday index for a date (0 = Sunday)."""
    return (day.weekday() + 1) % 7


def to_minutes(value: time, *, round_up: bool = False) -> int:
    minutes = value.hour * 60 + value.minute
    if round_up and (value.second or value.microsecond):
        minutes += 1
    return minutes


def from_minutes(minutes: int) -> time:
    minutes = min(max(minutes, 0), MINUTES_PER_DAY - 1)
    return time(minutes // 60, minutes % 60)


def rank_assignments(demands: Iterable[AssignmentDemand]) -> List[AssignmentDemand]:
    """Order by due date (undated last), then priority high first, then longest first."""

    def sort_key(demand: AssignmentDemand):
        has_no_due = demand.due_date is None
        due = demand.due_date or datetime.max
        return (has_no_due, due, -PRIORITY_RANK.get(demand.priority, 1), -demand.duration_min)

    return sorted(demands, key=sort_key)


def expand_availability(
    blocks: Sequence[WeeklyBlock],
    *,
    start_date: date,
    horizon_days: int,
    block_types: Iterable[str],
    not_before: Optional[time] = None,
) -> List[FreeWindow]:
    """Stamp recurring blocks onto concrete dates and merge overlaps per day."""
    allowed = set(block_types)
    windows: List[FreeWindow] = []
    for offset in range(horizon_days):
        day = start_date + timedelta(days=offset)
        floor = to_minutes(not_before, round_up=True) if (not_before and day == start_date) else 0
        spans: List[Tuple[int, int, WeeklyBlock]] = []
        for block in blocks:
            if block.block_type not in allowed or block.day_of_week != day_of_week(day):
                continue
            start_min = max(to_minutes(block.start, round_up=True), floor)
            end_min = to_minutes(block.end)
            if start_min < end_min:
                spans.append((start_min, end_min, block))
        windows.extend(_merge_spans(day, spans))
    return windows


def _merge_spans(day: date, spans: List[Tuple[int, int, WeeklyBlock]]) -> List[FreeWindow]:
    merged: List[FreeWindow] = []
    for start_min, end_min, block in sorted(spans, key=lambda span: (span[0], span[1])):
        if merged and start_min <= merged[-1].end_min:
            current = merged[-1]
            current.end_min = max(current.end_min, end_min)
            current.sources.append((start_min, end_min, block))
        else:
            merged.append(FreeWindow(day, start_min, end_min, [(start_min, end_min, block)]))
    return merged


def subtract_busy(windows: List[FreeWindow], busy: Iterable[BusyInterval]) -> List[FreeWindow]:
    """Remove committed time from the windows; a window may split in two."""
    busy_by_day: Dict[date, List[Tuple[int, int]]] = {}
    for interval in busy:
        busy_by_day.setdefault(interval.day, []).append(
            (to_minutes(interval.start), to_minutes(interval.end, round_up=True))
        )

    result: List[FreeWindow] = []
    for window in windows:
        pieces = [(window.start_min, window.end_min)]
        for busy_start, busy_end in sorted(busy_by_day.get(window.day, [])):
            next_pieces = []
            for start_min, end_min in pieces:
                if busy_end <= start_min or busy_start >= end_min:
                    next_pieces.append((start_min, end_min))
                    continue
                if busy_start > start_min:
                    next_pieces.append((start_min, busy_start))
                if busy_end < end_min:
                    next_pieces.append((busy_end, end_min))
            pieces = next_pieces
        result.extend(FreeWindow(window.day, s, e, window.sources) for s, e in pieces if s < e)
    result.sort(key=lambda w: (w.day, w.start_min))
    return result


def place_sessions(
    blocks: Sequence[WeeklyBlock],
    demands: Iterable[AssignmentDemand],
    busy: Iterable[BusyInterval],
    *,
    start_date: date,
    horizon_days: int,
    block_types: Iterable[str] = ("study", "free"),
    not_before: Optional[time] = None,
) -> PlacementResult:
    """Greedily carve one session per assignment out of the free windows."""
    windows = expand_availability(
        blocks,
        start_date=start_date,
        horizon_days=horizon_days,
        block_types=block_types,
        not_before=not_before,
    )
    windows = subtract_busy(windows, busy)

    sessions: List[PlacedSession] = []
    unplaced: List[UUID] = []
    for demand in rank_assignments(demands):
        duration = demand.duration_min
        chosen = _first_fit(windows, duration, demand.due_date)
        on_time = chosen is not None
        if chosen is None:
            chosen = _first_fit(windows, duration, None)
        if chosen is None:
            unplaced.append(demand.assignment_id)
            continue

        window = windows[chosen]
        start_min = window.start_min
        end_min = start_min + duration
        block = window.block_at(start_min)
        sessions.append(
            PlacedSession(
                assignment_id=demand.assignment_id,
                day=window.day,
                start=from_minutes(start_min),
                end=from_minutes(end_min),
                reason=build_reason(demand, window.day, block, on_time=on_time),
                on_time=on_time,
            )
        )
        window.start_min = end_min
        if window.length <= 0:
            windows.pop(chosen)

    return PlacementResult(sessions=sessions, unplaced=unplaced)


def _first_fit(windows: List[FreeWindow], duration: int, due: Optional[datetime]) -> Optional[int]:
    for index, window in enumerate(windows):
        if window.length < duration:
            continue
        if due is not None:
            session_end = datetime.combine(window.day, time()) + timedelta(minutes=window.start_min + duration)
            if session_end > due:
                continue
        return index
    return None


def build_reason(
    demand: AssignmentDemand,
    day: date,
    block: Optional[WeeklyBlock],
    *,
    on_time: bool,
) -> str:
    weekday = DAY_NAMES[day_of_week(day)]
    where = f"your {block.display_name} on {weekday}" if block else f"your free time on {weekday}"
    if block and block.location:
        where = f"{where} ({block.location})"
    minutes = f"{demand.duration_min}-minute"

    if demand.due_date is None:
        reason = f"No due date set, so this {minutes} session uses the earliest opening in {where}."
    elif on_time:
        days_ahead = (demand.due_date.date() - day).days
        lead = "the day it is due" if days_ahead <= 0 else f"{days_ahead} day{'s' if days_ahead != 1 else ''} before it is due"
        reason = (
            f"Due {_format_due(demand.due_date)}; this {minutes} session in {where} lands {lead}."
        )
    else:
        reason = (
            f"No opening finishes before the {_format_due(demand.due_date)} deadline; "
            f"this is the earliest {minutes} slot left in {where}."
        )

    if demand.priority == "high":
        reason = f"{reason} Marked high priority."
    return reason


def _format_due(due: datetime) -> str:
    text = f"{due:%a %b} {due.day}"
    if due.time() != time():
        text = f"{text} {due:%H:%M}"
    return text


def default_duration(value: Optional[int], fallback: int) -> int:
    """Sessions need a positive length; missing or zero durations use the fallback."""
    if value is None or value <= 0:
        return fallback
    return int(value)


def horizon_end(start_date: date, horizon_days: int) -> date:
    return start_date + timedelta(days=max(horizon_days, 1) - 1)
