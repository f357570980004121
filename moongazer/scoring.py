"""Deterministic slot scoring, window grouping and ranking.

Pure functions only: nothing in this module touches the network. The bulk pass
scores every hour with placeholder (absent) moon data, so the moon penalty is
inert here; real moon data is only attached to the few windows that survive
ranking. Keep that split when changing this module.
"""
from __future__ import annotations

import datetime as dt
from typing import Iterable, List, Optional, Sequence
from zoneinfo import ZoneInfo

from moongazer.domain import CandidateWindow, HourlySeries, TimeSlot

NIGHT_START_HOUR = 21
NIGHT_END_HOUR = 6
GOOD_SLOT_THRESHOLD = 0.6
MOON_PENALTY = 0.2
MOON_PENALTY_ILLUMINATION = 60
MAX_SLOT_GAP = dt.timedelta(hours=2)
MIN_WINDOW_SLOTS = 2
SLOT_LENGTH = dt.timedelta(hours=1)
DEFAULT_MAX_WINDOWS = 3


def is_night_hour(local_time: dt.datetime) -> bool:
    """Clock-hour night predicate (not sun-altitude based)."""
    return local_time.hour >= NIGHT_START_HOUR or local_time.hour <= NIGHT_END_HOUR


def score_slot(cloud_cover_percent: float, moon_illumination: float = 0, moon_visible: bool = False) -> float:
    """Visibility score in [0, 1]; clear and moonless is 1.0."""
    score = 1 - cloud_cover_percent / 100
    if moon_visible and moon_illumination >= MOON_PENALTY_ILLUMINATION:
        score -= MOON_PENALTY
    return min(1.0, max(0.0, score))


def build_time_slots(series: HourlySeries, timezone: str) -> List[TimeSlot]:
    """Score the night-time hours of `series` in the location's local time."""
    tz = ZoneInfo(timezone)
    slots: List[TimeSlot] = []
    for sample in series:
        local_time = sample.time.astimezone(tz)
        if not is_night_hour(local_time):
            continue
        slots.append(
            TimeSlot(
                sample=sample,
                local_time=local_time,
                score=score_slot(sample.cloud_cover_percent),
                is_night=True,
            )
        )
    return slots


def _close_group(group: Sequence[TimeSlot]) -> Optional[CandidateWindow]:
    """Turn a run of good slots into a window, or None if it is too short."""
    if len(group) < MIN_WINDOW_SLOTS:
        return None
    return CandidateWindow(
        start=group[0].time,
        end=group[-1].time + SLOT_LENGTH,
        average_score=sum(s.score for s in group) / len(group),
        slots=tuple(group),
    )


def group_windows(slots: Iterable[TimeSlot], *, threshold: float = GOOD_SLOT_THRESHOLD) -> List[CandidateWindow]:
    """
    Group good slots into windows, in chronological order.

    A slot joins the running group when it is at most two hours after the
    previous slot in the group; a larger gap closes the group. Each slot ends
    up in at most one window.
    """
    good = sorted((s for s in slots if s.score >= threshold), key=lambda s: s.time)
    windows: List[CandidateWindow] = []
    group: List[TimeSlot] = []
    for slot in good:
        if group and slot.time - group[-1].time > MAX_SLOT_GAP:
            window = _close_group(group)
            if window:
                windows.append(window)
            group = []
        group.append(slot)

    window = _close_group(group)
    if window:
        windows.append(window)
    return windows


def rank_windows(windows: Iterable[CandidateWindow], *, limit: int = DEFAULT_MAX_WINDOWS) -> List[CandidateWindow]:
    """Best average score first; ties keep chronological order."""
    return sorted(windows, key=lambda w: -w.average_score)[:limit]


def score_series(series: HourlySeries, timezone: str, *, limit: int = DEFAULT_MAX_WINDOWS) -> List[CandidateWindow]:
    """Full bulk pass: night filter, score, group, rank."""
    return rank_windows(group_windows(build_time_slots(series, timezone)), limit=limit)
