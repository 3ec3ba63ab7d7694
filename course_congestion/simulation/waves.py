"""Start waves and runner pool generation."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any

import numpy as np

from ..core.runner import Runner

logger = logging.getLogger(__name__)

KM_PER_MILE = 1.609344


def pace_from_min_mile(minutes: float, seconds: float = 0.0) -> float:
    """Convert a min/mile pace to seconds per kilometre.

    Seconds are clamped to ``0..59`` and the pace to at least one minute per
    mile, as the wave editor allows.
    """
    seconds = max(0.0, min(59.0, seconds))
    return max(60.0, minutes * 60 + seconds) / KM_PER_MILE


def pace_to_min_mile(sec_per_km: float) -> tuple[int, int]:
    """Convert seconds per kilometre to whole ``(minutes, seconds)`` per mile."""
    sec_per_mile = max(60, round(sec_per_km * KM_PER_MILE))
    return sec_per_mile // 60, sec_per_mile % 60


@dataclass(frozen=True)
class Wave:
    """A group of runners sharing a start time and a pace range (s/km)."""

    id: str
    start_time: float
    runner_count: int
    min_pace: float
    max_pace: float


DEFAULT_WAVES: tuple[Wave, ...] = (
    Wave("wave-1", 600.0, 89, pace_from_min_mile(5, 51), pace_from_min_mile(8, 30)),
    Wave("wave-2", 900.0, 158, pace_from_min_mile(8, 31), pace_from_min_mile(11, 0)),
    Wave("wave-3", 1200.0, 462, pace_from_min_mile(11, 0), pace_from_min_mile(20, 0)),
)


def default_waves(start_offset: float = 0.0) -> list[Wave]:
    """Fresh copy of :data:`DEFAULT_WAVES`, optionally shifted in time."""
    return [replace(w, start_time=w.start_time + start_offset) for w in DEFAULT_WAVES]


def new_wave(existing: int) -> Wave:
    """Wave appended by the editor after *existing* waves."""
    return Wave(
        id=f"wave-{existing + 1}",
        start_time=existing * 120.0,
        runner_count=100,
        min_pace=280.0,
        max_pace=420.0,
    )


# ── Editor rows ──────────────────────────────────────────────────────
#
# The wave editor shows paces as "M:SS" per mile; waves store s/km.


def format_min_mile(sec_per_km: float) -> str:
    minutes, seconds = pace_to_min_mile(sec_per_km)
    return f"{minutes}:{seconds:02d}"


def parse_min_mile(text: str | float | int) -> float:
    """Parse an ``"M:SS"`` (or plain minutes) per-mile pace into s/km.

    Raises
    ------
    ValueError
        If *text* is not a pace.
    """
    raw = str(text).strip()
    minutes, sep, seconds = raw.partition(":")
    try:
        return pace_from_min_mile(float(minutes), float(seconds) if sep else 0.0)
    except ValueError:
        raise ValueError(f"Invalid pace {raw!r}; expected M:SS per mile.") from None


def wave_to_row(wave: Wave) -> dict[str, Any]:
    return {
        "id": wave.id,
        "start_s": wave.start_time,
        "runners": wave.runner_count,
        "min_pace": format_min_mile(wave.min_pace),
        "max_pace": format_min_mile(wave.max_pace),
    }


def wave_from_row(row: dict[str, Any], index: int = 0) -> Wave:
    """Build a :class:`Wave` from one editor row.

    Blank ids fall back to ``wave-<index+1>``; negative start times are
    clamped to zero.

    Raises
    ------
    ValueError
        If a number or pace cannot be parsed.
    """
    wave_id = str(row.get("id") or "").strip() or f"wave-{index + 1}"
    try:
        start = max(0.0, float(row.get("start_s") or 0.0))
        count = int(float(row.get("runners") or 0))
    except (TypeError, ValueError):
        raise ValueError(f"{wave_id}: start and runner count must be numbers.") from None
    return Wave(
        id=wave_id,
        start_time=start,
        runner_count=count,
        min_pace=parse_min_mile(row.get("min_pace", "")),
        max_pace=parse_min_mile(row.get("max_pace", "")),
    )


def waves_from_rows(rows: list[dict[str, Any]] | None) -> list[Wave]:
    return [wave_from_row(row, i) for i, row in enumerate(rows or [])]


# ── Course presets ───────────────────────────────────────────────────


@dataclass(frozen=True)
class CoursePreset:
    """A named route paired with its start waves."""

    id: str
    label: str
    route: str
    waves: tuple[Wave, ...]


def default_course_presets() -> list[CoursePreset]:
    """The 5K three-wave preset and a 10K single mass-start preset."""
    base = DEFAULT_WAVES[0]
    return [
        CoursePreset("course-1", "5K, three waves", "Out-and-back 5K", DEFAULT_WAVES),
        CoursePreset(
            "course-2", "10K, mass start", "Out-and-back 10K",
            (Wave("wave-1", 0.0, 450, base.min_pace, base.max_pace),),
        ),
    ]


def generate_runners(
    waves: list[Wave] | tuple[Wave, ...],
    rng: np.random.Generator | None = None,
) -> list[Runner]:
    """Create every runner of *waves* with a uniform random pace.

    Pace bounds given in the wrong order are swapped; negative runner
    counts contribute nobody.
    """
    rng = rng or np.random.default_rng()
    runners: list[Runner] = []
    for wave in waves:
        lo = min(wave.min_pace, wave.max_pace)
        hi = max(wave.min_pace, wave.max_pace)
        count = max(0, int(wave.runner_count))
        paces = lo + rng.random(count) * (hi - lo)
        for k, pace in enumerate(paces):
            runners.append(Runner(
                id=f"{wave.id}-runner-{k + 1}",
                wave_id=wave.id,
                start_time=float(wave.start_time),
                pace=float(pace),
            ))
    logger.info("Generated %d runners across %d waves", len(runners), len(waves))
    return runners
