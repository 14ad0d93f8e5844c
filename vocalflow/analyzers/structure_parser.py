from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, replace
from typing import Any, Iterable

logger = logging.getLogger(__name__)


class SectionType(str, enum.Enum):
    INTRO = "intro"
    VERSE = "verse"
    CHORUS = "chorus"
    BRIDGE = "bridge"
    OUTRO = "outro"


RECORDABLE_TYPES = frozenset({SectionType.VERSE, SectionType.CHORUS})

DEFAULT_LABELS: dict[SectionType, str] = {
    SectionType.INTRO: "Intro",
    SectionType.VERSE: "Verse",
    SectionType.CHORUS: "Chorus",
    SectionType.BRIDGE: "Bridge",
    SectionType.OUTRO: "Outro",
}

# Harmonix-style labels emitted by segmentation models.
RAW_LABEL_MAP: dict[str, SectionType] = {
    "intro": SectionType.INTRO,
    "start": SectionType.INTRO,
    "verse": SectionType.VERSE,
    "inst": SectionType.VERSE,
    "solo": SectionType.VERSE,
    "break": SectionType.VERSE,
    "chorus": SectionType.CHORUS,
    "bridge": SectionType.BRIDGE,
    "outro": SectionType.OUTRO,
    "end": SectionType.OUTRO,
}

MERGE_GAP_S = 1.0
MAX_ORDINAL = 8


@dataclass(frozen=True)
class SongSection:
    type: SectionType
    label: str
    start_time: float
    end_time: float

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time

    @property
    def is_recordable(self) -> bool:
        return self.type in RECORDABLE_TYPES

    def to_json(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "label": self.label,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "duration": self.duration,
        }


def map_label(raw: str | None) -> SectionType:
    """Exact match first, then substring either way, else verse."""
    key = (raw or "").strip().lower()
    if not key:
        return SectionType.VERSE
    if key in RAW_LABEL_MAP:
        return RAW_LABEL_MAP[key]
    for name, section_type in RAW_LABEL_MAP.items():
        if name in key or key in name:
            return section_type
    return SectionType.VERSE


def normalize_sections(raw: Iterable[Any], *, duration: float | None = None) -> list[SongSection]:
    """
    Turn provider section dicts into SongSections sorted by start time.

    Accepts `startTime`/`endTime` or `start`/`end`. Intervals with a
    negative start or a non-positive length are dropped. Overlap and
    coverage of [0, duration] are not enforced; overrunning the declared
    duration is only logged.
    """
    sections: list[SongSection] = []
    for item in raw:
        if not isinstance(item, dict):
            logger.warning("Skipping non-object section: %r", item)
            continue
        try:
            start = float(_first_present(item, "startTime", "start"))
            end = float(_first_present(item, "endTime", "end"))
        except (TypeError, ValueError):
            logger.warning("Skipping section without numeric bounds: %r", item)
            continue
        if start < 0 or end <= start:
            logger.warning("Skipping invalid section interval [%.3f, %.3f]", start, end)
            continue

        raw_type = item.get("type") if isinstance(item.get("type"), str) else None
        raw_label = item.get("label") if isinstance(item.get("label"), str) else None
        section_type = map_label(raw_type or raw_label)
        label = raw_label.strip() if raw_label and raw_label.strip() else DEFAULT_LABELS[section_type]
        sections.append(SongSection(type=section_type, label=label, start_time=start, end_time=end))

    sections.sort(key=lambda s: s.start_time)

    if duration is not None and sections and sections[-1].end_time > float(duration) + MERGE_GAP_S:
        logger.warning(
            "Sections run to %.2fs, past the declared duration %.2fs",
            sections[-1].end_time,
            float(duration),
        )
    return sections


def merge_consecutive(sections: list[SongSection], *, max_gap_s: float = MERGE_GAP_S) -> list[SongSection]:
    """Fuse neighbours of the same type separated by less than `max_gap_s`."""
    if not sections:
        return []
    merged: list[SongSection] = []
    current = sections[0]
    for nxt in sections[1:]:
        if nxt.type == current.type and (nxt.start_time - current.end_time) < max_gap_s:
            current = replace(current, end_time=max(current.end_time, nxt.end_time))
        else:
            merged.append(current)
            current = nxt
    merged.append(current)
    return merged


def number_labels(sections: list[SongSection]) -> list[SongSection]:
    """'Verse' -> 'Verse 1', 'Verse 2' when a type occurs more than once."""
    totals: dict[SectionType, int] = {}
    for s in sections:
        totals[s.type] = totals.get(s.type, 0) + 1

    seen: dict[SectionType, int] = {}
    out: list[SongSection] = []
    for s in sections:
        seen[s.type] = seen.get(s.type, 0) + 1
        n = seen[s.type]
        if totals[s.type] > 1 and n <= MAX_ORDINAL:
            s = replace(s, label=f"{s.label} {n}")
        out.append(s)
    return out


def template_structure(duration: float, bpm: float = 120.0) -> list[SongSection]:
    """
    Typical pop layout sized from duration and tempo, for manual entry
    when analysis comes back empty.

    <120s: intro, verse, chorus, outro
    <240s: intro, verse, chorus, verse, chorus, outro
    else:  intro, verse, chorus, verse, chorus, bridge, chorus, outro
    """
    total = float(duration)
    if total <= 0:
        raise ValueError("duration must be positive")
    if bpm <= 0:
        raise ValueError("bpm must be positive")

    def bars(n: int) -> float:
        return n * 4 * 60.0 / bpm

    INTRO, VERSE, CHORUS, BRIDGE, OUTRO = (
        SectionType.INTRO,
        SectionType.VERSE,
        SectionType.CHORUS,
        SectionType.BRIDGE,
        SectionType.OUTRO,
    )

    if total < 120:
        edge = min(bars(4), total * 0.1)
        intro_end = edge
        outro_start = total - edge
        verse_end = intro_end + (outro_start - intro_end) * 0.5
        bounds = [
            (INTRO, 0.0, intro_end),
            (VERSE, intro_end, verse_end),
            (CHORUS, verse_end, outro_start),
            (OUTRO, outro_start, total),
        ]
        return [SongSection(t, DEFAULT_LABELS[t], s, e) for t, s, e in bounds]

    if total < 240:
        intro_len = min(bars(4), 15.0)
        outro_len = min(bars(4), 15.0)
        body = [VERSE, CHORUS, VERSE, CHORUS]
        bridge_len = 0.0
        body_len = (total - intro_len - outro_len) / len(body)
    else:
        intro_len = min(bars(4), 15.0)
        outro_len = min(bars(4), 20.0)
        bridge_len = min(bars(8), 30.0)
        body = [VERSE, CHORUS, VERSE, CHORUS, BRIDGE, CHORUS]
        body_len = (total - intro_len - outro_len - bridge_len) / 5

    sections = [SongSection(INTRO, DEFAULT_LABELS[INTRO], 0.0, intro_len)]
    t = intro_len
    outro_start = total - outro_len
    for i, section_type in enumerate(body):
        length = bridge_len if section_type is BRIDGE else body_len
        # last body section absorbs rounding up to the outro
        end = outro_start if i == len(body) - 1 else t + length
        sections.append(SongSection(section_type, DEFAULT_LABELS[section_type], t, end))
        t = end
    sections.append(SongSection(OUTRO, DEFAULT_LABELS[OUTRO], outro_start, total))
    return number_labels(sections)


def _first_present(item: dict[str, Any], *keys: str) -> Any:
    for k in keys:
        if item.get(k) is not None:
            return item[k]
    return None
