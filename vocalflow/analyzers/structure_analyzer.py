from __future__ import annotations

import logging
import time

from vocalflow.analyzers.structure_parser import (
    SongSection,
    merge_consecutive,
    normalize_sections,
    number_labels,
)
from vocalflow.core.errors import EmptyResultError, JobFailedError
from vocalflow.jobs.client import ExternalJobClient
from vocalflow.jobs.kinds import STRUCTURE_ANALYSIS


class StructureAnalyzer:
    """
    Segment a song into labeled sections through the hosted
    structure-analysis function.

    The function answers in one shot, so there is no poll loop here:
    the submit response already carries the terminal result.
    """

    def __init__(self, jobs: ExternalJobClient) -> None:
        self.jobs = jobs
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    async def analyze(self, audio_url: str, duration: float, title: str | None = None) -> list[SongSection]:
        """
        Args:
            audio_url: public URL of the reference song
            duration: declared song length in seconds
            title: optional song title passed through to the provider

        Returns:
            sections sorted by start time

        Raises:
            EmptyResultError: the provider answered with zero usable sections
            JobFailedError: the provider answered without a section list
        """
        start = time.perf_counter()
        params = {"audioUrl": audio_url, "duration": duration, "title": title}
        job = await self.jobs.submit(STRUCTURE_ANALYSIS, params)

        if job.error is not None:
            raise JobFailedError(job.error)
        if not job.is_terminal:
            raise JobFailedError("Structure analysis did not complete")

        raw = job.result_payload.get("sections") or []
        sections = normalize_sections(raw, duration=duration)
        if not sections:
            raise EmptyResultError()

        labeled = any(isinstance(item, dict) and item.get("label") for item in raw)
        sections = merge_consecutive(sections)
        if not labeled:
            sections = number_labels(sections)

        self.logger.info(
            "Analyzed %s: %d sections (source=%s) in %.2fs",
            audio_url,
            len(sections),
            job.result_payload.get("source") or "unknown",
            time.perf_counter() - start,
        )
        return sections


def recordable_sections(sections: list[SongSection]) -> list[SongSection]:
    """Sections the guided-recording flow prompts for (verses and choruses)."""
    return [s for s in sections if s.is_recordable]
