from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Any

from vocalflow.core.errors import JobFailedError
from vocalflow.jobs.client import ExternalJobClient
from vocalflow.jobs.kinds import (
    ADD_INSTRUMENTAL,
    FINAL_SONG_MERGE,
    INTRO_OUTRO,
    MASTERING,
    MULTITRACK_MIX,
    SONG_GENERATION,
    VOCAL_CLEANUP,
)
from vocalflow.jobs.status import AudioAssetRef, Failed
from vocalflow.services.pipeline import (
    JobObserver,
    ParamsBuilder,
    PipelineOrchestrator,
    PipelinePlan,
    PipelineRun,
    RunObserver,
    StageDefinition,
)

# provider stages take a minute or two; 40 x 5s leaves headroom
MIX_STAGE_ATTEMPTS = 40
MIX_STAGE_INTERVAL_S = 5.0


def _cleanup_params(inputs: dict[str, Any], outputs: dict[str, AudioAssetRef]) -> dict[str, Any]:
    return {"audioUrl": inputs["vocal_url"], "projectName": inputs.get("project_name")}


def _mix_params(inputs: dict[str, Any], outputs: dict[str, AudioAssetRef]) -> dict[str, Any]:
    return {
        "vocalUrl": outputs["vocal_cleanup"].url,
        "instrumentalUrl": inputs["instrumental_url"],
        "projectName": inputs.get("project_name"),
    }


def _master_params(inputs: dict[str, Any], outputs: dict[str, AudioAssetRef]) -> dict[str, Any]:
    # the mastering chain takes the stems, not the mixdown
    return _mix_params(inputs, outputs)


def _song_params(inputs: dict[str, Any], outputs: dict[str, AudioAssetRef]) -> dict[str, Any]:
    return {
        "audioUrls": list(inputs["audio_urls"]),
        "title": inputs["title"],
        "style": inputs.get("style"),
        "prompt": inputs.get("prompt"),
        "negativeTags": inputs.get("negative_tags"),
        "vocalGender": inputs.get("vocal_gender"),
        "projectName": inputs.get("project_name"),
    }


def _instrumental_params(inputs: dict[str, Any], outputs: dict[str, AudioAssetRef]) -> dict[str, Any]:
    return {
        "uploadUrl": inputs["upload_url"],
        "title": inputs["title"],
        "tags": inputs.get("tags"),
        "negativeTags": inputs.get("negative_tags"),
        "vocalGender": inputs.get("vocal_gender"),
    }


def _part_params(part: str) -> ParamsBuilder:
    def build(inputs: dict[str, Any], outputs: dict[str, AudioAssetRef]) -> dict[str, Any]:
        return {"title": inputs["title"], "tags": inputs["tags"], "type": part}
    return build


def _merge_params(inputs: dict[str, Any], outputs: dict[str, AudioAssetRef]) -> dict[str, Any]:
    return {
        "introUrl": outputs["intro"].url,
        "outroUrl": outputs["outro"].url,
        "sectionUrls": list(inputs["section_urls"]),
        "projectName": inputs.get("project_name") or inputs["title"],
    }


def _check_vocal_gender(vocal_gender: str | None) -> None:
    if vocal_gender is not None and vocal_gender not in ("m", "f"):
        raise ValueError("vocal_gender must be 'm' or 'f'")


CLEANUP_STAGE = StageDefinition(
    name="vocal_cleanup",
    spec=VOCAL_CLEANUP,
    build_params=_cleanup_params,
    submit_message="Cleaning up the vocal...",
    poll_message="Processing the vocal, this takes about a minute",
    submit_progress=10,
    poll_progress=20,
    interval_s=MIX_STAGE_INTERVAL_S,
    max_attempts=MIX_STAGE_ATTEMPTS,
)

MIX_STAGE = StageDefinition(
    name="mix",
    spec=MULTITRACK_MIX,
    build_params=_mix_params,
    submit_message="Mixing the vocal with the instrumental...",
    poll_message="Creating a professional mix, about 2 minutes",
    submit_progress=50,
    poll_progress=65,
    interval_s=MIX_STAGE_INTERVAL_S,
    max_attempts=MIX_STAGE_ATTEMPTS,
)


def professional_mix_plan() -> PipelinePlan:
    return PipelinePlan(name="professional_mix", stages=(CLEANUP_STAGE, MIX_STAGE))


def master_plan() -> PipelinePlan:
    """Cleanup and mix as in professional_mix, then a mastering pass over the same stems."""
    cleanup = replace(CLEANUP_STAGE, submit_progress=5, poll_progress=15)
    mix = replace(MIX_STAGE, submit_progress=35, poll_progress=45)
    master = StageDefinition(
        name="master",
        spec=MASTERING,
        build_params=_master_params,
        submit_message="Mastering the mix...",
        poll_message="Mastering in progress, about 2 minutes",
        submit_progress=70,
        poll_progress=80,
        interval_s=MIX_STAGE_INTERVAL_S,
        max_attempts=MIX_STAGE_ATTEMPTS,
    )
    return PipelinePlan(name="master", stages=(cleanup, mix, master))


def song_generation_plan() -> PipelinePlan:
    generate = StageDefinition(
        name="song",
        spec=SONG_GENERATION,
        build_params=_song_params,
        submit_message="Sending your recordings...",
        poll_message="Generating your song, this can take a few minutes",
        submit_progress=10,
        poll_progress=30,
    )
    return PipelinePlan(name="song_generation", stages=(generate,))


def add_instrumental_plan() -> PipelinePlan:
    instrumental = StageDefinition(
        name="instrumental",
        spec=ADD_INSTRUMENTAL,
        build_params=_instrumental_params,
        submit_message="Sending your recording...",
        poll_message="Writing an instrumental for your vocal, this can take a few minutes",
        submit_progress=10,
        poll_progress=30,
    )
    return PipelinePlan(name="add_instrumental", stages=(instrumental,))


def final_song_plan() -> PipelinePlan:
    """Intro, then outro, then one merge of intro + sections + outro."""
    intro = StageDefinition(
        name="intro",
        spec=INTRO_OUTRO,
        build_params=_part_params("intro"),
        submit_message="Composing the intro...",
        poll_message="Generating the intro, this can take a few minutes",
        submit_progress=5,
        poll_progress=15,
    )
    outro = StageDefinition(
        name="outro",
        spec=INTRO_OUTRO,
        build_params=_part_params("outro"),
        submit_message="Composing the outro...",
        poll_message="Generating the outro, this can take a few minutes",
        submit_progress=45,
        poll_progress=55,
    )
    merge = StageDefinition(
        name="merge",
        spec=FINAL_SONG_MERGE,
        build_params=_merge_params,
        submit_message="Putting the whole song together...",
        poll_message="Putting the whole song together...",
        submit_progress=90,
        poll_progress=95,
    )
    return PipelinePlan(name="final_song", stages=(intro, outro, merge))


class ProductionService:
    """Entry points for the creative workflows built on the pipeline orchestrator."""

    def __init__(
        self,
        jobs: ExternalJobClient,
        *,
        on_update: RunObserver | None = None,
        on_job: JobObserver | None = None,
    ) -> None:
        self.jobs = jobs
        self.on_update = on_update
        self.on_job = on_job
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def orchestrator(self) -> PipelineOrchestrator:
        return PipelineOrchestrator(self.jobs, on_update=self.on_update, on_job=self.on_job)

    @staticmethod
    def professional_mix_inputs(
        vocal_url: str,
        instrumental_url: str,
        project_name: str | None = None,
    ) -> dict[str, Any]:
        if not vocal_url or not instrumental_url:
            raise ValueError("vocal_url and instrumental_url are required")
        return {"vocal_url": vocal_url, "instrumental_url": instrumental_url, "project_name": project_name}

    @staticmethod
    def song_generation_inputs(
        audio_urls: list[str],
        title: str,
        *,
        style: str | None = None,
        prompt: str | None = None,
        negative_tags: str | None = None,
        vocal_gender: str | None = None,
        project_name: str | None = None,
    ) -> dict[str, Any]:
        if not audio_urls:
            raise ValueError("at least one recording URL is required")
        if not title:
            raise ValueError("title is required")
        _check_vocal_gender(vocal_gender)
        return {
            "audio_urls": list(audio_urls),
            "title": title,
            "style": style,
            "prompt": prompt,
            "negative_tags": negative_tags,
            "vocal_gender": vocal_gender,
            "project_name": project_name,
        }

    @staticmethod
    def add_instrumental_inputs(
        upload_url: str,
        title: str,
        *,
        tags: str | None = None,
        negative_tags: str | None = None,
        vocal_gender: str | None = None,
    ) -> dict[str, Any]:
        if not upload_url:
            raise ValueError("upload_url is required")
        if not title:
            raise ValueError("title is required")
        _check_vocal_gender(vocal_gender)
        return {
            "upload_url": upload_url,
            "title": title,
            "tags": tags,
            "negative_tags": negative_tags,
            "vocal_gender": vocal_gender,
        }

    @staticmethod
    def final_song_inputs(
        section_urls: list[str],
        title: str,
        tags: str,
        project_name: str | None = None,
    ) -> dict[str, Any]:
        if not section_urls or any(not url for url in section_urls):
            raise ValueError("at least one section recording is required")
        if not title or not tags:
            raise ValueError("title and tags are required")
        return {"section_urls": list(section_urls), "title": title, "tags": tags, "project_name": project_name}

    async def professional_mix(
        self,
        vocal_url: str,
        instrumental_url: str,
        project_name: str | None = None,
    ) -> PipelineRun:
        inputs = self.professional_mix_inputs(vocal_url, instrumental_url, project_name)
        return await self.orchestrator().run(professional_mix_plan(), inputs)

    async def master(
        self,
        vocal_url: str,
        instrumental_url: str,
        project_name: str | None = None,
    ) -> PipelineRun:
        inputs = self.professional_mix_inputs(vocal_url, instrumental_url, project_name)
        return await self.orchestrator().run(master_plan(), inputs)

    async def generate_song(self, audio_urls: list[str], title: str, **options: Any) -> PipelineRun:
        inputs = self.song_generation_inputs(audio_urls, title, **options)
        return await self.orchestrator().run(song_generation_plan(), inputs)

    async def add_instrumental(self, upload_url: str, title: str, **options: Any) -> PipelineRun:
        inputs = self.add_instrumental_inputs(upload_url, title, **options)
        return await self.orchestrator().run(add_instrumental_plan(), inputs)

    async def generate_final_song(
        self,
        section_urls: list[str],
        title: str,
        tags: str,
        project_name: str | None = None,
    ) -> PipelineRun:
        inputs = self.final_song_inputs(section_urls, title, tags, project_name)
        return await self.orchestrator().run(final_song_plan(), inputs)

    async def generate_intro_outro(
        self,
        title: str,
        tags: str,
        *,
        interval_s: float | None = None,
        max_attempts: int | None = None,
    ) -> dict[str, AudioAssetRef]:
        """
        Generate an intro and an outro for the same song side by side.
        Either one failing fails the pair and cancels the other.
        """
        try:
            async with asyncio.TaskGroup() as tg:
                tasks = {
                    part: tg.create_task(self._generate_part(part, title, tags, interval_s, max_attempts))
                    for part in ("intro", "outro")
                }
        except ExceptionGroup as group:
            raise group.exceptions[0] from None

        self.logger.info("Intro/outro ready for %r", title)
        return {part: task.result() for part, task in tasks.items()}

    async def _generate_part(
        self,
        part: str,
        title: str,
        tags: str,
        interval_s: float | None,
        max_attempts: int | None,
    ) -> AudioAssetRef:
        job = await self.jobs.submit(INTRO_OUTRO, {"title": title, "tags": tags, "type": part}, on_job=self.on_job)
        status = await self.jobs.poll_until_terminal(
            INTRO_OUTRO, job, interval_s=interval_s, max_attempts=max_attempts, on_job=self.on_job
        )
        if isinstance(status, Failed):
            raise JobFailedError(status.message)
        return status.output
