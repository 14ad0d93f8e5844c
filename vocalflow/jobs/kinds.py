from __future__ import annotations

import uuid
from typing import Any

from vocalflow.core.errors import RemoteRejectionError
from vocalflow.jobs.status import (
    AudioAssetRef,
    Failed,
    Job,
    JobKind,
    JobStatus,
    Processing,
    Succeeded,
)


class JobSpec:
    """
    Contract for one provider function: where to submit, where to poll,
    which fields the payload needs, and how a response body maps onto a
    JobStatus. This is the only place provider JSON is interpreted.
    """
    name: str = ""
    kind: JobKind
    submit_endpoint: str = ""
    poll_endpoint: str | None = None

    required_fields: tuple[str, ...] = ()
    url_fields: tuple[str, ...] = ()       # params that reference input audio
    id_field: str = "taskId"               # job id in the submit response
    poll_id_field: str = "taskId"          # job id in the poll payload
    carry_params: tuple[str, ...] = ()     # submit params echoed into every poll
    carry_response: tuple[str, ...] = ()   # submit response fields echoed into every poll

    default_error = "Processing failed"

    # ---- submit side ----

    def validate(self, params: dict[str, Any]) -> None:
        missing = [f for f in self.required_fields if _is_blank(params.get(f))]
        if missing:
            raise ValueError(f"{self.name} requires {', '.join(missing)}")

    def submit_payload(self, params: dict[str, Any]) -> dict[str, Any]:
        return {k: v for k, v in params.items() if v is not None}

    def inputs(self, params: dict[str, Any]) -> tuple[AudioAssetRef, ...]:
        refs: list[AudioAssetRef] = []
        for f in self.url_fields:
            value = params.get(f)
            if isinstance(value, str) and value:
                refs.append(AudioAssetRef(url=value))
            elif isinstance(value, (list, tuple)):
                refs.extend(AudioAssetRef(url=v) for v in value if isinstance(v, str) and v)
        return tuple(refs)

    def job_id_from(self, body: dict[str, Any]) -> str:
        job_id = body.get(self.id_field)
        if not isinstance(job_id, str) or not job_id:
            raise RemoteRejectionError(_str_or_none(body.get("error")) or f"{self.name}: no {self.id_field} returned")
        return job_id

    def poll_context_from(self, body: dict[str, Any], params: dict[str, Any]) -> dict[str, Any]:
        ctx: dict[str, Any] = {}
        for k in self.carry_params:
            if params.get(k) is not None:
                ctx[k] = params[k]
        for k in self.carry_response:
            if body.get(k) is not None:
                ctx[k] = body[k]
        return ctx

    def immediate_status(self, body: dict[str, Any], params: dict[str, Any]) -> JobStatus | None:
        """Terminal status carried by the submit response itself (one-shot functions)."""
        return None

    # ---- poll side ----

    def poll_payload(self, job: Job) -> dict[str, Any]:
        return {self.poll_id_field: job.job_id, **job.poll_context}

    def parse_status(self, body: dict[str, Any]) -> JobStatus:
        raise NotImplementedError


# ---------- Suno (song generation family) ----------

class _SunoSpec(JobSpec):
    kind = JobKind.SONG_GENERATION
    poll_endpoint = "suno-check-status"
    output_fields: tuple[str, ...] = ("audioUrl", "instrumentalUrl")
    default_error = "Music generation failed"

    def parse_status(self, body: dict[str, Any]) -> JobStatus:
        status = _str_or_none(body.get("status")) or ""
        if status == "complete":
            url = _first_url(body, self.output_fields)
            if url is not None:
                extras = {
                    k: body[k]
                    for k in ("audioUrl", "instrumentalUrl", "vocalsUrl")
                    if _str_or_none(body.get(k))
                }
                return Succeeded(output=AudioAssetRef(url=url), extras=extras)
            # complete without a URL yet: storage copy still in flight
            return Processing(progress=_str_or_none(body.get("progress")))
        if status == "error":
            return Failed(_str_or_none(body.get("error")) or self.default_error)
        return Processing(progress=_str_or_none(body.get("progress")))


class SongGenerationSpec(_SunoSpec):
    """Merge recorded takes and turn them into a full song."""
    name = "song-generation"
    submit_endpoint = "merge-and-generate"
    required_fields = ("audioUrls", "title")
    url_fields = ("audioUrls",)


class AddInstrumentalSpec(_SunoSpec):
    name = "add-instrumental"
    submit_endpoint = "suno-add-instrumental"
    required_fields = ("uploadUrl", "title")
    url_fields = ("uploadUrl",)
    output_fields = ("audioUrl", "instrumentalUrl")


class IntroOutroSpec(_SunoSpec):
    name = "intro-outro"
    submit_endpoint = "generate-intro-outro"
    required_fields = ("title", "tags", "type")

    def validate(self, params: dict[str, Any]) -> None:
        super().validate(params)
        if params["type"] not in ("intro", "outro"):
            raise ValueError("type must be 'intro' or 'outro'")


# ---------- Kits.ai vocal cleanup ----------

class VocalCleanupSpec(JobSpec):
    name = "vocal-cleanup"
    kind = JobKind.VOCAL_CLEANUP
    submit_endpoint = "kits-vocal-cleanup"
    poll_endpoint = "kits-vocal-cleanup"
    required_fields = ("audioUrl",)
    url_fields = ("audioUrl",)
    id_field = "jobId"
    poll_id_field = "jobId"
    carry_params = ("projectName",)
    default_error = "Vocal cleanup failed"

    def parse_status(self, body: dict[str, Any]) -> JobStatus:
        return _parse_succeeded_failed(
            body,
            url_field="cleanVocalUrl",
            default_error=self.default_error,
            extra_fields=("instrumentalUrl",),
        )


# ---------- RoEx multitrack mix / mastering ----------

class MultitrackMixSpec(JobSpec):
    name = "multitrack-mix"
    kind = JobKind.MULTITRACK_MIX
    submit_endpoint = "roex-mix-master"
    poll_endpoint = "roex-mix-master"
    required_fields = ("vocalUrl", "instrumentalUrl")
    url_fields = ("vocalUrl", "instrumentalUrl")
    carry_params = ("projectName",)
    carry_response = ("mode",)
    default_error = "Mixing failed"

    def parse_status(self, body: dict[str, Any]) -> JobStatus:
        return _parse_succeeded_failed(body, url_field="outputUrl", default_error=self.default_error)


class MasteringSpec(MultitrackMixSpec):
    """Same function and stems as the mix; `mode` selects the mastering chain."""
    name = "mastering"
    kind = JobKind.MASTERING
    required_fields = ("vocalUrl", "instrumentalUrl")
    url_fields = ("vocalUrl", "instrumentalUrl")
    carry_params = ("projectName",)
    carry_response = ()
    default_error = "Mastering failed"

    def submit_payload(self, params: dict[str, Any]) -> dict[str, Any]:
        payload = super().submit_payload(params)
        payload["mode"] = "mastering"
        return payload

    def poll_context_from(self, body: dict[str, Any], params: dict[str, Any]) -> dict[str, Any]:
        ctx = super().poll_context_from(body, params)
        ctx["mode"] = "mastering"
        return ctx


# ---------- one-shot functions ----------

class _OneShotSpec(JobSpec):
    """The submit response is the result; there is nothing to poll."""
    poll_endpoint = None

    def job_id_from(self, body: dict[str, Any]) -> str:
        job_id = body.get(self.id_field)
        if isinstance(job_id, str) and job_id:
            return job_id
        return uuid.uuid4().hex

    def parse_status(self, body: dict[str, Any]) -> JobStatus:
        raise RuntimeError(f"{self.name} is one-shot and has no poll endpoint")


class StructureAnalysisSpec(_OneShotSpec):
    name = "structure-analysis"
    kind = JobKind.STRUCTURE_ANALYSIS
    submit_endpoint = "analyze-song-structure"
    required_fields = ("audioUrl",)
    url_fields = ("audioUrl",)

    def validate(self, params: dict[str, Any]) -> None:
        super().validate(params)
        duration = params.get("duration")
        if duration is not None and float(duration) <= 0:
            raise ValueError("duration must be positive")

    def immediate_status(self, body: dict[str, Any], params: dict[str, Any]) -> JobStatus | None:
        sections = body.get("sections")
        if not isinstance(sections, list):
            return Failed(_str_or_none(body.get("error")) or "Structure analysis returned no sections")
        duration = params.get("duration")
        source = AudioAssetRef(
            url=str(params["audioUrl"]),
            duration_s=float(duration) if duration is not None else None,
        )
        return Succeeded(output=source, extras={"sections": sections, "source": body.get("source")})


class FinalSongMergeSpec(_OneShotSpec):
    """Concatenate intro, section recordings and outro into the finished song."""
    name = "final-song-merge"
    kind = JobKind.FINAL_SONG_MERGE
    submit_endpoint = "merge-final-song"
    required_fields = ("sectionUrls",)
    # merge order
    url_fields = ("introUrl", "sectionUrls", "outroUrl")
    default_error = "Merging the final song failed"

    def validate(self, params: dict[str, Any]) -> None:
        super().validate(params)
        sections = params["sectionUrls"]
        if not isinstance(sections, (list, tuple)) or any(_is_blank(u) for u in sections):
            raise ValueError("sectionUrls must be a list of recording URLs")

    def submit_payload(self, params: dict[str, Any]) -> dict[str, Any]:
        payload = super().submit_payload(params)
        payload["sectionUrls"] = list(params["sectionUrls"])
        return payload

    def immediate_status(self, body: dict[str, Any], params: dict[str, Any]) -> JobStatus | None:
        url = _str_or_none(body.get("finalSongUrl"))
        if url is None:
            return Failed(_str_or_none(body.get("error")) or self.default_error)
        extras = {k: body[k] for k in ("partsCount", "message") if body.get(k) is not None}
        return Succeeded(output=AudioAssetRef(url=url), extras=extras)


SONG_GENERATION = SongGenerationSpec()
ADD_INSTRUMENTAL = AddInstrumentalSpec()
INTRO_OUTRO = IntroOutroSpec()
VOCAL_CLEANUP = VocalCleanupSpec()
MULTITRACK_MIX = MultitrackMixSpec()
MASTERING = MasteringSpec()
STRUCTURE_ANALYSIS = StructureAnalysisSpec()
FINAL_SONG_MERGE = FinalSongMergeSpec()


# ---------- helpers ----------

def _parse_succeeded_failed(
    body: dict[str, Any],
    *,
    url_field: str,
    default_error: str,
    extra_fields: tuple[str, ...] = (),
) -> JobStatus:
    status = _str_or_none(body.get("status")) or ""
    if status == "succeeded":
        url = _str_or_none(body.get(url_field))
        if url is None:
            return Failed(f"Completed without {url_field}")
        extras = {k: body[k] for k in extra_fields if _str_or_none(body.get(k))}
        return Succeeded(output=AudioAssetRef(url=url), extras=extras)
    if status == "failed":
        return Failed(_str_or_none(body.get("error")) or default_error)
    return Processing(progress=_str_or_none(body.get("progress")) or _str_or_none(body.get("state")))


def _first_url(body: dict[str, Any], fields: tuple[str, ...]) -> str | None:
    for f in fields:
        url = _str_or_none(body.get(f))
        if url is not None:
            return url
    return None


def _str_or_none(v: Any) -> str | None:
    if isinstance(v, str) and v.strip():
        return v.strip()
    return None


def _is_blank(v: Any) -> bool:
    if v is None:
        return True
    if isinstance(v, str):
        return not v.strip()
    if isinstance(v, (list, tuple)):
        return len(v) == 0
    return False
