from __future__ import annotations

import pytest

from conftest import FakeFunctions, FakeSleep
from vocalflow.core.errors import JobTimeoutError, PipelineAbortedError, RemoteRejectionError
from vocalflow.jobs.client import ExternalJobClient
from vocalflow.jobs.functions import static_credentials
from vocalflow.jobs.kinds import (
    ADD_INSTRUMENTAL,
    FINAL_SONG_MERGE,
    INTRO_OUTRO,
    MASTERING,
    MULTITRACK_MIX,
    SONG_GENERATION,
    VOCAL_CLEANUP,
)
from vocalflow.jobs.status import Failed, Job, JobKind, JobState, Processing, Succeeded


def _jobs(functions: FakeFunctions, sleep: FakeSleep | None = None, **kwargs) -> ExternalJobClient:
    return ExternalJobClient(
        functions,
        static_credentials("tok"),
        interval_s=5.0,
        max_attempts=10,
        sleep=sleep or FakeSleep(),
        **kwargs,
    )


def _assert_output_error_exclusive(job: Job) -> None:
    assert (job.state is JobState.SUCCEEDED) == (job.output is not None)
    assert (job.state is JobState.FAILED) == (job.error is not None)


@pytest.mark.anyio
async def test_submit_returns_processing_job_with_inputs():
    functions = FakeFunctions()
    functions.script("kits-vocal-cleanup", {"jobId": "k-1", "status": "queued"})

    job = await _jobs(functions).submit(VOCAL_CLEANUP, {"audioUrl": "https://a/take.wav", "projectName": "demo"})

    assert job.kind is JobKind.VOCAL_CLEANUP
    assert job.job_id == "k-1"
    assert job.state is JobState.PROCESSING
    assert [ref.url for ref in job.inputs] == ["https://a/take.wav"]
    assert job.poll_context == {"projectName": "demo"}
    assert job.submitted_at is not None
    _assert_output_error_exclusive(job)


@pytest.mark.anyio
async def test_submit_validates_required_fields_before_invoking():
    functions = FakeFunctions()

    with pytest.raises(ValueError):
        await _jobs(functions).submit(SONG_GENERATION, {"audioUrls": [], "title": "x"})
    assert functions.calls == []


@pytest.mark.anyio
async def test_submit_without_job_id_is_a_rejection():
    functions = FakeFunctions()
    functions.script("merge-and-generate", {"error": "No credits left"})

    with pytest.raises(RemoteRejectionError) as exc_info:
        await _jobs(functions).submit(SONG_GENERATION, {"audioUrls": ["u"], "title": "Song"})
    assert exc_info.value.user_message == "No credits left"


@pytest.mark.anyio
async def test_poll_until_terminal_success_reports_progress():
    functions = FakeFunctions()
    functions.script("merge-and-generate", {"taskId": "s-1"})
    functions.script(
        "suno-check-status",
        {"status": "processing", "progress": "Generating lyrics"},
        {"status": "complete"},
        {"status": "complete", "audioUrl": "https://cdn/song.mp3", "instrumentalUrl": "https://cdn/inst.mp3"},
    )
    hints: list[str] = []
    sleep = FakeSleep()
    jobs = _jobs(functions, sleep)

    job = await jobs.submit(SONG_GENERATION, {"audioUrls": ["u"], "title": "Song"})
    status = await jobs.poll_until_terminal(SONG_GENERATION, job, on_progress=hints.append)

    assert isinstance(status, Succeeded)
    assert status.output.url == "https://cdn/song.mp3"
    assert job.output == status.output
    assert job.result_payload["instrumentalUrl"] == "https://cdn/inst.mp3"
    assert hints == ["Generating lyrics"]
    assert sleep.calls == [5.0, 5.0]
    assert functions.calls[1][1] == {"taskId": "s-1"}
    _assert_output_error_exclusive(job)


@pytest.mark.anyio
async def test_remote_failure_comes_back_as_failed_with_provider_message():
    functions = FakeFunctions()
    functions.script("roex-mix-master", {"taskId": "r-1", "mode": "mix"}, {"status": "failed", "error": "Stems too quiet"})
    jobs = _jobs(functions)

    job = await jobs.submit(MULTITRACK_MIX, {"vocalUrl": "v", "instrumentalUrl": "i"})
    status = await jobs.poll_until_terminal(MULTITRACK_MIX, job)

    assert status == Failed("Stems too quiet")
    assert job.state is JobState.FAILED
    assert job.error == "Stems too quiet"
    assert job.output is None
    assert job.poll_context == {"mode": "mix"}


@pytest.mark.parametrize("max_attempts", [1, 3, 7])
@pytest.mark.anyio
async def test_poll_until_terminal_makes_at_most_max_attempts_polls(max_attempts):
    functions = FakeFunctions()
    functions.script("kits-vocal-cleanup", {"jobId": "k-1"}, {"status": "processing"})
    sleep = FakeSleep()
    jobs = _jobs(functions, sleep)

    job = await jobs.submit(VOCAL_CLEANUP, {"audioUrl": "u"})
    with pytest.raises(JobTimeoutError) as exc_info:
        await jobs.poll_until_terminal(VOCAL_CLEANUP, job, max_attempts=max_attempts)

    polls = len(functions.calls) - 1
    assert polls == max_attempts
    assert len(sleep.calls) == max_attempts - 1
    assert exc_info.value.attempts == max_attempts
    assert isinstance(exc_info.value, TimeoutError)
    assert job.state is JobState.PROCESSING
    _assert_output_error_exclusive(job)


@pytest.mark.anyio
async def test_abort_between_polls_stops_the_loop():
    functions = FakeFunctions()
    functions.script("kits-vocal-cleanup", {"jobId": "k-1"}, {"status": "processing"})
    aborted = {"flag": False}

    def abort_after_second_sleep(count: int) -> None:
        if count == 2:
            aborted["flag"] = True

    jobs = _jobs(functions, FakeSleep(abort_after_second_sleep))
    job = await jobs.submit(VOCAL_CLEANUP, {"audioUrl": "u"})

    with pytest.raises(PipelineAbortedError):
        await jobs.poll_until_terminal(VOCAL_CLEANUP, job, should_abort=lambda: aborted["flag"])

    assert len(functions.calls) - 1 == 2


@pytest.mark.anyio
async def test_poll_on_terminal_job_is_refused():
    functions = FakeFunctions()
    functions.script("roex-mix-master", {"taskId": "r-1"}, {"status": "succeeded", "outputUrl": "https://cdn/mix.wav"})
    jobs = _jobs(functions)

    job = await jobs.run(MULTITRACK_MIX, {"vocalUrl": "v", "instrumentalUrl": "i"})
    assert job.state is JobState.SUCCEEDED

    with pytest.raises(RuntimeError):
        await jobs.poll(MULTITRACK_MIX, job)
    with pytest.raises(RuntimeError):
        job.apply(Processing())


@pytest.mark.anyio
async def test_mastering_forces_mastering_mode_on_submit_and_poll():
    functions = FakeFunctions()
    functions.script("roex-mix-master", {"taskId": "m-1"}, {"status": "succeeded", "outputUrl": "https://cdn/master.wav"})
    jobs = _jobs(functions)

    job = await jobs.run(
        MASTERING,
        {"vocalUrl": "https://cdn/clean.wav", "instrumentalUrl": "https://up/beat.wav", "projectName": "demo"},
    )

    submit_payload, poll_payload = functions.calls[0][1], functions.calls[1][1]
    assert submit_payload == {
        "vocalUrl": "https://cdn/clean.wav",
        "instrumentalUrl": "https://up/beat.wav",
        "projectName": "demo",
        "mode": "mastering",
    }
    assert [ref.url for ref in job.inputs] == ["https://cdn/clean.wav", "https://up/beat.wav"]
    assert poll_payload == {"taskId": "m-1", "projectName": "demo", "mode": "mastering"}
    assert job.kind is JobKind.MASTERING
    assert job.output is not None and job.output.url == "https://cdn/master.wav"



@pytest.mark.anyio
async def test_mastering_requires_both_stems_before_submitting():
    functions = FakeFunctions()

    with pytest.raises(ValueError, match="instrumentalUrl"):
        await _jobs(functions).submit(MASTERING, {"vocalUrl": "https://cdn/clean.wav"})
    with pytest.raises(ValueError, match="vocalUrl"):
        await _jobs(functions).submit(MASTERING, {"audioUrl": "https://cdn/mix.wav", "instrumentalUrl": "i"})

    assert functions.calls == []


@pytest.mark.anyio
async def test_observers_see_every_transition():
    functions = FakeFunctions()
    functions.script("kits-vocal-cleanup", {"jobId": "k-1"})
    functions.script(
        "kits-vocal-cleanup",
        {"status": "processing"},
        {"status": "succeeded", "cleanVocalUrl": "https://cdn/clean.wav"},
    )
    global_seen: list[JobState] = []
    call_seen: list[JobState] = []
    jobs = _jobs(functions, on_job=lambda job: global_seen.append(job.state))

    job = await jobs.submit(VOCAL_CLEANUP, {"audioUrl": "u"}, on_job=lambda job: call_seen.append(job.state))
    await jobs.poll_until_terminal(VOCAL_CLEANUP, job, on_job=lambda job: call_seen.append(job.state))

    assert global_seen == [JobState.PROCESSING, JobState.PROCESSING, JobState.SUCCEEDED]
    assert call_seen == global_seen


@pytest.mark.anyio
async def test_add_instrumental_falls_back_to_instrumental_url():
    functions = FakeFunctions()
    functions.script("suno-add-instrumental", {"taskId": "a-1"})
    functions.script("suno-check-status", {"status": "complete", "instrumentalUrl": "https://cdn/inst.mp3"})

    job = await _jobs(functions).run(ADD_INSTRUMENTAL, {"uploadUrl": "https://up/vocal.wav", "title": "Song"})

    assert job.kind is JobKind.SONG_GENERATION
    assert job.output is not None and job.output.url == "https://cdn/inst.mp3"


@pytest.mark.anyio
async def test_intro_outro_type_is_validated():
    functions = FakeFunctions()

    with pytest.raises(ValueError):
        await _jobs(functions).submit(INTRO_OUTRO, {"title": "Song", "tags": "pop", "type": "bridge"})
    assert functions.calls == []


@pytest.mark.anyio
async def test_final_song_merge_finishes_on_submit():
    functions = FakeFunctions()
    functions.script("merge-final-song", {"success": True, "finalSongUrl": "https://cdn/final.mp3", "partsCount": 1})
    jobs = _jobs(functions)

    job = await jobs.submit(FINAL_SONG_MERGE, {"introUrl": None, "sectionUrls": ["https://up/verse.webm"]})

    assert job.state is JobState.SUCCEEDED
    assert job.output is not None and job.output.url == "https://cdn/final.mp3"
    assert functions.calls[0][1] == {"sectionUrls": ["https://up/verse.webm"]}
    assert functions.endpoints() == ["merge-final-song"]
    with pytest.raises(RuntimeError):
        await jobs.poll(FINAL_SONG_MERGE, job)
    with pytest.raises(ValueError):
        await jobs.submit(FINAL_SONG_MERGE, {"sectionUrls": ["https://up/verse.webm", " "]})
    with pytest.raises(ValueError):
        await jobs.submit(FINAL_SONG_MERGE, {"sectionUrls": "https://up/verse.webm"})
