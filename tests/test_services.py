from __future__ import annotations

import asyncio
import contextlib
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from conftest import SAMPLE_RATE, FakeFetcher, FakeFunctions, FakeSleep, tone_wav
from vocalflow.core.errors import AuthenticationError, RemoteRejectionError
from vocalflow.jobs.client import ExternalJobClient
from vocalflow.jobs.functions import static_credentials
from vocalflow.jobs.kinds import VOCAL_CLEANUP
from vocalflow.models import AudioAsset
from vocalflow.renderers.offline_mixer import OfflineMixer
from vocalflow.repos.job_repo import JobRepo
from vocalflow.runtime.pipelines import PipelineRegistry
from vocalflow.services.mixdown_service import MixdownService
from vocalflow.services.notification_service import NotificationService
from vocalflow.services.pipeline import RunStatus
from vocalflow.services.production_service import ProductionService, professional_mix_plan
from vocalflow.services.storage_service import StorageService


class FakeSession:
    def __init__(self) -> None:
        self.added: list = []
        self.flushes = 0
        self.transactions = 0

    def add(self, obj) -> None:
        self.added.append(obj)

    async def flush(self) -> None:
        self.flushes += 1
        for obj in self.added:
            if getattr(obj, "id", None) is None:
                obj.id = uuid.uuid4()

    @contextlib.asynccontextmanager
    async def begin(self):
        self.transactions += 1
        yield self


# ---- notifications ----

@pytest.mark.anyio
async def test_playback_email_payload_and_result():
    functions = FakeFunctions()
    functions.script("send-playback-email", {"success": True, "id": "msg-42"})
    svc = NotificationService(functions, static_credentials("tok"))

    result = await svc.send_playback_email("fan@example.com", "https://cdn/song.mp3", "My Song", "Ada")

    assert result == {"success": True, "messageId": "msg-42"}
    assert functions.calls[0][1] == {
        "email": "fan@example.com",
        "audioUrl": "https://cdn/song.mp3",
        "songName": "My Song",
        "customerName": "Ada",
    }


@pytest.mark.anyio
async def test_playback_email_validation_and_auth():
    svc = NotificationService(FakeFunctions(), static_credentials("tok"))
    with pytest.raises(ValueError):
        await svc.send_playback_email("fan@example.com", "", "My Song")
    with pytest.raises(ValueError):
        await svc.send_playback_email("not-an-address", "https://cdn/song.mp3", "My Song")

    functions = FakeFunctions()
    functions.script("send-playback-email", AuthenticationError())
    with pytest.raises(AuthenticationError):
        await NotificationService(functions, static_credentials(None)).send_playback_email(
            "fan@example.com", "https://cdn/song.mp3", "My Song"
        )


# ---- storage ----

@pytest.mark.anyio
async def test_storage_writes_under_kind_with_public_url(tmp_path: Path):
    storage = StorageService(storage_dir=tmp_path, base_url="/files/")

    stored = await storage.save_bytes(b"RIFF....WAVE", kind="mix", mime="audio/wav")

    assert stored.key.startswith("mix/") and stored.key.endswith(".wav")
    assert stored.url == f"/files/{stored.key}"
    assert Path(stored.abs_path).read_bytes() == b"RIFF....WAVE"
    assert not list(tmp_path.rglob("*.tmp"))


# ---- mixdown ----

@pytest.mark.anyio
async def test_mixdown_renders_stores_and_records_asset(tmp_path: Path):
    db = FakeSession()
    mixer = OfflineMixer(
        FakeFetcher({"voice": tone_wav(1.0), "inst": tone_wav(2.0)}),
        sample_rate=SAMPLE_RATE,
        channels=1,
    )
    svc = MixdownService(db, mixer, StorageService(storage_dir=tmp_path, base_url="/storage"))

    out = await svc.create_mixdown(voice_url="voice", instrumental_url="inst")

    assert out.length_ms == 2_000
    assert out.mime == "audio/wav"
    assert out.audio_url.startswith("/storage/mix/")
    asset = db.added[0]
    assert str(asset.id) == out.asset_id
    assert asset.kind == "mix" and asset.duration_ms == 2_000
    assert db.transactions == 1
    stored = tmp_path / out.audio_url.removeprefix("/storage/")
    assert stored.read_bytes()[:4] == b"RIFF"


# ---- pipeline registry ----

def _orchestrator(functions: FakeFunctions):
    jobs = ExternalJobClient(functions, static_credentials("tok"), sleep=FakeSleep())
    return ProductionService(jobs).orchestrator()


@pytest.mark.anyio
async def test_registry_runs_in_background_and_keeps_the_result():
    functions = FakeFunctions()
    functions.script("kits-vocal-cleanup", {"jobId": "k-1"}, {"status": "succeeded", "cleanVocalUrl": "https://cdn/c.wav"})
    functions.script("roex-mix-master", {"taskId": "r-1"}, {"status": "succeeded", "outputUrl": "https://cdn/m.wav"})
    registry = PipelineRegistry()

    run = registry.start(
        _orchestrator(functions),
        professional_mix_plan(),
        ProductionService.professional_mix_inputs("v", "i"),
    )
    finished = await registry.wait(run.run_id)

    assert finished is run
    assert registry.get(run.run_id).status is RunStatus.SUCCEEDED
    assert finished.snapshot()["outputs"] == {"vocal_cleanup": "https://cdn/c.wav", "mix": "https://cdn/m.wav"}


@pytest.mark.anyio
async def test_registry_abort_and_unknown_ids():
    functions = FakeFunctions()
    functions.script("kits-vocal-cleanup", {"jobId": "k-1"}, {"status": "processing"})
    registry = PipelineRegistry()

    run = registry.start(
        _orchestrator(functions),
        professional_mix_plan(),
        ProductionService.professional_mix_inputs("v", "i"),
    )
    registry.abort(run.run_id)
    await registry.wait(run.run_id)

    assert run.status is RunStatus.ABORTED
    with pytest.raises(KeyError):
        registry.get(uuid.uuid4())


@pytest.mark.anyio
async def test_registry_reports_remote_failure_on_the_run():
    functions = FakeFunctions()
    functions.script("kits-vocal-cleanup", RemoteRejectionError("Invalid audio URL", status_code=400))
    registry = PipelineRegistry()

    run = registry.start(
        _orchestrator(functions),
        professional_mix_plan(),
        ProductionService.professional_mix_inputs("v", "i"),
    )
    await registry.wait(run.run_id)

    assert run.status is RunStatus.FAILED
    assert run.snapshot()["error"] == "Invalid audio URL"
    assert run.jobs == []


class _Result:
    def __init__(self, value) -> None:
        self._value = value

    def scalar_one_or_none(self):
        return self._value


@pytest.mark.anyio
async def test_job_repo_save_inserts_then_refreshes():

    functions = FakeFunctions()
    functions.script("kits-vocal-cleanup", {"jobId": "k-1"}, {"status": "succeeded", "cleanVocalUrl": "https://cdn/c.wav"})
    jobs = ExternalJobClient(functions, static_credentials("tok"), sleep=FakeSleep())
    job = await jobs.submit(VOCAL_CLEANUP, {"audioUrl": "https://up/v.wav"})

    db = FakeSession()
    stored: dict = {}

    async def execute(_stmt):
        return _Result(stored.get("record"))

    db.execute = execute  # type: ignore[attr-defined]
    repo = JobRepo(db)
    run_id = uuid.uuid4()

    record = await repo.save(job, run_id=run_id, stage="vocal_cleanup")
    stored["record"] = record
    assert record.state == "processing" and record.output_url is None

    await jobs.poll_until_terminal(VOCAL_CLEANUP, job)
    again = await repo.save(job, run_id=run_id, stage="vocal_cleanup")

    assert again is record
    assert len(db.added) == 1
    assert record.id == job.local_id
    assert record.state == "succeeded"
    assert record.output_url == "https://cdn/c.wav"
    assert record.error is None


class _Rows:
    def __init__(self, rows: list) -> None:
        self._rows = rows

    def scalar_one_or_none(self):
        return self._rows[0] if self._rows else None

    def scalars(self):
        return self

    def all(self) -> list:
        return list(self._rows)


class StoreSession(FakeSession):
    """FakeSession that answers `select(Model).where(Model.col == value)` from what was added."""

    async def execute(self, stmt):
        entity = stmt.column_descriptions[0]["entity"]
        clause = stmt.whereclause
        rows = [
            obj
            for obj in self.added
            if isinstance(obj, entity) and getattr(obj, clause.left.key) == clause.right.value
        ]
        return _Rows(rows)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc) -> None:
        return None


def _scripted_mix_functions() -> FakeFunctions:
    functions = FakeFunctions()
    functions.script(
        "kits-vocal-cleanup",
        lambda payload: {"jobId": "k-1"} if "audioUrl" in payload else {"status": "succeeded", "cleanVocalUrl": "https://cdn/c.wav"},
    )
    functions.script(
        "roex-mix-master",
        lambda payload: {"taskId": "r-1"} if "vocalUrl" in payload else {"status": "succeeded", "outputUrl": "https://cdn/m.wav"},
    )
    return functions


async def _finished_run(registry: PipelineRegistry, functions: FakeFunctions):
    run = registry.start(
        _orchestrator(functions),
        professional_mix_plan(),
        ProductionService.professional_mix_inputs("https://up/v.wav", "https://up/i.wav"),
    )
    return await registry.wait(run.run_id)


@pytest.mark.anyio
async def test_registry_evicts_finished_runs_after_the_retention_window():
    clock = {"now": datetime.now(timezone.utc)}
    registry = PipelineRegistry(retention_s=60, now=lambda: clock["now"])

    run = await _finished_run(registry, _scripted_mix_functions())

    clock["now"] = run.finished_at + timedelta(seconds=59)
    assert registry.get(run.run_id) is run
    clock["now"] = run.finished_at + timedelta(seconds=60)
    with pytest.raises(KeyError):
        registry.get(run.run_id)
    with pytest.raises(KeyError):
        await registry.load(run.run_id)


@pytest.mark.anyio
async def test_registry_keeps_at_most_max_runs_finished_runs():
    functions = _scripted_mix_functions()
    registry = PipelineRegistry(retention_s=3600, max_runs=2)

    runs = [await _finished_run(registry, functions) for _ in range(3)]

    with pytest.raises(KeyError):
        registry.get(runs[0].run_id)
    assert registry.get(runs[1].run_id) is runs[1]
    assert registry.get(runs[2].run_id) is runs[2]


@pytest.mark.anyio
async def test_registry_never_evicts_a_running_run():
    functions = FakeFunctions()
    functions.script("kits-vocal-cleanup", {"jobId": "k-1"}, {"status": "processing"})
    registry = PipelineRegistry(retention_s=0, max_runs=0)
    gate = asyncio.Event()

    async def blocked_sleep(seconds: float) -> None:
        await gate.wait()

    jobs = ExternalJobClient(functions, static_credentials("tok"), sleep=blocked_sleep)
    run = registry.start(
        ProductionService(jobs).orchestrator(),
        professional_mix_plan(),
        ProductionService.professional_mix_inputs("v", "i"),
    )
    for _ in range(5):
        await asyncio.sleep(0)

    assert registry.get(run.run_id) is run
    registry.abort(run.run_id)
    gate.set()
    await registry.wait(run.run_id)
    assert run.status is RunStatus.ABORTED
    with pytest.raises(KeyError):
        registry.get(run.run_id)


@pytest.mark.anyio
async def test_evicted_run_is_read_back_from_saved_records():
    db = StoreSession()
    registry = PipelineRegistry(lambda: db, retention_s=0)

    run = await _finished_run(registry, _scripted_mix_functions())

    with pytest.raises(KeyError):
        registry.get(run.run_id)
    snapshot = await registry.load(run.run_id)

    assert db.transactions == 1
    assert snapshot["run_id"] == str(run.run_id)
    assert snapshot["plan"] == "professional_mix"
    assert snapshot["status"] == "succeeded"
    assert snapshot["progress"] == 100
    assert snapshot["outputs"] == {"vocal_cleanup": "https://cdn/c.wav", "mix": "https://cdn/m.wav"}
    assert [job["kind"] for job in snapshot["jobs"]] == ["vocal-cleanup", "multitrack-mix"]
    assert snapshot["jobs"][1]["inputs"] == ["https://cdn/c.wav", "https://up/i.wav"]
    assert snapshot["jobs"][1]["output_url"] == "https://cdn/m.wav"
    with pytest.raises(KeyError):
        await registry.load(uuid.uuid4())


@pytest.mark.anyio
async def test_get_mixdown_reads_the_stored_asset():
    db = StoreSession()
    created = datetime.now(timezone.utc)
    asset = AudioAsset(id=uuid.uuid4(), kind="mix", storage_url="/storage/mix/a.wav", mime="audio/wav", duration_ms=2_000)
    asset.created_at = created
    recording = AudioAsset(id=uuid.uuid4(), kind="recording", storage_url="/storage/rec/b.webm")
    db.add(asset)
    db.add(recording)
    svc = MixdownService(db, OfflineMixer(FakeFetcher({})))

    out = await svc.get_mixdown(asset.id)

    assert out.asset_id == str(asset.id)
    assert out.audio_url == "/storage/mix/a.wav"
    assert out.length_ms == 2_000 and out.created_at == created
    with pytest.raises(KeyError):
        await svc.get_mixdown(recording.id)
    with pytest.raises(KeyError):
        await svc.get_mixdown(uuid.uuid4())
