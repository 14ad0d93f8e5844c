import uuid
from fastapi import APIRouter, Depends, HTTPException, Request, status

from vocalflow.api.deps import bearer_token, job_client, pipeline_registry, require_token
from vocalflow.schemas.pipeline import (
    AddInstrumentalIn,
    FinalSongIn,
    PipelineRunOut,
    ProfessionalMixIn,
    RunStartedOut,
    SongGenerationIn,
)
from vocalflow.services.pipeline import PipelinePlan
from vocalflow.services.production_service import (
    ProductionService,
    add_instrumental_plan,
    final_song_plan,
    master_plan,
    professional_mix_plan,
    song_generation_plan,
)

router = APIRouter()


def _start(request: Request, token: str | None, plan: PipelinePlan, inputs: dict) -> RunStartedOut:
    # reject unauthenticated calls here instead of inside the background run
    token = require_token(token)
    svc = ProductionService(job_client(request, token))
    run = pipeline_registry(request).start(svc.orchestrator(), plan, inputs)
    return RunStartedOut(run_id=str(run.run_id))


@router.post("/professional-mix", response_model=RunStartedOut, status_code=status.HTTP_202_ACCEPTED)
async def start_professional_mix(
    body: ProfessionalMixIn,
    request: Request,
    token: str | None = Depends(bearer_token),
) -> RunStartedOut:
    try:
        inputs = ProductionService.professional_mix_inputs(body.vocal_url, body.instrumental_url, body.project_name)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _start(request, token, professional_mix_plan(), inputs)


@router.post("/master", response_model=RunStartedOut, status_code=status.HTTP_202_ACCEPTED)
async def start_master(
    body: ProfessionalMixIn,
    request: Request,
    token: str | None = Depends(bearer_token),
) -> RunStartedOut:
    try:
        inputs = ProductionService.professional_mix_inputs(body.vocal_url, body.instrumental_url, body.project_name)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _start(request, token, master_plan(), inputs)


@router.post("/song-generation", response_model=RunStartedOut, status_code=status.HTTP_202_ACCEPTED)
async def start_song_generation(
    body: SongGenerationIn,
    request: Request,
    token: str | None = Depends(bearer_token),
) -> RunStartedOut:
    try:
        inputs = ProductionService.song_generation_inputs(
            body.audio_urls,
            body.title,
            style=body.style,
            prompt=body.prompt,
            negative_tags=body.negative_tags,
            vocal_gender=body.vocal_gender,
            project_name=body.project_name,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _start(request, token, song_generation_plan(), inputs)


@router.post("/add-instrumental", response_model=RunStartedOut, status_code=status.HTTP_202_ACCEPTED)
async def start_add_instrumental(
    body: AddInstrumentalIn,
    request: Request,
    token: str | None = Depends(bearer_token),
) -> RunStartedOut:
    try:
        inputs = ProductionService.add_instrumental_inputs(
            body.upload_url,
            body.title,
            tags=body.tags,
            negative_tags=body.negative_tags,
            vocal_gender=body.vocal_gender,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _start(request, token, add_instrumental_plan(), inputs)


@router.post("/final-song", response_model=RunStartedOut, status_code=status.HTTP_202_ACCEPTED)
async def start_final_song(
    body: FinalSongIn,
    request: Request,
    token: str | None = Depends(bearer_token),
) -> RunStartedOut:
    try:
        inputs = ProductionService.final_song_inputs(body.section_urls, body.title, body.tags, body.project_name)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _start(request, token, final_song_plan(), inputs)


@router.get("/{run_id}", response_model=PipelineRunOut)
async def get_run(run_id: uuid.UUID, request: Request) -> PipelineRunOut:
    # evicted runs are read back from the database
    try:
        snapshot = await pipeline_registry(request).load(run_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="pipeline run not found")
    return PipelineRunOut(**snapshot)


@router.post("/{run_id}/abort", response_model=PipelineRunOut)
async def abort_run(run_id: uuid.UUID, request: Request) -> PipelineRunOut:
    try:
        run = pipeline_registry(request).abort(run_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="pipeline run not found")
    return PipelineRunOut(**run.snapshot())
