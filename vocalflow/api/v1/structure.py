from fastapi import APIRouter, Depends, HTTPException, Request

from vocalflow.analyzers.structure_analyzer import StructureAnalyzer, recordable_sections
from vocalflow.analyzers.structure_parser import SongSection, template_structure
from vocalflow.api.deps import bearer_token, http_error, job_client, require_token
from vocalflow.core.errors import VocalflowError
from vocalflow.schemas.structure import SectionOut, StructureAnalyzeIn, StructureOut, StructureTemplateIn

router = APIRouter()


def _section_out(section: SongSection) -> SectionOut:
    return SectionOut(
        type=section.type.value,
        label=section.label,
        start_time=section.start_time,
        end_time=section.end_time,
        duration=section.duration,
    )


def _structure_out(sections: list[SongSection]) -> StructureOut:
    return StructureOut(
        sections=[_section_out(s) for s in sections],
        recordable=[_section_out(s) for s in recordable_sections(sections)],
    )


@router.post("/analyze", response_model=StructureOut)
async def analyze_structure(
    body: StructureAnalyzeIn,
    request: Request,
    token: str | None = Depends(bearer_token),
) -> StructureOut:
    analyzer = StructureAnalyzer(job_client(request, require_token(token)))
    try:
        sections = await analyzer.analyze(body.audio_url, body.duration, title=body.title)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except VocalflowError as e:
        raise http_error(e)
    return _structure_out(sections)


@router.post("/template", response_model=StructureOut)
async def structure_template(body: StructureTemplateIn) -> StructureOut:
    try:
        sections = template_structure(body.duration, bpm=body.bpm)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _structure_out(sections)
