"""Pick API: return the cached pick for a game/market, generating it when missing or stale."""

import logging

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import JSONResponse

from pickcache.errors import ConfigurationError
from pickcache.models.pick import PickRequest, PickResponse
from pickcache.services.pick_pipeline import PickPipeline

logger = logging.getLogger("pickcache.picks_router")
router = APIRouter(prefix="/api/picks", tags=["picks"])


def get_pipeline(request: Request) -> PickPipeline:
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        raise ConfigurationError("Service is not configured.")
    return pipeline


@router.options("", include_in_schema=False)
async def preflight() -> Response:
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "",
    response_model=PickResponse,
    responses={200: {"model": PickResponse}, 201: {"model": PickResponse}},
)
async def get_or_generate_pick(body: PickRequest, pipeline: PickPipeline = Depends(get_pipeline)):
    """Return the current pick: 200 for a cache hit or a lost race, 201 when this call wrote it."""
    result = await pipeline.run(body)
    payload = PickResponse.model_validate(result.record).model_dump(mode="json")
    return JSONResponse(
        status_code=result.status_code,
        content=payload,
        headers={"X-Cache-Verdict": result.verdict.value},
    )
