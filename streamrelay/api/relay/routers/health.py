from fastapi import APIRouter, Depends
from fastapi.responses import ORJSONResponse, PlainTextResponse

from streamrelay.api.relay.dependency import get_status_reporter
from streamrelay.domain.status.status_domain import StatusReporter

router = APIRouter(tags=["Status"])

NO_CACHE_HEADERS = {"Cache-Control": "no-cache, no-store, must-revalidate"}


@router.get("/health")
@router.get("/")
async def health(reporter: StatusReporter = Depends(get_status_reporter)) -> ORJSONResponse:
    """Relay liveness, transcoding tool presence and session counts."""
    status = await reporter.health()
    return ORJSONResponse(
        content=status.model_dump(by_alias=True, mode="json"),
        headers=NO_CACHE_HEADERS,
    )


@router.get("/health-plain")
async def health_plain(reporter: StatusReporter = Depends(get_status_reporter)) -> PlainTextResponse:
    return PlainTextResponse(await reporter.health_plain(), headers=NO_CACHE_HEADERS)


@router.get("/ping")
async def ping() -> PlainTextResponse:
    return PlainTextResponse("pong", headers=NO_CACHE_HEADERS)


@router.get("/ffmpeg-check")
async def ffmpeg_check(reporter: StatusReporter = Depends(get_status_reporter)) -> ORJSONResponse:
    check = await reporter.ffmpeg_check()
    return ORJSONResponse(
        content=check.model_dump(by_alias=True, mode="json"),
        headers=NO_CACHE_HEADERS,
    )
