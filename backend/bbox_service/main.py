import logging
import uuid
from contextlib import asynccontextmanager
from datetime import date

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware

from bbox_service.browser import BrowserManager
from bbox_service.config import get_settings
from bbox_service.errors import SessionNotFoundError, UpstreamDataError
from bbox_service.models import BatchResponse, NextRequest
from bbox_service.pipeline import BatchPipeline
from bbox_service.row_source import BundlesRowSource, RowSource
from bbox_service.session_store import SessionStore, get_session_store


logger = logging.getLogger(__name__)


def configure_logging(level: str):
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings.log_level)

    # One Chromium for the whole process, launched on the first row
    async with BrowserManager(settings) as browser_manager:
        app.state.browser_manager = browser_manager
        app.state.pipeline = BatchPipeline(browser_manager, settings)
        app.state.row_source = BundlesRowSource(settings)
        app.state.session_store = get_session_store(settings)
        yield
        logger.info("[app] Shutting down...")


app = FastAPI(title="Bounding Box API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def get_pipeline(request: Request) -> BatchPipeline:
    return request.app.state.pipeline


def get_row_source(request: Request) -> RowSource:
    return request.app.state.row_source


def get_store(request: Request) -> SessionStore:
    return request.app.state.session_store


def _parse_date(name: str, value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f'Invalid "{name}": expected YYYY-MM-DD')


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@app.get("/")
def root():
    return {"message": "Backend is running"}


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/get-bboxes/start", response_model=BatchResponse)
async def start_session(
    domain: str | None = None,
    startdate: str | None = None,
    enddate: str | None = None,
    checkpoint: str | None = None,
    domainkey: str | None = None,
    intersections: bool = False,
    pipeline: BatchPipeline = Depends(get_pipeline),
    row_source: RowSource = Depends(get_row_source),
    store: SessionStore = Depends(get_store),
):
    """Freeze the rows for a date range under a new session and process the first batch."""
    for name, value in (("domain", domain), ("startdate", startdate), ("enddate", enddate)):
        if not value:
            raise HTTPException(status_code=400, detail=f'Missing "{name}"')

    start = _parse_date("startdate", startdate)
    end = _parse_date("enddate", enddate)
    if start > end:
        raise HTTPException(status_code=400, detail='"startdate" is after "enddate"')

    settings = get_settings()
    try:
        rows = await row_source.fetch_rows(
            domain,
            start,
            end,
            checkpoint or settings.default_checkpoint,
            domainkey,
        )
    except UpstreamDataError as e:
        logger.error("[start] %s", e)
        raise HTTPException(status_code=502, detail=str(e))

    session_id = uuid.uuid4().hex
    try:
        await store.put(session_id, rows)
        batch = await pipeline.run(rows, 0, with_intersections=intersections)
    except Exception as e:
        logger.exception("[start] Error in session %s", session_id)
        raise HTTPException(status_code=500, detail=str(e) or "Internal Server Error")

    return BatchResponse(
        result=batch.results,
        session_id=session_id,
        total=batch.total,
        cursor=batch.cursor,
    )


@app.post("/get-bboxes/next", response_model=BatchResponse)
async def next_batch(
    request: NextRequest,
    pipeline: BatchPipeline = Depends(get_pipeline),
    store: SessionStore = Depends(get_store),
):
    """Resume a stored session from ``cursor``."""
    if not request.session_id:
        raise HTTPException(status_code=400, detail='Missing "sessionId"')
    if request.cursor < 0:
        raise HTTPException(status_code=400, detail='"cursor" must be >= 0')

    try:
        rows = await store.get(request.session_id)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    try:
        batch = await pipeline.run(rows, request.cursor, with_intersections=request.intersections)
    except Exception as e:
        logger.exception("[next] Error in session %s", request.session_id)
        raise HTTPException(status_code=500, detail=str(e) or "Internal Server Error")

    return BatchResponse(
        result=batch.results,
        session_id=request.session_id,
        total=batch.total,
        cursor=batch.cursor,
    )


def run():
    import uvicorn

    settings = get_settings()
    uvicorn.run("bbox_service.main:app", host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    run()
