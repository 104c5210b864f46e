"""FastAPI application exposing the storyteller, book analysis, and chat.

WHY: Other front ends (a web page, a phone shortcut, scripts) need the
same AI features the desktop app has without running Python locally.
Narration itself stays on the client device, so the API returns the
chapter already split into narration sections.

HOW: A single FastAPI app. POST /storyteller and POST /analysis accept a
book upload, create a job, and run the model call in the background;
clients poll GET /jobs/{id}. POST /chat and POST /chunks answer
synchronously. A lifespan task expires finished jobs.

RULES:
- All endpoints have OpenAPI descriptions on every parameter and response
- Error responses use a consistent ErrorResponse schema
- Background work uses FastAPI BackgroundTasks
- The job store is a module-level singleton
- Book uploads must be .txt or .pdf (checked by extension)
- Python 3.9+ compatible (no match/case, no PEP 604 unions)
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Annotated, List

from fastapi import BackgroundTasks, FastAPI, File, Form, HTTPException, UploadFile
from fastapi.responses import Response

from aural_odyssey import __version__
from aural_odyssey.ai.client import GeminiAPIError, GeminiClient
from aural_odyssey.ai.flows import analyze_book_content, chat_with_bot, extract_first_chapter
from aural_odyssey.ai.models import ChatMessage
from aural_odyssey.documents import (
    UnsupportedBookFormatError,
    document_from_bytes,
    mime_type_for,
)
from aural_odyssey.narration.chunker import section_label, split_into_chunks
from aural_odyssey.server.jobs import Job, JobKind, JobStatus, JobStore
from aural_odyssey.server.models import (
    ChatRequest,
    ChatResponse,
    ChunkRequest,
    ChunkResponse,
    ErrorResponse,
    HealthResponse,
    JobCreatedResponse,
    JobResponse,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# App and store setup
# ---------------------------------------------------------------------------

job_store = JobStore()


async def _periodic_cleanup() -> None:
    """Run job cleanup every 5 minutes."""
    while True:
        await asyncio.sleep(300)
        job_store.cleanup_expired()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start periodic cleanup on startup, cancel on shutdown."""
    task = asyncio.create_task(_periodic_cleanup())
    yield
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


app = FastAPI(
    lifespan=lifespan,
    title="Aural Odyssey API",
    description=(
        "REST API for the Aural Odyssey reading assistant: extract the first "
        "chapter of a book split into narration sections, ask questions about "
        "a book, and chat with the assistant."
    ),
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _job_to_response(job: Job) -> JobResponse:
    """Convert an internal Job dataclass to a JobResponse Pydantic model."""
    return JobResponse(
        id=job.id,
        kind=job.kind.value,
        status=job.status.value,
        filename=job.filename,
        created_at=job.created_at,
        config=job.config,
        error=job.error,
        result=job.result,
    )


def _validate_book_filename(raw_filename: str) -> str:
    """Return a safe filename, or raise HTTPException for unsupported types."""
    filename = Path(raw_filename or "book").name
    try:
        mime_type_for(filename)
    except UnsupportedBookFormatError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return filename


async def _create_book_job(
    background_tasks: BackgroundTasks,
    kind: JobKind,
    file: UploadFile,
    config: dict,
) -> JobCreatedResponse:
    filename = _validate_book_filename(file.filename or "")
    content = await file.read()
    if not content:
        raise HTTPException(status_code=400, detail="The uploaded file is empty.")

    try:
        job = job_store.create_job(kind=kind, filename=filename, config=config)
    except ValueError as exc:
        raise HTTPException(status_code=429, detail=str(exc))

    job.input_path.write_bytes(content)
    background_tasks.add_task(_run_book_job_sync, job.id, job_store)

    return JobCreatedResponse(
        id=job.id,
        kind=job.kind.value,
        status=job.status.value,
        filename=job.filename,
    )


async def _run_book_job(job_id: str, store: JobStore) -> None:
    """Run the model call for a storyteller or analysis job.

    RULES:
    - Marks the job PROCESSING, then COMPLETED with a result dict
    - Catches all exceptions and marks the job FAILED
    - Storyteller results include the chapter split into narration sections
    """
    job = store.get_job(job_id)
    if job is None:
        return

    store.update_job(job_id, status=JobStatus.PROCESSING)
    try:
        document = document_from_bytes(job.filename, job.input_path.read_bytes())
        async with GeminiClient() as client:
            if job.kind == JobKind.STORYTELLER:
                extraction = await extract_first_chapter(client, document)
                chunks = split_into_chunks(extraction.first_chapter_text) if extraction.usable else []
                result = extraction.to_dict()
                result["chunks"] = chunks
                result["note"] = extraction.processing_note(job.filename)
            else:
                answer = await analyze_book_content(client, document, job.config["question"])
                result = answer.to_dict()
        store.update_job(job_id, status=JobStatus.COMPLETED, result=result)
    except Exception as exc:
        logger.exception("Book job %s failed", job_id)
        store.update_job(job_id, status=JobStatus.FAILED, error=str(exc))


def _run_book_job_sync(job_id: str, store: JobStore) -> None:
    """Synchronous wrapper for the async job runner.

    WHY: FastAPI BackgroundTasks run synchronous callables in a thread
    pool. This wraps the async runner with asyncio.run().
    """
    asyncio.run(_run_book_job(job_id, store))


# ---------------------------------------------------------------------------
# Endpoints: Book jobs
# ---------------------------------------------------------------------------


@app.post(
    "/storyteller",
    response_model=JobCreatedResponse,
    status_code=201,
    tags=["books"],
    summary="Extract the first chapter of a book",
    description=(
        "Upload a .txt or .pdf book. Returns a job ID immediately; the first "
        "chapter is extracted in the background and returned, split into "
        "narration sections, by GET /jobs/{id}."
    ),
    responses={
        400: {"model": ErrorResponse, "description": "Unsupported or empty file"},
        429: {"model": ErrorResponse, "description": "Too many concurrent jobs"},
    },
)
async def create_storyteller_job(
    background_tasks: BackgroundTasks,
    file: Annotated[
        UploadFile,
        File(description="Book file (.txt or .pdf)"),
    ],
) -> JobCreatedResponse:
    return await _create_book_job(background_tasks, JobKind.STORYTELLER, file, {})


@app.post(
    "/analysis",
    response_model=JobCreatedResponse,
    status_code=201,
    tags=["books"],
    summary="Ask a question about a book",
    description=(
        "Upload a .txt or .pdf book (scanned PDFs are read with OCR) and a "
        "question. Returns a job ID immediately; poll GET /jobs/{id} for the answer."
    ),
    responses={
        400: {"model": ErrorResponse, "description": "Unsupported or empty file"},
        422: {"model": ErrorResponse, "description": "Missing or empty question"},
        429: {"model": ErrorResponse, "description": "Too many concurrent jobs"},
    },
)
async def create_analysis_job(
    background_tasks: BackgroundTasks,
    file: Annotated[
        UploadFile,
        File(description="Book file (.txt or .pdf)"),
    ],
    question: Annotated[
        str,
        Form(description="Question about the book's content."),
    ],
) -> JobCreatedResponse:
    if not question.strip():
        raise HTTPException(status_code=422, detail="Please enter your question about the book.")
    return await _create_book_job(
        background_tasks, JobKind.ANALYSIS, file, {"question": question.strip()}
    )


@app.get(
    "/jobs",
    response_model=List[JobResponse],
    tags=["jobs"],
    summary="List book jobs",
    description="Returns all known jobs, oldest first.",
)
async def list_jobs() -> List[JobResponse]:
    return [_job_to_response(job) for job in job_store.list_jobs()]


@app.get(
    "/jobs/{job_id}",
    response_model=JobResponse,
    tags=["jobs"],
    summary="Get book job status",
    description=(
        "Returns the job's status. When status is 'completed', result holds "
        "the chapter and sections (storyteller) or the answer (analysis)."
    ),
    responses={
        404: {"model": ErrorResponse, "description": "Job not found"},
    },
)
async def get_job(job_id: str) -> JobResponse:
    job = job_store.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found: {}".format(job_id))
    return _job_to_response(job)


@app.delete(
    "/jobs/{job_id}",
    status_code=204,
    tags=["jobs"],
    summary="Delete a book job",
    description="Delete a job and its uploaded book.",
    responses={
        404: {"model": ErrorResponse, "description": "Job not found"},
    },
)
async def delete_job(job_id: str) -> Response:
    deleted = job_store.delete_job(job_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Job not found: {}".format(job_id))
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Endpoints: Chat and chunking
# ---------------------------------------------------------------------------


@app.post(
    "/chat",
    response_model=ChatResponse,
    tags=["chat"],
    summary="Chat with the assistant",
    description=(
        "Send the latest user message and the conversation history. The "
        "assistant replies in Hindi unless asked otherwise and may fetch "
        "webpages or build YouTube search links."
    ),
    responses={
        502: {"model": ErrorResponse, "description": "The model API returned an error"},
        503: {"model": ErrorResponse, "description": "Model API key not configured"},
    },
)
async def chat(request: ChatRequest) -> ChatResponse:
    history = [ChatMessage(role=m.role, content=m.content) for m in request.history]
    try:
        async with GeminiClient() as client:
            reply = await chat_with_bot(client, request.user_message, history)
    except GeminiAPIError as exc:
        logger.warning("Chat request failed: %s", exc)
        raise HTTPException(status_code=502, detail=exc.message)
    except ValueError as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    return ChatResponse(response=reply.response)


@app.post(
    "/chunks",
    response_model=ChunkResponse,
    tags=["narration"],
    summary="Split text into narration sections",
    description="Splits text on blank lines into trimmed, non-empty sections.",
)
async def chunk_text(request: ChunkRequest) -> ChunkResponse:
    chunks = split_into_chunks(request.text)
    return ChunkResponse(
        chunks=chunks,
        labels=[section_label(i, chunk) for i, chunk in enumerate(chunks)],
    )


# ---------------------------------------------------------------------------
# Endpoints: Health
# ---------------------------------------------------------------------------


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["health"],
    summary="Health check",
    description="Liveness check for load balancers and orchestrators.",
)
async def health_check() -> HealthResponse:
    return HealthResponse(status="ok", version=__version__)


def run_api():
    """Entry point for the aural-odyssey-api console script."""
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run(app, host="0.0.0.0", port=8000)
