"""FastAPI web interface for script2voiceover."""

import json
import logging
from pathlib import Path
from typing import AsyncIterator, Optional

from fastapi import FastAPI, HTTPException, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, ConfigDict, Field
from sse_starlette.sse import EventSourceResponse
from starlette.concurrency import run_in_threadpool

from script2voiceover import __version__
from script2voiceover.audio.integrity import IntegrityOptions, analyze_wav, log_integrity_report
from script2voiceover.config import Settings
from script2voiceover.errors import ValidationError, VoiceoverError
from script2voiceover.models import round_half_up
from script2voiceover.pipeline import SEGMENT_OUTPUT_NAME, PipelineOrchestrator, build_orchestrator
from script2voiceover.progress import ProgressChannel, ProgressEvent

logger = logging.getLogger(__name__)

MAX_SEGMENTS = 10
KEEPALIVE_SECONDS = 15


# --- Pydantic models ---

class GenerateAudioRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    script: str = ""
    voice_sample_url: Optional[str] = Field(None, alias="voiceSampleUrl")
    project_id: Optional[str] = Field(None, alias="projectId")
    stream: bool = False


class RegenerateSegmentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    segment_text: str = Field("", alias="segmentText")
    segment_index: Optional[int] = Field(None, alias="segmentIndex")
    voice_sample_url: Optional[str] = Field(None, alias="voiceSampleUrl")
    project_id: Optional[str] = Field(None, alias="projectId")


# --- SSE helpers ---

async def event_stream(channel: ProgressChannel) -> AsyncIterator[dict]:
    """Relay channel events as SSE ``data:`` payloads.

    sse-starlette cancels this generator when the client goes away; the
    channel is then closed so the still-running pipeline emits into the void.
    """
    try:
        async for event in channel.events():
            yield {"data": json.dumps(event.to_dict())}
    finally:
        if not channel.finished:
            logger.info("Progress stream closed before the run finished")
        channel.close()


def sse_response(channel: ProgressChannel) -> EventSourceResponse:
    return EventSourceResponse(event_stream(channel), ping=KEEPALIVE_SECONDS, sep="\n")


def single_error_stream(error: str) -> EventSourceResponse:
    channel = ProgressChannel()
    channel.emit(ProgressEvent.failure(error))
    return sse_response(channel)


# --- App factory ---

def create_app(
    settings: Optional[Settings] = None,
    orchestrator: Optional[PipelineOrchestrator] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    app = FastAPI(title="script2voiceover", version=__version__)

    data_path = settings.data_dir.resolve()
    data_path.mkdir(parents=True, exist_ok=True)
    app.mount("/files", StaticFiles(directory=str(data_path)), name="files")

    def get_orchestrator() -> PipelineOrchestrator:
        # Built per request so a missing API key is reported, not fatal at startup
        return orchestrator or build_orchestrator(settings)

    @app.exception_handler(VoiceoverError)
    async def voiceover_error_handler(request, exc: VoiceoverError):
        return JSONResponse(status_code=exc.status_code, content={"success": False, "error": str(exc)})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = first.get("msg", "Invalid request")
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": f"{field}: {message}" if field else message},
        )

    # --- Routes ---

    @app.post("/api/generate-audio")
    async def generate_audio(req: GenerateAudioRequest):
        word_count = len(req.script.split())
        logger.info(
            "Audio request: %d chars, %d words, stream=%s, voiceSampleUrl=%s",
            len(req.script), word_count, req.stream, "YES" if req.voice_sample_url else "NO",
        )

        if req.stream:
            try:
                pipeline = get_orchestrator()
            except VoiceoverError as e:
                return single_error_stream(str(e))
            channel = pipeline.start_streaming(
                req.script, req.voice_sample_url, project_id=req.project_id
            )
            return sse_response(channel)

        pipeline = get_orchestrator()
        result = await run_in_threadpool(
            pipeline.execute, req.script, req.voice_sample_url, project_id=req.project_id
        )
        return result.to_response()

    @app.post("/api/generate-audio/segment")
    async def regenerate_segment(req: RegenerateSegmentRequest):
        if not req.segment_text:
            raise ValidationError("segmentText is required")
        if not req.segment_index or not 1 <= req.segment_index <= MAX_SEGMENTS:
            raise ValidationError(f"segmentIndex must be between 1 and {MAX_SEGMENTS}")
        if not req.voice_sample_url:
            raise ValidationError("voiceSampleUrl is required")
        if not req.project_id:
            raise ValidationError("projectId is required")

        logger.info("Regenerating segment %d for project %s", req.segment_index, req.project_id)
        pipeline = get_orchestrator()
        result = await run_in_threadpool(
            pipeline.execute,
            req.segment_text,
            req.voice_sample_url,
            project_id=req.project_id,
            output_name=SEGMENT_OUTPUT_NAME.format(index=req.segment_index),
            segmented=False,
        )
        return {
            "success": True,
            "segment": {
                "index": req.segment_index,
                "audioUrl": result.audio_url,
                "duration": round_half_up(result.duration_seconds, 1),
                "size": result.size_bytes,
                "text": req.segment_text,
            },
        }

    @app.post("/api/audio-integrity")
    async def audio_integrity(
        file: UploadFile,
        silence_threshold_ms: float = 1000,
        glitch_threshold_db: float = 20,
        sample_window_ms: float = 50,
    ):
        if sample_window_ms <= 0 or silence_threshold_ms <= 0:
            raise HTTPException(400, detail="Window and silence thresholds must be positive")

        data = await file.read()
        options = IntegrityOptions(
            silence_threshold_ms=silence_threshold_ms,
            glitch_threshold_db=glitch_threshold_db,
            sample_window_ms=sample_window_ms,
        )
        report = await run_in_threadpool(analyze_wav, data, options)
        log_integrity_report(report, file.filename or "upload")
        return report.to_dict()

    return app


# --- CLI entry point ---

def main():
    """Run the script2voiceover web server."""
    import argparse
    import uvicorn

    parser = argparse.ArgumentParser(description="script2voiceover web interface")
    parser.add_argument("--host", default="127.0.0.1", help="Host (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=8000, help="Port (default: 8000)")
    parser.add_argument("--data-dir", default=None, help="Directory for rendered audio")
    parser.add_argument("--public-url", default=None, help="Base URL the files are served from")
    args = parser.parse_args()

    settings = Settings.from_env().with_overrides(
        data_dir=args.data_dir and Path(args.data_dir),
        public_url=args.public_url,
    )
    if not settings.public_url:
        settings = settings.with_overrides(public_url=f"http://{args.host}:{args.port}")

    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )

    app = create_app(settings)
    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
