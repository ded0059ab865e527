"""Pipeline orchestrator - narration → chunks → TTS jobs → one WAV → storage."""

import logging
import threading
import uuid
from enum import Enum
from typing import Optional, Union

from script2voiceover.audio.integrity import analyze_wav, log_integrity_report
from script2voiceover.audio.wav import concatenate_wavs
from script2voiceover.config import Settings, check_chunk_length
from script2voiceover.errors import ValidationError, VoiceoverError
from script2voiceover.models import (
    AudioResult,
    NarrationSegment,
    ReferencePayload,
    SegmentResult,
    TextChunk,
)
from script2voiceover.progress import NullProgressSink, ProgressChannel, ProgressEvent, ProgressSink
from script2voiceover.storage import LocalStorage, Storage
from script2voiceover.text import (
    clean_script,
    normalize_text,
    split_into_chunks,
    split_into_segments,
    validation_failure_reason,
)
from script2voiceover.text.chunker import DEFAULT_SEGMENT_COUNT
from script2voiceover.tts.job_client import SynthesisJobClient
from script2voiceover.tts.reference import ReferenceAudioLoader

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT_NAME = "voiceover.wav"
SEGMENT_OUTPUT_NAME = "voiceover-segment-{index}.wav"

NO_VALID_CHUNKS = (
    "No valid text chunks after validation. "
    "Script may contain only special characters or be too short."
)

# Progress percent at each stage boundary
_PCT_NORMALIZING = 5
_PCT_CHUNKING = 10
_PCT_REFERENCE = 12
_PCT_SYNTH_START = 15
_PCT_SYNTH_END = 80
_PCT_CONCATENATING = 80
_PCT_UPLOADING = 85
_PCT_CHECKING = 95


class PipelineState(str, Enum):
    NORMALIZING = "normalizing"
    CHUNKING = "chunking"
    LOADING_REFERENCE = "loading_reference"
    SYNTHESIZING = "synthesizing"
    CONCATENATING = "concatenating"
    UPLOADING = "uploading"
    DONE = "done"
    FAILED = "failed"


class PipelineOrchestrator:
    """Runs one narration through the whole audio pipeline.

    Chunks are synthesized strictly one after the other, in narration order,
    and any failure aborts the run: there is no partial-audio fallback.
    Streaming and non-streaming runs share the same code path; they only
    differ in the ``ProgressSink`` they report to.

    Cloned-voice runs are segmented: the narration is cut into up to
    ``segment_count`` numbered segments by word count, each stored as its
    own WAV next to the combined file so a single segment can later be
    regenerated.
    """

    def __init__(
        self,
        job_client: SynthesisJobClient,
        storage: Storage,
        reference_loader: Optional[ReferenceAudioLoader] = None,
        max_chunk_length: int = 180,
        check_integrity: bool = True,
        segment_count: int = DEFAULT_SEGMENT_COUNT,
    ):
        self.job_client = job_client
        self.storage = storage
        self.reference_loader = reference_loader or ReferenceAudioLoader()
        self.max_chunk_length = check_chunk_length(max_chunk_length)
        self.check_integrity = check_integrity
        self.segment_count = segment_count

    def _normalize(self, narration: str) -> str:
        text = normalize_text(clean_script(narration or ""))
        if not text:
            raise ValidationError("Script is required")
        return text

    def _usable_chunks(self, text: str, label: str = "") -> list[TextChunk]:
        raw_chunks = split_into_chunks(text, self.max_chunk_length)
        usable = []
        for chunk in raw_chunks:
            reason = validation_failure_reason(chunk.text)
            if reason:
                logger.warning("Skipping %schunk %d (%s): %.50r", label, chunk.ordinal + 1, reason, chunk.text)
                continue
            usable.append(chunk.text)
        return [TextChunk(text=t, ordinal=i) for i, t in enumerate(usable)]

    def prepare_chunks(self, narration: str) -> list[TextChunk]:
        """Clean, normalize and split narration, dropping chunks unfit for synthesis.

        Raises:
            ValidationError: If nothing usable is left.
        """
        text = self._normalize(narration)
        chunks = self._usable_chunks(text)
        if not chunks:
            raise ValidationError(NO_VALID_CHUNKS)

        logger.info("Using %d valid chunks", len(chunks))
        return chunks

    def prepare_segments(self, narration: str) -> list[NarrationSegment]:
        """Cut narration into numbered segments, each with its own valid chunks.

        Segments left without a usable chunk are skipped, keeping the
        numbering of the others.

        Raises:
            ValidationError: If no segment has anything usable.
        """
        text = self._normalize(narration)
        segments = []
        for index, segment_text in enumerate(split_into_segments(text, self.segment_count), start=1):
            chunks = self._usable_chunks(segment_text, label=f"segment {index} ")
            if not chunks:
                logger.warning("Segment %d has no valid chunks, skipping: %.50r", index, segment_text)
                continue
            logger.debug("Segment %d: %d words, %d chunks", index, len(segment_text.split()), len(chunks))
            segments.append(NarrationSegment(index=index, text=segment_text, chunks=tuple(chunks)))

        if not segments:
            raise ValidationError(NO_VALID_CHUNKS)
        return segments

    def run(
        self,
        narration: str,
        reference_url: Optional[str] = None,
        streaming: bool = False,
        *,
        project_id: Optional[str] = None,
        output_name: str = DEFAULT_OUTPUT_NAME,
    ) -> Union[AudioResult, ProgressChannel]:
        """Render narration to one WAV file.

        Args:
            narration: Raw script text.
            reference_url: Voice sample to clone; the default voice is used if None.
            streaming: If True, return a ``ProgressChannel`` at once and run
                the pipeline on a worker thread.
            project_id: Storage folder; a random one is used if None.
            output_name: File name inside the project folder.

        Raises:
            VoiceoverError: Non-streaming runs raise the typed failure.
        """
        if streaming:
            return self.start_streaming(
                narration, reference_url, project_id=project_id, output_name=output_name
            )
        return self.execute(
            narration, reference_url, project_id=project_id, output_name=output_name
        )

    def start_streaming(
        self,
        narration: str,
        reference_url: Optional[str] = None,
        *,
        project_id: Optional[str] = None,
        output_name: str = DEFAULT_OUTPUT_NAME,
    ) -> ProgressChannel:
        """Start a run in the background and return the channel it reports to.

        The channel always ends with exactly one ``complete`` or ``error``
        event. If the reader disconnects the run is not interrupted; its
        remaining events are dropped by the channel.
        """
        channel = ProgressChannel()

        def worker():
            try:
                result = self.execute(
                    narration, reference_url,
                    project_id=project_id, output_name=output_name, sink=channel,
                )
            except VoiceoverError as e:
                channel.emit(ProgressEvent.failure(str(e)))
            except Exception as e:
                logger.exception("Audio generation failed")
                channel.emit(ProgressEvent.failure(str(e) or "Audio generation failed"))
            else:
                channel.emit(ProgressEvent.from_result(result))

        thread = threading.Thread(target=worker, daemon=True, name="voiceover-pipeline")
        thread.start()
        return channel

    def execute(
        self,
        narration: str,
        reference_url: Optional[str] = None,
        *,
        project_id: Optional[str] = None,
        output_name: str = DEFAULT_OUTPUT_NAME,
        sink: Optional[ProgressSink] = None,
        segmented: Optional[bool] = None,
    ) -> AudioResult:
        """Blocking run that reports progress to ``sink``.

        ``segmented`` defaults to True for cloned-voice runs.
        """
        run = _RunState(sink or NullProgressSink())
        if segmented is None:
            segmented = bool(reference_url)
        try:
            run.enter(PipelineState.NORMALIZING, _PCT_NORMALIZING, "Normalizing narration text...")
            word_count = len(clean_script(narration or "").split())

            if segmented:
                segments = self.prepare_segments(narration)
            else:
                segments = [NarrationSegment(index=1, text="", chunks=tuple(self.prepare_chunks(narration)))]
            total = sum(len(s.chunks) for s in segments)

            voice = "cloned voice" if reference_url else "default voice"
            if segmented:
                message = f"Processing {total} chunks in {len(segments)} segments ({voice})..."
            else:
                message = f"Processing {total} chunks ({voice})..."
            run.enter(PipelineState.CHUNKING, _PCT_CHUNKING, message)

            reference: Optional[ReferencePayload] = None
            if reference_url:
                run.enter(PipelineState.LOADING_REFERENCE, _PCT_REFERENCE, "Downloading voice sample...")
                reference = self.reference_loader.load(reference_url)

            folder = project_id or str(uuid.uuid4())
            parts: list[bytes] = []
            segment_results: list[SegmentResult] = []
            done = 0
            span = _PCT_SYNTH_END - _PCT_SYNTH_START
            for segment in segments:
                audio_chunks = []
                for chunk in segment.chunks:
                    if segmented:
                        message = f"Segment {segment.index}: chunk {chunk.ordinal + 1}/{len(segment.chunks)}..."
                    else:
                        message = f"Generating audio chunk {done + 1}/{total}..."
                    run.enter(PipelineState.SYNTHESIZING, _PCT_SYNTH_START + span * done // total, message)
                    logger.debug("Chunk %d text: %.50r", done + 1, chunk.text)
                    audio = self.job_client.synthesize(chunk.text, reference)
                    audio_chunks.append(audio)
                    done += 1
                    logger.debug("Chunk %d completed: %d bytes", done, len(audio))

                if segmented:
                    segment_wav, result = self._store_segment(folder, segment, audio_chunks)
                    parts.append(segment_wav)
                    segment_results.append(result)
                else:
                    parts.extend(audio_chunks)

            run.enter(PipelineState.CONCATENATING, _PCT_CONCATENATING, "Concatenating audio chunks...")
            combined = concatenate_wavs(parts)
            del parts
            logger.info(
                "Final audio: %d bytes, %.1fs from %d chunks",
                combined.size, combined.duration_seconds, total,
            )

            run.enter(PipelineState.UPLOADING, _PCT_UPLOADING, "Uploading audio file...")
            path = f"{folder}/{output_name}"
            audio_url = self.storage.upload(path, combined.data, "audio/wav")
            logger.info("Audio uploaded: %s", audio_url)

            if self.check_integrity:
                run.sink.progress(_PCT_CHECKING, "Checking audio integrity...")
                log_integrity_report(analyze_wav(combined.data), path)

            run.state = PipelineState.DONE
            return AudioResult(
                audio_url=audio_url,
                duration_seconds=combined.duration_seconds,
                size_bytes=combined.size,
                word_count=word_count,
                chunk_count=total,
                segments=tuple(segment_results),
            )
        except Exception as e:
            logger.error("Pipeline failed while %s: %s", run.state.value, e)
            run.state = PipelineState.FAILED
            raise

    def _store_segment(
        self, folder: str, segment: NarrationSegment, audio_chunks: list[bytes]
    ) -> tuple[bytes, SegmentResult]:
        audio = concatenate_wavs(audio_chunks)
        path = f"{folder}/{SEGMENT_OUTPUT_NAME.format(index=segment.index)}"
        url = self.storage.upload(path, audio.data, "audio/wav")
        logger.info("Segment %d stored: %s (%.1fs)", segment.index, url, audio.duration_seconds)
        return audio.data, SegmentResult(
            index=segment.index,
            audio_url=url,
            duration_seconds=audio.duration_seconds,
            size_bytes=audio.size,
            text=segment.text,
        )


class _RunState:
    """Current state of one run plus the sink its progress goes to."""

    def __init__(self, sink: ProgressSink):
        self.sink = sink
        self.state = PipelineState.NORMALIZING

    def enter(self, state: PipelineState, percent: int, message: str) -> None:
        if state is not self.state:
            logger.info("Pipeline state: %s → %s", self.state.value, state.value)
        self.state = state
        self.sink.progress(percent, message)


def build_orchestrator(settings: Settings, storage: Optional[Storage] = None) -> PipelineOrchestrator:
    """Wire an orchestrator from settings; the API key must be configured."""
    job_client = SynthesisJobClient(
        base_url=settings.inference_url,
        api_key=settings.require_api_key(),
        poll_interval=settings.poll_interval,
        max_polls=settings.max_polls,
    )
    return PipelineOrchestrator(
        job_client=job_client,
        storage=storage or LocalStorage(settings.data_dir, settings.public_url),
        reference_loader=ReferenceAudioLoader(allowed_hosts=settings.allowed_reference_hosts),
        max_chunk_length=settings.max_chunk_length,
    )
