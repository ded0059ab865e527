"""Error taxonomy for the voiceover pipeline.

Every error carries the HTTP status the web layer answers with, so routes and
the SSE stream can render any failure as a single terminal error.
"""


class VoiceoverError(RuntimeError):
    """Base class for all pipeline failures."""

    status_code = 500


class ConfigurationError(VoiceoverError):
    """A required setting (API key, endpoint) is missing."""


class ValidationError(VoiceoverError):
    """Narration text or a chunk is empty, unsafe or oversized."""

    status_code = 400


class ReferenceAudioError(VoiceoverError):
    """The voice sample could not be used for cloning."""

    status_code = 400


class ReferenceForbidden(ReferenceAudioError):
    """The voice sample URL points somewhere we refuse to fetch from."""


class ReferenceUnreachable(ReferenceAudioError):
    """The voice sample URL could not be fetched."""


class ReferenceEmpty(ReferenceAudioError):
    """The voice sample has zero bytes."""


class ReferenceTooLarge(ReferenceAudioError):
    """The voice sample exceeds the size limit."""


class SynthesisFailed(VoiceoverError):
    """The inference service reported a failure for a chunk."""

    status_code = 502

    def __init__(self, cause: str, *, job_id: str | None = None):
        super().__init__(f"TTS job failed: {cause}")
        self.cause = cause
        self.job_id = job_id


class SynthesisTimeout(SynthesisFailed):
    """A job did not reach a terminal state within the poll ceiling."""

    status_code = 504

    def __init__(self, job_id: str, attempts: int, interval: float):
        seconds = attempts * interval
        super().__init__(
            f"timed out after {attempts} polls ({seconds:.0f}s)", job_id=job_id
        )
        self.attempts = attempts


class MalformedWav(VoiceoverError):
    """A WAV buffer lacks a parseable fmt or data chunk."""


class WavFormatMismatch(MalformedWav):
    """Chunks with different sample rate, channels or bit depth."""


class UploadFailed(VoiceoverError):
    """The storage backend rejected the final file."""
