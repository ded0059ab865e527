"""Audio integrity checking - detect skips, discontinuities, silence gaps and clipping.

The waveform is cut into fixed windows (50 ms by default) and each window's
RMS is compared with the previous one:

- skip: a loud window (RMS > 3x the silence threshold) followed by silence.
  Marks the file invalid.
- discontinuity: otherwise, a level change larger than ``glitch_threshold_db``.
- clipping: any sample at or above ``CLIPPING_THRESHOLD``.
- silence_gap: a run of silent windows lasting ``silence_threshold_ms``.

Anomalies are reported as issues, never raised. Only an unparseable buffer
or a decode failure produces an ``error`` issue.
"""

import logging
import math
import struct
from dataclasses import dataclass

import numpy as np

from script2voiceover.models import IntegrityIssue, IntegrityReport, IntegrityStats

logger = logging.getLogger(__name__)

SILENCE_THRESHOLD = 300  # RMS below this is silence
CLIPPING_THRESHOLD = 32000  # near max for 16-bit
MAX_SAMPLES = 10 * 1024 * 1024
MAX_DATA_BYTES = 100 * 1024 * 1024

# Used when the buffer has a data chunk but no fmt chunk
_DEFAULT_SAMPLE_RATE = 24000
_DEFAULT_CHANNELS = 1
_DEFAULT_BITS = 16


@dataclass(frozen=True)
class IntegrityOptions:
    silence_threshold_ms: float = 1000
    glitch_threshold_db: float = 20
    sample_window_ms: float = 50
    max_samples: int = MAX_SAMPLES


def _error_report(description: str, stats: IntegrityStats | None = None) -> IntegrityReport:
    issue = IntegrityIssue(type="glitch", timestamp_seconds=0.0, severity="error", description=description)
    return IntegrityReport(valid=False, issues=(issue,), stats=stats or IntegrityStats())


def analyze_wav(wav: bytes, options: IntegrityOptions | None = None) -> IntegrityReport:
    """Check a WAV buffer for glitches and return a report."""
    options = options or IntegrityOptions()
    try:
        return _analyze(wav, options)
    except Exception as e:
        logger.exception("Audio integrity analysis failed")
        return _error_report(f"Analysis error: {e}")


def _analyze(wav: bytes, options: IntegrityOptions) -> IntegrityReport:
    data_idx = wav.find(b"data")
    if data_idx == -1:
        return _error_report("Invalid WAV: no data chunk")

    fmt_idx = wav.find(b"fmt ")
    if fmt_idx != -1:
        channels, sample_rate = struct.unpack_from("<HI", wav, fmt_idx + 10)
        (bits,) = struct.unpack_from("<H", wav, fmt_idx + 22)
    else:
        channels, sample_rate, bits = _DEFAULT_CHANNELS, _DEFAULT_SAMPLE_RATE, _DEFAULT_BITS

    if bits not in (8, 16):
        raise ValueError(f"unsupported bit depth {bits}")
    if sample_rate <= 0 or channels <= 0:
        raise ValueError(f"invalid format ({sample_rate}Hz, {channels} channels)")

    bytes_per_sample = bits // 8
    frame_rate = sample_rate * channels  # interleaved samples per second

    (data_size,) = struct.unpack_from("<I", wav, data_idx + 4)
    data_start = data_idx + 8
    data_end = min(len(wav), data_start + data_size, data_start + MAX_DATA_BYTES)

    estimated_samples = (data_end - data_start) // bytes_per_sample
    if estimated_samples > options.max_samples:
        logger.warning(
            "Audio too large for integrity check (%d samples), skipping detailed analysis",
            estimated_samples,
        )
        return IntegrityReport(
            valid=True, stats=IntegrityStats(duration_seconds=estimated_samples / frame_rate)
        )

    raw = wav[data_start:data_start + estimated_samples * bytes_per_sample]
    if bytes_per_sample == 2:
        samples = np.frombuffer(raw, dtype="<i2").astype(np.float64)
    else:
        # 8-bit PCM is unsigned with silence at 128
        samples = (np.frombuffer(raw, dtype=np.uint8).astype(np.float64) - 128) * 256

    if samples.size == 0:
        return _error_report("No audio samples found")

    duration = samples.size / frame_rate
    window_size = int(frame_rate * options.sample_window_ms / 1000)
    num_windows = samples.size // window_size if window_size > 0 else 0

    windows = samples[:num_windows * window_size].reshape(num_windows, window_size)
    rms = np.sqrt(np.mean(windows ** 2, axis=1))
    peaks = np.max(np.abs(windows), axis=1)

    issues: list[IntegrityIssue] = []
    discontinuities = 0

    def timestamp(w: int) -> float:
        return w * window_size / frame_rate

    for w in range(num_windows):
        level = float(rms[w])
        if w > 0 and rms[w - 1] > SILENCE_THRESHOLD:
            prev = float(rms[w - 1])
            db_change = 20 * math.log10(max(level, 1e-6) / max(prev, 1))
            if level < SILENCE_THRESHOLD and prev > SILENCE_THRESHOLD * 3:
                issues.append(IntegrityIssue(
                    type="skip",
                    timestamp_seconds=timestamp(w),
                    severity="warning",
                    description=f"Sudden drop to silence at {timestamp(w):.2f}s "
                                f"({abs(db_change):.1f}dB drop)",
                ))
            elif abs(db_change) > options.glitch_threshold_db:
                discontinuities += 1
                issues.append(IntegrityIssue(
                    type="discontinuity",
                    timestamp_seconds=timestamp(w),
                    severity="warning",
                    description=f"Amplitude discontinuity at {timestamp(w):.2f}s "
                                f"({db_change:.1f}dB change)",
                ))

        if peaks[w] >= CLIPPING_THRESHOLD:
            issues.append(IntegrityIssue(
                type="clipping",
                timestamp_seconds=timestamp(w),
                severity="warning",
                description=f"Potential clipping at {timestamp(w):.2f}s (amplitude {int(peaks[w])})",
            ))

    silent = rms < SILENCE_THRESHOLD
    gap_windows = math.ceil(options.silence_threshold_ms / options.sample_window_ms)
    run = 0
    for w in range(num_windows):
        if silent[w]:
            run += 1
            if run == gap_windows:
                start = timestamp(w - run + 1)
                issues.append(IntegrityIssue(
                    type="silence_gap",
                    timestamp_seconds=start,
                    severity="warning",
                    description=f"Extended silence gap starting at {start:.2f}s "
                                f"(>{options.silence_threshold_ms:g}ms)",
                ))
        else:
            run = 0

    stats = IntegrityStats(
        duration_seconds=duration,
        avg_amplitude=float(rms.mean()) if num_windows else 0.0,
        max_amplitude=float(rms.max()) if num_windows else 0.0,
        silence_percent=float(silent.mean() * 100) if num_windows else 0.0,
        discontinuities=discontinuities,
    )
    valid = not any(i.severity == "error" or i.type == "skip" for i in issues)
    return IntegrityReport(valid=valid, issues=tuple(issues), stats=stats)


def log_integrity_report(report: IntegrityReport, context: str) -> None:
    """Log a report summary plus the first ten issues."""
    stats = report.stats
    logger.info("Audio integrity check [%s]:", context)
    logger.info("  Duration: %.2fs", stats.duration_seconds)
    logger.info("  Avg amplitude: %.0f, Max: %.0f", stats.avg_amplitude, stats.max_amplitude)
    logger.info("  Silence: %.1f%%", stats.silence_percent)
    logger.info("  Discontinuities: %d", stats.discontinuities)
    logger.info("  Valid: %s", "YES" if report.valid else "NO")

    if report.issues:
        logger.warning("  Issues (%d):", len(report.issues))
        for issue in report.issues[:10]:
            level = logging.ERROR if issue.severity == "error" else logging.WARNING
            logger.log(level, "  [%s] %s", issue.type, issue.description)
        if len(report.issues) > 10:
            logger.warning("  ... and %d more issues", len(report.issues) - 10)
