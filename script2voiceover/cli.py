"""Command-line interface for script2voiceover."""

import argparse
import json
import logging
import shutil
import sys
import tempfile
from pathlib import Path

from script2voiceover import __version__
from script2voiceover.audio.integrity import IntegrityOptions, analyze_wav, log_integrity_report
from script2voiceover.config import Settings
from script2voiceover.errors import ConfigurationError
from script2voiceover.storage import LocalStorage


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="script2voiceover",
        description="Render a narration script to a single WAV voiceover",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    parser.add_argument(
        "input_file",
        nargs="?",
        help="Text file with the narration script",
    )
    parser.add_argument(
        "output_file",
        nargs="?",
        help="Output WAV file (default: same name as the input with .wav)",
    )
    parser.add_argument(
        "--voice-sample",
        default=None,
        help="HTTPS URL of a voice sample to clone (default voice if omitted)",
    )
    parser.add_argument(
        "--max-chunk-length",
        type=int,
        default=None,
        help="Maximum characters per TTS request, at most 400 (default: 180)",
    )
    parser.add_argument(
        "--endpoint-id",
        default=None,
        help="Inference endpoint id (default: RUNPOD_ENDPOINT_ID)",
    )
    parser.add_argument(
        "--check",
        metavar="WAV",
        default=None,
        help="Only run the integrity check on an existing WAV file and print the report",
    )
    parser.add_argument(
        "--silence-threshold-ms",
        type=float,
        default=1000,
        help="Silence gap length reported by --check (default: 1000)",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args(argv)
    try:
        settings = Settings.from_env().with_overrides(
            max_chunk_length=args.max_chunk_length,
            endpoint_id=args.endpoint_id,
        )
    except ConfigurationError as e:
        parser.error(str(e))

    # Configure logging
    level = logging.DEBUG if args.verbose or settings.debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )

    # Handle --check
    if args.check:
        wav_path = Path(args.check)
        if not wav_path.exists():
            parser.error(f"File not found: {wav_path}")
        report = analyze_wav(
            wav_path.read_bytes(),
            IntegrityOptions(silence_threshold_ms=args.silence_threshold_ms),
        )
        log_integrity_report(report, wav_path.name)
        print(json.dumps(report.to_dict(), indent=2))
        sys.exit(0 if report.valid else 2)

    # Validate input file
    if not args.input_file:
        parser.error("Specify the narration script to render")

    input_path = Path(args.input_file)
    if not input_path.exists():
        parser.error(f"File not found: {input_path}")

    output_path = Path(args.output_file) if args.output_file else input_path.with_suffix(".wav")

    from script2voiceover.pipeline import build_orchestrator
    from script2voiceover.progress import TqdmProgressSink

    work_dir = Path(tempfile.mkdtemp(prefix="s2v_"))
    progress = TqdmProgressSink()
    try:
        orchestrator = build_orchestrator(settings, storage=LocalStorage(work_dir))
        result = orchestrator.execute(
            input_path.read_text(encoding="utf-8"),
            args.voice_sample,
            project_id="cli",
            segmented=False,
            sink=progress,
        )
        output_path.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(work_dir / "cli" / "voiceover.wav"), str(output_path))
    except KeyboardInterrupt:
        print("\n\nRendering interrupted.")
        sys.exit(1)
    except Exception as e:
        logging.error("Error: %s", e)
        if args.verbose:
            logging.exception("Details:")
        sys.exit(1)
    finally:
        progress.close()
        shutil.rmtree(work_dir, ignore_errors=True)

    print(f"\nVoiceover created: {output_path} ({result.duration_seconds:.1f}s, {result.size_bytes} bytes)")


if __name__ == "__main__":
    main()
