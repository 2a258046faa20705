"""
Command-line scene analysis.

Usage:
    scenesync track.mp3
    scenesync track.mp3 --model-dir models/ -o report.json --npz series.npz
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, TextIO

from scenesync.config import PipelineConfig
from scenesync.errors import SceneSyncError
from scenesync.io.exporter import ReportExporter
from scenesync.model.assets import AssetLoader
from scenesync.pipeline import AnalysisPipeline


class ProgressPrinter:
    """
    Pipeline progress on a stream.

    A terminal gets one status line that is redrawn in place; anything else
    (pipes, log files) gets one line per stage.
    """

    def __init__(self, stream: Optional[TextIO] = None, width: int = 24):
        self.stream = stream if stream is not None else sys.stdout
        self.width = width
        self._last_stage: Optional[str] = None

    def __call__(self, percent: int, stage: str) -> None:
        if self.stream.isatty():
            done = "=" * (percent * self.width // 100)
            self.stream.write(f"\r{stage:<24.24} |{done:<{self.width}}| {percent:3d}%")
            if percent >= 100:
                self.stream.write("\n")
        elif stage != self._last_stage:
            self.stream.write(f"{percent:3d}% {stage}\n")
        self.stream.flush()
        self._last_stage = stage


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Classify the scene type of an audio track"
    )

    parser.add_argument(
        "audio",
        type=Path,
        help="Input audio file (wav, mp3, flac)",
    )

    parser.add_argument(
        "--model-dir",
        type=Path,
        default=None,
        help="Directory with scaler_params.json, scene_types.json and model.json "
             "(default: rule-based scoring)",
    )

    parser.add_argument(
        "-o", "--output",
        type=Path,
        default=None,
        help="Write the JSON report to this file",
    )

    parser.add_argument(
        "--npz",
        type=Path,
        default=None,
        help="Write raw feature series to this .npz file",
    )

    parser.add_argument(
        "--max-duration",
        type=float,
        default=30.0,
        help="Analyze at most this many seconds (default: 30, 0 = whole file)",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    return parser


def main(argv=None) -> int:
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not args.audio.exists():
        print(f"Error: Audio file not found: {args.audio}", file=sys.stderr)
        return 1

    try:
        assets = AssetLoader(args.model_dir).load() if args.model_dir else None
        config = PipelineConfig(max_duration=args.max_duration or None)
        pipeline = AnalysisPipeline(config=config, assets=assets)
        report = pipeline.analyze_file(args.audio, on_progress=ProgressPrinter())
    except SceneSyncError as exc:
        print(f"Error: {exc.user_message}", file=sys.stderr)
        logging.getLogger(__name__).debug("Analysis failed", exc_info=True)
        return 2

    prediction = report.prediction
    print(f"\nScene: {prediction.label} ({prediction.confidence * 100:.1f}%)")
    if prediction.is_split(config.split_threshold):
        runner_up, p = prediction.ranked()[1]
        print(f"  Close call with {runner_up} ({p * 100:.1f}%)")
    for label, p in prediction.ranked():
        print(f"  {label:<12} {p * 100:5.1f}%")
    print(f"Tempo: {report.time_series.tempo} BPM   "
          f"Processed in {report.processing_time:.2f}s")

    exporter = ReportExporter()
    if args.output:
        path = exporter.export_json(report, args.output)
        print(f"Report: {path}")
    if args.npz:
        path = exporter.export_numpy(report, args.npz)
        print(f"Series: {path}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
