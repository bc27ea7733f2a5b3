# main_application.py
"""
CardioSense headless acquisition tool.

Runs one acquisition session from the synthesizer, a BLE sensor or a
replay file, then optionally exports the window, interprets it and
writes a PDF session report.

    cardiosense --source synthetic --bpm 80 --duration 10 --export
    cardiosense --source ble --name-hint ECG --analyze --report
    cardiosense --load sessions/ecg_session_2024-03-05T14-07-09.csv --analyze --report
"""

import sys
import asyncio
import argparse
import logging
from pathlib import Path
from typing import List, Optional, Sequence

from ai.interpretation import analyze_segment, create_interpreter
from config.settings import CardioSenseConfig, create_config
from core.decoder import Framing
from core.errors import InsufficientData, LinkError, NotReady
from core.events import COUNTDOWN, STREAM_FAILURE
from core.models import ExternalSource, Sample, SessionState, SyntheticSource
from core.processing import estimate_heart_rate
from core.session import DEFAULT_EXTERNAL_BPM, AcquisitionSession
from reports.export import export_csv, load_csv
from reports.report import export_pdf
from sensors.ble_link import BleSensorLink
from sensors.replay import ReplaySensorLink

logger = logging.getLogger("cardiosense")

STATUS_INTERVAL = 2.0


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="cardiosense", description="Single-lead ECG acquisition")
    p.add_argument("--source", choices=["synthetic", "ble", "replay"], default="synthetic")
    p.add_argument("--replay", help="text capture to replay (with --source replay)")
    p.add_argument("--load", help="re-analyze a saved session CSV instead of acquiring")
    p.add_argument("--name-hint", help="BLE device name filter")
    p.add_argument("--bpm", type=float, help="synthetic target rate")
    p.add_argument("--noise", type=float, help="synthetic noise level, 0-1")
    p.add_argument("--countdown", type=int, help="countdown in ms")
    p.add_argument("--duration", type=float, default=10.0, help="acquisition seconds")
    p.add_argument("--export", action="store_true", help="write the window to CSV")
    p.add_argument("--analyze", action="store_true", help="interpret the window")
    p.add_argument("--report", action="store_true", help="write a PDF session report")
    p.add_argument("--profile", default="default")
    p.add_argument("--config-dir", default="config")
    p.add_argument("--log-file", help="also log to this file")
    p.add_argument("-v", "--verbose", action="store_true")
    return p.parse_args(argv)


def configure_logging(verbose: bool = False, log_file: Optional[str] = None):
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers
    )


def apply_overrides(config: CardioSenseConfig, args: argparse.Namespace):
    if args.bpm is not None:
        config.simulator.target_bpm = args.bpm
    if args.noise is not None:
        config.simulator.noise_level = args.noise
    if args.countdown is not None:
        config.acquisition.countdown_ms = args.countdown
    if args.name_hint:
        config.sensor.name_hint = args.name_hint


def build_session(config: CardioSenseConfig, args: argparse.Namespace) -> AcquisitionSession:
    link = None
    if args.source == "ble":
        link = BleSensorLink(config.sensor)
    elif args.source == "replay":
        link = ReplaySensorLink(args.replay)

    session = AcquisitionSession(
        config.acquisition,
        link=link,
        framing=Framing(config.sensor.framing),
        simulator=config.simulator
    )
    session.events.subscribe(COUNTDOWN, lambda e: logger.info(f"Acquisition starts in {e['remaining']}s"))
    session.events.subscribe(STREAM_FAILURE, lambda e: logger.error(f"Run aborted: {e['error']}"))
    return session


async def run(config: CardioSenseConfig, args: argparse.Namespace) -> int:
    session = build_session(config, args)

    async with session:
        if session.link is not None:
            try:
                name = await session.connect_link()
            except LinkError as e:
                logger.error(f"Sensor connection failed: {e}")
                return 2
            logger.info(f"Using sensor {name}")
            source = ExternalSource()
        else:
            source = SyntheticSource(config.simulator.target_bpm, config.simulator.noise_level)

        try:
            await session.start(source)
        except NotReady as e:
            logger.error(str(e))
            return 2

        while session.state is SessionState.COUNTING_DOWN:
            await asyncio.sleep(0.05)

        loop = asyncio.get_running_loop()
        deadline = loop.time() + args.duration
        next_status = loop.time() + STATUS_INTERVAL
        while session.state is SessionState.ACQUIRING and loop.time() < deadline:
            await asyncio.sleep(0.05)
            if loop.time() >= next_status:
                logger.info(f"{len(session.window)} samples, ~{session.estimate_rate()} bpm")
                next_status += STATUS_INTERVAL

        await session.stop()

        snapshot = session.window.snapshot()
        bpm = session.estimate_rate()
        logger.info(f"Run finished: {len(snapshot)} samples, ~{bpm} bpm")

        csv_path = None
        if args.export:
            csv_path = export_csv(snapshot, config.export.data_directory,
                                  config.export.csv_delimiter, config.export.voltage_precision)

        await asyncio.to_thread(summarize, config, args, snapshot, bpm, csv_path)
        return 1 if session.failure else 0


def summarize(config: CardioSenseConfig, args: argparse.Namespace, samples: Sequence[Sample],
              bpm: int, session_path: Optional[str] = None):
    """Interpretation and PDF report for a finished (or reloaded) session"""
    analysis = None
    if args.analyze and config.analysis.enabled:
        try:
            analysis = analyze_segment(create_interpreter(config.analysis), samples, bpm, config.analysis)
            logger.info(f"Interpretation: {analysis.status.value} - {analysis.recommendation}")
        except InsufficientData as e:
            logger.warning(str(e))

    if args.report and samples:
        path = export_pdf(config.export.reports_directory, samples, bpm, analysis, session_path)
        logger.info(f"Report saved to {path}")


def review(config: CardioSenseConfig, args: argparse.Namespace) -> int:
    """Re-analyze a session CSV written by --export"""
    try:
        samples = load_csv(args.load, config.export.csv_delimiter)
    except (KeyError, ValueError) as e:
        logger.error(f"Not a session file: {args.load} ({e})")
        return 2
    if not samples:
        logger.error(f"Session file is empty: {args.load}")
        return 2

    estimate = estimate_heart_rate(samples)
    bpm = int(round(estimate.bpm)) if estimate.beats >= 2 else DEFAULT_EXTERNAL_BPM
    logger.info(f"Loaded {len(samples)} samples from {args.load}, ~{bpm} bpm")

    summarize(config, args, samples, bpm, args.load)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.verbose, args.log_file)

    if args.source == "replay" and not args.replay:
        logger.error("--source replay needs --replay FILE")
        return 2
    if args.replay and not Path(args.replay).exists():
        logger.error(f"Replay file not found: {args.replay}")
        return 2
    if args.load and not Path(args.load).exists():
        logger.error(f"Session file not found: {args.load}")
        return 2

    config = create_config(args.profile, args.config_dir)
    apply_overrides(config, args)

    valid, errors = config.validate_config()
    if not valid:
        for error in errors:
            logger.error(f"Configuration error: {error}")
        return 2

    if args.load:
        return review(config, args)

    try:
        return asyncio.run(run(config, args))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
