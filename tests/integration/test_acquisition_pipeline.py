# tests/integration/test_acquisition_pipeline.py
"""
Integration tests: replayed captures through the full session, and the CLI
"""

import asyncio
from pathlib import Path

import numpy as np
import pytest

from config.settings import AcquisitionConfig
from core.errors import StreamFailure
from core.models import ExternalSource, SessionState
from core.session import AcquisitionSession
from core.simulator import render
from main_application import main
from reports.export import export_csv, load_csv
from sensors.replay import ReplaySensorLink


@pytest.fixture
def capture_file(temp_directory):
    """Four seconds of noisy synthetic ECG written as a text capture"""
    _, v = render(4000, 20, 75, 0.05, np.random.default_rng(21))
    values = [round(float(x), 4) for x in v]
    path = temp_directory / "capture.txt"
    path.write_text("".join(f"{x}\n" for x in values))
    return path, values


class TestReplayPipeline:

    @pytest.mark.asyncio
    async def test_capture_reassembled_end_to_end(self, capture_file):
        """Every record of the capture lands in the window, in order, despite MTU-sized chunks"""
        path, values = capture_file
        link = ReplaySensorLink(str(path), chunk_size=7, interval=0.001, loop=False)
        session = AcquisitionSession(AcquisitionConfig(countdown_ms=0, tick_ms=5), link=link)

        async with session:
            await session.connect_link()
            await session.start(ExternalSource())
            await session.wait_for(SessionState.STOPPED, timeout=20)

            assert isinstance(session.failure, StreamFailure)
            assert isinstance(session.failure.cause, EOFError)
            snapshot = session.window.snapshot()

        assert [s.voltage for s in snapshot] == values
        times = [s.time for s in snapshot]
        assert times == sorted(times)

    @pytest.mark.asyncio
    async def test_small_window_keeps_tail(self, capture_file):
        path, values = capture_file
        link = ReplaySensorLink(str(path), chunk_size=64, interval=0.001, loop=False)
        session = AcquisitionSession(AcquisitionConfig(countdown_ms=0, tick_ms=5, window_capacity=50),
                                     link=link)
        async with session:
            await session.connect_link()
            await session.start()
            await session.wait_for(SessionState.STOPPED, timeout=20)
            assert [s.voltage for s in session.window.snapshot()] == values[-50:]

    @pytest.mark.asyncio
    async def test_replayed_rate_estimate(self, capture_file):
        path, _ = capture_file
        link = ReplaySensorLink(str(path), chunk_size=32, interval=0.001, loop=False)
        session = AcquisitionSession(AcquisitionConfig(countdown_ms=0, tick_ms=5), link=link)
        async with session:
            await session.connect_link()
            await session.start()
            await session.wait_for(SessionState.STOPPED, timeout=20)
            assert session.estimate_rate() > 0


class TestCommandLine:

    def test_synthetic_run_exports_csv(self, temp_directory, monkeypatch):
        monkeypatch.chdir(temp_directory)
        code = main(["--source", "synthetic", "--countdown", "0", "--duration", "0.3",
                     "--noise", "0", "--export", "--config-dir", str(temp_directory / "config")])
        assert code == 0

        exported = list((temp_directory / "sessions").glob("ecg_session_*.csv"))
        assert len(exported) == 1
        assert len(load_csv(str(exported[0]))) > 0

    def test_replay_requires_file(self, temp_directory, monkeypatch):
        monkeypatch.chdir(temp_directory)
        assert main(["--source", "replay", "--config-dir", str(temp_directory / "config")]) == 2
        assert main(["--source", "replay", "--replay", "missing.txt",
                     "--config-dir", str(temp_directory / "config")]) == 2

    def test_invalid_override_rejected(self, temp_directory, monkeypatch):
        monkeypatch.chdir(temp_directory)
        assert main(["--bpm", "400", "--config-dir", str(temp_directory / "config")]) == 2

    def test_replay_run_with_local_analysis_and_report(self, capture_file, temp_directory, monkeypatch):
        monkeypatch.chdir(temp_directory)
        path, _ = capture_file
        config_dir = temp_directory / "config"
        config_dir.mkdir(exist_ok=True)
        (config_dir / "local.json").write_text('{"analysis": {"backend": "local"}}')

        code = main(["--source", "replay", "--replay", str(path), "--countdown", "0",
                     "--duration", "2.5", "--analyze", "--report",
                     "--profile", "local", "--config-dir", str(config_dir)])
        assert code == 0
        assert list(Path(temp_directory / "reports").glob("report_*.pdf"))


class TestSessionReview:
    """Re-analysis of exported sessions from the CLI"""

    def test_saved_session_analyzed_and_reported(self, ecg_samples, temp_directory, monkeypatch):
        monkeypatch.chdir(temp_directory)
        saved = export_csv(ecg_samples, str(temp_directory / "sessions"), filename="saved.csv")
        config_dir = temp_directory / "config"
        config_dir.mkdir(exist_ok=True)
        (config_dir / "local.json").write_text('{"analysis": {"backend": "local"}}')

        code = main(["--load", saved, "--analyze", "--report",
                     "--profile", "local", "--config-dir", str(config_dir)])
        assert code == 0
        assert list((temp_directory / "reports").glob("report_*.pdf"))

    def test_missing_session_file(self, temp_directory, monkeypatch):
        monkeypatch.chdir(temp_directory)
        assert main(["--load", "nowhere.csv", "--config-dir", str(temp_directory / "config")]) == 2

    def test_empty_session_file(self, temp_directory, monkeypatch):
        monkeypatch.chdir(temp_directory)
        path = temp_directory / "empty.csv"
        path.write_text("Time(ms),Voltage(mV)\n")
        assert main(["--load", str(path), "--config-dir", str(temp_directory / "config")]) == 2
