# tests/unit/test_interpretation.py
"""
Unit tests for segment interpretation
"""

import json
from unittest.mock import MagicMock

import pytest
import requests

from ai.interpretation import (
    AnalysisResult, HeartStatus, LocalInterpreter, RemoteInterpreter, analyze_segment,
    create_interpreter, fallback_result, prepare_segment
)
from config.settings import AnalysisConfig
from core.errors import InsufficientData
from core.models import Sample
from core.simulator import render


REPORT = {
    "heartRate": 71,
    "hrv": 35,
    "status": "Normal",
    "confidence": 0.9,
    "recommendation": "No action needed.",
    "detailedAnalysis": "Sinus rhythm."
}


def mock_session(body=None, error=None):
    response = MagicMock()
    response.json.return_value = body
    if error is not None:
        response.raise_for_status.side_effect = error
    session = MagicMock()
    session.post.return_value = response
    return session


def generate_content_body(text):
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def waveform(bpm, count=200):
    times, v = render(count * 20, 20, bpm, 0)
    return [Sample(time=int(t), voltage=float(x)) for t, x in zip(times, v)]


class TestPrepareSegment:

    def test_last_points_rounded(self):
        samples = [Sample(i, i + 0.123456) for i in range(300)]
        voltages = prepare_segment(samples, 200)
        assert len(voltages) == 200
        assert voltages[0] == 100.123
        assert voltages[-1] == 299.123


class TestAnalyzeSegment:

    def test_insufficient_data(self):
        with pytest.raises(InsufficientData):
            analyze_segment(LocalInterpreter(), [Sample(i, 0.0) for i in range(99)], 72)

    def test_remote_report_parsed(self):
        session = mock_session(generate_content_body(json.dumps(REPORT)))
        interpreter = RemoteInterpreter(AnalysisConfig(model="test-model"), api_key="k", session=session)

        result = analyze_segment(interpreter, waveform(72, 250), 72)
        assert result.status is HeartStatus.NORMAL
        assert result.heart_rate == 71
        assert result.model_dump(by_alias=True)["detailedAnalysis"] == "Sinus rhythm."

        args, kwargs = session.post.call_args
        assert args[0].endswith("/test-model:generateContent")
        assert kwargs["params"] == {"key": "k"}
        prompt = kwargs["json"]["contents"][0]["parts"][0]["text"]
        assert "Estimated BPM: 72" in prompt

    def test_http_error_yields_fallback(self):
        session = mock_session(error=requests.HTTPError("503"))
        interpreter = RemoteInterpreter(api_key="k", session=session)
        result = analyze_segment(interpreter, waveform(72), 68)
        assert result == fallback_result(68)
        assert result.confidence == 0
        assert result.detailed_analysis == "AI analysis was unable to complete."

    def test_empty_response_yields_fallback(self):
        interpreter = RemoteInterpreter(api_key="k", session=mock_session({"candidates": []}))
        assert analyze_segment(interpreter, waveform(72), 70).recommendation == \
            "Please try again or check connection."

    def test_malformed_report_yields_fallback(self):
        body = generate_content_body(json.dumps({"status": "Fine"}))
        interpreter = RemoteInterpreter(api_key="k", session=mock_session(body))
        assert analyze_segment(interpreter, waveform(72), 70).heart_rate == 70

    def test_missing_key_yields_fallback(self):
        session = mock_session()
        interpreter = RemoteInterpreter(api_key="", session=session)
        assert analyze_segment(interpreter, waveform(72), 64) == fallback_result(64)
        session.post.assert_not_called()


class TestLocalInterpreter:

    @pytest.mark.parametrize("bpm,status", [
        (72, HeartStatus.NORMAL),
        (150, HeartStatus.TACHYCARDIA),
        (45, HeartStatus.BRADYCARDIA),
    ])
    def test_classification(self, bpm, status):
        result = analyze_segment(LocalInterpreter(), waveform(bpm, 500), bpm,
                                 AnalysisConfig(max_points=500))
        assert result.status is status
        assert result.heart_rate == pytest.approx(bpm, abs=2)

    def test_flat_trace_is_noise(self):
        result = LocalInterpreter().interpret([0.0] * 200, 70)
        assert result.status is HeartStatus.NOISE

    def test_factory(self):
        assert isinstance(create_interpreter(AnalysisConfig(backend="local")), LocalInterpreter)
        assert isinstance(create_interpreter(AnalysisConfig(backend="remote")), RemoteInterpreter)

    def test_result_accepts_field_names(self):
        result = AnalysisResult(heart_rate=60, status="Bradycardia", recommendation="r",
                                detailed_analysis="d")
        assert result.status is HeartStatus.BRADYCARDIA
