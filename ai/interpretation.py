# ai/interpretation.py
"""
Interpretation of an ECG segment: a remote generative model reached over
HTTP, or a local estimator built on core.processing. Whatever happens on
the remote side, callers get a report back.
"""

import json
import logging
from enum import Enum
from typing import List, Optional, Protocol, Sequence

import requests
from pydantic import BaseModel, ConfigDict, Field

from config.settings import AnalysisConfig, get_api_key
from core.errors import InsufficientData
from core.models import Sample
from core.processing import estimate_heart_rate

logger = logging.getLogger(__name__)

BRADYCARDIA_BPM = 60
TACHYCARDIA_BPM = 100
IRREGULAR_HRV_MS = 120.0


class HeartStatus(str, Enum):
    NORMAL = "Normal"
    IRREGULAR = "Irregular"
    TACHYCARDIA = "Tachycardia"
    BRADYCARDIA = "Bradycardia"
    NOISE = "Noise"


class AnalysisResult(BaseModel):
    """Structured interpretation report"""
    model_config = ConfigDict(populate_by_name=True)

    heart_rate: float = Field(alias="heartRate")
    hrv: float = 0.0
    status: HeartStatus
    confidence: float = 0.0
    recommendation: str
    detailed_analysis: str = Field(alias="detailedAnalysis")


RESPONSE_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "heartRate": {"type": "NUMBER"},
        "hrv": {"type": "NUMBER"},
        "status": {"type": "STRING", "enum": [s.value for s in HeartStatus]},
        "confidence": {"type": "NUMBER"},
        "recommendation": {"type": "STRING"},
        "detailedAnalysis": {"type": "STRING"}
    },
    "required": ["heartRate", "status", "recommendation", "detailedAnalysis"]
}


def fallback_result(average_bpm: float) -> AnalysisResult:
    return AnalysisResult(
        heart_rate=average_bpm,
        hrv=0,
        status=HeartStatus.NORMAL,
        confidence=0,
        recommendation="Please try again or check connection.",
        detailed_analysis="AI analysis was unable to complete."
    )


def prepare_segment(samples: Sequence[Sample], max_points: int = 200) -> List[float]:
    """Last max_points voltages, rounded to 3 decimals"""
    return [round(s.voltage, 3) for s in samples[-max_points:]]


def build_prompt(voltages: Sequence[float], average_bpm: float) -> str:
    data = ", ".join(f"{v:.3f}" for v in voltages)
    return (
        "Analyze this Lead I ECG data (mV).\n"
        f"Estimated BPM: {average_bpm}\n"
        f"Data: [{data}]\n\n"
        "Return JSON:\n"
        "{\n"
        '  "heartRate": number,\n'
        '  "hrv": number,\n'
        '  "status": "Normal" | "Irregular" | "Tachycardia" | "Bradycardia" | "Noise",\n'
        '  "confidence": number,\n'
        '  "recommendation": "string",\n'
        '  "detailedAnalysis": "string"\n'
        "}"
    )


class Interpreter(Protocol):
    def interpret(self, voltages: Sequence[float], average_bpm: float) -> AnalysisResult: ...


class RemoteInterpreter:
    """generateContent call against a Gemini-compatible REST endpoint"""

    def __init__(self, config: Optional[AnalysisConfig] = None, api_key: Optional[str] = None,
                 session: Optional[requests.Session] = None):
        self.config = config or AnalysisConfig()
        self.api_key = api_key if api_key is not None else get_api_key()
        self.session = session or requests.Session()

    @property
    def url(self) -> str:
        return f"{self.config.endpoint.rstrip('/')}/{self.config.model}:generateContent"

    def interpret(self, voltages: Sequence[float], average_bpm: float) -> AnalysisResult:
        if not self.api_key:
            raise RuntimeError("No API key configured for the interpretation service")

        payload = {
            "contents": [{"parts": [{"text": build_prompt(voltages, average_bpm)}]}],
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": RESPONSE_SCHEMA
            }
        }
        response = self.session.post(
            self.url,
            params={"key": self.api_key},
            json=payload,
            timeout=self.config.request_timeout
        )
        response.raise_for_status()

        body = response.json()
        try:
            text = body["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            raise ValueError("No response")
        if not text:
            raise ValueError("No response")
        return AnalysisResult.model_validate(json.loads(text))


class LocalInterpreter:
    """Offline interpretation from the rate estimator; confidence stays modest"""

    def __init__(self, sample_interval_ms: int = 20):
        self.sample_interval_ms = sample_interval_ms

    def interpret(self, voltages: Sequence[float], average_bpm: float) -> AnalysisResult:
        samples = [Sample(time=i * self.sample_interval_ms, voltage=v) for i, v in enumerate(voltages)]
        estimate = estimate_heart_rate(samples)

        if estimate.beats < 2:
            return AnalysisResult(
                heart_rate=average_bpm,
                hrv=0,
                status=HeartStatus.NOISE,
                confidence=0.2,
                recommendation="Check electrode contact and record again.",
                detailed_analysis="No consistent beats could be found in the segment."
            )

        bpm = estimate.bpm
        if estimate.hrv_ms > IRREGULAR_HRV_MS:
            status = HeartStatus.IRREGULAR
        elif bpm > TACHYCARDIA_BPM:
            status = HeartStatus.TACHYCARDIA
        elif bpm < BRADYCARDIA_BPM:
            status = HeartStatus.BRADYCARDIA
        else:
            status = HeartStatus.NORMAL

        recommendation = ("No action needed." if status is HeartStatus.NORMAL
                          else "Consider a clinical ECG to confirm this finding.")
        return AnalysisResult(
            heart_rate=round(bpm, 1),
            hrv=round(estimate.hrv_ms, 1),
            status=status,
            confidence=0.5,
            recommendation=recommendation,
            detailed_analysis=(f"{estimate.beats} beats detected over {len(voltages)} samples; "
                               f"mean rate {bpm:.1f} bpm, RMSSD {estimate.hrv_ms:.1f} ms.")
        )


def create_interpreter(config: Optional[AnalysisConfig] = None) -> Interpreter:
    config = config or AnalysisConfig()
    if config.backend == "local":
        return LocalInterpreter()
    return RemoteInterpreter(config)


def analyze_segment(interpreter: Interpreter, samples: Sequence[Sample], average_bpm: float,
                    config: Optional[AnalysisConfig] = None) -> AnalysisResult:
    """
    Hand the last max_points voltages of the window to the interpreter.
    Raises InsufficientData below min_samples; every other failure yields
    the fallback report.
    """
    config = config or AnalysisConfig()
    if len(samples) < config.min_samples:
        raise InsufficientData(
            f"Not enough data to analyze ({len(samples)} < {config.min_samples} samples)")

    voltages = prepare_segment(samples, config.max_points)
    try:
        return interpreter.interpret(voltages, average_bpm)
    except Exception as e:
        logger.error(f"Analysis Error: {e}")
        return fallback_result(average_bpm)
