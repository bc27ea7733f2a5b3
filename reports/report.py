import os, time
import textwrap
from typing import Optional, Sequence

from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from ai.interpretation import AnalysisResult
from core.models import Sample

TRACE_SECONDS = 5.0


def _draw_trace(c, samples: Sequence[Sample], x0, y0, width, height):
    """Last few seconds of the window as a polyline on a light grid."""
    c.setStrokeColorRGB(0.9, 0.75, 0.75)
    c.setLineWidth(0.3)
    for i in range(11):
        x = x0 + width * i / 10
        c.line(x, y0, x, y0 + height)
    for i in range(5):
        y = y0 + height * i / 4
        c.line(x0, y, x0 + width, y)

    if len(samples) < 2:
        return
    t_end = samples[-1].time
    recent = [s for s in samples if t_end - s.time <= TRACE_SECONDS * 1000]
    if len(recent) < 2:
        return
    v_min = min(s.voltage for s in recent)
    v_max = max(s.voltage for s in recent)
    span = (v_max - v_min) or 1.0
    t_start = recent[0].time
    t_span = (t_end - t_start) or 1

    c.setStrokeColorRGB(0.1, 0.1, 0.1)
    c.setLineWidth(0.8)
    path = c.beginPath()
    for i, s in enumerate(recent):
        x = x0 + width * (s.time - t_start) / t_span
        y = y0 + height * (s.voltage - v_min) / span
        if i == 0:
            path.moveTo(x, y)
        else:
            path.lineTo(x, y)
    c.drawPath(path, stroke=1, fill=0)


def export_pdf(out_dir: str, samples: Sequence[Sample], average_bpm: float,
               analysis: Optional[AnalysisResult] = None, session_path: Optional[str] = None):
    os.makedirs(out_dir, exist_ok=True)
    ts = time.strftime("%Y%m%d_%H%M%S")
    path = os.path.join(out_dir, f"report_{ts}.pdf")

    c = canvas.Canvas(path, pagesize=A4)
    w, h = A4

    c.setFont("Helvetica-Bold", 16)
    c.drawString(40, h-40, "CardioSense - Session Report")

    duration_s = (samples[-1].time - samples[0].time) / 1000.0 if len(samples) > 1 else 0.0
    c.setFont("Helvetica", 11)
    c.drawString(40, h-70, f"Session file: {os.path.basename(session_path) if session_path else '-'}")
    c.drawString(40, h-90, f"Duration (s): {duration_s:.2f}")
    c.drawString(40, h-110, f"Samples: {len(samples)}")
    c.drawString(40, h-130, f"Estimated rate (bpm): {average_bpm:.0f}")

    _draw_trace(c, samples, 40, h-330, w-80, 180)

    if analysis is not None:
        c.setFont("Helvetica-Bold", 12)
        c.drawString(40, h-360, f"Interpretation: {analysis.status.value}")
        c.setFont("Helvetica", 11)
        c.drawString(40, h-380, f"Heart rate: {analysis.heart_rate:.0f} bpm   HRV: {analysis.hrv:.0f} ms   "
                                f"Confidence: {analysis.confidence:.0%}")
        c.drawString(40, h-400, f"Recommendation: {analysis.recommendation}")
        text = c.beginText(40, h-425)
        text.setFont("Helvetica", 10)
        for line in textwrap.wrap(analysis.detailed_analysis, 95):
            text.textLine(line)
        c.drawText(text)

    c.setFont("Helvetica-Oblique", 10)
    c.drawString(40, 40, time.strftime("Generated: %Y-%m-%d %H:%M:%S"))
    c.drawString(40, 26, "Not a medical device. For educational use only.")

    c.showPage()
    c.save()
    return path
