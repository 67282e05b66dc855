from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any

from rmt_backend.errors import NarrativeUnavailable
from rmt_backend.schemas.report import ReportDraft
from rmt_backend.schemas.sensor_snapshot import SensorSnapshot

logger = logging.getLogger(__name__)

MISSING = "N/A"

SYSTEM_INSTRUCTION = (
    "You are a clinical documentation assistant writing the narrative section of a "
    "patient monitoring report from wearable sensor readings. Describe what the "
    "readings show in plain, objective clinical prose. Do not diagnose, prescribe, "
    "or recommend treatment. Do not use lists, bullet points, headings, or any "
    "markdown formatting. Write two or three short paragraphs. When a reading is "
    f"marked {MISSING}, state that it was not available."
)

USER_PROMPT_TEMPLATE = """Write a descriptive clinical report for the following patient sensor data:
PPG heart rate (bpm): {heart_rate}
MPU motion summary: {motion}
Flex sensor bent state: {flex}
FSR pressure: {pressure}"""

_EMPHASIS = re.compile(r"(\*\*|__|\*|`)")
_UNDERSCORE_PAIR = re.compile(r"(?<!\w)_(\S(?:.*?\S)?)_(?!\w)")
_HEADING = re.compile(r"^\s*#+\s*")
_LIST_MARKER = re.compile(r"^\s*(?:[-•]|\d+[.)])\s+")


def _value(value: Any) -> str:
    return MISSING if value is None else str(value)


def _motion(snapshot: SensorSnapshot) -> str:
    if snapshot.motion_summary is None:
        return MISSING
    compact = snapshot.motion_summary.compact()
    return json.dumps(compact, default=str) if compact else MISSING


def build_prompt(snapshot: SensorSnapshot) -> str:
    return USER_PROMPT_TEMPLATE.format(
        heart_rate=_value(snapshot.heart_rate_bpm),
        motion=_motion(snapshot),
        flex=_value(snapshot.flex_bent),
        pressure=_value(snapshot.pressure),
    )


def clean_narrative(text: str) -> str:
    """Strip stray markdown emphasis, headings and list markers from model output."""
    lines = []
    for line in text.splitlines():
        line = _HEADING.sub("", line)
        line = _LIST_MARKER.sub("", line)
        line = _UNDERSCORE_PAIR.sub(r"\1", line)
        line = _EMPHASIS.sub("", line)
        lines.append(line.strip())
    cleaned = "\n".join(lines)
    return re.sub(r"\n{3,}", "\n\n", cleaned).strip()


def fallback_narrative(snapshot: SensorSnapshot) -> str:
    """Deterministic two-section narrative built from the snapshot alone."""
    observations = (
        "Sensor observations. "
        f"The most recent heart rate recorded by the PPG sensor was {_value(snapshot.heart_rate_bpm)} bpm. "
        f"The MPU motion summary reported {_motion(snapshot)}. "
        f"The flex sensor bent state was {_value(snapshot.flex_bent)}. "
        f"The FSR pressure reading was {_value(snapshot.pressure)}."
    )
    impression = (
        "Clinical impression. "
        "This narrative was produced automatically from the latest available sensor "
        "readings because the narrative generation service was unavailable. "
        "Readings not available at the time of generation are reported as not available. "
        "The values should be reviewed by the treating clinician alongside the "
        "patient's history."
    )
    return f"{observations}\n\n{impression}"


class NarrativeComposer:
    """
    Turns a sensor snapshot into a clinical narrative.

    Uses the OpenAI chat completions API when a client is configured; any failure
    (no client, network error, timeout, empty text) falls back to a templated
    narrative so report generation never depends on the model being reachable.
    """

    def __init__(
        self,
        client: Any | None,
        model: str = "gpt-4o-mini",
        max_tokens: int = 700,
        temperature: float = 0.2,
        timeout_seconds: float = 30.0,
    ) -> None:
        self._client = client
        self._model = model
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._timeout = timeout_seconds

    async def _generate(self, prompt: str) -> str:
        if self._client is None:
            raise NarrativeUnavailable("text generation client not configured")

        response = await asyncio.wait_for(
            self._client.chat.completions.create(
                model=self._model,
                temperature=self._temperature,
                max_tokens=self._max_tokens,
                messages=[
                    {"role": "system", "content": SYSTEM_INSTRUCTION},
                    {"role": "user", "content": prompt},
                ],
            ),
            timeout=self._timeout,
        )
        text = clean_narrative(response.choices[0].message.content or "")
        if not text:
            raise NarrativeUnavailable("model returned an empty narrative")
        return text

    async def compose(self, snapshot: SensorSnapshot) -> ReportDraft:
        try:
            text = await self._generate(build_prompt(snapshot))
        except Exception as exc:
            logger.warning("Narrative generation failed, using fallback: %s", exc)
            return ReportDraft(
                narrative_text=fallback_narrative(snapshot),
                summary=snapshot,
                generated_via="fallback",
            )
        return ReportDraft(narrative_text=text, summary=snapshot, generated_via="model")
