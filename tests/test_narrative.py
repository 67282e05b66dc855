"""
Unit tests for NarrativeComposer
"""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from rmt_backend.core.narrative import (
    MISSING,
    SYSTEM_INSTRUCTION,
    NarrativeComposer,
    build_prompt,
    clean_narrative,
    fallback_narrative,
)
from rmt_backend.schemas.sensor_snapshot import MotionSummary, SensorSnapshot


def _client(content=None, side_effect=None):
    client = Mock()
    if side_effect is not None:
        client.chat.completions.create = AsyncMock(side_effect=side_effect)
    else:
        response = Mock()
        response.choices = [Mock(message=Mock(content=content))]
        client.chat.completions.create = AsyncMock(return_value=response)
    return client


class TestPrompt:
    def test_missing_fields_are_marked_not_omitted(self):
        prompt = build_prompt(SensorSnapshot(heart_rate_bpm=72))

        assert "PPG heart rate (bpm): 72" in prompt
        assert f"MPU motion summary: {MISSING}" in prompt
        assert f"Flex sensor bent state: {MISSING}" in prompt
        assert f"FSR pressure: {MISSING}" in prompt

    def test_motion_summary_only_has_populated_fields(self):
        snapshot = SensorSnapshot(motion_summary=MotionSummary(state="resting", lowered=2))

        prompt = build_prompt(snapshot)

        assert '{"state": "resting", "lowered": 2}' in prompt
        assert "raised" not in prompt


class TestCleanNarrative:
    def test_strips_markdown(self):
        text = "## Summary\n**Heart rate** is _stable_.\n- Pressure is normal\n1. Motion `ok`\n"

        assert clean_narrative(text) == "Summary\nHeart rate is stable.\nPressure is normal\nMotion ok"

    def test_whitespace_only_becomes_empty(self):
        assert clean_narrative("  \n ** \n") == ""


class TestFallback:
    @pytest.mark.asyncio
    async def test_no_client_uses_fallback(self):
        snapshot = SensorSnapshot(heart_rate_bpm=72)

        draft = await NarrativeComposer(None).compose(snapshot)

        assert draft.generated_via == "fallback"
        assert draft.narrative_text == fallback_narrative(snapshot)
        assert draft.summary == snapshot

    @pytest.mark.asyncio
    async def test_fallback_is_deterministic(self):
        snapshot = SensorSnapshot(heart_rate_bpm=80.5, flex_bent=1, pressure=3)
        composer = NarrativeComposer(_client(side_effect=ConnectionError("offline")))

        first = await composer.compose(snapshot)
        second = await composer.compose(snapshot)

        assert first.narrative_text == second.narrative_text
        assert first.generated_via == second.generated_via == "fallback"

    @pytest.mark.asyncio
    async def test_heart_rate_only_snapshot(self):
        draft = await NarrativeComposer(None).compose(SensorSnapshot(heart_rate_bpm=72))

        assert "72" in draft.narrative_text
        assert draft.narrative_text.count(MISSING) == 3
        assert "\n\n" in draft.narrative_text

    @pytest.mark.asyncio
    async def test_empty_model_output_falls_back(self):
        composer = NarrativeComposer(_client(content="  **  "))

        draft = await composer.compose(SensorSnapshot())

        assert draft.generated_via == "fallback"
        assert draft.narrative_text.count(MISSING) == 4

    @pytest.mark.asyncio
    async def test_timeout_falls_back(self):
        async def slow(**kwargs):
            await asyncio.sleep(1)

        client = Mock()
        client.chat.completions.create = slow
        composer = NarrativeComposer(client, timeout_seconds=0.01)

        draft = await composer.compose(SensorSnapshot(pressure=1.5))

        assert draft.generated_via == "fallback"


class TestModelPath:
    @pytest.mark.asyncio
    async def test_model_text_is_cleaned(self):
        client = _client(content="**Patient** heart rate was 72 bpm.\n\nNo motion data.")
        composer = NarrativeComposer(client, model="gpt-4o-mini", max_tokens=500, temperature=0.1)

        draft = await composer.compose(SensorSnapshot(heart_rate_bpm=72))

        assert draft.generated_via == "model"
        assert draft.narrative_text == "Patient heart rate was 72 bpm.\n\nNo motion data."

        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["max_tokens"] == 500
        assert kwargs["temperature"] == 0.1
        assert kwargs["messages"][0] == {"role": "system", "content": SYSTEM_INSTRUCTION}
        assert "PPG heart rate (bpm): 72" in kwargs["messages"][1]["content"]
