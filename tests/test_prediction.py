"""Tests for wellness predictions."""

import json
import logging
import random
from contextlib import asynccontextmanager
from datetime import date
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select

from conftest import make_llm
from cycle_wellness.ai.client import LLMError
from cycle_wellness.cycle.phase import CyclePhase
from cycle_wellness.database import connection
from cycle_wellness.database.models import WellnessPrediction
from cycle_wellness.wellness.prediction import (
    PredictionRow,
    WellnessPredictionService,
    baseline_predictions,
    baseline_wellness,
    enhance_predictions_task,
    parse_ai_predictions,
)


class TestBaseline:
    """Tests for the phase-driven baseline."""

    def test_ranges(self):
        assert baseline_wellness(1, 5, 0.0) == 35
        assert baseline_wellness(1, 5, 1.0) == 55
        assert baseline_wellness(10, 5, 0.5) == 75
        assert baseline_wellness(14, 5, 1.0) == 95
        assert baseline_wellness(20, 5, 0.0) == 50

    def test_starts_tomorrow(self):
        rows = baseline_predictions(
            date(2024, 6, 1), 28, 5, today=date(2024, 6, 1), days=30, rng=random.Random(1)
        )
        assert len(rows) == 30
        assert rows[0].date == date(2024, 6, 2)
        assert rows[0].cycle_day == 2
        assert rows[0].phase is CyclePhase.MENSTRUAL
        # 2024-06-29 starts the next cycle
        assert rows[27].date == date(2024, 6, 29)
        assert rows[27].cycle_day == 1

    def test_values_within_scale(self):
        rows = baseline_predictions(
            date(2024, 1, 1), 30, 6, today=date(2024, 3, 1), rng=random.Random(7)
        )
        assert all(0 <= row.wellness <= 100 for row in rows)
        assert all(row.source == "baseline" for row in rows)

    def test_seeded_rng_is_reproducible(self):
        first = baseline_predictions(date(2024, 6, 1), 28, 5, date(2024, 6, 1), rng=random.Random(3))
        second = baseline_predictions(date(2024, 6, 1), 28, 5, date(2024, 6, 1), rng=random.Random(3))
        assert [r.wellness for r in first] == [r.wellness for r in second]


class TestParseAIPredictions:
    """Tests for reading the model's predictions."""

    def _baseline(self) -> list[PredictionRow]:
        return baseline_predictions(
            date(2024, 6, 1), 28, 5, date(2024, 6, 1), days=3, rng=random.Random(0)
        )

    def test_valid_rows(self):
        rows = parse_ai_predictions(
            [{"day": 1, "wellness": 61, "note": "ok"}, {"day": 3, "wellness": 70.4}],
            self._baseline(),
        )
        assert [(r.date, r.wellness, r.source) for r in rows] == [
            (date(2024, 6, 2), 61, "ai"),
            (date(2024, 6, 4), 70, "ai"),
        ]
        assert rows[1].note == self._baseline()[2].note

    def test_invalid_entries_dropped(self):
        rows = parse_ai_predictions(
            [
                {"day": 0, "wellness": 50},
                {"day": 4, "wellness": 50},
                {"day": 2, "wellness": 150},
                {"day": "x", "wellness": 50},
                "garbage",
            ],
            self._baseline(),
        )
        assert rows == []

    def test_not_a_list(self):
        with pytest.raises(LLMError):
            parse_ai_predictions({"day": 1}, self._baseline())


class TestWellnessPredictionService:
    """Tests for storing and refining predictions."""

    @pytest.mark.asyncio
    async def test_no_cycle_assumes_cycle_starts_today(self, db_session, user):
        service = WellnessPredictionService(db_session, rng=random.Random(1))

        rows = await service.predict_baseline(user.id, today=date(2024, 6, 1))

        assert len(rows) == 30
        assert rows[0].date == date(2024, 6, 2)
        assert rows[0].cycle_day == 2
        assert rows[0].phase == CyclePhase.MENSTRUAL
        assert rows[27].cycle_day == 1

    @pytest.mark.asyncio
    async def test_baseline_stored_and_replaced(self, db_session, user, cycle):
        service = WellnessPredictionService(db_session, rng=random.Random(5))

        rows = await service.predict_baseline(user.id, today=date(2024, 6, 1))
        again = await service.predict_baseline(user.id, today=date(2024, 6, 1))

        result = await db_session.execute(
            select(WellnessPrediction).where(WellnessPrediction.user_id == user.id)
        )
        stored = result.scalars().all()
        assert len(rows) == 30
        assert len(stored) == 30
        assert {p.predicted_wellness for p in stored} <= {r.wellness for r in again} | {
            r.wellness for r in rows
        }

    @pytest.mark.asyncio
    async def test_ai_overwrites_baseline(self, db_session, user, cycle):
        reply = json.dumps([{"day": 1, "wellness": 12, "note": "Отдыхай"}])
        service = WellnessPredictionService(
            db_session, make_llm(text=reply), rng=random.Random(5)
        )
        baseline = await service.predict_baseline(user.id, today=date(2024, 6, 1))

        updated = await service.enhance_with_ai(user.id, baseline)

        result = await db_session.execute(
            select(WellnessPrediction).where(
                WellnessPrediction.user_id == user.id,
                WellnessPrediction.prediction_date == date(2024, 6, 2),
            )
        )
        prediction = result.scalar_one()
        assert updated == 1
        assert prediction.predicted_wellness == 12
        assert prediction.source == "ai"
        assert prediction.note == "Отдыхай"

    @pytest.mark.asyncio
    async def test_ai_failure_keeps_baseline(self, db_session, user, cycle):
        service = WellnessPredictionService(
            db_session, make_llm(text="not json"), rng=random.Random(5)
        )
        baseline = await service.predict_baseline(user.id, today=date(2024, 6, 1))

        assert await service.enhance_with_ai(user.id, baseline) == 0

        result = await db_session.execute(
            select(WellnessPrediction.source).where(WellnessPrediction.user_id == user.id)
        )
        assert set(result.scalars().all()) == {"baseline"}

    @pytest.mark.asyncio
    async def test_unconfigured_llm_skips(self, db_session, user, cycle, llm):
        service = WellnessPredictionService(db_session, llm)
        baseline = await service.predict_baseline(user.id, today=date(2024, 6, 1))
        assert await service.enhance_with_ai(user.id, baseline) == 0
        llm.complete.assert_not_called()

    @pytest.mark.asyncio
    async def test_background_failure_is_logged(self, db_session, user, monkeypatch, caplog):
        @asynccontextmanager
        async def _get_db():
            yield db_session

        monkeypatch.setattr(connection, "get_db", _get_db)
        monkeypatch.setattr(
            WellnessPredictionService,
            "enhance_with_ai",
            AsyncMock(side_effect=RuntimeError("database went away")),
        )
        baseline = baseline_predictions(date(2024, 6, 1), 28, 5, date(2024, 6, 1), days=3)

        with caplog.at_level(logging.ERROR):
            await enhance_predictions_task(user.id, baseline)

        assert "database went away" in caplog.text
