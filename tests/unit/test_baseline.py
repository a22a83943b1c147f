"""Unit tests for signalfusion.analysis.baseline.

Covers:
- deviation is exactly 0 below min_samples
- z-score against population std; clamped to ±deviation_clamp
- flat history does not divide by zero
- same-timestamp samples replaced; retention drops old samples
- ``before`` restricts the window to strictly earlier samples
- CII history ordering and JSON save/load
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from config.settings import BaselineSettings
from signalfusion.analysis.baseline import BaselineStore
from signalfusion.models.instability import CountryInstabilityRecord


def _fill(store, values, t0, country="UA", metric="m"):
    for i, value in enumerate(values):
        store.record(country, metric, value, t0 + timedelta(days=i))


class TestDeviation:
    def test_zero_below_min_samples(self, t0):
        store = BaselineStore(min_samples=7)
        _fill(store, [0.1, 0.9, 0.2, 0.8, 0.3, 0.7], t0)
        assert store.deviation("UA", "m", 50.0) == 0.0
        assert not store.is_sufficient("UA", "m")

    def test_z_score(self, t0):
        store = BaselineStore(min_samples=2)
        _fill(store, [1.0, 3.0], t0)
        # mean 2, population std 1
        assert store.deviation("UA", "m", 4.0) == pytest.approx(2.0)
        assert store.deviation("UA", "m", 1.5) == pytest.approx(-0.5)

    def test_clamped(self, t0):
        store = BaselineStore(min_samples=2, deviation_clamp=5.0)
        _fill(store, [1.0, 3.0], t0)
        assert store.deviation("UA", "m", 100.0) == 5.0
        assert store.deviation("UA", "m", -100.0) == -5.0

    def test_flat_history_uses_epsilon(self, t0):
        store = BaselineStore(min_samples=3)
        _fill(store, [0.5, 0.5, 0.5], t0)
        assert store.deviation("UA", "m", 0.5) == 0.0
        assert store.deviation("UA", "m", 0.6) == 5.0

    def test_stats(self, t0):
        store = BaselineStore()
        assert store.stats("UA", "m") is None
        _fill(store, [2.0, 4.0], t0)
        mean, std = store.stats("UA", "m")
        assert mean == pytest.approx(3.0)
        assert std == pytest.approx(1.0)


class TestSamples:
    def test_same_timestamp_replaced(self, t0):
        store = BaselineStore()
        store.record("UA", "m", 1.0, t0)
        store.record("UA", "m", 2.0, t0)
        assert store.samples("UA", "m") == [2.0]

    def test_retention_drops_old_samples(self, t0):
        store = BaselineStore(retention_days=30)
        store.record("UA", "m", 1.0, t0)
        store.record("UA", "m", 2.0, t0 + timedelta(days=31))
        assert store.samples("UA", "m") == [2.0]

    def test_before_is_strict(self, t0):
        store = BaselineStore()
        _fill(store, [1.0, 2.0, 3.0], t0)
        assert store.samples("UA", "m", before=t0 + timedelta(days=2)) == [1.0, 2.0]

    def test_non_finite_ignored(self, t0):
        store = BaselineStore()
        store.record("UA", "m", float("nan"), t0)
        assert store.sample_count("UA", "m") == 0

    def test_country_case_insensitive(self, t0):
        store = BaselineStore()
        store.record("ua", "m", 1.0, t0)
        assert store.samples("UA", "m") == [1.0]
        assert store.countries() == ["UA"]

    def test_from_settings(self):
        store = BaselineStore.from_settings(BaselineSettings(min_samples=3, path=""))
        assert store.min_samples == 3
        assert store.path is None


def _record(iso2, ts, cii):
    return CountryInstabilityRecord(
        iso2=iso2, timestamp=ts, sub_scores={}, baseline_deviation=0.0, cii=cii
    )


class TestHistory:
    def test_latest_and_before(self, t0):
        store = BaselineStore()
        store.append_record(_record("UA", t0 + timedelta(hours=1), 40.0))
        store.append_record(_record("UA", t0, 30.0))
        assert store.latest("UA").cii == 40.0
        assert store.latest("UA", before=t0 + timedelta(hours=1)).cii == 30.0
        assert store.latest("UA", before=t0) is None

    def test_same_timestamp_superseded(self, t0):
        store = BaselineStore()
        store.append_record(_record("UA", t0, 30.0))
        store.append_record(_record("UA", t0, 35.0))
        assert [r.cii for r in store.history("UA")] == [35.0]


class TestPersistence:
    def test_save_and_load_roundtrip(self, tmp_path, t0):
        path = tmp_path / "baseline.json"
        store = BaselineStore(path=path)
        _fill(store, [0.1, 0.2, 0.3], t0)
        store.append_record(_record("UA", t0, 12.5))

        assert store.save() == path

        restored = BaselineStore(path=path)
        assert restored.load() is True
        assert restored.samples("UA", "m") == [0.1, 0.2, 0.3]
        assert restored.latest("UA").cii == 12.5

    def test_load_missing_file(self, tmp_path):
        assert BaselineStore(path=tmp_path / "absent.json").load() is False

    def test_save_without_path(self):
        assert BaselineStore().save() is None
