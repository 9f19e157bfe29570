"""
Tests for refresh configuration — utils/config.py

Covers defaults, environment variables, presets, validation and the
dict/JSON round trip inherited from Config.
"""
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from utils.config import REFRESH_PRESETS, Config, KnownValues, RefreshConfig


# ── Defaults and environment ─────────────────────────────────────────────────

class TestRefreshConfigDefaults:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("VISA_DATA_DIR", raising=False)
        cfg = RefreshConfig()
        assert cfg.requests_per_run == 30
        assert cfg.request_delay == 3.0
        assert cfg.fresh_days == 30
        assert cfg.critical_days == 90
        assert cfg.checkpoint_interval == 10
        assert cfg.max_retries == 3
        assert cfg.backoff_multiplier == 2.0
        assert cfg.strategy == "lifecycle"
        assert cfg.data_dir == Path("data")
        assert cfg.rules_path == Path("data") / "visa-rules.json"
        assert cfg.version_path == Path("data") / "version.json"
        assert cfg.lifecycle_path == Path("data") / "lifecycle.json"

    def test_environment(self, monkeypatch, tmp_path):
        monkeypatch.setenv("RAPIDAPI_KEY", "secret")
        monkeypatch.setenv("VISA_DATA_DIR", str(tmp_path))
        monkeypatch.setenv("VISA_API_URL", "https://example.test/check")
        cfg = RefreshConfig()
        assert cfg.api_key == "secret"
        assert cfg.data_dir == tmp_path
        assert cfg.api_url == "https://example.test/check"

    def test_defaults_validate(self):
        assert RefreshConfig().validate() is not None

    def test_instances_do_not_share_lists(self):
        a, b = RefreshConfig(), RefreshConfig()
        a.countries.append("ZZ")
        assert "ZZ" not in b.countries


# ── KnownValues ──────────────────────────────────────────────────────────────

class TestKnownValues:
    def test_country_codes_unique_and_well_formed(self):
        codes = KnownValues.COUNTRY_CODES
        assert len(codes) == len(set(codes))
        assert all(KnownValues.is_valid_country(c) for c in codes)

    def test_priority_passports_are_known_countries(self):
        assert set(KnownValues.PRIORITY_PASSPORTS) <= set(KnownValues.COUNTRY_CODES)

    def test_popular_pairs_have_no_self_pairs(self):
        assert all(p != d for p, d in KnownValues.POPULAR_PAIRS)

    @pytest.mark.parametrize("code", ["gb", "GBR", "G", "", None, 12])
    def test_invalid_codes(self, code):
        assert KnownValues.is_valid_country(code) is False


# ── Presets ──────────────────────────────────────────────────────────────────

class TestPresets:
    @pytest.mark.parametrize("name", sorted(REFRESH_PRESETS))
    def test_every_preset_validates(self, name):
        RefreshConfig.from_preset(name).validate()

    def test_pro_preset(self):
        cfg = RefreshConfig.from_preset("pro")
        assert cfg.requests_per_run == 2800
        assert cfg.request_delay == 1.1
        assert cfg.monthly_quota == 3000
        assert cfg.checkpoint_interval == 50

    def test_ultra_covers_all_pairs(self):
        assert RefreshConfig.from_preset("ultra").scope == "all"

    def test_rotation_uses_cursor(self):
        cfg = RefreshConfig.from_preset("rotation")
        assert (cfg.strategy, cfg.scope) == ("cursor", "pairs")

    def test_overrides_applied_none_ignored(self):
        cfg = RefreshConfig.from_preset("basic", requests_per_run=5, request_delay=None)
        assert cfg.requests_per_run == 5
        assert cfg.request_delay == 3.0

    def test_unknown_preset(self):
        with pytest.raises(KeyError):
            RefreshConfig.from_preset("platinum")


# ── Validation ───────────────────────────────────────────────────────────────

class TestValidation:
    @pytest.mark.parametrize("attr,value", [
        ("requests_per_run", 0),
        ("request_delay", -1),
        ("checkpoint_interval", 0),
        ("max_retries", -1),
        ("backoff_multiplier", 0.5),
        ("monthly_quota", -10),
        ("strategy", "random"),
        ("scope", "everything"),
        ("countries", ["GB", "gbr"]),
        ("priority_passports", ["XX1"]),
        ("pairs", [("GB",)]),
    ])
    def test_rejects(self, attr, value):
        cfg = RefreshConfig()
        setattr(cfg, attr, value)
        with pytest.raises(ValueError):
            cfg.validate()

    def test_fresh_must_be_below_critical(self):
        cfg = RefreshConfig()
        cfg.fresh_days = 90
        cfg.critical_days = 90
        with pytest.raises(ValueError, match="fresh_days"):
            cfg.validate()


# ── Serialisation ────────────────────────────────────────────────────────────

class TestSerialisation:
    def test_roundtrip_json(self, tmp_path):
        cfg = RefreshConfig.from_preset("rotation")
        cfg.data_dir = tmp_path / "data"
        path = tmp_path / "refresh.json"
        cfg.save_json(path)

        loaded = RefreshConfig.load_json(path)
        assert isinstance(loaded, RefreshConfig)
        assert loaded.data_dir == tmp_path / "data"
        assert loaded.pairs[0] == tuple(cfg.pairs[0])
        assert loaded.strategy == "cursor"
        loaded.validate()

    def test_api_key_never_saved(self, tmp_path, monkeypatch):
        monkeypatch.setenv("RAPIDAPI_KEY", "secret")
        cfg = RefreshConfig()
        assert "api_key" not in cfg.to_dict()
        path = tmp_path / "refresh.json"
        cfg.save_json(path)
        assert "secret" not in path.read_text()
        assert RefreshConfig.load_json(path).api_key == "secret"

    def test_load_json_rejects_non_object(self, tmp_path):
        path = tmp_path / "refresh.json"
        path.write_text("[1, 2]")
        with pytest.raises(ValueError, match="JSON object"):
            RefreshConfig.load_json(path)

    def test_apply_overrides_skips_none(self):
        cfg = RefreshConfig().apply_overrides(requests_per_run=7, scope=None)
        assert cfg.requests_per_run == 7
        assert cfg.scope == "priority"

    def test_base_config_to_dict_skips_private(self):
        cfg = Config()
        cfg.visible = 1
        cfg._hidden = 2
        assert cfg.to_dict() == {"visible": 1}
