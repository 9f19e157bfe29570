"""Configuration management utilities for the visa data refresh tools.

Provides:
- ``Config`` base class with dict/JSON round-tripping
- ``RefreshConfig`` holding every option the refresh run recognises
- ``REFRESH_PRESETS`` for the API subscription tiers the job runs under
- ``KnownValues`` with the country codes, priority passports and curated
  popular pairs used as injected defaults
"""

import os as _os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple


COUNTRY_CODE = re.compile(r"^[A-Z]{2}$")


class Config:
    """Base configuration class for organizing application settings."""

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary.

        Returns:
            Dictionary of all config attributes
        """
        return {k: v for k, v in self.__dict__.items() if not k.startswith("_")}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Create config from dictionary.

        Args:
            data: Configuration dictionary

        Returns:
            Config instance with values from dictionary
        """
        config = cls()
        for key, value in data.items():
            setattr(config, key, value)
        return config

    def save_json(self, path: Path) -> None:
        """Save configuration to JSON file.

        Args:
            path: Path to save configuration file
        """
        import json
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2, default=str)

    @classmethod
    def load_json(cls, path: Path) -> "Config":
        """Load configuration from JSON file.

        Args:
            path: Path to configuration file

        Returns:
            Config instance loaded from file

        Raises:
            FileNotFoundError: If file doesn't exist
            json.JSONDecodeError: If file is not valid JSON
        """
        import json
        with open(path, "r") as f:
            data = json.load(f)
        return cls.from_dict(data)


class KnownValues:
    """Container for known country codes and default refresh targets."""

    # ISO 3166-1 alpha-2 codes the mobile app lists (199 entries)
    COUNTRY_CODES = (
        "AF", "AL", "DZ", "AD", "AO", "AG", "AR", "AM", "AU", "AT", "AZ",
        "BS", "BH", "BD", "BB", "BY", "BE", "BZ", "BJ", "BT", "BO", "BA",
        "BW", "BR", "BN", "BG", "BF", "BI",
        "KH", "CM", "CA", "CV", "CF", "TD", "CL", "CN", "CO", "KM", "CG",
        "CD", "CR", "CI", "HR", "CU", "CY", "CZ",
        "DK", "DJ", "DM", "DO",
        "EC", "EG", "SV", "GQ", "ER", "EE", "SZ", "ET",
        "FJ", "FI", "FR",
        "GA", "GM", "GE", "DE", "GH", "GR", "GD", "GT", "GN", "GW", "GY",
        "HT", "HN", "HK", "HU",
        "IS", "IN", "ID", "IR", "IQ", "IE", "IL", "IT",
        "JM", "JP", "JO",
        "KZ", "KE", "KI", "XK", "KP", "KR", "KW", "KG",
        "LA", "LV", "LB", "LS", "LR", "LY", "LI", "LT", "LU",
        "MO", "MG", "MW", "MY", "MV", "ML", "MT", "MH", "MR", "MU", "MX",
        "FM", "MD", "MC", "MN", "ME", "MA", "MZ", "MM",
        "NA", "NR", "NP", "NL", "NZ", "NI", "NE", "NG", "MK", "NO",
        "OM",
        "PK", "PW", "PS", "PA", "PG", "PY", "PE", "PH", "PL", "PT",
        "QA",
        "RO", "RU", "RW",
        "KN", "LC", "VC", "WS", "SM", "ST", "SA", "SN", "RS", "SC", "SL",
        "SG", "SK", "SI", "SB", "SO", "ZA", "SS", "ES", "LK", "SD", "SR",
        "SE", "CH", "SY",
        "TW", "TJ", "TZ", "TH", "TL", "TG", "TO", "TT", "TN", "TR", "TM",
        "TV",
        "UG", "UA", "AE", "GB", "US", "UY", "UZ",
        "VU", "VA", "VE", "VN",
        "YE",
        "ZM", "ZW",
    )

    # Passports most likely held by app users, in refresh order
    PRIORITY_PASSPORTS = (
        # Tier 1
        "GB", "US", "NG", "GH", "IN", "PK",
        # Tier 2
        "CA", "AU", "IE", "NZ", "ZA", "KE", "JM",
        # Tier 3
        "BD", "PH", "EG", "MA", "TT", "SL", "ZM", "UG",
        # Tier 4 (African/Caribbean diaspora)
        "CM", "SN", "CI", "TZ", "ET", "RW", "BB", "GD",
        # Tier 5 (European/Asian)
        "DE", "FR", "IT", "ES", "NL", "PL", "CN", "JP", "KR",
    )

    # Most-used passport/destination combinations for the rotation preset
    POPULAR_PAIRS = (
        ("GB", "ES"), ("GB", "FR"), ("GB", "TH"), ("GB", "US"), ("GB", "GR"),
        ("GB", "PT"), ("GB", "IT"), ("GB", "AE"), ("GB", "JP"), ("GB", "AU"),
        ("US", "GB"), ("US", "MX"), ("US", "JP"), ("US", "FR"), ("US", "IT"),
        ("US", "TH"), ("US", "ES"), ("US", "DE"), ("US", "CA"), ("US", "AU"),
        ("NG", "GB"), ("NG", "US"), ("NG", "AE"), ("NG", "GH"), ("NG", "ZA"),
        ("IN", "AE"), ("IN", "SG"), ("IN", "TH"), ("IN", "GB"), ("IN", "US"),
        ("GH", "GB"), ("GH", "US"), ("GH", "NG"), ("GH", "AE"), ("GH", "ZA"),
        ("ZA", "GB"), ("ZA", "US"), ("ZA", "AE"), ("ZA", "TH"), ("ZA", "MU"),
        ("DE", "US"), ("DE", "TH"), ("DE", "JP"),
        ("AU", "US"), ("AU", "GB"), ("AU", "TH"),
        ("JP", "US"), ("JP", "GB"), ("JP", "TH"),
        ("SG", "US"), ("SG", "GB"), ("SG", "AU"),
        ("BR", "US"), ("BR", "PT"), ("BR", "JP"),
        ("MX", "US"), ("MX", "ES"), ("MX", "CA"),
    )

    # Stay assumed by the seed import when the dataset only names a category
    SEED_DEFAULT_DURATIONS = {
        "visa-free": 90,
        "visa-on-arrival": 30,
        "eta": 90,
    }

    @classmethod
    def is_valid_country(cls, code: str) -> bool:
        """Check that *code* is a two-letter uppercase country code."""
        return isinstance(code, str) and bool(COUNTRY_CODE.match(code))


STRATEGIES = ("lifecycle", "cursor")
SCOPES = ("priority", "all", "pairs")


class RefreshConfig(Config):
    """Options controlling one refresh run.

    Environment variables:
        RAPIDAPI_KEY: API key for the visa-requirement endpoint
        VISA_DATA_DIR: Directory holding visa-rules.json, version.json and
            lifecycle.json (default: data)
        VISA_API_URL: Override the lookup endpoint
    """

    def __init__(self) -> None:
        super().__init__()
        # Budget and pacing
        self.requests_per_run = 30
        self.request_delay = 3.0
        self.monthly_quota: Optional[int] = None
        self.checkpoint_interval = 10
        self.max_retries = 3
        self.backoff_multiplier = 2.0

        # Staleness thresholds (days)
        self.fresh_days = 30
        self.critical_days = 90

        # What to refresh
        self.strategy = "lifecycle"
        self.scope = "priority"
        self.countries: List[str] = list(KnownValues.COUNTRY_CODES)
        self.priority_passports: List[str] = list(KnownValues.PRIORITY_PASSPORTS)
        self.pairs: List[Tuple[str, str]] = [tuple(p) for p in KnownValues.POPULAR_PAIRS]

        # Storage
        self.data_dir = Path(_os.getenv("VISA_DATA_DIR", "data"))
        self.source_label = "rapidapi"

        # Remote lookup
        self.api_url = _os.getenv(
            "VISA_API_URL", "https://visa-requirement.p.rapidapi.com/v2/visa/check"
        )
        self.api_host = "visa-requirement.p.rapidapi.com"
        self.api_key = _os.getenv("RAPIDAPI_KEY")
        self.timeout_seconds = 30

    @property
    def rules_path(self) -> Path:
        return Path(self.data_dir) / "visa-rules.json"

    @property
    def version_path(self) -> Path:
        return Path(self.data_dir) / "version.json"

    @property
    def lifecycle_path(self) -> Path:
        return Path(self.data_dir) / "lifecycle.json"

    def validate(self) -> "RefreshConfig":
        """Check option consistency.

        Raises:
            ValueError: If any option is out of range or inconsistent.
        """
        if int(self.requests_per_run) <= 0:
            raise ValueError("requests_per_run must be positive")
        if float(self.request_delay) < 0:
            raise ValueError("request_delay must not be negative")
        if int(self.checkpoint_interval) <= 0:
            raise ValueError("checkpoint_interval must be positive")
        if int(self.max_retries) < 0:
            raise ValueError("max_retries must not be negative")
        if float(self.backoff_multiplier) < 1:
            raise ValueError("backoff_multiplier must be at least 1")
        if self.monthly_quota is not None and int(self.monthly_quota) < 0:
            raise ValueError("monthly_quota must not be negative")
        if not 0 <= self.fresh_days < self.critical_days:
            raise ValueError(
                f"fresh_days ({self.fresh_days}) must be below "
                f"critical_days ({self.critical_days})"
            )
        if self.strategy not in STRATEGIES:
            raise ValueError(f"Unknown strategy {self.strategy!r}; expected one of {STRATEGIES}")
        if self.scope not in SCOPES:
            raise ValueError(f"Unknown scope {self.scope!r}; expected one of {SCOPES}")
        bad = [c for c in list(self.countries) + list(self.priority_passports)
               if not KnownValues.is_valid_country(c)]
        for pair in self.pairs:
            if len(pair) != 2:
                raise ValueError(f"Malformed pair: {pair!r}")
            bad.extend(c for c in pair if not KnownValues.is_valid_country(c))
        if bad:
            raise ValueError(f"Invalid country code(s): {', '.join(sorted(set(map(str, bad))))}")
        return self

    @classmethod
    def from_preset(cls, name: str, **overrides: Any) -> "RefreshConfig":
        """Build a config from a named preset, then apply *overrides*.

        Raises:
            KeyError: If *name* is not a known preset.
        """
        if name not in REFRESH_PRESETS:
            raise KeyError(f"Unknown preset {name!r}; choose from {sorted(REFRESH_PRESETS)}")
        config = cls()
        for key, value in REFRESH_PRESETS[name].items():
            setattr(config, key, value)
        return config.apply_overrides(**overrides)

    def apply_overrides(self, **overrides: Any) -> "RefreshConfig":
        """Set every override that is not None (unset CLI flags stay None)."""
        for key, value in overrides.items():
            if value is not None:
                setattr(self, key, value)
        return self

    def to_dict(self) -> Dict[str, Any]:
        # the API key comes from the environment and is never written out
        data = super().to_dict()
        data.pop("api_key", None)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RefreshConfig":
        if not isinstance(data, dict):
            raise ValueError("Settings must be a JSON object")
        config = super().from_dict(data)
        config.data_dir = Path(config.data_dir)
        config.pairs = [tuple(p) for p in config.pairs]
        return config


# Subscription tiers of the visa-requirement API, expressed as settings.
REFRESH_PRESETS: Dict[str, Dict[str, Any]] = {
    # 120 requests/month, run weekly
    "basic": {
        "requests_per_run": 30,
        "request_delay": 3.0,
        "monthly_quota": 120,
        "checkpoint_interval": 10,
        "fresh_days": 30,
        "critical_days": 90,
        "strategy": "lifecycle",
        "scope": "priority",
    },
    # 3,000 requests/month, 1 request/second
    "pro": {
        "requests_per_run": 2800,
        "request_delay": 1.1,
        "monthly_quota": 3000,
        "checkpoint_interval": 50,
        "fresh_days": 30,
        "critical_days": 90,
        "strategy": "lifecycle",
        "scope": "priority",
        "source_label": "rapidapi-pro",
    },
    # 30,000 requests/month, 10 requests/second
    "ultra": {
        "requests_per_run": 28000,
        "request_delay": 0.12,
        "monthly_quota": 30000,
        "checkpoint_interval": 100,
        "fresh_days": 30,
        "critical_days": 90,
        "strategy": "lifecycle",
        "scope": "all",
    },
    # Fixed rotation through the most-used pairs
    "rotation": {
        "requests_per_run": 30,
        "request_delay": 3.0,
        "monthly_quota": 120,
        "checkpoint_interval": 10,
        "strategy": "cursor",
        "scope": "pairs",
    },
}
