"""Configuration: packaged YAML defaults, an optional override file, then PET_ALERTS_* env vars."""
import os
import yaml
from pathlib import Path

_DEFAULT_CONFIG = Path(__file__).parent / "default_config.yaml"

# env var -> (config path, type)
ENV_OVERRIDES = {
    "PET_ALERTS_DB_PATH": (("database", "path"), str),
    "PET_ALERTS_LOG_LEVEL": (("logging", "level"), str),
    "PET_ALERTS_SWEEP_INTERVAL": (("alerts", "sweep_interval_seconds"), int),
    "PET_ALERTS_BATCH_WORKERS": (("alerts", "batch_workers"), int),
    "PET_ALERTS_DETECTOR_URL": (("detector", "base_url"), str),
}

REQUIRED_SECTIONS = ("database", "alerts", "detector", "email", "push", "logging")
POSITIVE_TIMEOUTS = ("detect_timeout_seconds", "send_timeout_seconds", "pair_timeout_seconds")


def _read_yaml(path):
    with open(path) as f:
        return yaml.safe_load(f) or {}


def load_config(path=None, environ=None):
    """Build the effective config. A missing override file is ignored."""
    config = _read_yaml(_DEFAULT_CONFIG)
    if path and Path(path).exists():
        config = _deep_merge(config, _read_yaml(path))
    _apply_env(config, os.environ if environ is None else environ)
    _validate_config(config)
    return config


def _apply_env(config, environ):
    for name, (keys, cast) in ENV_OVERRIDES.items():
        raw = environ.get(name)
        if not raw:
            continue
        try:
            value = cast(raw)
        except ValueError:
            raise ValueError(f"{name}={raw!r} is not a valid {cast.__name__}")
        section = config
        for key in keys[:-1]:
            section = section.setdefault(key, {})
        section[keys[-1]] = value


def _deep_merge(base, override):
    """Return base with override merged in; nested dicts merge, everything else replaces."""
    merged = dict(base)
    for key, val in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(val, dict):
            merged[key] = _deep_merge(current, val)
        else:
            merged[key] = val
    return merged


def _validate_config(config):
    missing = [s for s in REQUIRED_SECTIONS if s not in config]
    if missing:
        raise ValueError(f"Missing required config section: {', '.join(missing)}")

    alerts = config["alerts"]
    if alerts["sweep_interval_seconds"] < 60:
        raise ValueError("sweep_interval_seconds must be >= 60 seconds")
    if alerts["batch_workers"] < 1:
        raise ValueError("batch_workers must be >= 1")
    if alerts.get("maintenance_interval_seconds", 60) < 60:
        raise ValueError("maintenance_interval_seconds must be >= 60 seconds")
    if alerts.get("max_delivery_attempts", 1) < 1:
        raise ValueError("max_delivery_attempts must be >= 1")
    bad = [k for k in POSITIVE_TIMEOUTS if alerts[k] <= 0]
    if bad:
        raise ValueError(f"Timeouts must be positive: {', '.join(bad)}")
