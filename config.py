import os
import json
import logging
import re
import sys
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any
from urllib.parse import urlparse

import yaml

from metrics.selectors import METRIC_TYPES


# =============================================================================
# Logging Configuration
# =============================================================================
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT: str = os.getenv(
    "LOG_FORMAT",
    "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)


def setup_logging(level: Optional[str] = None):
    """Configure application-wide logging"""
    level_name = (level or LOG_LEVEL).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )
    # Reduce noise from third-party libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)


def _env_optional_float(name: str) -> Optional[float]:
    v = os.getenv(name)
    if v is None or not v.strip():
        return None
    return float(v)


# =============================================================================
# Process Settings
# =============================================================================
# Unset means the HTTP transport default (no timeout)
DYNATRACE_TIMEOUT_SECONDS: Optional[float] = _env_optional_float("DYNATRACE_TIMEOUT_SECONDS")
METRIC_FETCH_WORKERS: int = int(os.getenv("METRIC_FETCH_WORKERS", "5"))
API_TOKEN_ENV_VAR: str = "DYNATRACE_API_TOKEN"

TIME_WINDOW_PATTERN = re.compile(r"\d+[dh]")
EMPTY_NAMESPACE_POLICIES = ("fatal", "tolerant")
MEMORY_HEADROOM_FLOOR: float = 1.3

# Defaults for every optional key of the config file
DEFAULT_CONFIG: Dict[str, Any] = {
    "apiToken": "",
    "timeWindow": "7d",
    "percentile": 90,
    "cpuHeadroomMultiplier": 1.1,
    "memoryHeadroomMultiplier": 1.3,
    "cpuOverProvisionedThreshold": 0.6,
    "cpuUnderProvisionedThreshold": 0.9,
    "memoryOverProvisionedThreshold": 0.6,
    "memoryUnderProvisionedThreshold": 0.9,
    "minReplicaFloor": 2,
    "outputPath": "./report.html",
    "tags": [],
    "emptyNamespacePolicy": "fatal",
    "scopeByNamespace": False,
    "selectors": {},
}


@dataclass
class AppConfig:
    """Validated run configuration"""
    endpoint: str
    api_token: str
    namespaces: List[str]
    time_window: str = "7d"
    percentile: int = 90
    cpu_headroom_multiplier: float = 1.1
    memory_headroom_multiplier: float = 1.3
    cpu_over_provisioned_threshold: float = 0.6
    cpu_under_provisioned_threshold: float = 0.9
    memory_over_provisioned_threshold: float = 0.6
    memory_under_provisioned_threshold: float = 0.9
    min_replica_floor: int = 2
    output_path: str = "./report.html"
    tags: List[str] = field(default_factory=list)
    empty_namespace_policy: str = "fatal"
    scope_by_namespace: bool = False
    selectors: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def effective_memory_headroom(self) -> float:
        return max(MEMORY_HEADROOM_FLOOR, self.memory_headroom_multiplier)


# =============================================================================
# Configuration Validation
# =============================================================================
class ConfigValidationError(Exception):
    """Raised when configuration validation fails"""
    pass


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _validate_url(name: str, value: Any) -> None:
    if not isinstance(value, str):
        raise ConfigValidationError(f"{name} must be a string URL, got {type(value).__name__}")
    try:
        result = urlparse(value)
        if not all([result.scheme, result.netloc]):
            raise ValueError("Missing scheme or netloc")
        if result.scheme not in ('http', 'https'):
            raise ValueError(f"Invalid scheme: {result.scheme}")
    except Exception as e:
        raise ConfigValidationError(f"{name} is not a valid URL: {value} ({e})")


def _validate_range(name: str, value: Any, minimum: float, maximum: Optional[float] = None) -> None:
    if not _is_number(value):
        raise ConfigValidationError(f"{name} must be a number, got {value!r}")
    if value < minimum or (maximum is not None and value > maximum):
        bounds = f">= {minimum}" if maximum is None else f"between {minimum} and {maximum}"
        raise ConfigValidationError(f"{name} must be {bounds}, got {value}")


def _validate_int_range(name: str, value: Any, minimum: int, maximum: Optional[int] = None) -> None:
    if not _is_int(value):
        raise ConfigValidationError(f"{name} must be an integer, got {value!r}")
    _validate_range(name, value, minimum, maximum)


def _validate_string_list(name: str, value: Any, allow_empty: bool) -> None:
    if not isinstance(value, list) or not all(isinstance(v, str) and v for v in value):
        raise ConfigValidationError(f"{name} must be a list of non-empty strings")
    if not allow_empty and not value:
        raise ConfigValidationError(f"{name} must contain at least one entry")


def _validate_selectors(value: Any) -> None:
    if not isinstance(value, dict):
        raise ConfigValidationError("selectors must be a mapping of metric type to selector list")
    for metric_type, selectors in value.items():
        if metric_type not in METRIC_TYPES:
            raise ConfigValidationError(
                f"selectors has unknown metric type '{metric_type}' (expected one of {', '.join(METRIC_TYPES)})"
            )
        _validate_string_list(f"selectors.{metric_type}", selectors, allow_empty=False)


def validate_config(raw: Dict[str, Any]) -> None:
    """Validate a merged raw configuration mapping

    Raises:
        ConfigValidationError: If any configuration value is invalid
    """
    errors = []

    def check(fn, *args) -> None:
        try:
            fn(*args)
        except ConfigValidationError as e:
            errors.append(str(e))

    if "endpoint" not in raw:
        errors.append("endpoint is required")
    else:
        check(_validate_url, "endpoint", raw["endpoint"])

    if "namespaces" not in raw:
        errors.append("namespaces is required")
    else:
        check(_validate_string_list, "namespaces", raw["namespaces"], False)

    if not isinstance(raw.get("apiToken"), str):
        errors.append("apiToken must be a string")

    window = raw.get("timeWindow")
    if not isinstance(window, str) or not TIME_WINDOW_PATTERN.fullmatch(window):
        errors.append(f"timeWindow must look like '7d' or '24h', got {window!r}")

    check(_validate_int_range, "percentile", raw.get("percentile"), 50, 99)
    check(_validate_range, "cpuHeadroomMultiplier", raw.get("cpuHeadroomMultiplier"), 1.0)
    check(_validate_range, "memoryHeadroomMultiplier", raw.get("memoryHeadroomMultiplier"), MEMORY_HEADROOM_FLOOR)
    check(_validate_range, "cpuOverProvisionedThreshold", raw.get("cpuOverProvisionedThreshold"), 0.1, 0.9)
    check(_validate_range, "cpuUnderProvisionedThreshold", raw.get("cpuUnderProvisionedThreshold"), 0.5, 1.0)
    check(_validate_range, "memoryOverProvisionedThreshold", raw.get("memoryOverProvisionedThreshold"), 0.1, 0.9)
    check(_validate_range, "memoryUnderProvisionedThreshold", raw.get("memoryUnderProvisionedThreshold"), 0.5, 1.0)
    check(_validate_int_range, "minReplicaFloor", raw.get("minReplicaFloor"), 1)

    output_path = raw.get("outputPath")
    if not isinstance(output_path, str) or not output_path:
        errors.append("outputPath must be a non-empty string")

    check(_validate_string_list, "tags", raw.get("tags"), True)

    if raw.get("emptyNamespacePolicy") not in EMPTY_NAMESPACE_POLICIES:
        errors.append(
            f"emptyNamespacePolicy must be one of {', '.join(EMPTY_NAMESPACE_POLICIES)}, "
            f"got {raw.get('emptyNamespacePolicy')!r}"
        )

    if not isinstance(raw.get("scopeByNamespace"), bool):
        errors.append("scopeByNamespace must be true or false")

    check(_validate_selectors, raw.get("selectors"))

    if errors:
        raise ConfigValidationError(
            "Configuration validation failed:\n  - " + "\n  - ".join(errors)
        )


# =============================================================================
# Configuration Loading
# =============================================================================
def _parse_by_extension(raw: str, path: str) -> Any:
    if path.endswith(".json"):
        return json.loads(raw)
    return yaml.safe_load(raw)


def load_config(config_path: str, window: Optional[str] = None, output_path: Optional[str] = None) -> AppConfig:
    """Load a YAML or JSON config file, apply overrides and validate it.

    Precedence: CLI overrides > DYNATRACE_API_TOKEN env var > file > defaults.
    """
    logger = logging.getLogger(__name__)
    abs_path = os.path.abspath(config_path)

    try:
        with open(abs_path, 'r', encoding='utf-8') as f:
            text = f.read()
    except OSError:
        raise ConfigValidationError(f"Config file not found: {abs_path}")

    try:
        parsed = _parse_by_extension(text, abs_path)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        logger.debug(f"Config parse failed for {abs_path}: {e}")
        raise ConfigValidationError(f"Invalid config format in {abs_path}")

    if not isinstance(parsed, dict):
        raise ConfigValidationError(f"Invalid config format in {abs_path}")

    raw: Dict[str, Any] = {**DEFAULT_CONFIG, **parsed}

    if window:
        logger.debug(f"Applying window override: {window}")
        raw["timeWindow"] = window
    if output_path:
        logger.debug(f"Applying output path override: {output_path}")
        raw["outputPath"] = output_path

    env_token = os.getenv(API_TOKEN_ENV_VAR)
    if env_token is not None and env_token.strip():
        raw["apiToken"] = env_token.strip()
        logger.debug(f"{API_TOKEN_ENV_VAR} env override applied")

    validate_config(raw)

    if not raw["apiToken"]:
        raise ConfigValidationError(
            f"apiToken is required in config file unless {API_TOKEN_ENV_VAR} is set"
        )

    config = AppConfig(
        endpoint=raw["endpoint"],
        api_token=raw["apiToken"],
        namespaces=list(raw["namespaces"]),
        time_window=raw["timeWindow"],
        percentile=raw["percentile"],
        cpu_headroom_multiplier=raw["cpuHeadroomMultiplier"],
        memory_headroom_multiplier=raw["memoryHeadroomMultiplier"],
        cpu_over_provisioned_threshold=raw["cpuOverProvisionedThreshold"],
        cpu_under_provisioned_threshold=raw["cpuUnderProvisionedThreshold"],
        memory_over_provisioned_threshold=raw["memoryOverProvisionedThreshold"],
        memory_under_provisioned_threshold=raw["memoryUnderProvisionedThreshold"],
        min_replica_floor=raw["minReplicaFloor"],
        output_path=raw["outputPath"],
        tags=list(raw["tags"]),
        empty_namespace_policy=raw["emptyNamespacePolicy"],
        scope_by_namespace=raw["scopeByNamespace"],
        selectors={k: list(v) for k, v in raw["selectors"].items()},
    )
    logger.debug(
        f"Loaded config from {abs_path}: endpoint={config.endpoint} "
        f"namespaces={len(config.namespaces)} window={config.time_window}"
    )
    return config


__all__ = [
    "LOG_LEVEL",
    "LOG_FORMAT",
    "setup_logging",
    "DYNATRACE_TIMEOUT_SECONDS",
    "METRIC_FETCH_WORKERS",
    "API_TOKEN_ENV_VAR",
    "MEMORY_HEADROOM_FLOOR",
    "DEFAULT_CONFIG",
    "AppConfig",
    "ConfigValidationError",
    "validate_config",
    "load_config",
]
