from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional

import yaml

from completeseries.core.errors import ConfigurationError
from completeseries.core.regions import DEFAULT_REGION
from completeseries.core.store import DEFAULT_DATA_FILE
from completeseries.integrations.audimeta import AUDIMETA_BASE_URL

logger = logging.getLogger(__name__)

ENV_KEYS = (
    "ABS_URL",
    "ABS_USERNAME",
    "ABS_PASSWORD",
    "ABS_API_KEY",
    "ABS_USE_API_KEY",
    "AUDIBLE_REGION",
    "DATA_FILE",
    "AUDIMETA_BASE_URL",
)

_ORIGIN_RE = re.compile(r"^(https?://[^/]+).*", re.I)


def _strip_inline_comment(val: str) -> str:
    in_single = False
    in_double = False
    for i, ch in enumerate(val):
        if ch == "'" and not in_double:
            in_single = not in_single
        elif ch == '"' and not in_single:
            in_double = not in_double
        elif ch == "#" and not in_single and not in_double:
            return val[:i].rstrip()
    return val.rstrip()


def _set_default_env(key: str, value: str) -> None:
    if key and key not in os.environ:
        os.environ[key] = value


def _parse_env_file(path: Path) -> None:
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except OSError as e:
        logger.warning("could not read env file %s: %s", path, e)
        return
    for line in lines:
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        if line.startswith("export "):
            line = line[len("export "):].lstrip()
        k, v = line.split("=", 1)
        v = _strip_inline_comment(v.strip())
        if len(v) >= 2 and v[0] == v[-1] and v[0] in ("'", '"'):
            v = v[1:-1]
        _set_default_env(k.strip(), v)


def load_dotenv(path: str = ".env") -> Optional[str]:
    """
    Loads environment variables from a .env file without overriding ones
    already set.

    Search order:
    1) ENV_PATH (if set)
    2) explicit `path` (relative to CWD or absolute)
    3) project root (parent of the completeseries package directory)

    Returns the resolved .env path used, or None if not found.
    """
    candidates: List[Path] = []
    override = os.getenv("ENV_PATH")
    if override:
        candidates.append(Path(override).expanduser())
    p = Path(path).expanduser()
    candidates.append(p if p.is_absolute() else (Path.cwd() / p))
    candidates.append(Path(__file__).resolve().parent.parent / ".env")

    seen = set()
    for c in candidates:
        c = c.resolve()
        if str(c) in seen:
            continue
        seen.add(str(c))
        if c.is_file():
            _parse_env_file(c)
            return str(c)
    return None


def load_settings_file(path: str) -> Dict[str, str]:
    """
    Apply a YAML mapping of ENV_KEYS (e.g. `ABS_URL: https://abs.local`) to the
    environment, leaving already-set variables alone.
    """
    try:
        data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    except FileNotFoundError as e:
        raise ConfigurationError(f"Settings file not found: {path}") from e
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to read settings file: {path} ({e})") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"Settings file must hold a mapping: {path}")

    applied: Dict[str, str] = {}
    for key, value in data.items():
        key = str(key).strip().upper()
        if key not in ENV_KEYS:
            logger.warning("ignoring unknown setting %s in %s", key, path)
            continue
        if value is None:
            continue
        if isinstance(value, bool):
            value = "true" if value else "false"
        applied[key] = str(value)
        _set_default_env(key, str(value))
    logger.info("Loaded settings file: %s", path)
    return applied


def _truthy(val: Optional[str]) -> bool:
    return (val or "").strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class AppConfig:
    abs_url: str
    username: str
    password: str
    api_key: str
    use_api_key: bool
    audible_region: str = DEFAULT_REGION
    data_file: str = DEFAULT_DATA_FILE
    audimeta_base_url: str = AUDIMETA_BASE_URL

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "AppConfig":
        env = os.environ if env is None else env
        return cls(
            abs_url=(env.get("ABS_URL") or "").strip().rstrip("/"),
            username=env.get("ABS_USERNAME") or "",
            password=env.get("ABS_PASSWORD") or "",
            api_key=env.get("ABS_API_KEY") or "",
            use_api_key=_truthy(env.get("ABS_USE_API_KEY")),
            audible_region=(env.get("AUDIBLE_REGION") or DEFAULT_REGION).strip() or DEFAULT_REGION,
            data_file=env.get("DATA_FILE") or DEFAULT_DATA_FILE,
            audimeta_base_url=env.get("AUDIMETA_BASE_URL") or AUDIMETA_BASE_URL,
        )

    @property
    def auth_method(self) -> str:
        return "api_key" if self.use_api_key else "password"

    @property
    def has_credentials(self) -> bool:
        if self.use_api_key:
            return bool(self.api_key)
        return bool(self.username and self.password)

    @property
    def is_configured(self) -> bool:
        return bool(self.abs_url) and self.has_credentials

    @property
    def server_origin(self) -> Optional[str]:
        if not self.abs_url:
            return None
        return _ORIGIN_RE.sub(r"\1", self.abs_url)

    def validate(self) -> None:
        if not self.abs_url:
            raise ConfigurationError("Server not configured: ABS_URL environment variable missing")
        if self.use_api_key and not self.api_key:
            raise ConfigurationError("API key mode enabled but ABS_API_KEY not set")
        if not self.use_api_key and not (self.username and self.password):
            raise ConfigurationError("Username/password mode but ABS_USERNAME or ABS_PASSWORD not set")
