import os
from dataclasses import dataclass

from dotenv import find_dotenv, load_dotenv

from smart_categorizer.logger import get_logger

logger = get_logger(__name__)


CONFIG_FILENAME = "config.yaml"

_CONFIG_KEYS = (
    "LOG_LEVEL",
    "LOG_DIR",
    "DATA_DIR",
    "OPENAI_API_KEY",
    "OPENAI_MODEL",
    "OPENAI_BASE_URL",
    "CATEGORIZER_BATCH_SIZE",
    "CATEGORIZER_BATCH_DELAY",
    "CATEGORIZER_AGREEMENT_BOOST",
    "CATEGORIZER_CONFIDENCE_CEILING",
    "CATEGORIZER_HIGH_CONFIDENCE",
    "CATEGORIZER_PATTERN_THRESHOLD",
    "CATEGORIZER_RETRAIN_THRESHOLD",
)


def _resolve_dotenv_path() -> str | None:
    config_dir = os.getenv("CONFIG_DIR")
    if config_dir:
        candidate = os.path.join(config_dir, ".env")
        if os.path.exists(candidate):
            return candidate
    resolved = find_dotenv(usecwd=True)
    return resolved or None


def _resolve_config_path() -> str:
    config_dir = os.getenv("CONFIG_DIR")
    if config_dir:
        return os.path.join(config_dir, CONFIG_FILENAME)
    cwd = os.getcwd()
    candidate = os.path.join(cwd, "config", CONFIG_FILENAME)
    if os.path.exists(candidate):
        return candidate
    return os.path.join(cwd, CONFIG_FILENAME)


def _strip_inline_comment(raw_value: str) -> str:
    in_single = False
    in_double = False
    escaped = False
    for index, char in enumerate(raw_value):
        if escaped:
            escaped = False
            continue
        if char == "\\":
            escaped = True
            continue
        if char == '"' and not in_single:
            in_double = not in_double
            continue
        if char == "'" and not in_double:
            in_single = not in_single
            continue
        if char == "#" and not in_single and not in_double:
            return raw_value[:index].rstrip()
    return raw_value


def _unquote_value(raw_value: str) -> str:
    if len(raw_value) < 2:
        return raw_value
    if raw_value[0] == raw_value[-1] == '"':
        value = raw_value[1:-1]
        return value.replace('\\"', '"').replace("\\\\", "\\")
    if raw_value[0] == raw_value[-1] == "'":
        value = raw_value[1:-1]
        return value.replace("\\'", "'").replace("\\\\", "\\")
    return raw_value


def read_config_file(path: str | None) -> dict[str, str]:
    if not path or not os.path.exists(path):
        return {}

    values: dict[str, str] = {}
    with open(path, encoding="utf-8") as handle:
        for line in handle:
            stripped = line.strip()
            if not stripped or stripped.startswith("#"):
                continue
            if ":" not in stripped:
                continue
            key, raw_value = stripped.split(":", 1)
            key = key.strip()
            if not key:
                continue
            cleaned = _strip_inline_comment(raw_value).strip()
            if not cleaned:
                continue
            value = _unquote_value(cleaned)
            if value:
                values[key] = value
    return values


def load_environment() -> None:
    """Load .env, then fill unset keys from config.yaml."""
    dotenv_path = _resolve_dotenv_path()
    if dotenv_path:
        load_dotenv(dotenv_path=dotenv_path, override=False)

    file_values = read_config_file(_resolve_config_path())
    for key in _CONFIG_KEYS:
        if key not in os.environ and key in file_values:
            os.environ[key] = file_values[key]


def ensure_dir(path: str | None) -> None:
    if path and path not in {".", "./"}:
        os.makedirs(path, exist_ok=True)


def get_env_int(name: str, default: int, min_value: int | None = None) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("[ENV] Invalid %s='%s', using default %s.", name, raw, default)
        return default
    if min_value is not None and value < min_value:
        logger.warning(
            "[ENV] %s='%s' below minimum %s, using default %s.",
            name,
            raw,
            min_value,
            default,
        )
        return default
    return value


def get_env_float(name: str, default: float = 0.0, min_value: float | None = None) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("[ENV] Invalid %s='%s', using default %s.", name, raw, default)
        return default
    if min_value is not None and value < min_value:
        logger.warning(
            "[ENV] %s='%s' below minimum %s, using default %s.",
            name,
            raw,
            min_value,
            default,
        )
        return default
    return value


_SENSITIVE_ENV_KEYS = (
    "KEY",
    "TOKEN",
    "SECRET",
    "PASSWORD",
    "PASS",
    "AUTH",
    "BEARER",
    "PRIVATE",
)


def _should_mask_env_value(name: str, value: str) -> bool:
    upper_name = name.upper()
    if any(marker in upper_name for marker in _SENSITIVE_ENV_KEYS):
        return True
    if value.startswith("sk-") or value.startswith("rk-"):
        return True
    if value.startswith("Bearer ") or value.startswith("bearer "):
        return True
    return False


def mask_env_value(name: str, value: str) -> str:
    sanitized = value.replace("\r", "\\r").replace("\n", "\\n")
    if not _should_mask_env_value(name, sanitized):
        return sanitized
    if len(sanitized) <= 4:
        return "****"
    return f"{sanitized[:2]}...{sanitized[-2:]}"


def log_environment() -> None:
    """Startup hook for host applications, after setup_logging()."""
    logger.info("[ENV] Logging configured environment variables (masked where needed).")
    for key in _CONFIG_KEYS:
        raw_value = os.getenv(key)
        value = "<unset>" if raw_value is None else mask_env_value(key, raw_value)
        logger.info("[ENV] %s=%s", key, value)


DEFAULT_OPENAI_MODEL = "gpt-4o-mini"
MODEL_VERSION = "1.0.0"


@dataclass(frozen=True)
class EngineSettings:
    """Tunables for the categorization engine.

    The blending constants are heuristics and are exposed here rather than
    hardcoded so they can be tuned per deployment.
    """

    batch_size: int = 10
    batch_delay: float = 0.1
    top_n: int = 3
    confidence_ceiling: float = 95.0
    agreement_boost: float = 0.1
    high_confidence_threshold: float = 80.0
    pattern_threshold: float = 10.0
    retrain_threshold: int = 10
    min_training_examples: int = 10
    default_accuracy: float = 60.0
    llm_model: str = DEFAULT_OPENAI_MODEL

    @classmethod
    def from_env(cls) -> "EngineSettings":
        return cls(
            batch_size=get_env_int("CATEGORIZER_BATCH_SIZE", cls.batch_size, min_value=1),
            batch_delay=get_env_float("CATEGORIZER_BATCH_DELAY", cls.batch_delay, min_value=0.0),
            confidence_ceiling=get_env_float(
                "CATEGORIZER_CONFIDENCE_CEILING", cls.confidence_ceiling, min_value=0.0
            ),
            agreement_boost=get_env_float(
                "CATEGORIZER_AGREEMENT_BOOST", cls.agreement_boost, min_value=0.0
            ),
            high_confidence_threshold=get_env_float(
                "CATEGORIZER_HIGH_CONFIDENCE", cls.high_confidence_threshold, min_value=0.0
            ),
            pattern_threshold=get_env_float(
                "CATEGORIZER_PATTERN_THRESHOLD", cls.pattern_threshold, min_value=0.0
            ),
            retrain_threshold=get_env_int(
                "CATEGORIZER_RETRAIN_THRESHOLD", cls.retrain_threshold, min_value=1
            ),
            llm_model=os.getenv("OPENAI_MODEL") or DEFAULT_OPENAI_MODEL,
        )


load_environment()

DATA_DIR = os.getenv("DATA_DIR", ".")

ensure_dir(DATA_DIR)
