import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

DEFAULT_MODELS = ["gpt-4", "claude-3-opus", "gemini-pro"]

# Reliability weight per reviewer id, in (0, 1].
DEFAULT_REVIEWER_WEIGHTS: Dict[str, float] = {
    "gpt-4": 0.4,
    "claude-3-opus": 0.3,
    "gemini-pro": 0.3,
}
DEFAULT_REVIEWER_WEIGHT = 0.3


def _flag(value: Any, default: bool = True) -> bool:
    """Flags are on unless explicitly false; strings only turn off on 'false'."""
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() != "false"
    return bool(value)


def _env_flag(env: Mapping[str, str], name: str, default: bool = True) -> bool:
    return _flag(env.get(name), default)


@dataclass
class RateLimitConfig:
    requests: int
    window_ms: int

    def to_dict(self) -> Dict[str, int]:
        return {"requests": self.requests, "window_ms": self.window_ms}


@dataclass
class EngineConfig:
    api_key: str = ""
    api_url: str = "https://api.nullshot.ai/v1"
    models: List[str] = field(default_factory=lambda: list(DEFAULT_MODELS))
    enable_hitl: bool = True
    confidence_threshold: float = 0.8
    max_retries: int = 3
    retry_delay_ms: int = 1000
    timeout_ms: int = 30000
    request_timeout_ms: int = 20000
    enable_caching: bool = True
    cache_ttl_ms: int = 3600000
    cache_key_code_chars: int = 1000
    rate_limit: Optional[RateLimitConfig] = None
    enable_fallback: bool = True
    reviewer_weights: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_REVIEWER_WEIGHTS))
    default_reviewer_weight: float = DEFAULT_REVIEWER_WEIGHT
    max_code_length: int = 10 * 1024 * 1024

    def validate(self) -> "EngineConfig":
        if not self.models:
            raise ValueError("At least one reviewer model must be configured")
        if not 0.0 <= self.confidence_threshold <= 1.0:
            raise ValueError(f"confidence_threshold must be in [0, 1], got {self.confidence_threshold}")
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.retry_delay_ms < 0:
            raise ValueError(f"retry_delay_ms must be >= 0, got {self.retry_delay_ms}")
        if self.timeout_ms <= 0:
            raise ValueError(f"timeout_ms must be > 0, got {self.timeout_ms}")
        if self.cache_ttl_ms <= 0:
            raise ValueError(f"cache_ttl_ms must be > 0, got {self.cache_ttl_ms}")
        if self.rate_limit is not None and (
            self.rate_limit.requests <= 0 or self.rate_limit.window_ms <= 0
        ):
            raise ValueError("rate_limit requests and window_ms must be positive")
        for reviewer_id, weight in {
            **self.reviewer_weights,
            "<default>": self.default_reviewer_weight,
        }.items():
            if not 0.0 < weight <= 1.0:
                raise ValueError(f"Weight for reviewer '{reviewer_id}' must be in (0, 1], got {weight}")
        return self

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EngineConfig":
        """Create from a mapping (e.g. parsed YAML). Unknown keys are ignored."""
        rate_limit = data.get("rate_limit")
        defaults = cls()
        config = cls(
            api_key=data.get("api_key", defaults.api_key) or "",
            api_url=data.get("api_url", defaults.api_url),
            models=list(data.get("models", defaults.models)),
            enable_hitl=_flag(data.get("enable_hitl"), defaults.enable_hitl),
            confidence_threshold=float(data.get("confidence_threshold", defaults.confidence_threshold)),
            max_retries=int(data.get("max_retries", defaults.max_retries)),
            retry_delay_ms=int(data.get("retry_delay_ms", defaults.retry_delay_ms)),
            timeout_ms=int(data.get("timeout_ms", defaults.timeout_ms)),
            request_timeout_ms=int(data.get("request_timeout_ms", defaults.request_timeout_ms)),
            enable_caching=_flag(data.get("enable_caching"), defaults.enable_caching),
            cache_ttl_ms=int(data.get("cache_ttl_ms", defaults.cache_ttl_ms)),
            cache_key_code_chars=int(data.get("cache_key_code_chars", defaults.cache_key_code_chars)),
            rate_limit=(
                RateLimitConfig(int(rate_limit["requests"]), int(rate_limit["window_ms"]))
                if rate_limit
                else None
            ),
            enable_fallback=_flag(data.get("enable_fallback"), defaults.enable_fallback),
            reviewer_weights={
                str(k): float(v)
                for k, v in (data.get("reviewer_weights") or defaults.reviewer_weights).items()
            },
            default_reviewer_weight=float(
                data.get("default_reviewer_weight", defaults.default_reviewer_weight)
            ),
            max_code_length=int(data.get("max_code_length", defaults.max_code_length)),
        )
        return config.validate()

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "EngineConfig":
        """Build from ``NULLAUDIT_*`` environment variables."""
        env = os.environ if env is None else env
        models = [m.strip() for m in env.get("NULLAUDIT_MODELS", "").split(",") if m.strip()]
        config = cls(
            api_key=env.get("NULLAUDIT_API_KEY", ""),
            api_url=env.get("NULLAUDIT_API_URL") or "https://api.nullshot.ai/v1",
            models=models or list(DEFAULT_MODELS),
            enable_hitl=_env_flag(env, "NULLAUDIT_ENABLE_HITL"),
            confidence_threshold=float(env.get("NULLAUDIT_CONFIDENCE_THRESHOLD", "0.8")),
            max_retries=int(env.get("NULLAUDIT_MAX_RETRIES", "3")),
            retry_delay_ms=int(env.get("NULLAUDIT_RETRY_DELAY", "1000")),
            timeout_ms=int(env.get("NULLAUDIT_TIMEOUT", "30000")),
            enable_caching=_env_flag(env, "NULLAUDIT_ENABLE_CACHE"),
            cache_ttl_ms=int(env.get("NULLAUDIT_CACHE_TTL", "3600000")),
            rate_limit=RateLimitConfig(
                requests=int(env.get("NULLAUDIT_RATE_LIMIT_REQUESTS", "100")),
                window_ms=int(env.get("NULLAUDIT_RATE_LIMIT_WINDOW_MS", "60000")),
            ),
            enable_fallback=_env_flag(env, "NULLAUDIT_ENABLE_FALLBACK"),
        )
        return config.validate()
