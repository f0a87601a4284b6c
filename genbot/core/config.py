"""Configuration management for genbot.

Two sources:
- ``config/config.yaml`` (PyYAML) for tunables: queue, limits, backends,
  roles, permissions, stats.
- Environment / ``.env`` (pydantic-settings) for secrets, which override
  anything credential-like in the YAML file.
"""
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict

from .commands import JobKind

logger = logging.getLogger(__name__)


class BotSettings(BaseSettings):
    """Secrets and deployment settings with environment variable support."""

    DISCORD_TOKEN: str = ""
    OPENAI_TOKEN: str = ""
    DREAMBOOTH_TOKENS: str = ""  # Comma-separated API keys
    FUSIONBRAIN_KEY: str = ""
    FUSIONBRAIN_SECRET: str = ""

    GENBOT_CONFIG: str = "config/config.yaml"
    HEALTH_PORT: int = 9998

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "logs/genbot.log"
    LOG_MAX_BYTES: int = 10 * 1024 * 1024
    LOG_BACKUP_COUNT: int = 5
    LOGGING_HOST: str = ""  # Central log service, disabled when empty
    LOGGING_PORT: int = 9999

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    @property
    def dreambooth_tokens(self) -> List[str]:
        """DreamBooth API keys in rotation order."""
        return [t.strip() for t in self.DREAMBOOTH_TOKENS.split(",") if t.strip()]


# =============================================================================
# Queue Configuration
# =============================================================================

@dataclass
class QueueConfig:
    """Task queue and worker pool configuration."""
    # Worker pool (fixed at startup)
    worker_count: int = 3

    # Bounded task queue
    capacity: int = 100
    # Pump replies "overloaded" once this many tasks are pending
    overload_threshold: Optional[int] = None

    # Inbound message channel between transport and pump
    inbound_capacity: int = 100

    shutdown_timeout_seconds: float = 30.0

    @property
    def effective_overload_threshold(self) -> int:
        """Overload threshold, defaulting to the queue capacity."""
        if self.overload_threshold is None:
            return self.capacity
        return self.overload_threshold

    @classmethod
    def from_dict(cls, data: Dict) -> "QueueConfig":
        """Create QueueConfig from dictionary (e.g., from YAML)."""
        if not data:
            return cls()

        return cls(
            worker_count=data.get("worker_count", 3),
            capacity=data.get("capacity", 100),
            overload_threshold=data.get("overload_threshold"),
            inbound_capacity=data.get("inbound_capacity", 100),
            shutdown_timeout_seconds=data.get("shutdown_timeout_seconds", 30.0),
        )


# =============================================================================
# Per-session Limits
# =============================================================================

@dataclass
class LimitsConfig:
    """Maximum concurrent jobs per session, per backend kind."""
    max_jobs: Dict[JobKind, int] = field(
        default_factory=lambda: {kind: 1 for kind in JobKind}
    )

    def max_jobs_for(self, kind: JobKind) -> int:
        return self.max_jobs.get(kind, 1)

    @classmethod
    def from_dict(cls, data: Dict) -> "LimitsConfig":
        """Create LimitsConfig from a ``{kind: max_jobs}`` mapping."""
        limits = {kind: 1 for kind in JobKind}
        for name, value in (data or {}).items():
            try:
                limits[JobKind(name)] = int(value)
            except ValueError:
                logger.warning(f"Ignoring limit for unknown backend kind '{name}'")
        return cls(max_jobs=limits)


# =============================================================================
# Backend Configuration
# =============================================================================

@dataclass
class ChatGPTConfig:
    """Keyless chat-completions endpoint."""
    url: str = "https://gpt-chatbotru-chat-main.ru/api/openai/v1/chat/completions"
    model: str = "gpt-3.5"
    timeout_seconds: float = 120.0

    @classmethod
    def from_dict(cls, data: Dict) -> "ChatGPTConfig":
        if not data:
            return cls()

        return cls(
            url=data.get("url", cls.url),
            model=data.get("model", "gpt-3.5"),
            timeout_seconds=data.get("timeout_seconds", 120.0),
        )


@dataclass
class OpenAIConfig:
    """OpenAI REST API."""
    base_url: str = "https://api.openai.com/v1"
    token: str = ""
    text_model: str = "gpt-4-32k-0613"
    image_size: str = "1024x1024"
    timeout_seconds: float = 300.0
    # Retries apply to HTTP 429/503 only
    retry_count: int = 3
    retry_interval_seconds: float = 5.0

    @classmethod
    def from_dict(cls, data: Dict) -> "OpenAIConfig":
        if not data:
            return cls()

        return cls(
            base_url=data.get("base_url", "https://api.openai.com/v1"),
            token=data.get("token", ""),
            text_model=data.get("text_model", "gpt-4-32k-0613"),
            image_size=data.get("image_size", "1024x1024"),
            timeout_seconds=data.get("timeout_seconds", 300.0),
            retry_count=data.get("retry_count", 3),
            retry_interval_seconds=data.get("retry_interval_seconds", 5.0),
        )


@dataclass
class DreamBoothConfig:
    """DreamBooth (stablediffusionapi) with a rotating key pool."""
    base_url: str = "https://stablediffusionapi.com/api/v4/dreambooth"
    tokens: List[str] = field(default_factory=list)
    timeout_seconds: float = 600.0
    # Delay between polls of a queued generation
    retry_interval_seconds: float = 5.0
    # Upper bound on keys tried per request (None = every key once)
    max_attempts: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict) -> "DreamBoothConfig":
        if not data:
            return cls()

        return cls(
            base_url=data.get("base_url", "https://stablediffusionapi.com/api/v4/dreambooth"),
            tokens=list(data.get("tokens", [])),
            timeout_seconds=data.get("timeout_seconds", 600.0),
            retry_interval_seconds=data.get("retry_interval_seconds", 5.0),
            max_attempts=data.get("max_attempts"),
        )


@dataclass
class FusionBrainConfig:
    """FusionBrain (Kandinsky) API."""
    base_url: str = "https://api-key.fusionbrain.ai/key/api/v1"
    styles_url: str = "https://cdn.fusionbrain.ai/static/styles/api"
    key: str = ""
    secret_key: str = ""
    timeout_seconds: float = 600.0
    retry_interval_seconds: float = 3.0

    @classmethod
    def from_dict(cls, data: Dict) -> "FusionBrainConfig":
        if not data:
            return cls()

        return cls(
            base_url=data.get("base_url", "https://api-key.fusionbrain.ai/key/api/v1"),
            styles_url=data.get("styles_url", "https://cdn.fusionbrain.ai/static/styles/api"),
            key=data.get("key", ""),
            secret_key=data.get("secret_key", ""),
            timeout_seconds=data.get("timeout_seconds", 600.0),
            retry_interval_seconds=data.get("retry_interval_seconds", 3.0),
        )


# =============================================================================
# Access Control
# =============================================================================

@dataclass
class AccessConfig:
    """Role membership and per-role command permissions.

    ``*`` in a member list matches any username; ``*`` in a command list
    allows every command.
    """
    admins: List[str] = field(default_factory=list)
    users: List[str] = field(default_factory=lambda: ["*"])
    admin_commands: List[str] = field(default_factory=lambda: ["*"])
    user_commands: List[str] = field(default_factory=lambda: [
        "start", "stop", "help", "chatGPT", "dreamBooth", "dreamBoothExample",
        "fusionBrain", "fusionBrainExample", "cancelJob", "listJobs",
    ])

    @classmethod
    def from_dict(cls, roles: Dict, permissions: Dict) -> "AccessConfig":
        defaults = cls()
        roles = roles or {}
        permissions = permissions or {}
        return cls(
            admins=list(roles.get("admin", defaults.admins)),
            users=list(roles.get("user", defaults.users)),
            admin_commands=list(permissions.get("admin", defaults.admin_commands)),
            user_commands=list(permissions.get("user", defaults.user_commands)),
        )


# =============================================================================
# Statistics
# =============================================================================

@dataclass
class StatsConfig:
    """Request statistics CSV."""
    filepath: str = "data/stats.csv"
    flush_interval_seconds: float = 60.0
    timezone: str = "UTC"

    @classmethod
    def from_dict(cls, data: Dict) -> "StatsConfig":
        if not data:
            return cls()

        return cls(
            filepath=data.get("filepath", "data/stats.csv"),
            flush_interval_seconds=data.get("flush_interval_seconds", 60.0),
            timezone=data.get("timezone", "UTC"),
        )


class Config:
    """
    Configuration manager for genbot.

    Loads the YAML file, then applies secrets from ``BotSettings``.
    """

    def __init__(
        self,
        config_path: str = "config/config.yaml",
        settings: Optional[BotSettings] = None,
    ):
        self._config_path = Path(config_path)
        self._data: Dict = {}
        self._queue: QueueConfig = None
        self._limits: LimitsConfig = None
        self._chatgpt: ChatGPTConfig = None
        self._openai: OpenAIConfig = None
        self._dreambooth: DreamBoothConfig = None
        self._fusionbrain: FusionBrainConfig = None
        self._access: AccessConfig = None
        self._stats: StatsConfig = None

        self._load_config()
        self._load_queue_config()
        self._load_limits_config()
        self._load_backends()
        self._load_access_config()
        self._load_stats_config()
        if settings is not None:
            self._apply_secrets(settings)

    @classmethod
    def from_dict(cls, data: Dict, settings: Optional[BotSettings] = None) -> "Config":
        """Build a Config from an in-memory dictionary (tests, embedding)."""
        config = cls.__new__(cls)
        config._config_path = None
        config._data = data or {}
        config._load_queue_config()
        config._load_limits_config()
        config._load_backends()
        config._load_access_config()
        config._load_stats_config()
        if settings is not None:
            config._apply_secrets(settings)
        return config

    def _load_config(self):
        """Load configuration from YAML file."""
        if self._config_path.exists():
            self._data = yaml.safe_load(self._config_path.read_text()) or {}
        else:
            logger.warning(f"Config file not found: {self._config_path}, using defaults")
            self._data = {}

    def _load_queue_config(self):
        self._queue = QueueConfig.from_dict(self._data.get("queue", {}))
        logger.info(
            f"Loaded queue config: workers={self._queue.worker_count}, "
            f"capacity={self._queue.capacity}"
        )

    def _load_limits_config(self):
        self._limits = LimitsConfig.from_dict(self._data.get("limits", {}))

    def _load_backends(self):
        """Load backend configurations."""
        backends = self._data.get("backends", {})
        self._chatgpt = ChatGPTConfig.from_dict(backends.get("chatgpt", {}))
        self._openai = OpenAIConfig.from_dict(backends.get("openai", {}))
        self._dreambooth = DreamBoothConfig.from_dict(backends.get("dreambooth", {}))
        self._fusionbrain = FusionBrainConfig.from_dict(backends.get("fusionbrain", {}))

    def _load_access_config(self):
        self._access = AccessConfig.from_dict(
            self._data.get("roles", {}),
            self._data.get("permissions", {}),
        )
        logger.info(
            f"Loaded access config: {len(self._access.admins)} admins, "
            f"{len(self._access.users)} users"
        )

    def _load_stats_config(self):
        self._stats = StatsConfig.from_dict(self._data.get("stats", {}))

    def _apply_secrets(self, settings: BotSettings):
        """Environment secrets override YAML values when set."""
        if settings.OPENAI_TOKEN:
            self._openai.token = settings.OPENAI_TOKEN
        if settings.dreambooth_tokens:
            self._dreambooth.tokens = settings.dreambooth_tokens
            logger.info(f"DreamBooth tokens overridden by env var ({len(self._dreambooth.tokens)} keys)")
        if settings.FUSIONBRAIN_KEY:
            self._fusionbrain.key = settings.FUSIONBRAIN_KEY
        if settings.FUSIONBRAIN_SECRET:
            self._fusionbrain.secret_key = settings.FUSIONBRAIN_SECRET

    @property
    def queue(self) -> QueueConfig:
        """Get queue configuration."""
        return self._queue

    @property
    def limits(self) -> LimitsConfig:
        """Get per-session job limits."""
        return self._limits

    @property
    def chatgpt(self) -> ChatGPTConfig:
        return self._chatgpt

    @property
    def openai(self) -> OpenAIConfig:
        return self._openai

    @property
    def dreambooth(self) -> DreamBoothConfig:
        return self._dreambooth

    @property
    def fusionbrain(self) -> FusionBrainConfig:
        return self._fusionbrain

    def job_timeouts(self) -> Dict[JobKind, float]:
        """Per-kind job timeout in seconds."""
        return {
            JobKind.CHATGPT: self._chatgpt.timeout_seconds,
            JobKind.OPENAI: self._openai.timeout_seconds,
            JobKind.DREAMBOOTH: self._dreambooth.timeout_seconds,
            JobKind.FUSIONBRAIN: self._fusionbrain.timeout_seconds,
        }

    @property
    def access(self) -> AccessConfig:
        """Get roles and permissions."""
        return self._access

    @property
    def stats(self) -> StatsConfig:
        return self._stats

    @property
    def blacklist_path(self) -> str:
        """Get the blacklist file path."""
        return os.getenv("GENBOT_BLACKLIST_PATH", self._data.get("blacklist_path", "data/blacklist.txt"))

    @property
    def max_log_rows(self) -> int:
        """Number of trailing log lines returned by the ``logs`` command."""
        return int(self._data.get("max_log_rows", 100))
