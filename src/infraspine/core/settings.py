"""Run settings for infraspine.

Every optional behaviour of a run (target, concurrency, retry policy,
deadline, phase, lifecycle overrides, output format) is an explicit field
here and is handed to the executor at construction. Nothing is read from
process-wide flags during a run.

Manifesto:
    - **Pydantic validation:** Type-checked when the run is configured
    - **Environment-driven:** ``INFRASPINE_*`` variables and ``.env`` files
    - **Sensible defaults:** A modest worker pool, since provider rate limits
      are the bottleneck, not local compute

Examples:
    >>> from infraspine.core.settings import Settings
    >>> settings = Settings(target="terraform", out_dir="out")
    >>> settings.max_concurrency
    4

    Environment::

        INFRASPINE_TARGET=cloudformation
        INFRASPINE_LIFECYCLE_OVERRIDES='{"IAMRole": "MustExistAndWarnOnDrift"}'

Tags:
    settings, configuration, pydantic, environment
"""

from __future__ import annotations

from enum import Enum
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from infraspine.core.errors import ConfigError
from infraspine.core.logging import configure_logging
from infraspine.execution.retry import ExponentialBackoff
from infraspine.tasks.task import Lifecycle, Phase


class TargetKind(str, Enum):
    """Where a run sends its mutations."""

    DIRECT = "direct"
    DRY_RUN = "dryrun"
    TERRAFORM = "terraform"
    CLOUDFORMATION = "cloudformation"


DEFAULT_TRANSIENT_ERROR_CODES = [
    "RequestLimitExceeded",
    "Throttling",
    "InvalidVpcID.NotFound",
    "InvalidSubnetID.NotFound",
    "InvalidGroup.NotFound",
    "InvalidInstanceID.NotFound",
    "NoSuchEntity",
]


class Settings(BaseSettings):
    """Configuration for one run.

    Fields
    ──────
    target                    : direct | dryrun | terraform | cloudformation
    out_dir                   : Where static renderers write their document
    max_concurrency           : Worker slots per wave
    deadline_seconds          : Run-wide wall clock budget (None = unbounded)
    max_task_duration_seconds : Per-task budget across NotReady retries
    retry_*                   : NotReady backoff policy
    transient_error_codes     : Provider error codes treated as NotReady
    terraform_json_output     : Emit kubernetes.tf.json instead of HCL
    phase                     : Restrict the run to one provisioning phase
    lifecycle_overrides       : Task kind -> lifecycle
    """

    model_config = SettingsConfigDict(
        env_prefix="INFRASPINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Target ───────────────────────────────────────────────────
    target: TargetKind = Field(default=TargetKind.DIRECT)
    out_dir: Path = Field(default=Path("out"), description="Output directory for rendered documents")
    terraform_json_output: bool = Field(default=False)

    # ── Execution ────────────────────────────────────────────────
    max_concurrency: int = Field(default=4, ge=1)
    deadline_seconds: float | None = Field(default=1800.0, gt=0)
    max_task_duration_seconds: float | None = Field(default=600.0, gt=0)

    # ── NotReady retries ─────────────────────────────────────────
    retry_max_attempts: int = Field(default=10, ge=0)
    retry_base_delay: float = Field(default=1.0, ge=0)
    retry_max_delay: float = Field(default=30.0, ge=0)
    retry_multiplier: float = Field(default=2.0, ge=1)
    retry_jitter: bool = Field(default=True)
    transient_error_codes: list[str] = Field(default_factory=lambda: list(DEFAULT_TRANSIENT_ERROR_CODES))

    # ── Task selection ───────────────────────────────────────────
    phase: Phase | None = Field(default=None)
    lifecycle_overrides: dict[str, Lifecycle] = Field(default_factory=dict)

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console")

    @field_validator("log_format")
    @classmethod
    def _check_log_format(cls, value: str) -> str:
        if value not in ("console", "json"):
            raise ValueError("log_format must be 'console' or 'json'")
        return value

    def apply_logging(self) -> None:
        """Install the structlog configuration named by ``log_level`` and ``log_format``."""
        configure_logging(level=self.log_level, json_format=self.log_format == "json")

    def retry_strategy(self) -> ExponentialBackoff:
        """NotReady backoff built from the retry fields."""
        return ExponentialBackoff(
            max_retries=self.retry_max_attempts,
            base_delay=self.retry_base_delay,
            max_delay=self.retry_max_delay,
            multiplier=self.retry_multiplier,
            jitter=self.retry_jitter,
        )


def parse_lifecycle_overrides(values: list[str]) -> dict[str, Lifecycle]:
    """
    Parse ``Kind=Lifecycle`` pairs.

    Example:
        >>> parse_lifecycle_overrides(["IAMRole=MustExistAndWarnOnDrift"])
        {'IAMRole': <Lifecycle.MUST_EXIST_AND_WARN_ON_DRIFT: 'MustExistAndWarnOnDrift'>}
    """
    overrides: dict[str, Lifecycle] = {}
    for value in values:
        kind, sep, lifecycle = value.partition("=")
        kind = kind.strip()
        if not sep or not kind:
            raise ConfigError(f"invalid lifecycle override {value!r}, expected Kind=Lifecycle")
        try:
            overrides[kind] = Lifecycle(lifecycle.strip())
        except ValueError:
            valid = ", ".join(item.value for item in Lifecycle)
            raise ConfigError(f"unknown lifecycle {lifecycle!r} for {kind}, expected one of: {valid}") from None
    return overrides


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Settings from the environment, cached for the process."""
    return Settings()
