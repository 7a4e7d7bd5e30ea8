from __future__ import annotations

import os
from typing import List, Literal, Optional

import yaml
from pydantic import BaseModel, Field

from .constants import DEFAULT_MAX_ATTEMPTS, DEFAULT_RUN_TIMEOUT, DEFAULT_STEP_TIMEOUT


class RedisConfig(BaseModel):
    """Configuration for Redis transport."""

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None


class TransportConfig(BaseModel):
    """Transport configuration settings."""

    backend: Literal["inmemory", "redis"] = "inmemory"
    redis: RedisConfig = RedisConfig()


class RetryConfig(BaseModel):
    """Bounded exponential backoff for transient step failures."""

    max_attempts: int = Field(default=DEFAULT_MAX_ATTEMPTS, ge=1)
    backoff_base: float = 1.5
    jitter: float = 0.5
    max_delay: float = 10.0


class EngineConfig(BaseModel):
    """Workflow engine settings."""

    retry: RetryConfig = RetryConfig()
    step_timeout: Optional[float] = DEFAULT_STEP_TIMEOUT
    run_timeout: Optional[float] = DEFAULT_RUN_TIMEOUT
    parallel_agents: bool = True
    embedded_worker: bool = True


class LLMConfig(BaseModel):
    """Language model collaborator settings."""

    model: str = "google-gla:gemini-2.0-flash"


class AuthConfig(BaseModel):
    """Bearer token verification settings."""

    secret: Optional[str] = None
    algorithm: str = "HS256"
    audience: Optional[str] = None
    issuer: Optional[str] = None
    leeway: int = 30


class TaxSlab(BaseModel):
    """One bracket of a marginal-rate ladder; ``upper=None`` is unbounded."""

    lower: float
    upper: Optional[float] = None
    rate: float


class TaxRegimeConfig(BaseModel):
    """Slab schedule and rebate rule for one tax regime."""

    name: Literal["new", "old"]
    slabs: List[TaxSlab]
    rebate_threshold: float
    rebate_cap: Optional[float] = None
    standard_deduction: float = 0.0
    allows_deductions: bool = False


def _new_regime() -> TaxRegimeConfig:
    return TaxRegimeConfig(
        name="new",
        slabs=[
            TaxSlab(lower=0, upper=300_000, rate=0.0),
            TaxSlab(lower=300_000, upper=700_000, rate=0.05),
            TaxSlab(lower=700_000, upper=1_000_000, rate=0.10),
            TaxSlab(lower=1_000_000, upper=1_200_000, rate=0.15),
            TaxSlab(lower=1_200_000, upper=1_500_000, rate=0.20),
            TaxSlab(lower=1_500_000, upper=None, rate=0.30),
        ],
        rebate_threshold=700_000,
        standard_deduction=50_000,
    )


def _old_regime() -> TaxRegimeConfig:
    return TaxRegimeConfig(
        name="old",
        slabs=[
            TaxSlab(lower=0, upper=250_000, rate=0.0),
            TaxSlab(lower=250_000, upper=500_000, rate=0.05),
            TaxSlab(lower=500_000, upper=1_000_000, rate=0.20),
            TaxSlab(lower=1_000_000, upper=None, rate=0.30),
        ],
        rebate_threshold=500_000,
        rebate_cap=12_500,
        allows_deductions=True,
    )


class FinanceConfig(BaseModel):
    """Constants used by the financial math library and analysis engine.

    The defaults describe the Indian FY 2024-25 rules and are meant to be
    replaced through configuration when the rules change.
    """

    new_regime: TaxRegimeConfig = Field(default_factory=_new_regime)
    old_regime: TaxRegimeConfig = Field(default_factory=_old_regime)
    cess_rate: float = 0.04
    default_deductions: float = 150_000

    default_age: int = 30
    default_dependents: int = 2
    default_monthly_income: float = 50_000
    default_monthly_expenses: float = 30_000

    retirement_age: int = 60
    inflation_rate: float = 0.06
    return_rate: float = 0.12
    real_return_spread: float = 0.02

    income_replacement_factor: float = 0.7
    life_cover_per_dependent: float = 500_000
    health_cover_per_dependent: float = 300_000


class ArthagentConfig(BaseModel):
    """Top-level configuration model."""

    transport: TransportConfig = TransportConfig()
    engine: EngineConfig = EngineConfig()
    llm: LLMConfig = LLMConfig()
    auth: AuthConfig = AuthConfig()
    finance: FinanceConfig = FinanceConfig()
    database_url: Optional[str] = None
    store_url: Optional[str] = None
    log_level: str = "INFO"


def load_config(path: Optional[str] = None) -> ArthagentConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to ARTHAGENT_CONFIG env
            variable or 'config.yaml' in the current directory.
    """

    config_path = path or os.getenv("ARTHAGENT_CONFIG", "config.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = ArthagentConfig(**data)
    else:
        config = ArthagentConfig()

    env_db_url = os.getenv("ARTHAGENT_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    env_store_url = os.getenv("ARTHAGENT_STORE_URL")
    if env_store_url:
        config.store_url = env_store_url
    env_transport = os.getenv("ARTHAGENT_TRANSPORT")
    if env_transport:
        config.transport.backend = env_transport.lower()
    env_secret = os.getenv("ARTHAGENT_JWT_SECRET")
    if env_secret:
        config.auth.secret = env_secret
    env_model = os.getenv("ARTHAGENT_LLM_MODEL")
    if env_model:
        config.llm.model = env_model
    return config
