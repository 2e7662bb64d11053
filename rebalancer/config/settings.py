"""Application settings and configuration management."""

from pathlib import Path
from typing import Literal

import structlog
import yaml
from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings

from ..core.types import RiskLevel

logger = structlog.get_logger(__name__)

PROFILES = ("dev", "paper", "prod")


class AppSettings(BaseSettings):
    """Application settings with environment variable support."""

    # Environment and mode
    env: Literal["dev", "paper", "prod"] = Field(
        description="Environment: dev, paper, prod"
    )

    # Portfolio construction
    default_risk_level: RiskLevel = Field(
        default="moderate", description="Risk level used before signals accumulate"
    )
    portfolio_size: int = Field(
        default=10, ge=1, description="Target number of tokens per portfolio"
    )
    history_window: int = Field(
        default=24, ge=2, description="Trend history points kept per series"
    )

    # Scheduling
    cycle_interval_seconds: float = Field(
        default=3600, gt=0, description="Seconds between rebalance checks"
    )
    retry_delay_seconds: float = Field(
        default=300, gt=0, description="Seconds to wait after a failed cycle"
    )
    refresh_timeout_seconds: float = Field(
        default=60, gt=0, description="Timeout for each market data fetch"
    )
    instruction_timeout_seconds: float = Field(
        default=60, gt=0, description="Timeout for each trade instruction"
    )

    # Reconciliation
    balance_buffer_ratio: float = Field(
        default=0.99,
        gt=0,
        le=1,
        description="Share of available balance spent on buys",
    )
    fear_greed_shift_threshold: int = Field(
        default=20, ge=0, description="Fear/greed change that forces a rebalance"
    )

    # Paper wallet
    paper_starting_balance: float = Field(
        default=10.0, ge=0, description="Starting quote balance for paper mode"
    )
    paper_slippage_bps: int = Field(
        default=100, ge=0, description="Paper slippage in basis points"
    )
    paper_fee_bps: int = Field(default=50, ge=0, description="Paper fee in basis points")

    # Execution mode
    dry_run: bool = Field(default=True, description="Dry run mode (no real trades)")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }


def load_settings(profile: str, yaml_path: str) -> AppSettings:
    """Load settings from YAML file and environment variables.

    Args:
        profile: Configuration profile name (dev, paper, prod)
        yaml_path: Path to YAML configuration file

    Returns:
        AppSettings instance with loaded configuration

    Raises:
        FileNotFoundError: If YAML file doesn't exist
        ValidationError: If configuration is invalid
        ValueError: If profile is invalid
    """
    if profile not in PROFILES:
        raise ValueError(
            f"Invalid profile: {profile}. Must be one of: {', '.join(PROFILES)}"
        )

    yaml_file = Path(yaml_path)
    if not yaml_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {yaml_path}")

    try:
        with open(yaml_file, encoding="utf-8") as f:
            yaml_config = yaml.safe_load(f) or {}

        if not isinstance(yaml_config, dict):
            raise ValueError(
                f"Invalid YAML configuration: expected a mapping in {yaml_path}"
            )

        yaml_config["env"] = profile

        # dev keeps whatever dry_run the YAML sets
        if profile == "paper":
            yaml_config["dry_run"] = True
        elif profile == "prod":
            yaml_config["dry_run"] = False

        logger.info("Loading configuration", profile=profile, yaml_path=yaml_path)

        settings = AppSettings(**yaml_config)

        logger.info(
            "Configuration loaded successfully",
            profile=profile,
            dry_run=settings.dry_run,
            risk_level=settings.default_risk_level,
            portfolio_size=settings.portfolio_size,
        )

        return settings

    except yaml.YAMLError as e:
        logger.error("Failed to parse YAML configuration", error=str(e))
        raise ValueError(f"Invalid YAML configuration: {e}") from e
    except ValidationError as e:
        logger.error("Configuration validation failed", error=str(e))
        raise
    except Exception as e:
        logger.error("Unexpected error loading configuration", error=str(e))
        raise
