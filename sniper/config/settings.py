"""Application settings and configuration management."""

from pathlib import Path
from typing import Literal

import structlog
import yaml
from pydantic import Field, ValidationError, model_validator
from pydantic_settings import BaseSettings

logger = structlog.get_logger(__name__)

WSOL_MINT = "So11111111111111111111111111111111111111112"


class AppSettings(BaseSettings):
    """Application settings with environment variable support."""

    # Environment and mode
    env: Literal["dev", "paper", "prod"] = Field(
        description="Environment: dev, paper, prod"
    )
    dry_run: bool = Field(default=True, description="Dry run mode (no real trades)")
    log_level: str = Field(default="INFO", description="Log level")

    # Network
    rpc_url: str = Field(description="Solana RPC URL")
    commitment: str = Field(default="confirmed", description="Commitment level")
    quote_mint: str = Field(default=WSOL_MINT, description="Quote asset mint")
    quote_decimals: int = Field(default=9, description="Quote asset decimals")
    wallet_public_key: str | None = Field(
        default=None, description="Trading wallet public key"
    )
    dexscreener_base: str = Field(
        default="https://api.dexscreener.com",
        description="DexScreener API base URL (social links)",
    )

    # Transaction execution
    transaction_executor: Literal["default", "warp", "jito"] = Field(
        default="default", description="Landing strategy"
    )
    compute_unit_limit: int = Field(
        default=101337, description="Compute unit limit for transactions"
    )
    compute_unit_price: int = Field(
        default=421197, description="Compute unit price in micro lamports"
    )
    custom_fee: float = Field(
        default=0.006, description="Relay tip in quote units (warp/jito)"
    )
    warp_url: str = Field(
        default="https://tx.warp.id/transaction/execute",
        description="Priority-fee relay endpoint",
    )
    jito_url: str = Field(
        default="https://mainnet.block-engine.jito.wtf/api/v1/bundles",
        description="Bundle relay endpoint",
    )
    confirmation_timeout: float = Field(
        default=60.0, description="Hard timeout per execution attempt (s)"
    )
    confirmation_poll_interval: float = Field(
        default=2.0, description="Signature status poll period (s)"
    )
    builder_command: str | None = Field(
        default=None, description="External command that builds and signs swaps (live mode)"
    )
    builder_timeout: float = Field(default=30.0, description="Timeout per build (s)")

    # Paper trading
    paper_quote_balance: float = Field(default=10.0, description="Simulated wallet balance")
    paper_latency: float = Field(default=0.0, description="Simulated landing latency (s)")
    paper_failure_rate: float = Field(
        default=0.0, ge=0.0, le=1.0, description="Probability an attempt fails"
    )

    # Admission
    max_lag: float = Field(default=0, description="Max pool age at observation (s), 0 off")
    max_tokens_at_the_time: int = Field(
        default=1, description="Max concurrent non-terminal positions"
    )
    use_snipe_list: bool = Field(default=False, description="Only buy listed mints")
    snipe_list_path: str = Field(default="snipe-list.txt", description="Snipe list file")
    snipe_list_refresh_interval: float = Field(
        default=30.0, description="Snipe list reload period (s)"
    )
    blacklist_path: str | None = Field(
        default=None, description="Update-authority blacklist file"
    )
    blacklist_refresh_interval: float = Field(
        default=30.0, description="Blacklist reload period (s)"
    )

    # Buy
    quote_amount: float = Field(default=0.001, description="Quote spent per buy")
    buy_slippage: float = Field(default=20.0, description="Buy slippage (%)")
    auto_buy_delay: float = Field(default=0.0, description="Delay before buying (s)")
    max_buy_retries: int = Field(default=10, description="Buy attempts")

    # Sell
    auto_sell: bool = Field(default=True, description="Monitor and sell automatically")
    auto_sell_delay: float = Field(default=0.0, description="Delay before selling (s)")
    max_sell_retries: int = Field(default=10, description="Sell attempts")
    sell_slippage: float = Field(default=20.0, description="Sell slippage (%)")
    take_profit: float = Field(default=40.0, description="Take profit (%)")
    stop_loss: float = Field(default=20.0, description="Stop loss (%)")
    trailing_stop_loss: bool = Field(default=False, description="Trail the stop")
    skip_selling_if_lost_more_than: float = Field(
        default=0.0, description="Stop auto-selling past this loss (%), 0 off"
    )
    price_check_interval: float = Field(default=2.0, description="Monitor tick (s)")
    price_check_duration: float = Field(
        default=600.0, description="Monitor budget before timeout action (s)"
    )
    force_sell_on_timeout: bool = Field(
        default=True,
        description="Sell when the monitor budget ends; otherwise keep waiting",
    )

    # Filters
    filter_check_interval: float = Field(default=2.0, description="Filter round period (s)")
    filter_check_duration: float = Field(
        default=60.0, description="Total time allowed for filters (s)"
    )
    consecutive_filter_matches: int = Field(
        default=3, description="Consecutive passing rounds required"
    )
    check_if_mint_is_renounced: bool = Field(default=True)
    check_if_freezable: bool = Field(default=False)
    check_if_burned: bool = Field(default=True)
    check_if_mutable: bool = Field(default=False)
    check_if_socials: bool = Field(default=False)
    min_pool_size: float = Field(default=5.0, description="Min quote reserve, 0 off")
    max_pool_size: float = Field(default=50.0, description="Max quote reserve, 0 off")
    check_holders: bool = Field(default=False, description="Require min_holders")
    min_holders: int = Field(default=10)
    check_token_distribution: bool = Field(
        default=False, description="Cap the top holders' share"
    )
    top_holders_count: int = Field(default=10)
    max_top_holders_pct: float = Field(default=50.0)
    check_abnormal_distribution: bool = Field(default=False)
    max_equal_holders: int = Field(
        default=3, description="Max non-pool holders with identical balances"
    )

    # Technical analysis
    use_ta: bool = Field(default=False, description="Use MACD/RSI sell votes")
    macd_short_period: int = Field(default=12)
    macd_long_period: int = Field(default=26)
    macd_signal_period: int = Field(default=9)
    rsi_period: int = Field(default=14)
    auto_sell_without_sell_signal: bool = Field(
        default=True, description="Take profit without a TA sell vote"
    )

    # Buy signal
    buy_signal_time_to_wait: float = Field(
        default=0.0, description="Max wait for a price rise before buying (s), 0 off"
    )
    buy_signal_price_interval: float = Field(default=1.0)
    buy_signal_min_rise_fraction: float = Field(
        default=0.05, description="Required rise within one sampling interval"
    )
    buy_signal_low_volume_threshold: float = Field(
        default=0.0, description="Min quote volume seen while waiting, 0 off"
    )

    # Notifications
    use_telegram: bool = Field(default=False)
    telegram_bot_token: str | None = Field(default=None)
    telegram_chat_id: int | None = Field(default=None)
    telegram_thread_id: int | None = Field(default=None)

    # Data storage
    database_url: str = Field(
        default="sqlite+aiosqlite:///./sniper.sqlite",
        description="Trade journal URL, empty disables it",
    )

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }

    @model_validator(mode="after")
    def _check_consistency(self) -> "AppSettings":
        if self.macd_short_period >= self.macd_long_period:
            raise ValueError("macd_short_period must be below macd_long_period")
        if self.max_tokens_at_the_time < 1:
            raise ValueError("max_tokens_at_the_time must be at least 1")
        if self.max_pool_size and self.min_pool_size > self.max_pool_size:
            raise ValueError("min_pool_size cannot exceed max_pool_size")
        if self.transaction_executor != "default" and self.custom_fee <= 0:
            raise ValueError("relay executors need a positive custom_fee")
        return self

    @property
    def journal_path(self) -> str | None:
        if not self.database_url:
            return None
        return self.database_url.replace("sqlite+aiosqlite:///", "")


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
    if profile not in ["dev", "paper", "prod"]:
        raise ValueError(
            f"Invalid profile: {profile}. Must be one of: dev, paper, prod"
        )

    yaml_file = Path(yaml_path)
    if not yaml_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {yaml_path}")

    try:
        with open(yaml_file, encoding="utf-8") as f:
            yaml_config = yaml.safe_load(f) or {}

        yaml_config["env"] = profile

        if profile == "paper":
            yaml_config["dry_run"] = True
        elif profile == "prod":
            yaml_config["dry_run"] = False
        # dev profile dry_run is set in YAML

        logger.info("Loading configuration", profile=profile, yaml_path=yaml_path)

        settings = AppSettings(**yaml_config)

        logger.info(
            "Configuration loaded successfully",
            profile=profile,
            dry_run=settings.dry_run,
            executor=settings.transaction_executor,
        )

        return settings

    except yaml.YAMLError as e:
        logger.error("Failed to parse YAML configuration", error=str(e))
        raise ValueError(f"Invalid YAML configuration: {e}") from e
    except ValidationError as e:
        logger.error("Configuration validation failed", error=str(e))
        raise
