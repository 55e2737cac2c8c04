"""Tests for configuration management."""

import tempfile

import pytest
from pydantic import ValidationError

from sniper.config.settings import WSOL_MINT, AppSettings, load_settings


def _write_yaml(body: str) -> str:
    with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
        f.write(body)
        return f.name


def test_app_settings_defaults() -> None:
    """Test that AppSettings has correct defaults."""
    settings = AppSettings(_env_file=None, env="dev", rpc_url="https://api.devnet.solana.com")

    assert settings.quote_mint == WSOL_MINT
    assert settings.transaction_executor == "default"
    assert settings.compute_unit_limit == 101337
    assert settings.compute_unit_price == 421197
    assert settings.max_tokens_at_the_time == 1
    assert settings.max_lag == 0
    assert settings.take_profit == 40.0
    assert settings.stop_loss == 20.0
    assert settings.consecutive_filter_matches == 3
    assert settings.macd_short_period == 12
    assert settings.macd_long_period == 26
    assert settings.macd_signal_period == 9
    assert settings.rsi_period == 14
    assert settings.auto_sell is True
    assert settings.dry_run is True


def test_app_settings_validation() -> None:
    """Missing or invalid required fields are rejected."""
    with pytest.raises(ValidationError):
        AppSettings(_env_file=None, env="dev")

    with pytest.raises(ValidationError):
        AppSettings(_env_file=None, env="invalid", rpc_url="https://rpc.test")

    with pytest.raises(ValidationError):
        AppSettings(
            _env_file=None, env="dev", rpc_url="https://rpc.test", transaction_executor="carrier-pigeon"
        )


@pytest.mark.parametrize(
    "overrides",
    [
        {"macd_short_period": 26, "macd_long_period": 12},
        {"max_tokens_at_the_time": 0},
        {"min_pool_size": 100, "max_pool_size": 50},
        {"transaction_executor": "jito", "custom_fee": 0},
        {"paper_failure_rate": 1.5},
    ],
)
def test_cross_field_validation(overrides) -> None:
    """Inconsistent knob combinations fail validation."""
    with pytest.raises(ValidationError):
        AppSettings(_env_file=None, env="dev", rpc_url="https://rpc.test", **overrides)


def test_unbounded_max_pool_size_allows_any_min() -> None:
    settings = AppSettings(
        _env_file=None, env="dev", rpc_url="https://rpc.test", min_pool_size=100, max_pool_size=0
    )
    assert settings.min_pool_size == 100


def test_journal_path() -> None:
    settings = AppSettings(
        _env_file=None,
        env="dev",
        rpc_url="https://rpc.test",
        database_url="sqlite+aiosqlite:///./journal.sqlite",
    )
    assert settings.journal_path == "./journal.sqlite"

    disabled = AppSettings(_env_file=None, env="dev", rpc_url="https://rpc.test", database_url="")
    assert disabled.journal_path is None


def test_load_settings_paper_profile_forces_dry_run() -> None:
    """Paper profile always runs dry, whatever the YAML says."""
    path = _write_yaml(
        """
rpc_url: "https://api.devnet.solana.com"
dry_run: false
take_profit: 10
max_lag: 5
"""
    )
    settings = load_settings("paper", path)

    assert settings.env == "paper"
    assert settings.dry_run is True
    assert settings.take_profit == 10
    assert settings.max_lag == 5


def test_load_settings_prod_profile_disables_dry_run() -> None:
    path = _write_yaml('rpc_url: "https://api.mainnet-beta.solana.com"\n')
    settings = load_settings("prod", path)

    assert settings.env == "prod"
    assert settings.dry_run is False


def test_load_settings_empty_file_needs_rpc_url() -> None:
    path = _write_yaml("")
    with pytest.raises(ValidationError):
        load_settings("dev", path)


def test_load_settings_invalid_profile() -> None:
    with pytest.raises(ValueError, match="Invalid profile"):
        load_settings("staging", "does-not-matter.yaml")


def test_load_settings_missing_file() -> None:
    with pytest.raises(FileNotFoundError):
        load_settings("dev", "/nonexistent/config.yaml")


def test_load_settings_invalid_yaml() -> None:
    path = _write_yaml("rpc_url: [unclosed\n")
    with pytest.raises(ValueError, match="Invalid YAML"):
        load_settings("dev", path)
