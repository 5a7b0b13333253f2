"""
Configuration management and loading.

Handles storage location, autosave tuning, model defaults and pricing.
"""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Dict, Optional

import yaml

from prompt_vault.core.pricing import PRICING_TABLE, ModelPricing, PricingTable
from prompt_vault.storage.db import DEFAULT_DB_PATH
from prompt_vault.storage.models import DEFAULT_MODEL


@dataclass(frozen=True)
class AutosaveConfig:
    """Autosave behaviour."""
    enabled: bool = True
    idle_ms: int = 2000
    title_min_length: int = 15
    title_max_length: int = 30

    def __post_init__(self):
        """Validate timing and title bounds."""
        if self.idle_ms <= 0:
            raise ValueError("idle_ms must be > 0")
        if self.title_min_length < 0:
            raise ValueError("title_min_length must be >= 0")
        if self.title_max_length <= 0:
            raise ValueError("title_max_length must be > 0")

    @property
    def idle_seconds(self) -> float:
        return self.idle_ms / 1000


@dataclass(frozen=True)
class AppConfig:
    """Complete application configuration."""
    db_path: str = DEFAULT_DB_PATH
    default_model: str = DEFAULT_MODEL
    autosave: AutosaveConfig = field(default_factory=AutosaveConfig)
    pricing: PricingTable = PRICING_TABLE


def load_app_config(path: str) -> AppConfig:
    """Load and validate application configuration from a YAML file.

    Strict validation rejects unknown keys so a typo never silently falls
    back to a default.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated AppConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if raw_config is None:
        return AppConfig()
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a dictionary")

    allowed_top_keys = {'storage', 'autosave', 'models', 'pricing', 'pricing_default'}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    storage = _section(raw_config, 'storage', {'db_path'})
    models = _section(raw_config, 'models', {'default'})
    autosave_data = _section(raw_config, 'autosave', {
        'enabled', 'idle_ms', 'title_min_length', 'title_max_length'
    })

    db_path = storage.get('db_path', DEFAULT_DB_PATH)
    if not isinstance(db_path, str) or not db_path.strip():
        raise ValueError("'storage.db_path' must be a non-empty string")

    default_model = models.get('default', DEFAULT_MODEL)
    if not isinstance(default_model, str) or not default_model.strip():
        raise ValueError("'models.default' must be a non-empty string")

    enabled = autosave_data.get('enabled', True)
    if not isinstance(enabled, bool):
        raise ValueError("'autosave.enabled' must be true or false")
    for key in ('idle_ms', 'title_min_length', 'title_max_length'):
        if key not in autosave_data:
            continue
        value = autosave_data[key]
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"'autosave.{key}' must be an integer")
    autosave = AutosaveConfig(
        enabled=enabled,
        **{k: v for k, v in autosave_data.items() if k != 'enabled'}
    )

    return AppConfig(
        db_path=db_path,
        default_model=default_model,
        autosave=autosave,
        pricing=_parse_pricing(raw_config),
    )


def _section(raw_config: Dict, name: str, allowed_keys: set) -> Dict:
    data = raw_config.get(name) or {}
    if not isinstance(data, dict):
        raise ValueError(f"'{name}' must be a dictionary")
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown {name} keys: {unknown_keys}")
    return data


def _parse_pricing(raw_config: Dict) -> PricingTable:
    """Build a pricing table; configured families replace the built-in ones."""
    pricing_data = raw_config.get('pricing')
    default_data = raw_config.get('pricing_default')
    if pricing_data is None and default_data is None:
        return PRICING_TABLE

    prices: Dict[str, ModelPricing] = dict(PRICING_TABLE.prices)
    if pricing_data is not None:
        if not isinstance(pricing_data, dict):
            raise ValueError("'pricing' must be a dictionary")
        prices = {}
        for family, rates in pricing_data.items():
            prices[str(family)] = _parse_rates(rates, f"pricing.{family}")

    default = PRICING_TABLE.default
    if default_data is not None:
        default = _parse_rates(default_data, "pricing_default")

    return PricingTable(prices=prices, default=default)


def _parse_rates(data: Optional[Dict], path: str) -> ModelPricing:
    """Parse and validate an input/output rate pair.

    Args:
        data: Rate configuration data
        path: Path for error messages

    Returns:
        Validated ModelPricing

    Raises:
        ValueError: If configuration is invalid
    """
    if not isinstance(data, dict):
        raise ValueError(f"'{path}' must be a dictionary")

    allowed_keys = {'input', 'output'}
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")

    rates = []
    for key in ('input', 'output'):
        if key not in data:
            raise ValueError(f"Missing required '{key}' in {path}")
        value = data[key]
        if isinstance(value, bool) or not isinstance(value, (int, float, str)):
            raise ValueError(f"'{key}' in {path} must be a number")
        try:
            rate = Decimal(str(value))
        except InvalidOperation:
            raise ValueError(f"'{key}' in {path} must be a number")
        if rate < 0:
            raise ValueError(f"'{key}' in {path} must be >= 0")
        rates.append(rate)

    return ModelPricing(input_per_million=rates[0], output_per_million=rates[1])
