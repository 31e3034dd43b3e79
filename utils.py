"""
Utility functions for the strategy engine.
"""

import logging
import logging.handlers
import os
import re
from pathlib import Path
from typing import Dict
import yaml
import colorlog

from shared.types import AppConfig


def _resolve_env_vars(obj):
    """Recursively resolve ${ENV_VAR} references in config values."""
    if isinstance(obj, str):
        def replacer(m):
            return os.environ.get(m.group(1), m.group(0))
        return re.sub(r'\$\{(\w+)\}', replacer, obj)
    elif isinstance(obj, dict):
        return {k: _resolve_env_vars(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_resolve_env_vars(i) for i in obj]
    return obj


def load_config(config_file: str = 'config.yaml') -> Dict:
    """
    Load configuration from YAML file.
    Supports ${ENV_VAR} substitution in string values.

    Args:
        config_file: Path to config file

    Returns:
        Configuration dictionary
    """
    from dotenv import load_dotenv
    load_dotenv()

    config_path = Path(config_file)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_file}")

    with open(config_path, 'r') as f:
        config = yaml.safe_load(f) or {}

    return _resolve_env_vars(config)


def setup_logging(config: Dict):
    """
    Setup logging configuration.

    Args:
        config: Configuration dictionary
    """
    log_config = config['logging']

    log_file = Path(log_config.get('file', 'logs/strategy_engine.log'))
    log_file.parent.mkdir(parents=True, exist_ok=True)

    file_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    console_formatter = colorlog.ColoredFormatter(
        '%(log_color)s%(asctime)s - %(name)s - %(levelname)s - %(message)s%(reset)s',
        datefmt='%H:%M:%S',
        log_colors={
            'DEBUG': 'cyan',
            'INFO': 'green',
            'WARNING': 'yellow',
            'ERROR': 'red',
            'CRITICAL': 'red,bg_white',
        }
    )

    handlers = []

    # File handler (rotating)
    file_handler = logging.handlers.RotatingFileHandler(
        log_file,
        maxBytes=10*1024*1024,  # 10 MB
        backupCount=5
    )
    file_handler.setFormatter(file_formatter)
    handlers.append(file_handler)

    if log_config.get('console', True):
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(console_formatter)
        handlers.append(console_handler)

    log_level = getattr(logging, str(log_config.get('level', 'INFO')).upper())

    logging.basicConfig(
        level=log_level,
        handlers=handlers,
        force=True,
    )

    # Reduce noise from some libraries
    logging.getLogger('urllib3').setLevel(logging.WARNING)


def validate_config(config: AppConfig) -> None:
    """
    Validate configuration.  Raises ``ValueError`` on invalid input.

    Args:
        config: Configuration dictionary
    """
    required_sections = ['engine', 'backtest', 'logging']

    for section in required_sections:
        if section not in config:
            raise ValueError(f"Missing required config section: {section}")

    engine = config['engine'] or {}
    if engine.get('iv_hv_cap', 1) <= 0:
        raise ValueError("engine.iv_hv_cap must be positive")
    if engine.get('unlimited_loss_sigmas', 1) <= 0:
        raise ValueError("engine.unlimited_loss_sigmas must be positive")
    if engine.get('min_credit', 0) < 0:
        raise ValueError("engine.min_credit cannot be negative")
    if engine.get('min_valid_strikes', 1) < 1:
        raise ValueError("engine.min_valid_strikes must be at least 1")

    backtest = config['backtest'] or {}
    if backtest.get('poll_interval_seconds', 1) <= 0:
        raise ValueError("backtest.poll_interval_seconds must be positive")
    if backtest.get('max_poll_attempts', 1) < 1:
        raise ValueError("backtest.max_poll_attempts must be at least 1")
    if backtest.get('history_years', 1) < 1:
        raise ValueError("backtest.history_years must be at least 1")
