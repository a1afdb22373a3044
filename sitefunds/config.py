"""
Configuration Module

Loads fund flow settings from config/fund_flow.yaml with built-in defaults.
"""

import copy
import logging
import os
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "fund_flow.yaml"

DEFAULT_CONFIG: dict[str, Any] = {
    "roles": ["director", "manager", "supervisor", "worker"],
    "permissions": {
        "director": ["*"],
        "manager": [
            "allocation.create",
            "allocation.view",
            "expense.create",
            "bill.create",
            "contract.manage",
            "contract.pay",
            "ledger.record",
            "ledger.view_team",
            "attendance.mark",
        ],
        "supervisor": [
            "allocation.create",
            "allocation.view",
            "expense.create",
            "bill.create",
            "contract.manage",
            "contract.pay",
            "ledger.record",
            "ledger.view_team",
            "attendance.mark",
        ],
        "worker": ["allocation.view", "expense.create"],
    },
    "hierarchy": {"max_depth": 10},
    "gst": {"default_rate": 18, "rates": [0, 5, 12, 18, 28]},
    "attendance": {"standard_hours": 8},
    "utilization": {
        "over_utilization_policy": "advisory",
        "thresholds": {"warning": 70, "critical": 90, "exceeded": 100},
    },
    "approvals": {"auto_approve_privileged": True},
    "pagination": {"default_page_size": 20, "max_page_size": 100},
    # Development directory; deployments list their people in fund_flow.yaml
    "users": [
        {"id": "dev", "name": "Developer", "role": "director"},
    ],
}


def default_config_dir() -> Path:
    """Get the configuration directory.

    Uses FUND_FLOW_CONFIG_DIR when set, otherwise the repository's config/.
    """
    env_dir = os.getenv("FUND_FLOW_CONFIG_DIR")
    if env_dir:
        return Path(env_dir)
    return Path(__file__).parent.parent / "config"


def _merge(base: dict, override: dict) -> dict:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_dir: Path | str | None = None) -> dict[str, Any]:
    """Load fund flow configuration.

    Args:
        config_dir: Path to configuration directory

    Returns:
        Configuration dict with defaults applied for missing sections
    """
    config_dir = Path(config_dir) if config_dir else default_config_dir()
    config_file = config_dir / CONFIG_FILENAME

    if not config_file.exists():
        logger.warning(f"Config file not found: {config_file}, using defaults")
        return copy.deepcopy(DEFAULT_CONFIG)

    with open(config_file) as f:
        loaded = yaml.safe_load(f) or {}

    # Lists (roles, rates) replace the defaults wholesale; dicts merge
    return _merge(DEFAULT_CONFIG, loaded)
