"""
GST Calculator Module

Flat goods-and-services tax on bill base amounts, using the rate table
from configuration.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Any

from ..config import load_config
from ..exceptions import ValidationError
from ..money import quantize, to_decimal

logger = logging.getLogger(__name__)


@dataclass
class GSTComputation:
    """GST computation result."""

    base_amount: Decimal
    gst_rate: Decimal
    gst_amount: Decimal
    total_amount: Decimal

    def to_dict(self) -> dict:
        return {
            "base_amount": str(self.base_amount),
            "gst_rate": str(self.gst_rate),
            "gst_amount": str(self.gst_amount),
            "total_amount": str(self.total_amount),
        }


def compute_gst(base_amount: Any, gst_rate: Any) -> GSTComputation:
    """Compute GST on a base amount.

    gst_amount = base_amount * gst_rate / 100, rounded half up to cents.

    Args:
        base_amount: Amount before tax
        gst_rate: Percentage rate (e.g. 18)

    Returns:
        GSTComputation
    """
    base = to_decimal(base_amount, "base_amount")
    rate = to_decimal(gst_rate, "gst_rate")

    gst_amount = quantize(base * rate / 100)
    return GSTComputation(
        base_amount=quantize(base),
        gst_rate=rate,
        gst_amount=gst_amount,
        total_amount=quantize(base + gst_amount),
    )


class GSTCalculator:
    """Validates rates against the configured table and computes GST."""

    def __init__(self, config: dict | None = None, config_dir: Path | str | None = None):
        """Initialize the calculator.

        Args:
            config: Already loaded configuration (takes precedence)
            config_dir: Path to configuration directory
        """
        self.config = config if config is not None else load_config(config_dir)
        self._load_config()

    def _load_config(self) -> None:
        gst = self.config.get("gst", {})
        self.rates = [Decimal(str(r)) for r in gst.get("rates", [0, 5, 12, 18, 28])]
        self.default_rate = Decimal(str(gst.get("default_rate", 18)))

    def compute(self, base_amount: Any, gst_rate: Any = None) -> GSTComputation:
        """Compute GST at a configured rate.

        Args:
            base_amount: Amount before tax (must be positive)
            gst_rate: Percentage rate; the default rate when omitted

        Returns:
            GSTComputation

        Raises:
            ValidationError: Non-positive base amount or unlisted rate
        """
        rate = self.default_rate if gst_rate is None else to_decimal(gst_rate, "gst_rate")
        if rate not in self.rates:
            raise ValidationError(
                f"Unsupported GST rate: {rate}",
                {"allowed": [str(r) for r in self.rates]},
            )

        base = to_decimal(base_amount, "base_amount")
        if base <= 0:
            raise ValidationError("Base amount must be greater than zero", {"base_amount": str(base)})

        return compute_gst(base, rate)
