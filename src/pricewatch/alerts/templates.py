"""Message templating for alert titles and bodies."""

import re
from typing import Any, Dict, Mapping, Optional

from .models import (
    AlertPayload,
    AlertType,
    BackInStockPayload,
    HistoricalLowPayload,
    PriceDropPayload,
    PriceTargetPayload,
    StockAvailablePayload,
    default_payload,
)

PLACEHOLDER_PATTERN = re.compile(r"\{\{([^{}]+)\}\}")

DEFAULT_TITLES: Dict[AlertType, str] = {
    AlertType.PRICE_DROP: "Price Drop Alert",
    AlertType.HISTORICAL_LOW: "Historical Low Price",
    AlertType.STOCK_AVAILABLE: "Back in Stock",
    AlertType.BACK_IN_STOCK: "Available Again",
    AlertType.PRICE_TARGET: "Target Price Reached",
}

DEFAULT_MESSAGES: Dict[AlertType, str] = {
    AlertType.PRICE_DROP: (
        "Price has dropped by {{percentage_drop}}%! "
        "Check out the new pricing for this product."
    ),
    AlertType.HISTORICAL_LOW: (
        "This product is at its lowest price in {{lookback_days}} days!"
    ),
    AlertType.STOCK_AVAILABLE: "Good news! This product is now available.",
    AlertType.BACK_IN_STOCK: "This product is back in stock and ready to order.",
    AlertType.PRICE_TARGET: "Target price reached for this product!",
}


def format_message(template: str, variables: Mapping[str, Any]) -> str:
    """
    Substitute ``{{key}}`` placeholders with values from ``variables``.

    Placeholders without a matching variable are left untouched.

    Args:
        template: Template text
        variables: Values keyed by placeholder name

    Returns:
        Formatted string
    """

    def _replace(match: re.Match) -> str:
        key = match.group(1)
        if key in variables:
            return str(variables[key])
        return match.group(0)

    return PLACEHOLDER_PATTERN.sub(_replace, template)


def _format_price(value: Optional[float]) -> Optional[str]:
    if value is None:
        return None
    return f"{value:,.2f}"


def template_variables(payload: AlertPayload) -> Dict[str, str]:
    """Template variables exposed by each payload variant."""
    if isinstance(payload, PriceDropPayload):
        variables = {
            "percentage_drop": f"{payload.percentage_drop:g}",
            "previous_price": _format_price(payload.previous_price),
            "current_price": _format_price(payload.current_price),
        }
    elif isinstance(payload, HistoricalLowPayload):
        variables = {
            "current_price": _format_price(payload.current_price),
            "lookback_days": str(payload.lookback_days),
        }
    elif isinstance(payload, (StockAvailablePayload, BackInStockPayload)):
        variables = {
            "stock_level": (
                str(payload.stock_level) if payload.stock_level is not None else None
            ),
        }
    elif isinstance(payload, PriceTargetPayload):
        variables = {
            "target_price": _format_price(payload.target_price),
            "current_price": _format_price(payload.current_price),
        }
    else:
        raise TypeError(f"Unsupported alert payload: {type(payload).__name__}")

    # Missing values stay as visible placeholders rather than blank text
    return {key: value for key, value in variables.items() if value is not None}


def render_default_title(
    alert_type: AlertType, payload: Optional[AlertPayload] = None
) -> str:
    """Default title for an alert type."""
    payload = payload or default_payload(alert_type)
    return format_message(
        DEFAULT_TITLES[AlertType(alert_type)], template_variables(payload)
    )


def render_default_message(
    alert_type: AlertType, payload: Optional[AlertPayload] = None
) -> str:
    """Default message body for an alert type."""
    payload = payload or default_payload(alert_type)
    return format_message(
        DEFAULT_MESSAGES[AlertType(alert_type)], template_variables(payload)
    )
