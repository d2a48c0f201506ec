"""Fire-and-forget sales commentary.

The text generator itself is an injected callable
``summarize(sales, inventory) -> str``; this module only prepares its prompt
and runs it off the calling thread. A failing or silent generator yields a
fixed fallback message and never an exception.
"""

from __future__ import annotations

import threading
from decimal import Decimal
from typing import Callable, Sequence

from . import log
from .constants import INSIGHT_LOW_STOCK_LEVEL
from .models import InventoryItem, SaleRecord
from .reporting import top_sellers


Summarizer = Callable[[Sequence[SaleRecord], Sequence[InventoryItem]], str]

EMPTY_RESULT_TEXT = "Could not generate analysis."
FAILURE_TEXT = "Error generating analysis. Please check your connection or API key."


def build_insight_prompt(
    sales: Sequence[SaleRecord],
    inventory: Sequence[InventoryItem],
    timeframe: str = "daily",
) -> str:
    """Render the consultant prompt for ``sales`` over ``timeframe``."""

    total_revenue = sum((sale.price for sale in sales), Decimal("0"))
    best = [f"{stat.name}: {stat.quantity} units/grams" for stat in top_sellers(sales)]
    low = [f"{item.name} ({item.stock_level} left)" for item in inventory if item.stock_level < INSIGHT_LOW_STOCK_LEVEL]

    return "\n".join(
        [
            "You are a business consultant for a premium dispensary.",
            f"Analyze this {timeframe} performance data for the owner:",
            "",
            f"Timeframe: {timeframe.upper()}",
            f"Total Revenue: {total_revenue} THB",
            f"Total Transactions: {len(sales)}",
            "",
            "Top 5 Best Selling Products:",
            *best,
            "",
            "Inventory Alerts (Critical):",
            ", ".join(low[:5]),
            "",
            "Provide a data-driven report (max 200 words) with a manager's summary,",
            "insights on the best sellers and advice for the coming period.",
        ]
    )


def generate_insights(summarize: Summarizer, sales: Sequence[SaleRecord], inventory: Sequence[InventoryItem]) -> str:
    """Run ``summarize`` synchronously, mapping every failure to fallback text."""

    try:
        text = summarize(tuple(sales), tuple(inventory))
    except Exception as exc:
        log.warning("Insight generation failed: %s", exc)
        return FAILURE_TEXT
    return text or EMPTY_RESULT_TEXT


def request_insights(
    summarize: Summarizer,
    sales: Sequence[SaleRecord],
    inventory: Sequence[InventoryItem],
    on_result: Callable[[str], None],
) -> threading.Thread:
    """Start :func:`generate_insights` on a daemon thread.

    ``on_result`` receives the text once it is ready. The returned thread may
    be joined but nothing depends on it finishing.
    """

    def _run() -> None:
        on_result(generate_insights(summarize, sales, inventory))

    worker = threading.Thread(target=_run, name="greentrack-insights", daemon=True)
    worker.start()
    log.debug("Started insight generation for %d sales", len(sales))
    return worker


__all__ = [
    "EMPTY_RESULT_TEXT",
    "FAILURE_TEXT",
    "Summarizer",
    "build_insight_prompt",
    "generate_insights",
    "request_insights",
]
