"""Message formatters for watch notifications.

Provides formatters for:
- Summary text (stored with the notification)
- WhatsApp / plain text
- Generic (JSON)
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict

from dealfinder.rank.models import NormalizedDeal

CURRENCY_PREFIXES = {
    "NGN": "₦",
    "USD": "$",
    "GBP": "£",
    "EUR": "€",
}


def format_price(amount: Decimal, currency: str) -> str:
    """Format an amount with its currency symbol, e.g. ₦450,000.00."""
    prefix = CURRENCY_PREFIXES.get((currency or "").upper())
    value = f"{Decimal(amount):,.2f}"
    if prefix:
        return f"{prefix}{value}"
    return f"{value} {currency}".strip()


def format_watch_summary(item_name: str, deals: list[NormalizedDeal]) -> str:
    """
    Human summary of a watch run.

    Args:
        item_name: Watch label
        deals: Qualifying deals, best first

    Returns:
        One-line summary naming the count and the cheapest deal
    """
    if not deals:
        return f"No new deals for {item_name}"
    cheapest = min(deals, key=lambda d: Decimal(d.price))
    noun = "deal" if len(deals) == 1 else "deals"
    return (
        f"{len(deals)} new {noun} for {item_name}. "
        f"Lowest: {format_price(cheapest.price, cheapest.currency)} at {cheapest.source}"
    )


def format_whatsapp_message(item_name: str, deals: list[NormalizedDeal]) -> str:
    """Plain-text message listing the deals with their links."""
    lines = [f"🔔 *Price alert: {item_name}*", ""]
    for i, deal in enumerate(deals, 1):
        lines.append(f"{i}. {deal.title}")
        lines.append(f"   💵 {format_price(deal.price, deal.currency)} ({deal.source})")
        lines.append(f"   🔗 {deal.link}")
    return "\n".join(lines)


def format_generic_payload(
    watch_id: int,
    owner_id: str,
    item_name: str,
    channel: str,
    summary: str,
    deals: list[NormalizedDeal],
    notification_id: int | None = None,
) -> Dict[str, Any]:
    """
    Format a watch notification as generic JSON payload.

    Returns:
        JSON payload dict
    """
    return {
        "type": "watch_notification",
        "timestamp": datetime.utcnow().isoformat(),
        "notification_id": notification_id,
        "watch": {
            "id": watch_id,
            "item_name": item_name,
        },
        "owner_id": owner_id,
        "channel": channel,
        "summary": summary,
        "text": format_whatsapp_message(item_name, deals),
        "deals": [deal.to_dict() for deal in deals],
    }
