"""
Delivery Templates

Renders claimed stock items for the buyer and decides between an inline
message and a plain-text file attachment.
"""

from dataclasses import dataclass
from enum import Enum
from html import escape

from stockroom.shared.config import Settings
from stockroom.shared.models.dynamo import Product

FILE_SEPARATOR = "=" * 40
DESCRIPTION_LABEL = "📝 Description"
ACCOUNT_LABEL = "🔐 Account"


class DeliveryMode(str, Enum):
    MESSAGE = "message"
    DOCUMENT = "document"
    NONE = "none"


@dataclass(frozen=True)
class DeliveryPayload:
    """What gets sent to the buyer. `filename`/`content` are set only in document mode."""

    mode: DeliveryMode
    text: str
    filename: str | None = None
    content: str | None = None


def parse_labels(format_data: str | None) -> list[str]:
    """Split a product's format descriptor into field labels."""
    return [label.strip() for label in (format_data or "").split(",") if label.strip()]


def render_item(labels: list[str], raw_item: str, html: bool = False) -> str:
    """
    Render one stock item.

    Labels are zipped positionally with the item's comma fields, one
    `Label: value` line each; a missing value renders as a bare `Label:`.
    Without labels the raw item is returned as-is.
    """
    if not labels:
        return f"<code>{escape(raw_item)}</code>" if html else raw_item

    values = [value.strip() for value in raw_item.split(",")]
    lines = []
    for position, label in enumerate(labels):
        value = values[position] if position < len(values) else ""
        if not value:
            lines.append(f"{escape(label) if html else label}:")
        elif html:
            lines.append(f"{escape(label)}: <code>{escape(value)}</code>")
        else:
            lines.append(f"{label}: {value}")
    return "\n".join(lines)


def format_total(total_price: int) -> str:
    return f"{total_price:,}đ"


def success_text(product: Product, item_count: int, total_text: str) -> str:
    return (
        "✅ Payment successful!\n\n"
        f"🧾 {product.display_name} | Qty: {item_count}\n"
        f"💰 Total: {total_text}"
    )


def description_block(description: str | None) -> str:
    cleaned = (description or "").strip()
    if not cleaned:
        return ""
    return f"{DESCRIPTION_LABEL}:\n{cleaned}\n\n"


def build_delivery(
    product: Product,
    items: list[str],
    total_text: str,
    settings: Settings,
) -> DeliveryPayload:
    """
    Build the buyer-facing delivery for a set of claimed items.

    The inline message is used unless the order has more than
    `inline_delivery_max_items` items or the rendered text reaches the
    transport limit minus a margin; then the items go out as a `.txt` file
    with the success header as caption.
    """
    labels = parse_labels(product.format_data)
    header = success_text(product, len(items), total_text)

    rendered_html = "\n\n".join(render_item(labels, item, html=True) for item in items)
    message_text = (
        f"{header}\n\n{description_block(product.description)}"
        f"{ACCOUNT_LABEL}:\n{rendered_html}"
    )[: settings.telegram_max_message_length]

    if (
        len(items) <= settings.inline_delivery_max_items
        and len(message_text) < settings.inline_length_threshold
    ):
        return DeliveryPayload(mode=DeliveryMode.MESSAGE, text=message_text)

    header_lines = [
        f"Product: {product.display_name}",
        f"Qty: {len(items)}",
        f"Total: {total_text}",
    ]
    if product.description:
        header_lines.append(f"Description: {product.description}")
    rendered_plain = "\n\n".join(render_item(labels, item) for item in items)
    content = "\n".join(header_lines) + f"\n{FILE_SEPARATOR}\n\n{rendered_plain}"

    return DeliveryPayload(
        mode=DeliveryMode.DOCUMENT,
        text=header,
        filename=f"{product.display_name}_{len(items)}.txt",
        content=content,
    )
