# app/services/notification_service.py
import html
import logging
import smtplib
from collections.abc import Callable

from app.core import email_client
from app.models.order import Order, OrderItem
from app.schemas.checkout import ShippingAddress

logger = logging.getLogger(__name__)


def _format_address(address: ShippingAddress) -> str:
    parts = [
        address.address_line1,
        address.address_line2,
        address.city,
        address.state,
        address.postal_code,
        address.country,
    ]
    return ", ".join(p for p in parts if p)


class NotificationService:
    """
    Order-confirmation emails.

    Fire-and-forget: send failures are logged and reported as False,
    never raised, so a mail outage can't undo a placed order.
    """

    def __init__(self, sender: Callable[..., None] | None = None):
        self.sender = sender or email_client.send_email

    def build_order_confirmation(
        self,
        order: Order,
        items: list[OrderItem],
        shipping_address: ShippingAddress,
    ) -> tuple[str, str, str]:
        """Return (subject, text_body, html_body)."""
        subject = f"Order #{order.id} - Successfully Placed"
        lines = [
            f"  - {it.product_name}"
            + (f" ({it.variant})" if it.variant else "")
            + f" x{it.quantity} - {it.unit_price * it.quantity:.2f}"
            for it in items
        ]
        address = _format_address(shipping_address)

        text_body = "\n".join(
            [
                f"Dear {shipping_address.full_name},",
                "",
                "Thank you for your order! We've received it and it's being processed.",
                "",
                f"Order ID: {order.id}",
                f"Total Amount: {order.total_amount:.2f}",
                "",
                "Items:",
                *lines,
                "",
                "Shipping Address:",
                address,
            ]
        )

        items_html = "".join(f"<li>{html.escape(line.strip(' -'))}</li>" for line in lines)
        html_body = (
            "<h1>Order Successfully Placed!</h1>"
            f"<p>Dear {html.escape(shipping_address.full_name)},</p>"
            "<p>Thank you for your order! We've received it and it's being processed.</p>"
            f"<p><strong>Order ID:</strong> {order.id}<br>"
            f"<strong>Total Amount:</strong> {order.total_amount:.2f}</p>"
            f"<h4>Items:</h4><ul>{items_html}</ul>"
            f"<h4>Shipping Address:</h4><p>{html.escape(address)}</p>"
        )
        return subject, text_body, html_body

    def send_order_confirmation(
        self,
        order: Order,
        items: list[OrderItem],
        shipping_address: ShippingAddress,
    ) -> bool:
        subject, text_body, html_body = self.build_order_confirmation(
            order, items, shipping_address
        )
        try:
            self.sender(
                to_email=shipping_address.email,
                subject=subject,
                text_body=text_body,
                html_body=html_body,
            )
        except (RuntimeError, smtplib.SMTPException, OSError):
            logger.exception("Order confirmation for %s was not sent", order.id)
            return False

        logger.info("Order confirmation for %s sent to %s", order.id, shipping_address.email)
        return True
