# send_test_email.py
"""
Send a sample order confirmation through the configured SMTP server.

    python send_test_email.py you@example.com
"""

import sys
import uuid
from decimal import Decimal

from app.models.order import Order, OrderItem
from app.schemas.checkout import ShippingAddress
from app.services.notification_service import NotificationService


def main():
    if len(sys.argv) != 2:
        print("usage: python send_test_email.py RECIPIENT")
        sys.exit(2)

    address = ShippingAddress(
        full_name="Test Shopper",
        email=sys.argv[1],
        phone="0000000000",
        address_line1="1 Sample Street",
        city="Bengaluru",
        state="Karnataka",
        postal_code="560001",
        country="India",
    )
    order = Order(
        id=uuid.uuid4(),
        user_id=uuid.uuid4(),
        shipping_address=address.model_dump(),
        total_amount=Decimal("1300"),
    )
    items = [
        OrderItem(order_id=order.id, product_id="P1", product_name="Shirt",
                  unit_price=Decimal("500"), quantity=2, variant="M"),
        OrderItem(order_id=order.id, product_id="P2", product_name="Cap",
                  unit_price=Decimal("300"), quantity=1),
    ]

    print(f"Sending sample confirmation to {address.email}...")
    if NotificationService().send_order_confirmation(order, items, address):
        print("Sent. Check your inbox.")
    else:
        print("Not sent; see the log above for the SMTP error.")
        sys.exit(1)


if __name__ == "__main__":
    main()
