import logging
import smtplib
from email.message import EmailMessage
from html import escape
from sqlalchemy.orm import Session
from src.core import config
from src.services.settings_service import SettingsService

logger = logging.getLogger(__name__)

DELIVERY_METHOD_LABELS = {
    "mrw": "Envío Nacional (MRW)",
    "delivery": "Delivery (Maracaibo)",
    "pickup": "Pick-Up",
}

PAYMENT_METHOD_LABELS = {
    "pagoMovil": "Pago Móvil",
    "zelle": "Zelle",
    "binance": "Binance",
    "efectivo": "Efectivo",
}

STATUS_MESSAGES = {
    "processing": (
        "Your Order is Being Processed",
        "We're currently processing your order and will prepare it for shipping soon.",
    ),
    "completed": (
        "Your Order Has Been Completed",
        "Your order has been successfully completed. We hope you enjoy your purchase!",
    ),
    "cancelled": (
        "Your Order Has Been Cancelled",
        "Your order has been cancelled. If you have any questions, please contact us.",
    ),
}


class LoggingEmailSender:
    """Default sender when no SMTP server is configured"""

    def __init__(self):
        self.sent = []

    def send(self, from_address: str, to: str, subject: str, html: str) -> None:
        self.sent.append({"from": from_address, "to": to, "subject": subject, "html": html})
        logger.info(f"Email to {to}: {subject}")


class SmtpEmailSender:
    def __init__(self, host: str, port: int, username=None, password=None):
        self.host = host
        self.port = port
        self.username = username
        self.password = password

    def send(self, from_address: str, to: str, subject: str, html: str) -> None:
        message = EmailMessage()
        message["From"] = from_address
        message["To"] = to
        message["Subject"] = subject
        message.set_content("This message requires an HTML capable mail client.")
        message.add_alternative(html, subtype="html")

        with smtplib.SMTP(self.host, self.port, timeout=10) as smtp:
            smtp.starttls()
            if self.username:
                smtp.login(self.username, self.password)
            smtp.send_message(message)


def default_sender():
    if config.SMTP_HOST:
        return SmtpEmailSender(
            config.SMTP_HOST, config.SMTP_PORT, config.SMTP_USERNAME, config.SMTP_PASSWORD
        )
    return LoggingEmailSender()


def _items_list(order) -> str:
    return "".join(
        f"<li>{item.quantity}x {escape(item.name)} - ${item.price:.2f}</li>"
        for item in order.items
    )


class NotificationDispatcher:
    """
    Customer and admin emails for order events.

    Every public method returns True when a message was handed to the sender
    and False otherwise. Nothing raises into the caller: checkout and status
    transitions must not fail because an email could not be sent.
    """

    def __init__(self, db: Session, sender=None):
        self.db = db
        self.sender = sender or default_sender()

    def send_order_confirmation_email(self, order) -> bool:
        try:
            settings = SettingsService(self.db).get_settings()
            notifications = settings.notifications
            if not notifications.email_notifications or not notifications.order_confirmation:
                logger.info("Order confirmation emails are disabled in settings")
                return False

            store_name = settings.store.store_name
            html = (
                "<h1>Thank you for your order!</h1>"
                f"<p>Dear {escape(order.customer_name)},</p>"
                f"<p>We're pleased to confirm your order #{order.id}.</p>"
                "<h2>Order Details:</h2>"
                f"<ul>{_items_list(order)}</ul>"
                f"<p><strong>Total: ${order.total:.2f}</strong></p>"
                "<p>We'll notify you when your order ships.</p>"
            )
            return self._send(order.customer_email, f"Order Confirmation #{order.id} - {store_name}", html)
        except Exception as e:
            logger.error(f"Failed to send order confirmation email for {order.id}: {str(e)}")
            return False

    def send_order_status_update_email(self, order) -> bool:
        try:
            settings = SettingsService(self.db).get_settings()
            notifications = settings.notifications
            if not notifications.email_notifications or not notifications.order_status_update:
                logger.info("Order status update emails are disabled in settings")
                return False

            store_name = settings.store.store_name
            title, message = STATUS_MESSAGES.get(
                order.status,
                ("Order Status Update", f"Your order status has been updated to: {order.status}"),
            )
            html = (
                f"<h1>{title}</h1>"
                f"<p>Dear {escape(order.customer_name)},</p>"
                f"<p>{message}</p>"
                f"<p>Order #{order.id}</p>"
                f"<ul>{_items_list(order)}</ul>"
                f"<p><strong>Total: ${order.total:.2f}</strong></p>"
                f"<p>The {escape(store_name)} Team</p>"
            )
            return self._send(order.customer_email, f"Order Status Update: {title} - {store_name}", html)
        except Exception as e:
            logger.error(f"Failed to send status update email for {order.id}: {str(e)}")
            return False

    def send_admin_order_notification(self, order) -> bool:
        try:
            settings = SettingsService(self.db).get_settings()
            notifications = settings.notifications
            if not notifications.email_notifications or not notifications.admin_email:
                logger.info("Admin notifications are disabled or admin email not set")
                return False

            if order.delivery_method == "delivery":
                destination = f"<p><strong>Address:</strong> {escape(order.customer_address or '')}</p>"
            elif order.delivery_method == "mrw":
                destination = f"<p><strong>MRW Office:</strong> {escape(order.mrw_office or '')}</p>"
            else:
                destination = ""

            rows = "".join(
                f"<tr><td>{escape(item.name)}</td><td>${item.price:.2f}</td>"
                f"<td>{item.quantity}</td><td>${item.price * item.quantity:.2f}</td></tr>"
                for item in order.items
            )
            html = (
                "<h1>New Order Received</h1>"
                f"<p><strong>Order ID:</strong> {order.id}</p>"
                f"<p><strong>Date:</strong> {order.created_at}</p>"
                f"<p><strong>Customer:</strong> {escape(order.customer_name)}</p>"
                f"<p><strong>Email:</strong> {escape(order.customer_email)}</p>"
                f"<p><strong>Phone:</strong> {escape(order.customer_phone or 'Not provided')}</p>"
                f"<p><strong>Method:</strong> {DELIVERY_METHOD_LABELS.get(order.delivery_method, order.delivery_method)}</p>"
                f"{destination}"
                f"<p><strong>Payment:</strong> {PAYMENT_METHOD_LABELS.get(order.payment_method, order.payment_method)}</p>"
                "<table border=\"1\" cellpadding=\"5\"><tr><th>Product</th><th>Price</th>"
                f"<th>Quantity</th><th>Total</th></tr>{rows}</table>"
                f"<p><strong>Total Amount: ${order.total:.2f}</strong></p>"
            )
            return self._send(
                notifications.admin_email, f"New Order #{order.id} - {settings.store.store_name}", html
            )
        except Exception as e:
            logger.error(f"Failed to send admin order notification for {order.id}: {str(e)}")
            return False

    def send_low_stock_alert(self, product) -> bool:
        try:
            settings = SettingsService(self.db).get_settings()
            notifications = settings.notifications
            if not notifications.low_stock_alert or not notifications.admin_email:
                return False

            html = (
                "<h1>Low Stock Alert</h1>"
                f"<p>{escape(product.name)} (SKU {escape(product.sku)}) has "
                f"{product.inventory_quantity} units left "
                f"(threshold {product.low_stock_threshold}).</p>"
            )
            return self._send(notifications.admin_email, f"Low stock: {product.name}", html)
        except Exception as e:
            logger.error(f"Failed to send low stock alert for {product.id}: {str(e)}")
            return False

    def _send(self, to: str, subject: str, html: str) -> bool:
        settings = SettingsService(self.db).get_settings()
        from_address = f"{settings.store.store_name} <{config.STORE_FROM_EMAIL}>"
        self.sender.send(from_address, to, subject, html)
        logger.info(f"Email sent to {to}: {subject}")
        return True
