# Overview: Service-layer operations for alerts and the notification audit trail.

"""
Notification Dispatcher

Resolves who should hear about a fleet event and hands one message per
event to the mail transport. Delivery problems are logged here and never
propagate: an alert that cannot be sent must not stop the caller (the
liveness sweep) from doing its job.
"""

from __future__ import annotations

from flask import current_app
from markupsafe import escape

from ..errors import NotFoundError, TransportFailureError
from ..models import Notification, User
from ..models.auth import ROLE_ADMIN, ROLE_TECHNICIAN
from ..models.communications import NOTIFICATION_MACHINE_OFFLINE, NOTIFICATION_TYPES
from vendsys.time_utils import to_utc_z
from . import entity_store
from .mail_transport import MailTransport


OFFLINE_ALERT_ROLES = (ROLE_ADMIN, ROLE_TECHNICIAN)


def resolve_offline_alert_recipients() -> list[str]:
    """Emails of active admins/technicians who opted into machine-offline mail."""
    users = entity_store.find_all(
        User,
        User.role.in_(OFFLINE_ALERT_ROLES),
        User.notify_email_machine_offline.is_(True),
        User.is_active.is_(True),
        order_by=User.email,
    )
    return [u.email for u in users]


def render_machine_offline_alert(machine, frontend_url: str | None = None) -> tuple[str, str]:
    subject = f"Alerta Crítica: Máquina {machine.machine_id} se ha Desconectado"
    last_seen = to_utc_z(machine.last_heartbeat) or "nunca"
    link = ""
    if frontend_url:
        href = f"{frontend_url.rstrip('/')}/machines/{machine.machine_id}"
        link = f'<p><a href="{escape(href)}">Ver Detalles de la Máquina</a></p>'

    html = (
        "<div>"
        "<h2>Alerta de Red Vending System</h2>"
        "<p>Hemos detectado que una de tus máquinas ha perdido la conexión.</p>"
        "<table>"
        f"<tr><td>ID de Máquina:</td><td>{escape(machine.machine_id)}</td></tr>"
        f"<tr><td>Ubicación:</td><td>{escape(machine.location or '-')}</td></tr>"
        f"<tr><td>Última Conexión:</td><td>{escape(last_seen)}</td></tr>"
        "</table>"
        f"{link}"
        "</div>"
    )
    return subject, html


def alert_machine_offline(machine, transport: MailTransport, *, frontend_url: str | None = None) -> bool:
    """
    Send one offline alert for `machine` to every interested user.

    `machine` is anything with machine_id, location and last_heartbeat (the
    sweep passes a pre-transition snapshot). Returns True when a message
    was handed to the transport successfully.
    """
    recipients = resolve_offline_alert_recipients()
    delivered = False

    if not recipients:
        current_app.logger.info("No recipients for offline alert of machine %s; skipping send", machine.machine_id)
    else:
        subject, html = render_machine_offline_alert(machine, frontend_url)
        try:
            transport.send(recipients, subject, html)
            delivered = True
            current_app.logger.info(
                "Offline alert for machine %s sent to %d recipient(s)", machine.machine_id, len(recipients)
            )
        except TransportFailureError as exc:
            current_app.logger.error("Offline alert for machine %s failed: %s", machine.machine_id, exc)
        except Exception:
            current_app.logger.exception("Offline alert for machine %s failed", machine.machine_id)

    try:
        record_notification(
            NOTIFICATION_MACHINE_OFFLINE,
            f"Machine {machine.machine_id} stopped reporting (last heartbeat {to_utc_z(machine.last_heartbeat) or 'never'})",
            machine_id=machine.machine_id,
        )
    except Exception:
        current_app.logger.exception("Failed to record offline notification for machine %s", machine.machine_id)

    return delivered


def record_notification(
    notification_type: str,
    message: str,
    *,
    machine_id: str | None = None,
    user_id: int | None = None,
) -> Notification:
    if notification_type not in NOTIFICATION_TYPES:
        raise ValueError(f"Unknown notification type: {notification_type}")
    return entity_store.create(
        Notification,
        type=notification_type,
        message=message,
        machine_id=machine_id,
        user_id=user_id,
    )


def list_notifications(unread_only: bool = False, machine_id: str | None = None) -> list[Notification]:
    filters = {}
    if unread_only:
        filters["is_read"] = False
    if machine_id:
        filters["machine_id"] = machine_id
    return entity_store.find_all(Notification, order_by=Notification.id.desc(), **filters)


def mark_read(notification_id: int) -> Notification:
    if not entity_store.update_by_id(Notification, notification_id, {"is_read": True}):
        raise NotFoundError(f"Notification {notification_id} not found")
    return entity_store.get_by_key(Notification, id=notification_id)
