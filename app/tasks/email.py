"""Notification emails, sent from a dramatiq worker."""
import logging
import dramatiq
from flask import current_app, has_app_context
from app.tasks.broker import Queues, setup_broker
from app.utils.mailer import send_email

setup_broker()

logger = logging.getLogger(__name__)

_worker_app = None


def _app():
    global _worker_app
    if has_app_context():
        return current_app._get_current_object()
    if _worker_app is None:
        from app import create_app
        _worker_app = create_app()
    return _worker_app


# three attempts in total: the first try plus two retries
@dramatiq.actor(queue_name=Queues.EMAILS, max_retries=2, min_backoff=2000)
def send_email_job(to, subject, body, html=None):
    app = _app()
    with app.app_context():
        send_email(to, subject, body, html)


def enqueue_email(to, subject, body, html=None):
    try:
        return send_email_job.send(to, subject, body, html)
    except Exception:
        logger.exception(f"Failed to queue email '{subject}' to {to}")
        raise


def _frontend_url():
    return current_app.config.get("FRONTEND_URL", "").rstrip("/")


def _date(value):
    return value.strftime("%d %B %Y") if value else "soon"


def send_verification_email(user, token):
    link = f"{_frontend_url()}/verify-email?token={token}"
    body = (
        f"Hi {user.full_name},\n\n"
        f"Please confirm your email address by opening the link below:\n{link}\n\n"
        "If you did not create an account, you can ignore this email."
    )
    return enqueue_email(user.email, "Verify your email address", body)


def send_verification_approved(user):
    body = (
        f"Hi {user.full_name},\n\n"
        "Your student status has been verified. All student discounts are now available to you.\n"
        f"Next re-verification is due on {_date(user.next_verification_due)}."
    )
    return enqueue_email(user.email, "Your student verification was approved", body)


def send_verification_rejected(user, message=None):
    body = (
        f"Hi {user.full_name},\n\n"
        f"{message or 'Your verification was rejected. Please re-submit with correct documents.'}"
    )
    return enqueue_email(user.email, "Your student verification was rejected", body)


def send_verification_more_info(user, message, steps=()):
    lines = "\n".join(f"- {step}" for step in steps)
    body = f"Hi {user.full_name},\n\n{message}\n\n{lines}".rstrip()
    return enqueue_email(user.email, "More information needed for your verification", body)


def send_grace_period_started(user, ends_at, reason):
    body = (
        f"Hi {user.full_name},\n\n"
        f"{reason}\n"
        f"You keep full access until {_date(ends_at)}. Please re-verify your student status before then."
    )
    return enqueue_email(user.email, "Your verification grace period has started", body)


def send_grace_period_extended(user, ends_at, reason):
    body = (
        f"Hi {user.full_name},\n\n"
        f"Your grace period was extended until {_date(ends_at)}.\n{reason}"
    )
    return enqueue_email(user.email, "Your grace period was extended", body)


def send_reverification_required(user, due_at, reason):
    body = (
        f"Hi {user.full_name},\n\n"
        f"{reason}\nPlease re-verify your student status by {_date(due_at)}."
    )
    return enqueue_email(user.email, "Please re-verify your student status", body)


def send_verification_expiring_soon(user):
    body = (
        f"Hi {user.full_name},\n\n"
        f"Your student verification will expire on {_date(user.next_verification_due)}. "
        "Please re-verify to keep access to all features."
    )
    return enqueue_email(user.email, "Your student verification expires soon", body)


def send_verification_expired(user):
    body = (
        f"Hi {user.full_name},\n\n"
        "Your student verification has expired. Please re-verify to continue accessing all features."
    )
    return enqueue_email(user.email, "Your student verification has expired", body)
