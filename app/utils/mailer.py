from flask_mail import Message
from app.extensions import mail
from flask import current_app


def send_email(to, subject, body, html=None):
    """Generic email sender; never mails the sender's own address."""

    sender = current_app.config.get("MAIL_DEFAULT_SENDER")
    sender_address = sender[1] if isinstance(sender, tuple) else sender
    recipients = [to] if isinstance(to, str) else list(to)

    if sender_address in recipients:
        current_app.logger.info(f"Skipped sending email to sender address: {sender_address}")
        return False

    msg = Message(subject=subject, recipients=recipients, sender=sender)
    msg.body = body
    if html:
        msg.html = html

    try:
        mail.send(msg)
    except Exception as e:
        current_app.logger.error(f"Failed to send email to {to}: {e}")
        raise

    current_app.logger.info(f"Email sent successfully to {to}")
    return True
