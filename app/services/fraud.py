import logging
from datetime import datetime, timedelta
from sqlalchemy import func
from app.extensions import db
from app.models import DiscountClaim, FraudAlert
from app.utils.pagination import paginated

logger = logging.getLogger(__name__)

BURST_WINDOW = timedelta(minutes=5)
BURST_CLAIMS = 10
MAX_USERS_PER_DEVICE = 1
MAX_USERS_PER_IP = 3


def _distinct_users(column, value):
    return (
        db.session.query(func.count(func.distinct(DiscountClaim.user_id)))
        .filter(column == value)
        .scalar()
    ) or 0


def check_for_fraud(user_id, discount_id, ip_address=None, device_id=None, now=None):
    """Flag claim patterns that look abusive.

    Alerts are added to the session and committed by the caller; the claim
    itself is never blocked.
    """
    now = now or datetime.utcnow()
    alerts = []

    recent = DiscountClaim.query.filter(
        DiscountClaim.user_id == user_id,
        DiscountClaim.claimed_at >= now - BURST_WINDOW,
    ).count()
    if recent >= BURST_CLAIMS:
        alerts.append("Multiple claims in short period")

    if device_id and _distinct_users(DiscountClaim.device_id, device_id) > MAX_USERS_PER_DEVICE:
        alerts.append("Multiple accounts from same device")

    if ip_address and _distinct_users(DiscountClaim.ip_address, ip_address) > MAX_USERS_PER_IP:
        alerts.append("Multiple accounts from same IP")

    if alerts:
        db.session.add(FraudAlert(
            user_id=user_id,
            discount_id=discount_id,
            alert_type="suspicious_activity" if len(alerts) > 1 else "unusual_pattern",
            description="; ".join(alerts),
            severity=min(len(alerts) * 2, 5),
            ip_address=ip_address,
            device_id=device_id,
            evidence={"alerts": alerts, "timestamp": now.isoformat()},
        ))
        logger.warning(f"Fraud alert for user {user_id} on discount {discount_id}: {alerts}")

    return {"is_suspicious": bool(alerts), "alerts": alerts}


def list_fraud_alerts(page=1, limit=20, status=None):
    query = FraudAlert.query
    if status:
        query = query.filter_by(status=status)
    return paginated(query.order_by(FraudAlert.created_at.desc()), page, limit)
