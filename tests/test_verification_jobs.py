from datetime import datetime, timedelta

from app.models import AuditLog, User, VerificationRequest
from app.services import verification_jobs as jobs

from conftest import NOW


def test_expire_verifications(db, make_user, broker):
    overdue = make_user(next_verification_due=NOW - timedelta(days=1))
    graduated = make_user(expected_graduation_date=NOW - timedelta(days=1),
                          next_verification_due=NOW + timedelta(days=100))
    lapsed_grace = make_user(verification_status="grace_period", next_verification_due=NOW - timedelta(hours=1))
    current = make_user(next_verification_due=NOW + timedelta(days=30))

    assert jobs.expire_verifications(now=NOW) == 3

    for user in (overdue, graduated, lapsed_grace):
        assert db.session.get(User, user.id).verification_status == "verification_expired"
    assert db.session.get(User, current.id).verification_status == "verified"
    assert AuditLog.query.filter_by(action="verification_expired").count() == 3
    assert broker.queues["emails"].qsize() == 3


def test_expiry_reminders(make_user, broker):
    make_user(next_verification_due=NOW + timedelta(days=3))
    make_user(next_verification_due=NOW + timedelta(days=20))
    make_user(verification_status="grace_period", next_verification_due=NOW + timedelta(days=3))

    assert jobs.send_expiry_reminders(days_before=7, now=NOW) == 1
    assert broker.queues["emails"].qsize() == 1


def test_escalate_long_pending_requests(db, make_user):
    stale = VerificationRequest(user_id=make_user().id, submitted_at=NOW - timedelta(hours=80))
    recent = VerificationRequest(user_id=make_user().id, submitted_at=NOW - timedelta(hours=10))
    db.session.add_all([stale, recent])
    db.session.commit()

    assert jobs.escalate_pending(hours=72, now=NOW) == 1
    assert db.session.get(VerificationRequest, stale.id).priority == 3
    assert db.session.get(VerificationRequest, recent.id).priority == 1

    # already escalated requests are left alone
    assert jobs.escalate_pending(hours=72, now=NOW) == 0


def test_cli_commands(app, make_discount):
    old = datetime.utcnow() - timedelta(days=60)
    make_discount(start_date=old, end_date=old + timedelta(days=1))

    runner = app.test_cli_runner()
    result = runner.invoke(args=["perks", "deactivate-discounts"])
    assert result.exit_code == 0
    assert "Deactivated discounts: 1" in result.output

    result = runner.invoke(args=["perks", "escalate-pending", "--hours", "24"])
    assert result.exit_code == 0
    assert "Escalated requests: 0" in result.output

    result = runner.invoke(args=["perks", "expire-claims"])
    assert "Expired claims: 0" in result.output
