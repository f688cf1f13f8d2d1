from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest

from app.errors import BadRequestError, ForbiddenError, NotFoundError
from app.models import AuditLog, Discount, DiscountClaim, User
from app.services import claims
from app.services.redemption import compute_cashback_amount, compute_discount_amount, redeem_claim

from conftest import NOW


def _terms(**kwargs):
    defaults = {
        "discount_type": "percentage",
        "discount_value": Decimal("20"),
        "max_discount_amount": None,
        "cashback_percentage": None,
        "max_cashback_amount": None,
    }
    defaults.update(kwargs)
    return SimpleNamespace(**defaults)


def test_percentage_is_capped():
    terms = _terms(max_discount_amount=Decimal("20000"))
    assert compute_discount_amount(terms, Decimal("150000")) == Decimal("20000.00")
    assert compute_discount_amount(terms, Decimal("50000")) == Decimal("10000.00")


def test_percentage_rounds_half_up():
    terms = _terms(discount_value=Decimal("15"))
    assert compute_discount_amount(terms, Decimal("0.50")) == Decimal("0.08")


def test_fixed_amount_and_other_types():
    assert compute_discount_amount(_terms(discount_type="fixed_amount", discount_value=Decimal("5000")), 12000) \
        == Decimal("5000.00")
    assert compute_discount_amount(_terms(discount_type="free_item"), 12000) is None


def test_cashback():
    terms = _terms(discount_type="cashback", cashback_percentage=Decimal("10"), max_cashback_amount=Decimal("3000"))
    assert compute_cashback_amount(terms, Decimal("20000")) == Decimal("2000.00")
    assert compute_cashback_amount(terms, Decimal("90000")) == Decimal("3000.00")
    assert compute_cashback_amount(_terms(), Decimal("90000")) is None


def test_redeem_updates_claim_discount_and_student(db, make_discount, student, partner):
    discount = make_discount(max_discount_amount=Decimal("20000"))
    claim = claims.claim_discount(discount.id, student.id, now=NOW)

    result = redeem_claim(claim.claim_code, partner.id, Decimal("150000"), now=NOW + timedelta(hours=1))

    assert result["discount_amount"] == 20000.0
    assert result["cashback_amount"] is None
    assert result["claim"]["status"] == "redeemed"
    assert result["user"]["id"] == student.id

    claim = db.session.get(DiscountClaim, claim.id)
    assert claim.verified_by == partner.id
    assert claim.redeemed_at == NOW + timedelta(hours=1)

    discount = db.session.get(Discount, discount.id)
    assert discount.total_redemptions == 1
    assert discount.current_usage_count == 1
    assert discount.total_savings_generated == Decimal("20000.00")

    student = db.session.get(User, student.id)
    assert student.total_discounts_used == 1
    assert student.total_savings == Decimal("20000.00")

    entry = AuditLog.query.filter_by(action="discount_redeemed").one()
    assert (entry.previous_status, entry.new_status) == ("claimed", "redeemed")
    assert entry.actor_id == partner.id


def test_partner_supplied_amount_wins(make_discount, student, partner):
    claim = claims.claim_discount(make_discount().id, student.id, now=NOW)
    result = redeem_claim(claim.claim_code, partner.id, Decimal("10000"), discount_amount=Decimal("1500"), now=NOW)
    assert result["discount_amount"] == 1500.0


def test_unknown_code(partner):
    with pytest.raises(NotFoundError):
        redeem_claim("STU-00000000-2026", partner.id, Decimal("100"), now=NOW)


def test_partner_of_another_brand_is_refused(make_discount, make_brand, make_user, student):
    claim = claims.claim_discount(make_discount().id, student.id, now=NOW)
    outsider = make_user(role="partner", brand_id=make_brand(name="Other").id)

    with pytest.raises(ForbiddenError) as exc:
        redeem_claim(claim.claim_code, outsider.id, Decimal("100"), now=NOW)
    assert exc.value.message == "You can only redeem claims for your own brand"


def test_admin_can_redeem_any_claim(make_discount, student, admin):
    claim = claims.claim_discount(make_discount().id, student.id, now=NOW)
    result = redeem_claim(claim.claim_code, admin.id, Decimal("100"), now=NOW)
    assert result["claim"]["status"] == "redeemed"


def test_claim_can_only_be_redeemed_once(make_discount, student, partner):
    claim = claims.claim_discount(make_discount().id, student.id, now=NOW)
    redeem_claim(claim.claim_code, partner.id, Decimal("100"), now=NOW)

    with pytest.raises(BadRequestError) as exc:
        redeem_claim(claim.claim_code, partner.id, Decimal("100"), now=NOW)
    assert exc.value.message == "Claim is already redeemed"


def test_expired_claim_is_marked_on_redeem(db, make_discount, student, partner):
    claim = claims.claim_discount(make_discount(claim_expiry_hours=24).id, student.id, now=NOW)

    with pytest.raises(BadRequestError) as exc:
        redeem_claim(claim.claim_code, partner.id, Decimal("100"), now=NOW + timedelta(hours=25))
    assert exc.value.message == "Claim has expired"
    assert db.session.get(DiscountClaim, claim.id).status == "expired"

    with pytest.raises(BadRequestError) as exc:
        redeem_claim(claim.claim_code, partner.id, Decimal("100"), now=NOW + timedelta(hours=26))
    assert exc.value.message == "Claim is already expired"


def test_global_limit_holds_at_redemption(db, make_discount, make_user, partner):
    discount = make_discount(usage_limit_type="unlimited", total_usage_limit=1)
    first = claims.claim_discount(discount.id, make_user().id, now=NOW)
    second = claims.claim_discount(discount.id, make_user().id, now=NOW)

    redeem_claim(first.claim_code, partner.id, Decimal("100"), now=NOW)
    with pytest.raises(BadRequestError) as exc:
        redeem_claim(second.claim_code, partner.id, Decimal("100"), now=NOW)
    assert exc.value.message == "This discount has reached its total usage limit"

    assert db.session.get(Discount, discount.id).current_usage_count == 1
    assert db.session.get(DiscountClaim, second.id).status == "claimed"
