from datetime import datetime, timedelta


def _window():
    now = datetime.utcnow()
    return (now - timedelta(days=1)).isoformat(), (now + timedelta(days=30)).isoformat()


def test_register_login_and_me(client, broker):
    response = client.post("/auth/register", json={
        "full_name": "jane doe",
        "email": "Jane@Mail.uz",
        "password": "correct-horse",
    })
    assert response.status_code == 201
    body = response.get_json()
    assert body["user"]["email"] == "jane@mail.uz"
    assert body["user"]["full_name"] == "Jane Doe"
    assert body["user"]["verification_status"] == "unverified"
    assert broker.queues["emails"].qsize() == 1

    duplicate = client.post("/auth/register", json={
        "full_name": "Jane", "email": "jane@mail.uz", "password": "correct-horse",
    })
    assert duplicate.status_code == 409

    login = client.post("/auth/login", json={"email": "jane@mail.uz", "password": "correct-horse"})
    assert login.status_code == 200
    token = login.get_json()["access_token"]

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.get_json()["email"] == "jane@mail.uz"

    wrong = client.post("/auth/login", json={"email": "jane@mail.uz", "password": "nope"})
    assert wrong.status_code == 401


def test_validation_errors_list_fields(client, partner, auth_headers):
    response = client.post("/discounts", json={"title": ""}, headers=auth_headers(partner))
    assert response.status_code == 400
    body = response.get_json()
    assert body["error"] == "Invalid request body"
    fields = {d["field"] for d in body["details"]}
    assert {"brand_id", "title", "discount_type"} <= fields


def test_students_cannot_create_discounts(client, student, brand, auth_headers):
    start, end = _window()
    response = client.post("/discounts", json={
        "brand_id": brand.id, "title": "Nope", "discount_type": "percentage",
        "discount_value": 10, "start_date": start, "end_date": end,
    }, headers=auth_headers(student))
    assert response.status_code == 403
    assert response.get_json() == {"error": "Unauthorized"}


def test_unverified_student_cannot_claim(client, make_user, make_discount, auth_headers):
    start, end = _window()
    discount = make_discount(start_date=datetime.fromisoformat(start), end_date=datetime.fromisoformat(end))
    pending = make_user(verification_status="pending_verification")

    response = client.post(f"/discounts/{discount.id}/claim", json={}, headers=auth_headers(pending))
    assert response.status_code == 403
    assert response.get_json()["error"] == "Your verification is under review. Please wait for approval."


def test_missing_token(client):
    assert client.get("/discounts/claims/mine").status_code == 401


def test_unknown_discount_is_404(client):
    response = client.get("/discounts/999")
    assert response.status_code == 404
    assert response.get_json() == {"error": "Discount not found"}


def test_discount_lifecycle(client, partner, admin, student, brand, auth_headers):
    start, end = _window()

    created = client.post("/discounts", json={
        "brand_id": brand.id,
        "title": "Student Lunch",
        "discount_type": "percentage",
        "discount_value": 20,
        "max_discount_amount": 20000,
        "start_date": start,
        "end_date": end,
    }, headers=auth_headers(partner))
    assert created.status_code == 201
    discount = created.get_json()
    assert discount["approval_status"] == "pending"

    not_yet = client.post(f"/discounts/{discount['id']}/claim", json={}, headers=auth_headers(student))
    assert not_yet.status_code == 400
    assert not_yet.get_json()["error"] == "Discount is not approved"

    queue = client.get("/discounts/admin/pending", headers=auth_headers(admin)).get_json()
    assert [d["id"] for d in queue["data"]] == [discount["id"]]

    approved = client.post(f"/discounts/admin/{discount['id']}/approve", json={}, headers=auth_headers(admin))
    assert approved.status_code == 200
    again = client.post(f"/discounts/admin/{discount['id']}/approve", json={}, headers=auth_headers(admin))
    assert again.status_code == 400

    eligibility = client.get(f"/discounts/{discount['id']}/eligibility", headers=auth_headers(student))
    assert eligibility.get_json() == {"allowed": True, "reason": None}

    claimed = client.post(
        f"/discounts/{discount['id']}/claim",
        json={"device_id": "phone-1"},
        headers={**auth_headers(student), "X-Forwarded-For": "203.0.113.7"},
    )
    assert claimed.status_code == 201
    code = claimed.get_json()["claim_code"]

    pending = client.get("/discounts/partner/pending-verifications", headers=auth_headers(partner)).get_json()
    assert [c["claim_code"] for c in pending["data"]] == [code]

    redeemed = client.post(
        f"/discounts/claims/{code}/redeem",
        json={"transaction_amount": "150000"},
        headers=auth_headers(partner),
    )
    assert redeemed.status_code == 200
    assert redeemed.get_json()["discount_amount"] == 20000.0

    twice = client.post(
        f"/discounts/claims/{code}/redeem",
        json={"transaction_amount": "150000"},
        headers=auth_headers(partner),
    )
    assert twice.status_code == 400
    assert twice.get_json()["error"] == "Claim is already redeemed"

    savings = client.get("/discounts/savings", headers=auth_headers(student)).get_json()
    assert savings["total_discounts_used"] == 1
    assert savings["total_savings"] == 20000.0
    assert savings["savings_by_brand"] == {"Cafe Uno": 20000.0}

    analytics = client.get("/discounts/partner/analytics", headers=auth_headers(partner)).get_json()
    assert analytics["total_claims"] == 1
    assert analytics["total_redemptions"] == 1
    assert analytics["redemption_rate"] == 100.0

    mine = client.get("/discounts/claims/mine?status=redeemed", headers=auth_headers(student)).get_json()
    assert mine["meta"]["total"] == 1


def test_admin_must_name_brand_for_partner_views(client, admin, brand, auth_headers):
    missing = client.get("/discounts/partner/discounts", headers=auth_headers(admin))
    assert missing.status_code == 400

    scoped = client.get(f"/discounts/partner/discounts?brand_id={brand.id}", headers=auth_headers(admin))
    assert scoped.status_code == 200
    assert scoped.get_json()["meta"]["total"] == 0


def test_verification_flow(client, make_user, admin, auth_headers, broker):
    student = make_user(verification_status="email_verified")

    submitted = client.post("/verification/requests", json={
        "student_id_number": "S-77",
        "documents": [{"document_type": "student_id_front", "file_url": "https://cdn.example.com/a.jpg"}],
    }, headers=auth_headers(student))
    assert submitted.status_code == 201
    request_id = submitted.get_json()["id"]

    status = client.get("/verification/status", headers=auth_headers(student)).get_json()
    assert status["verification_status"] == "pending_verification"
    assert status["pending_request_id"] == request_id

    forbidden = client.get("/verification/requests", headers=auth_headers(student))
    assert forbidden.status_code == 403

    listing = client.get("/verification/requests", headers=auth_headers(admin)).get_json()
    assert [r["id"] for r in listing["data"]] == [request_id]

    bad = client.post(f"/verification/requests/{request_id}/review",
                      json={"decision": "maybe"}, headers=auth_headers(admin))
    assert bad.status_code == 400

    reviewed = client.post(f"/verification/requests/{request_id}/review",
                           json={"decision": "approve"}, headers=auth_headers(admin))
    assert reviewed.status_code == 200
    assert reviewed.get_json()["status"] == "approved"

    status = client.get("/verification/status", headers=auth_headers(student)).get_json()
    assert status["verification_status"] == "verified"
    assert status["can_use_discounts"] is True

    history = client.get("/verification/history", headers=auth_headers(student)).get_json()
    assert len(history["data"]) == 1


def test_university_domain_admin(client, admin, university, auth_headers):
    created = client.post("/verification/university-domains", json={
        "university_id": university.id, "domain": "wiut.uz",
    }, headers=auth_headers(admin))
    assert created.status_code == 201
    assert created.get_json()["domain"] == "@wiut.uz"

    listing = client.get("/verification/university-domains").get_json()
    assert [d["domain"] for d in listing["data"]] == ["@wiut.uz"]

    analysis = client.post("/verification/analyze-email", json={"email": "x@wiut.uz"},
                           headers=auth_headers(admin)).get_json()
    assert analysis["analysis"]["confidence"] == "high"


def test_partial_update_cannot_clear_required_columns(client, partner, brand, auth_headers):
    start, end = _window()
    created = client.post("/discounts", json={
        "brand_id": brand.id,
        "title": "Coffee Deal",
        "discount_type": "fixed",
        "discount_value": 5000,
        "start_date": start,
        "end_date": end,
    }, headers=auth_headers(partner)).get_json()

    for field in ("title", "start_date"):
        response = client.patch(f"/discounts/{created['id']}", json={field: None},
                                headers=auth_headers(partner))
        assert response.status_code == 400
        assert response.get_json()["error"] == "Invalid request body"

    current = client.get(f"/discounts/{created['id']}").get_json()
    assert current["title"] == "Coffee Deal"
    assert current["start_date"] is not None


def test_admin_reads_audit_log(client, db, admin, student, auth_headers):
    from app.services import audit

    audit.record("verification_approved", "user", entity_id=student.id, user_id=student.id, actor_id=admin.id)
    audit.record("discount_approved", "discount", entity_id=7, actor_id=admin.id)
    db.session.commit()

    everything = client.get("/audit", headers=auth_headers(admin))
    assert everything.status_code == 200
    assert len(everything.get_json()["data"]) == 2

    by_user = client.get(f"/audit?user_id={student.id}", headers=auth_headers(admin)).get_json()
    assert [e["action"] for e in by_user["data"]] == ["verification_approved"]

    by_entity = client.get("/audit?entity_type=discount&entity_id=7", headers=auth_headers(admin)).get_json()
    assert [e["action"] for e in by_entity["data"]] == ["discount_approved"]

    assert client.get("/audit", headers=auth_headers(student)).status_code == 403
