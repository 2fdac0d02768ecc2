"""Shared request helpers for the API tests."""

PASSWORD = "secret123"
ADMIN_EMAIL = "admin@example.org"


def register(client, email, role="donor", display_name=None):
    resp = client.post(
        "/register",
        json={
            "email": email,
            "display_name": display_name or email.split("@")[0],
            "password": PASSWORD,
            "role": role,
        },
    )
    assert resp.status_code == 200, resp.text
    return resp.json()


def register_home(client, name="Sunrise Children's Home", logo=None):
    files = {"registration_doc": ("certificate.pdf", b"%PDF-1.4 registration", "application/pdf")}
    if logo is not None:
        files["logo"] = logo
    resp = client.post(
        "/homes/",
        data={"name": name, "address": "12 Hope Road, Nairobi", "story": "We care for 40 kids."},
        files=files,
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


def set_verification(admin_client, home_id, status, reason=None):
    body = {"status": status}
    if reason is not None:
        body["reason"] = reason
    return admin_client.post(f"/admin/homes/{home_id}/verification", json=body)


def post_need(client, **overrides):
    payload = {
        "category": "education",
        "title": "School shoes",
        "description": "Black school shoes, sizes 30-38",
        "urgency": "medium",
        "quantity": 3,
    }
    payload.update(overrides)
    resp = client.post("/needs/", json=payload)
    assert resp.status_code == 201, resp.text
    return resp.json()


def pledge(client, need_id, quantity=1):
    return client.post(f"/needs/{need_id}/pledges", json={"quantity": quantity})
