from helpers import pledge, post_need, register_home, set_verification


def test_register_home_starts_in_received(make_client):
    client = make_client("home")
    home = register_home(client)
    assert home["verification_status"] == "received"
    assert home["verified"] is False
    assert home["account_status"] == "active"
    assert "registration_doc_path" not in home

    assert client.get("/homes/me").json()["id"] == home["id"]


def test_registration_requires_document(make_client):
    client = make_client("home")
    resp = client.post("/homes/", data={"name": "No Docs Home", "address": "1 Road"})
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Please upload a verification document"

    empty = client.post(
        "/homes/",
        data={"name": "No Docs Home", "address": "1 Road"},
        files={"registration_doc": ("cert.pdf", b"", "application/pdf")},
    )
    assert empty.status_code == 400
    assert empty.json()["detail"] == "Verification document upload failed"
    assert client.get("/homes/me").status_code == 404


def test_registration_requires_name_and_address(make_client):
    client = make_client("home")
    doc = {"registration_doc": ("cert.pdf", b"%PDF", "application/pdf")}
    assert client.post("/homes/", data={"address": "1 Road"}, files=doc).status_code == 400
    assert client.post("/homes/", data={"name": "Home"}, files=doc).status_code == 400


def test_file_in_a_text_field_is_treated_as_missing(make_client):
    client = make_client("home")
    files = {
        "name": ("name.txt", b"Hope House", "text/plain"),
        "latitude": ("lat.txt", b"1.5", "text/plain"),
        "registration_doc": ("cert.pdf", b"%PDF", "application/pdf"),
    }
    resp = client.post("/homes/", data={"address": "1 Road"}, files=files)
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Please enter your home's name"

    files["name"] = (None, b"Hope House")
    home = client.post("/homes/", data={"address": "1 Road"}, files=files)
    assert home.status_code == 201
    assert home.json()["latitude"] is None


def test_failed_logo_upload_does_not_block_registration(make_client):
    client = make_client("home")
    home = register_home(client, logo=("logo.png", b"", "image/png"))
    assert home["logo_url"] is None


def test_logo_is_stored_when_present(make_client):
    client = make_client("home")
    home = register_home(client, logo=("logo.png", b"\x89PNG logo", "image/png"))
    assert home["logo_url"].startswith("/files/images/logos/")
    assert client.get(home["logo_url"]).content == b"\x89PNG logo"


def test_one_home_per_account(make_client):
    client = make_client("home")
    register_home(client)
    resp = client.post(
        "/homes/",
        data={"name": "Second", "address": "2 Road"},
        files={"registration_doc": ("cert.pdf", b"%PDF", "application/pdf")},
    )
    assert resp.status_code == 400


def test_donor_cannot_register_home(donor_client):
    resp = donor_client.post(
        "/homes/",
        data={"name": "Nope", "address": "2 Road"},
        files={"registration_doc": ("cert.pdf", b"%PDF", "application/pdf")},
    )
    assert resp.status_code == 403


def test_owner_edits_profile_but_not_status(make_client):
    client = make_client("home")
    register_home(client)
    resp = client.patch(
        "/homes/me",
        json={"story": "New story", "contact_phone": "+254 700 000000", "verified": True},
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["story"] == "New story"
    assert body["contact_phone"] == "+254 700 000000"
    assert body["verified"] is False


def test_cover_upload(make_client):
    client = make_client("home")
    register_home(client)
    resp = client.post("/homes/me/cover", files={"file": ("cover.jpg", b"jpeg", "image/jpeg")})
    assert resp.status_code == 200
    assert resp.json()["cover_image_url"].startswith("/files/images/covers/")

    failed = client.post("/homes/me/logo", files={"file": ("logo.png", b"", "image/png")})
    assert failed.status_code == 400
    assert failed.json()["detail"] == "Failed to upload photo"


def test_resubmit_document(make_client, admin_client):
    client = make_client("home")
    home = register_home(client)
    set_verification(admin_client, home["id"], "needs_documents")

    resp = client.post(
        "/homes/me/registration-doc",
        files={"registration_doc": ("extra.pdf", b"%PDF extra", "application/pdf")},
    )
    assert resp.status_code == 200

    doc_url = admin_client.get(f"/admin/homes/{home['id']}").json()["registration_doc_url"]
    assert admin_client.get(doc_url).content == b"%PDF extra"


def test_public_profile_only_for_approved_homes(client, make_client, admin_client):
    owner = make_client("home")
    home = register_home(owner)
    assert client.get(f"/homes/{home['id']}").status_code == 404

    set_verification(admin_client, home["id"], "approved")
    post_need(owner, title="Mattresses")

    profile = client.get(f"/homes/{home['id']}").json()
    assert profile["home"]["name"] == "Sunrise Children's Home"
    assert profile["story"] == "We care for 40 kids."
    assert [n["title"] for n in profile["needs"]] == ["Mattresses"]


def test_home_stats_and_pending_pledges(home_client, donor_client):
    filled = post_need(home_client, quantity=1)
    post_need(home_client, quantity=4)
    room_id = pledge(donor_client, filled["id"], 1).json()["chat_room_id"]
    donor_client.post(f"/chat/rooms/{room_id}/messages", json={"content": "When can I drop it off?"})

    stats = home_client.get("/homes/me/stats").json()
    assert stats == {
        "active_needs": 1,
        "pending_pickup": 1,
        "completed_this_month": 0,
        "unread_messages": 1,
    }
    assert home_client.get("/homes/me/pending-pledges").json() == {"count": 1}

    home_client.post(f"/needs/{filled['id']}/complete")
    stats = home_client.get("/homes/me/stats").json()
    assert stats["completed_this_month"] == 1
    assert stats["pending_pickup"] == 0
    assert home_client.get("/homes/me/pending-pledges").json() == {"count": 0}
