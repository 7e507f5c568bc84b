SIMPLE_PDF = b"%PDF-1.4\n1 0 obj\n<< /Type /Catalog >>\nendobj\ntrailer\n<< /Root 1 0 R >>\n%%EOF\n"
TINY_PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


def test_pitch_deck_upload_and_download(client, founder, mock_storage):
    headers, user = founder
    resp = client.post(
        "/api/uploads",
        files={"file": ("deck.pdf", SIMPLE_PDF, "application/pdf")},
        data={"type": "pitch_deck"},
        headers=headers,
    )
    assert resp.status_code == 201
    upload = resp.json()
    assert upload["size"] == len(SIMPLE_PDF)
    assert upload["url"] == f"/api/uploads/{upload['id']}/file"
    assert any(key.startswith(f"uploads/{user['id']}/pitch_deck/") for key in mock_storage)

    listed = client.get("/api/uploads", headers=headers).json()
    assert [u["id"] for u in listed] == [upload["id"]]
    download = client.get(upload["url"], headers=headers)
    assert download.content == SIMPLE_PDF


def test_upload_type_and_mime_rules(client, founder):
    headers, _ = founder
    wrong_mime = client.post(
        "/api/uploads",
        files={"file": ("deck.png", TINY_PNG, "image/png")},
        data={"type": "pitch_deck"},
        headers=headers,
    )
    assert wrong_mime.status_code == 400
    bad_type = client.post(
        "/api/uploads",
        files={"file": ("a.pdf", SIMPLE_PDF, "application/pdf")},
        data={"type": "safe_agreement"},
        headers=headers,
    )
    assert bad_type.status_code == 400


def test_logo_size_limit(client, founder):
    headers, _ = founder
    big = TINY_PNG + b"\x00" * (2 * 1024 * 1024)
    resp = client.post(
        "/api/uploads",
        files={"file": ("logo.png", big, "image/png")},
        data={"type": "logo"},
        headers=headers,
    )
    assert resp.status_code == 413


def test_files_are_private_to_owner(client, founder, investor):
    resp = client.post(
        "/api/uploads",
        files={"file": ("me.png", TINY_PNG, "image/png")},
        data={"type": "profile_photo"},
        headers=investor[0],
    )
    assert resp.status_code == 201
    assert client.get(resp.json()["url"], headers=founder[0]).status_code == 403
    assert client.get("/api/uploads", headers=founder[0]).json() == []


def test_upload_keys_stay_under_the_owner_prefix(client, founder, mock_storage):
    headers, user = founder
    resp = client.post(
        "/api/uploads",
        files={"file": ("../../other/deck.pdf", SIMPLE_PDF, "application/pdf")},
        data={"type": "pitch_deck"},
        headers=headers,
    )
    assert resp.status_code == 201
    (key,) = mock_storage
    assert key == f"uploads/{user['id']}/pitch_deck/{resp.json()['id']}-deck.pdf"
