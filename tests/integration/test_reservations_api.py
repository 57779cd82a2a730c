DAY = "2025-07-16"
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


def _join(ws, day):
    ws.send_json({"event": "join-date-room", "data": day})
    ws.send_json({"event": "fetch-reservations", "data": day})
    return ws.receive_json()


def _create(client, auth, **overrides):
    payload = {"date": DAY, "time_min": 600, "column_index": 2, "patient_name": "Taro"}
    payload.update(overrides)
    return client.post("/api/reservations", json=payload, auth=auth)


def test_reservation_crud_flow(client, staff_auth):
    created = _create(client, staff_auth)
    assert created.status_code == 201
    reservation = created.json()
    assert reservation["date"] == DAY
    assert reservation["created_at"]

    fetched = client.get(f"/api/reservations/{reservation['id']}", auth=staff_auth)
    assert fetched.status_code == 200
    assert fetched.json()["patient_name"] == "Taro"

    updated = client.put(
        f"/api/reservations/{reservation['id']}",
        json={"column_index": 3},
        auth=staff_auth,
    )
    assert updated.status_code == 200
    assert updated.json()["column_index"] == 3
    assert updated.json()["patient_name"] == "Taro"

    deleted = client.delete(f"/api/reservations/{reservation['id']}", auth=staff_auth)
    assert deleted.status_code == 204

    missing = client.get(f"/api/reservations/{reservation['id']}", auth=staff_auth)
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "http_404"


def test_occupied_slot_returns_409_with_conflicting_reservation(client, staff_auth):
    first = _create(client, staff_auth).json()

    response = _create(client, staff_auth, patient_name="Hanako")

    assert response.status_code == 409
    body = response.json()
    assert body["error"]["code"] == "http_409"
    assert body["error"]["message"] == "Time slot already occupied"
    assert body["detail"]["conflicting_reservation"]["id"] == first["id"]


def test_update_into_occupied_slot_returns_409(client, staff_auth):
    _create(client, staff_auth)
    other = _create(client, staff_auth, time_min=605).json()

    response = client.put(f"/api/reservations/{other['id']}", json={"time_min": 600}, auth=staff_auth)

    assert response.status_code == 409


def test_create_rejects_client_supplied_id(client, staff_auth):
    response = _create(client, staff_auth, id=5)

    assert response.status_code == 400


def test_create_rejects_off_grid_time(client, staff_auth):
    response = _create(client, staff_auth, time_min=601)

    assert response.status_code == 422
    assert response.json()["error"]["code"] == "validation_error"


def test_update_and_delete_missing_reservation_return_404(client, staff_auth):
    assert client.put("/api/reservations/999", json={"time_min": 600}, auth=staff_auth).status_code == 404
    assert client.delete("/api/reservations/999", auth=staff_auth).status_code == 404


def test_list_filters_by_range_column_and_paginates(client, staff_auth):
    _create(client, staff_auth, date="2025-07-15", time_min=540)
    _create(client, staff_auth, date="2025-07-16", time_min=600, column_index=1)
    _create(client, staff_auth, date="2025-07-16", time_min=540, column_index=1)
    _create(client, staff_auth, date="2025-07-18", time_min=600)

    single_day = client.get("/api/reservations", params={"date": DAY}, auth=staff_auth).json()
    assert single_day["total_count"] == 2
    assert [r["time_min"] for r in single_day["reservations"]] == [540, 600]

    ranged = client.get(
        "/api/reservations",
        params={"start_date": "2025-07-15", "end_date": "2025-07-17", "limit": 2, "page": 2},
        auth=staff_auth,
    ).json()
    assert ranged["total_count"] == 3
    assert ranged["page"] == 2
    assert [(r["date"], r["time_min"]) for r in ranged["reservations"]] == [("2025-07-16", 600)]

    by_column = client.get("/api/reservations", params={"column_index": 1}, auth=staff_auth).json()
    assert by_column["total_count"] == 2


def test_list_rejects_inverted_range(client, staff_auth):
    response = client.get(
        "/api/reservations",
        params={"start_date": "2025-07-18", "end_date": "2025-07-16"},
        auth=staff_auth,
    )

    assert response.status_code == 400


def test_rest_mutations_are_broadcast_to_room(client, staff_auth, ws_headers):
    with client.websocket_connect("/ws", headers=ws_headers) as ws:
        _join(ws, DAY)

        created = _create(client, staff_auth).json()
        message = ws.receive_json()
        assert message["event"] == "reservations-updated"
        assert [r["id"] for r in message["data"]] == [created["id"]]

        client.delete(f"/api/reservations/{created['id']}", auth=staff_auth)
        message = ws.receive_json()
        assert message["data"] == []
        assert message["meta"]["revision"] == 2


def test_handwriting_upload_and_download(client, staff_auth):
    uploaded = client.post(
        "/api/handwriting",
        files={"handwriting": ("note.png", PNG_BYTES, "image/png")},
        auth=staff_auth,
    )
    assert uploaded.status_code == 201
    body = uploaded.json()
    assert body["filename"].endswith(".png")
    assert body["url"] == f"/api/handwriting/{body['filename']}"
    assert body["size"] == len(PNG_BYTES)

    downloaded = client.get(body["url"], auth=staff_auth)
    assert downloaded.status_code == 200
    assert downloaded.headers["content-type"] == "image/png"
    assert downloaded.content == PNG_BYTES


def test_handwriting_upload_rejects_non_png(client, staff_auth):
    wrong_type = client.post(
        "/api/handwriting",
        files={"handwriting": ("note.txt", b"hello", "text/plain")},
        auth=staff_auth,
    )
    fake_png = client.post(
        "/api/handwriting",
        files={"handwriting": ("note.png", b"hello", "image/png")},
        auth=staff_auth,
    )

    assert wrong_type.status_code == 400
    assert fake_png.status_code == 400


def test_handwriting_download_of_unknown_file_returns_404(client, staff_auth):
    assert client.get("/api/handwriting/does-not-exist.png", auth=staff_auth).status_code == 404
    assert client.get("/api/handwriting/..%2Fsecret.png", auth=staff_auth).status_code == 404


def test_deleting_reservation_removes_its_handwriting(client, staff_auth, storage):
    filename = client.post(
        "/api/handwriting",
        files={"handwriting": ("note.png", PNG_BYTES, "image/png")},
        auth=staff_auth,
    ).json()["filename"]
    reservation = _create(client, staff_auth, patient_name=None, handwriting=filename).json()
    assert storage.exists(filename)

    client.delete(f"/api/reservations/{reservation['id']}", auth=staff_auth)

    assert not storage.exists(filename)


def test_reservation_routes_require_authentication(client):
    response = client.get("/api/reservations")

    assert response.status_code == 401
    assert response.headers["www-authenticate"].startswith("Basic")


def test_update_rejects_null_slot_fields(client, staff_auth):
    reservation = _create(client, staff_auth).json()

    for field in ("date", "time_min", "column_index"):
        response = client.put(f"/api/reservations/{reservation['id']}", json={field: None}, auth=staff_auth)
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "validation_error"

    stored = client.get(f"/api/reservations/{reservation['id']}", auth=staff_auth).json()
    assert (stored["date"], stored["time_min"], stored["column_index"]) == (DAY, 600, 2)
