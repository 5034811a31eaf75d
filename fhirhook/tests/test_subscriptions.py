async def test_subscription_crud_flow(client, mock_http):
    # Create
    payload = {
        "criteria": "Observation?status=final",
        "reason": "Monitor final lab results",
        "channel": {
            "type": "rest-hook",
            "endpoint": "https://example.com/hook",
            "header": {"Authorization": "Bearer s3cr3t"},
        },
    }
    r = await client.post("/Subscription", json=payload)
    assert r.status_code == 201
    sub = r.json()
    sub_id = sub["id"]
    assert sub["resourceType"] == "Subscription"
    assert sub["criteria"] == payload["criteria"]
    assert sub["channel"]["endpoint"] == payload["channel"]["endpoint"]
    assert sub["channel"]["header"] == payload["channel"]["header"]
    # Requested subscriptions are activated after a successful probe
    assert sub["status"] == "active"
    assert sub["errorCount"] == 0
    mock_http.post.assert_called_once()
    assert mock_http.post.call_args.kwargs["json"]["id"] == "test-notification"

    # Read
    r = await client.get(f"/Subscription/{sub_id}")
    assert r.status_code == 200
    assert r.json() == sub

    # Update
    upd = {"criteria": "Observation?status=amended"}
    r = await client.patch(f"/Subscription/{sub_id}", json=upd)
    assert r.status_code == 200
    updated = r.json()
    assert updated["criteria"] == upd["criteria"]
    assert updated["reason"] == payload["reason"]
    assert updated["channel"] == sub["channel"]

    # List
    r = await client.get("/Subscription")
    assert r.status_code == 200
    arr = r.json()
    assert any(item["id"] == sub_id for item in arr)

    # Delete
    r = await client.delete(f"/Subscription/{sub_id}")
    assert r.status_code == 204

    # Confirm gone
    r = await client.get(f"/Subscription/{sub_id}")
    assert r.status_code == 404


async def test_create_websocket_subscription_skips_probe(client, mock_http):
    payload = {"criteria": "Patient?active=true", "channel": {"type": "websocket"}}

    r = await client.post("/Subscription", json=payload)

    assert r.status_code == 201
    assert r.json()["status"] == "active"
    assert r.json()["channel"]["endpoint"] is None
    mock_http.post.assert_not_called()


async def test_create_with_explicit_status_is_not_activated(client, mock_http):
    payload = {
        "status": "off",
        "criteria": "Patient",
        "channel": {"type": "rest-hook", "endpoint": "https://example.com/hook"},
    }

    r = await client.post("/Subscription", json=payload)

    assert r.status_code == 201
    assert r.json()["status"] == "off"
    mock_http.post.assert_not_called()


async def test_list_filters(client, make_subscription):
    labs = await make_subscription(criteria="Observation?status=final")
    await make_subscription(criteria="Patient?active=true", status="off")
    await make_subscription(criteria="Encounter", status="error")

    r = await client.get("/Subscription", params={"criteria": "observation"})
    assert [s["id"] for s in r.json()] == [str(labs.id)]

    r = await client.get("/Subscription", params={"status": "off"})
    assert [s["criteria"] for s in r.json()] == ["Patient?active=true"]

    r = await client.get("/Subscription", params={"skip": 1, "limit": 1})
    assert len(r.json()) == 1


async def test_deactivate_and_reactivate(client, make_subscription, mock_http):
    sub = await make_subscription(status="active")

    r = await client.post(f"/Subscription/{sub.id}/$deactivate")
    assert r.status_code == 200
    assert r.json()["status"] == "off"

    r = await client.post(f"/Subscription/{sub.id}/$activate")
    assert r.status_code == 200
    assert r.json()["status"] == "active"
    mock_http.post.assert_called_once()


async def test_activate_resets_error_state(client, make_subscription, mock_http):
    sub = await make_subscription(status="error", error_count=5, last_error="HTTP 503")

    r = await client.post(f"/Subscription/{sub.id}/$activate")

    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "active"
    assert body["errorCount"] == 0
    assert body["lastError"] is None
