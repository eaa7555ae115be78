import base64

from conftest import StubResponse

VENDOR = "https://rest.smsportal.com"


def _creds(monkeypatch):
    monkeypatch.setenv("SMS_CLIENT_ID", "cid")
    monkeypatch.setenv("SMS_CLIENT_SECRET", "secret")


def test_send_empty_message(client, vendor):
    resp = client.post("/api/sms/send", json={"message": "", "recipients": ["0821234567"]})
    assert resp.status_code == 400
    assert resp.json() == {"success": False, "error": "Message cannot be empty"}


def test_send_blank_message(client, vendor):
    resp = client.post("/api/sms/send", json={"message": "   ", "recipients": ["0821234567"]})
    assert resp.status_code == 400
    assert resp.json()["success"] is False


def test_send_no_recipients(client, vendor):
    resp = client.post("/api/sms/send", json={"message": "hi", "recipients": []})
    assert resp.status_code == 400
    assert resp.json() == {"success": False, "error": "No recipients specified"}

    resp = client.post("/api/sms/send", json={"message": "hi"})
    assert resp.status_code == 400


def test_send_no_valid_numbers(client, vendor):
    resp = client.post("/api/sms/send", json={"message": "hi", "recipients": ["", {"name": "x"}, "n/a"]})
    assert resp.status_code == 400
    assert resp.json() == {"success": False, "error": "No valid recipient numbers found"}
    assert vendor.calls == []


def test_send_forwards_bulk_payload(client, vendor, monkeypatch):
    _creds(monkeypatch)
    vendor.next_response = StubResponse(200, '{"eventId": 42, "cost": 1}', "application/json; charset=utf-8")

    resp = client.post("/api/sms/send", json={
        "message": " hi ",
        "recipients": [{"phone": "0821234567"}, "bad", "+27 83 000 1111"],
        "options": {"reference": "ref-1", "testMode": True, "senderId": "RS"},
    })

    assert resp.status_code == 200
    assert resp.json() == {"eventId": 42, "cost": 1}

    call = vendor.calls[0]
    assert call["method"] == "POST"
    assert call["url"] == f"{VENDOR}/BulkMessages"
    expected_auth = "Basic " + base64.b64encode(b"cid:secret").decode("ascii")
    assert call["headers"]["Authorization"] == expected_auth
    assert call["json"] == {
        "messages": [
            {"content": "hi", "destination": "27821234567", "reference": "ref-1"},
            {"content": "hi", "destination": "27830001111", "reference": "ref-1"},
        ],
        "testMode": True,
        "senderId": "RS",
    }


def test_send_missing_credentials(client, vendor):
    resp = client.post("/api/sms/send", json={"message": "hi", "recipients": ["0821234567"]})
    assert resp.status_code == 400
    body = resp.json()
    assert body["ok"] is False
    assert body["error"] == "Missing SMS credentials"
    assert "SMS_CLIENT_ID" in body["hint"]
    assert vendor.calls == []


def test_send_relays_vendor_failure_status(client, vendor, monkeypatch):
    _creds(monkeypatch)
    vendor.next_response = StubResponse(401, '{"errorCode": 401}', "application/json")
    resp = client.post("/api/sms/send", json={"message": "hi", "recipients": ["0821234567"]})
    assert resp.status_code == 401
    assert resp.json() == {"errorCode": 401}


def test_balance_check(client, vendor, monkeypatch):
    _creds(monkeypatch)
    vendor.next_response = StubResponse(200, '{"balance": 120}', "application/json")
    resp = client.get("/api/sms/test")
    assert resp.status_code == 200
    assert resp.json() == {"balance": 120}
    call = vendor.calls[0]
    assert call["method"] == "GET"
    assert call["url"] == f"{VENDOR}/v1/Balance"
    assert "json" not in call


def test_passthrough_keeps_path_query_and_body(client, vendor, monkeypatch):
    _creds(monkeypatch)
    vendor.next_response = StubResponse(201, "created", "text/plain")
    resp = client.post("/api/sms/v1/Groups?page=2", json={"name": "staff"})
    assert resp.status_code == 201
    assert resp.text == "created"
    call = vendor.calls[0]
    assert call["url"] == f"{VENDOR}/v1/Groups?page=2"
    assert call["json"] == {"name": "staff"}


def test_passthrough_root_get(client, vendor, monkeypatch):
    _creds(monkeypatch)
    vendor.next_response = StubResponse(404, "not found", "")
    resp = client.get("/api/sms")
    assert resp.status_code == 404
    assert vendor.calls[0]["url"] == VENDOR
    assert vendor.calls[0]["method"] == "GET"


def test_passthrough_non_json_body_becomes_empty_object(client, vendor, monkeypatch):
    _creds(monkeypatch)
    vendor.next_response = StubResponse(200, "{}", "application/json")
    client.delete("/api/sms/v1/Groups/7")
    call = vendor.calls[0]
    assert call["method"] == "DELETE"
    assert call["json"] == {}


def test_passthrough_missing_credentials(client, vendor):
    resp = client.get("/api/sms/v1/Balance")
    assert resp.status_code == 400
    body = resp.json()
    assert body["ok"] is False
    assert "hint" in body


def test_passthrough_network_failure(client, vendor, monkeypatch):
    _creds(monkeypatch)
    vendor.raise_with = ConnectionError("dns failure")
    resp = client.put("/api/sms/v1/Groups/7", json={"name": "x"})
    assert resp.status_code == 500
    body = resp.json()
    assert body["ok"] is False
    assert body["error"] == "dns failure"


def test_send_non_object_options_ignored(client, vendor, monkeypatch):
    _creds(monkeypatch)
    vendor.next_response = StubResponse(200, "{}", "application/json")
    resp = client.post("/api/sms/send", json={"message": "hi", "recipients": ["0821234567"], "options": []})
    assert resp.status_code == 200
    assert vendor.calls[0]["json"] == {
        "messages": [{"content": "hi", "destination": "27821234567"}],
        "testMode": False,
    }


def test_send_array_body_is_400_with_success_flag(client, vendor):
    resp = client.post("/api/sms/send", json=["hi"])
    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert "error" in body
    assert "detail" not in body
