import pytest

import app as app_module


@pytest.fixture
def client():
    app_module.app.config["TESTING"] = True
    app_module._sessions.clear()
    with app_module.app.test_client() as c:
        c.post("/api/aliases/clear")
        yield c


RAW = {"kit": "K001", "unit": "", "component": "S", "sample": "001"}
E6 = {"kit": "K001", "unit": "E", "component": "6", "sample": "001"}


def test_label_endpoint(client):
    resp = client.post("/api/identity/label", json=E6)
    assert resp.status_code == 200
    assert resp.get_json() == {"label": "E6-001", "package": "K001E"}


def test_malformed_identity_is_422(client):
    resp = client.post("/api/identity/label", json=RAW)
    assert resp.status_code == 422
    assert resp.get_json()["type"] == "MalformedIdentity"


def test_key_endpoint(client):
    resp = client.post("/api/identity/key", json={"identity": E6, "suffix": "tech_call"})
    assert resp.get_json()["key"] == "E6-001_tech_call"
    assert client.post("/api/identity/key", json={"identity": E6}).status_code == 400


def test_alias_flow(client):
    assert client.post("/api/aliases/root",
                       json={"identity": RAW, "annotation": "a patient id"}).status_code == 200
    assert client.post("/api/aliases", json={"child": E6, "parent": RAW}).status_code == 200
    dup = client.post("/api/aliases", json={"child": E6, "parent": RAW})
    assert dup.status_code == 409

    chain = client.post("/api/aliases/chain", json={"identity": E6}).get_json()
    assert [c["label"] for c in chain["chain"]] == [None, "E6-001"]
    assert chain["annotation"] == "a patient id"


def test_unknown_chain_is_404(client):
    assert client.post("/api/aliases/chain", json={"identity": E6}).status_code == 404


def test_validation_session_escalates(client):
    started = client.post("/api/validation", json={"expected": ["E6-001"], "max_attempts": 2})
    body = started.get_json()
    sid = body["session_id"]
    assert body["prompt"]["attempt_number"] == 1

    body = client.post(f"/api/validation/{sid}/respond", json={"answer": "E6-002"}).get_json()
    assert body["validation"]["state"] == "mismatched"
    assert body["prompt"]["warning"]

    body = client.post(f"/api/validation/{sid}/respond", json={"answer": "E6-003"}).get_json()
    assert body["validation"]["state"] == "escalated"
    assert "prompt" not in body and body["error"]

    again = client.post(f"/api/validation/{sid}/respond", json={"answer": "E6-001"})
    assert again.status_code == 409


def test_validation_session_confirms_with_diagram(client):
    body = client.post("/api/validation", json={
        "expected": "D1-001 to D10-001", "kind": "image", "diagram": "detection_strips",
    }).get_json()
    assert body["prompt"]["yes_no"]
    assert body["prompt"]["max_attempts"] == 5
    assert body["prompt"]["diagram"]["kind"] == "grid"
    sid = body["session_id"]
    body = client.post(f"/api/validation/{sid}/respond", json={"answer": "yes"}).get_json()
    assert body["validation"]["state"] == "confirmed"
    assert client.get(f"/api/validation/{sid}").get_json()["validation"]["state"] == "confirmed"


def test_validation_bad_requests(client):
    assert client.post("/api/validation", json={}).status_code == 400
    assert client.post("/api/validation", json={"expected": ["A"], "kind": "smell"}).status_code == 400
    assert client.post("/api/validation/nope/respond", json={"answer": "A"}).status_code == 404


@pytest.mark.parametrize("name", ["ligation_package", "ligation_transfer", "detection_strips"])
def test_diagram_presets(client, name):
    scene = client.get(f"/api/diagrams/{name}").get_json()["scene"]
    assert scene["width"] > 0
    svg = client.get(f"/api/diagrams/{name}?format=svg")
    assert svg.mimetype == "image/svg+xml"
    assert svg.get_data(as_text=True).startswith("<svg")


def test_unknown_diagram(client):
    assert client.get("/api/diagrams/nope").status_code == 404


def test_respond_with_scalar_or_object_answer(client):
    sid = client.post("/api/validation", json={"expected": ["E6-001"]}).get_json()["session_id"]
    assert client.post(f"/api/validation/{sid}/respond", json={"answer": {}}).status_code == 400

    resp = client.post(f"/api/validation/{sid}/respond", json={"answer": 6})
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["validation"]["state"] == "mismatched"
    assert body["prompt"]["attempt_number"] == 2
