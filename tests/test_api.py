import base64

from assessment.models import SessionStatus
from tests.conftest import NOW

IMAGE = "data:image/jpeg;base64," + base64.b64encode(b"\xff\xd8jpeg-bytes").decode()


def test_root(client):
    assert client.get("/").json()["status"] == "ok"


class TestGetSession:
    def test_returns_camel_case_view(self, client, session, problem):
        response = client.get(f"/session/{session.id}")

        assert response.status_code == 200
        body = response.json()
        assert body["id"] == session.id
        assert body["title"] == problem.title
        assert body["description"] == problem.description
        assert body["starterCode"] == problem.starter_code
        assert body["duration"] == 30
        assert body["startedAt"].startswith("2026-10-19T11:50:00")

    def test_missing_session_is_404(self, client):
        response = client.get("/session/nope")
        assert response.status_code == 404
        assert response.json() == {"error": "Test session not found"}


class TestSubmit:
    def test_success(self, client, store, session):
        response = client.post(f"/session/{session.id}/submit", json={"code": "print(1)"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["submittedAt"].startswith("2026-10-19T12:00:00")
        assert body["late"] is False
        assert store.sessions[session.id].status is SessionStatus.COMPLETED

    def test_missing_code_is_400(self, client, store, session):
        assert client.post(f"/session/{session.id}/submit", json={}).status_code == 400
        assert client.post(f"/session/{session.id}/submit", json={"code": "  "}).status_code == 400
        assert store.sessions[session.id].end_time is None

    def test_unknown_session_is_404(self, client):
        assert client.post("/session/nope/submit", json={"code": "x"}).status_code == 404

    def test_repeat_is_409(self, client, store, session):
        client.post(f"/session/{session.id}/submit", json={"code": "first"})
        response = client.post(f"/session/{session.id}/submit", json={"code": "second"})

        assert response.status_code == 409
        assert response.json() == {"error": "Test already submitted"}
        assert store.sessions[session.id].submitted_code == "first"


class TestIntegrityEvent:
    def test_logged(self, client, store, session):
        response = client.post("/integrity-event", json={
            "sessionId": session.id, "type": "tab_switch", "timestamp": NOW.isoformat(),
        })

        assert response.status_code == 200
        assert response.json() == {"success": True, "logId": store.integrity_events[0].id}

    def test_unknown_type_is_400_and_not_persisted(self, client, store, session):
        response = client.post("/integrity-event", json={
            "sessionId": session.id, "type": "mouse_move", "timestamp": NOW.isoformat(),
        })

        assert response.status_code == 400
        assert store.integrity_events == []

    def test_missing_field_is_400(self, client, session):
        response = client.post("/integrity-event", json={"sessionId": session.id, "type": "copy"})
        assert response.status_code == 400
        assert "timestamp" in response.json()["error"]

    def test_unknown_session_is_404(self, client):
        response = client.post("/integrity-event", json={
            "sessionId": "nope", "type": "copy", "timestamp": NOW.isoformat(),
        })
        assert response.status_code == 404


class TestSnapshot:
    def test_uploaded_and_served(self, client, store, session):
        response = client.post("/snapshot", json={
            "sessionId": session.id, "image": IMAGE, "timestamp": NOW.isoformat(),
        })

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["snapshotId"] == store.snapshots[0].id
        assert client.get(body["imageUrl"]).content == b"\xff\xd8jpeg-bytes"

    def test_bad_image_is_400(self, client, session):
        response = client.post("/snapshot", json={
            "sessionId": session.id, "image": "data:image/jpeg;base64,%%%", "timestamp": NOW.isoformat(),
        })
        assert response.status_code == 400

    def test_unknown_session_is_404(self, client):
        response = client.post("/snapshot", json={
            "sessionId": "nope", "image": IMAGE, "timestamp": NOW.isoformat(),
        })
        assert response.status_code == 404

    def test_local_store_does_not_stream_hosted_path(self, client):
        assert client.get("/snapshots/anything.jpg").status_code == 404


class TestReport:
    def test_json_report(self, client, session):
        client.post("/integrity-event", json={
            "sessionId": session.id, "type": "copy", "timestamp": NOW.isoformat(),
        })
        response = client.get(f"/session/{session.id}/report")

        assert response.status_code == 200
        body = response.json()
        assert body["eventCounts"]["copy"] == 1
        assert body["integrityScore"] == 98
        assert client.get(f"/uploads/reports/report_{session.id}.html").status_code == 200

    def test_csv_report(self, client, session):
        response = client.get(f"/session/{session.id}/report.csv")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "integrity_score,100" in response.text

    def test_missing_session(self, client):
        assert client.get("/session/nope/report").status_code == 404
