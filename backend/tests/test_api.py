import asyncio
import time

import pytest
from fastapi.testclient import TestClient

from edutracker.config import Settings
from edutracker.main import create_app
from edutracker.store import STUDENTS
from load_data import load


@pytest.fixture
def app(remote):
    settings = Settings(database_url="sqlite://", seed_demo_data=True, log_level="WARNING")
    return create_app(settings, remote=remote)


@pytest.fixture
def client(app):
    # Without the context manager the lifespan (and the sync worker) does not run
    return TestClient(app)


def test_health_and_request_id(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"
    assert resp.json()["remote_sync"] is True
    assert resp.headers["X-Request-ID"]


def test_seeded_students_and_candidates(client):
    students = client.get("/api/students").json()
    assert students["total"] == 4
    assert "evaluations" not in students["data"][0]

    candidates = client.get("/api/reinforcement/candidates").json()
    assert [s["id"] for s in candidates["data"]] == ["s-2"]

    by_standing = client.get("/api/students", params={"standing": "developing"}).json()
    assert [s["name"] for s in by_standing["data"]] == ["Carla Dias"]


def test_enroll_and_evaluate(client):
    resp = client.post("/api/students", json={"name": "Eva Lima", "age": 7, "class_id": "c-1"})
    assert resp.status_code == 201
    student = resp.json()
    assert student["standing"] == "adequate"

    resp = client.post("/api/evaluations", json={
        "student_id": student["id"], "competency_id": "p1", "level": "not_achieved",
        "period": "b1", "kind": "test", "score": 3,
    })
    assert resp.status_code == 201
    assert resp.json()["standing"] == "needs_reinforcement"
    assert resp.json()["standing_label"] == "Precisa de reforço"
    assert resp.json()["evaluation"]["max_score"] == 10

    history = client.get(f"/api/students/{student['id']}/evaluations").json()
    assert history["total"] == 1


@pytest.mark.parametrize("body,status", [
    ({"student_id": "s-1", "competency_id": "p1", "level": "great", "period": "b1"}, 400),
    ({"student_id": "s-1", "competency_id": "p1", "level": "achieved", "period": "b1", "score": 12}, 400),
    ({"student_id": "s-404", "competency_id": "p1", "level": "achieved", "period": "b1"}, 404),
])
def test_evaluation_errors(client, body, status):
    resp = client.post("/api/evaluations", json=body)
    assert resp.status_code == status
    assert resp.json()["detail"]


def test_standing_preview(client):
    resp = client.get("/api/standing/preview", params={"level": "exceeded"})
    assert resp.json()["standing"] == "adequate"
    assert client.get("/api/standing/preview", params={"level": "bogus"}).status_code == 422


def test_group_lifecycle(client):
    resp = client.post("/api/reinforcement/groups", json={
        "name": "Reforço de Leitura", "subject": "Português", "member_ids": ["s-2", "s-3"],
        "schedule": "Terças 14h", "start_date": "2024-03-01",
    })
    assert resp.status_code == 201
    group = resp.json()
    assert [m["name"] for m in group["members"]] == ["Bruno Gomes", "Carla Dias"]
    group_id = group["id"]

    resp = client.post(f"/api/reinforcement/groups/{group_id}/attendance",
                       json={"date": "2024-03-05", "present_ids": ["s-2"]})
    assert resp.status_code == 200
    resp = client.post(f"/api/reinforcement/groups/{group_id}/attendance",
                       json={"date": "2024-03-12", "present_ids": ["s-1"]})
    assert resp.status_code == 400

    overview = client.get(f"/api/reinforcement/groups/{group_id}/attendance").json()
    assert overview["rates"] == {"s-2": 100, "s-3": 0}
    assert overview["at_risk"] == ["s-3"]

    resp = client.post(f"/api/reinforcement/groups/{group_id}/discharge",
                       json={"student_id": "s-2", "final_level": "achieved", "final_score": 9})
    assert resp.status_code == 200
    assert resp.json()["standing"] == "adequate"
    assert resp.json()["history"]["group_name"] == "Reforço de Leitura"

    group = client.get(f"/api/reinforcement/groups/{group_id}").json()
    assert group["member_ids"] == ["s-3"]
    assert client.get("/api/reinforcement/history", params={"student_id": "s-2"}).json()["total"] == 1

    resp = client.patch(f"/api/reinforcement/groups/{group_id}", json={"member_ids": []})
    assert resp.status_code == 400
    resp = client.patch(f"/api/reinforcement/groups/{group_id}", json={"schedule": "Quintas 10h"})
    assert resp.json()["schedule"] == "Quintas 10h"

    resp = client.delete(f"/api/reinforcement/groups/{group_id}/members/s-3")
    assert resp.json()["removed"] is True

    resp = client.delete(f"/api/reinforcement/groups/{group_id}")
    assert resp.json()["attendance_records_removed"] == 1
    assert client.get(f"/api/reinforcement/groups/{group_id}").status_code == 404
    assert client.get("/api/reinforcement/history").json()["total"] == 1


def test_create_group_with_unknown_student(client):
    resp = client.post("/api/reinforcement/groups", json={
        "name": "Grupo", "subject": "Matemática", "member_ids": ["s-404"],
    })
    assert resp.status_code == 400


def test_catalog_and_dashboard(client):
    competencies = client.get("/api/competencies", params={"subject": "Ciências"}).json()
    assert [c["id"] for c in competencies["data"]] == ["c1", "c2"]
    assert client.get("/api/competencies/discharge").json()["id"] == "discharge"
    assert client.get("/api/competencies/zz").status_code == 404

    summary = client.get("/api/dashboard").json()
    assert summary["total_students"] == 4
    assert summary["by_standing"] == {"adequate": 2, "developing": 1, "needs_reinforcement": 1}
    assert summary["percent_adequate"] == 50
    assert summary["labels"]["adequate"] == "Adequado"


def test_sync_endpoints(client, app, remote):
    client.post("/api/students", json={"name": "Eva Lima"})
    status = client.get("/api/sync/status").json()
    assert status["queue_depth"] == 1

    asyncio.run(app.state.engine.sync.drain())
    assert len(remote.tables[STUDENTS]) == 1

    # Demo rows were never pushed, so a resync keeps only the remote copy
    resp = client.post("/api/sync/resync")
    assert resp.status_code == 200
    assert resp.json()["collections"]["students"] == 1
    assert client.get("/api/students").json()["total"] == 1

    assert client.post("/api/sync/retry").json() == {"requeued": 0}


def test_sync_endpoints_without_remote():
    app = create_app(Settings(database_url="sqlite://", seed_demo_data=False, log_level="WARNING"))
    client = TestClient(app)
    assert client.get("/api/sync/status").status_code == 503
    assert client.get("/health").json()["remote_sync"] is False


def test_lifespan_runs_sync_worker(tmp_path, remote):
    # File database: the worker and request threads need their own connections
    settings = Settings(database_url="sqlite:///{}".format(tmp_path / "edutracker.db"),
                        seed_demo_data=False, log_level="WARNING", sync_poll_seconds=0.01)
    app = create_app(settings, remote=remote)

    with TestClient(app) as client:
        student = client.post("/api/students", json={"name": "Eva Lima"}).json()
        for _ in range(200):
            if student["id"] in remote.tables.get(STUDENTS, {}):
                break
            time.sleep(0.01)

    assert student["id"] in remote.tables[STUDENTS]
    assert app.state.engine.sync.stats()["acked"] == 1


def test_load_data_script(client):
    summary = load(client, {
        "students": [{"ref": "eva", "name": "Eva Lima", "age": 7}, {"ref": "bad", "name": " "}],
        "evaluations": [
            {"student": "eva", "competency_id": "p1", "level": "developing", "period": "b1"},
            {"student": "ghost", "competency_id": "p1", "level": "developing", "period": "b1"},
        ],
    })
    assert summary["enrolled"] == 1
    assert summary["recorded"] == 1
    assert len(summary["errors"]) == 2
    assert client.get("/api/reinforcement/candidates").json()["total"] == 1
