from datetime import datetime

from app.services.progress_service import (
    MarkReviewCompleted,
    RecordQuizAttempt,
    apply_action,
    create_initial_progress,
)

COMPLETED = datetime(2024, 3, 10, 15, 30)


def progress_payload():
    progress = apply_action(create_initial_progress(COMPLETED), RecordQuizAttempt("animals", 4, 5), COMPLETED)
    progress = apply_action(progress, RecordQuizAttempt("food-and-drink", 5, 5), COMPLETED)
    progress = apply_action(progress, MarkReviewCompleted("food-and-drink", "one_day"), COMPLETED)
    return progress.model_dump(mode="json")


def test_progress_not_found(client):
    response = client.get("/api/progress")
    assert response.status_code == 404


def test_progress_roundtrip(client):
    payload = progress_payload()
    response = client.post("/api/progress", json=payload)
    assert response.status_code == 200

    response = client.get("/api/progress")
    assert response.status_code == 200
    data = response.json()
    assert set(data["topics"]) == {"animals", "food-and-drink"}
    assert data["topics"]["animals"]["best_score"] == 80


def test_progress_is_replaced_not_merged(client):
    client.post("/api/progress", json=progress_payload())
    replacement = create_initial_progress(COMPLETED).model_dump(mode="json")
    client.post("/api/progress", json=replacement)

    assert client.get("/api/progress").json()["topics"] == {}


def test_progress_owners_are_separate(client):
    client.post("/api/progress", json=progress_payload(), headers={"X-Progress-Token": "alice"})
    assert client.get("/api/progress", headers={"X-Progress-Token": "alice"}).status_code == 200
    assert client.get("/api/progress", headers={"X-Progress-Token": "bob"}).status_code == 404
    assert client.get("/api/progress").status_code == 404


def test_invalid_progress_rejected(client):
    response = client.post("/api/progress", json={"version": 1, "topics": {}})
    assert response.status_code == 422


def test_due_reviews(client):
    assert client.get("/api/progress/due").json() == []

    client.post("/api/progress", json=progress_payload())
    due = client.get("/api/progress/due").json()
    assert {(d["topic_id"], d["review_type"]) for d in due} == {
        ("animals", "one_day"),
        ("food-and-drink", "one_week"),
    }


def test_topic_status(client):
    client.post("/api/progress", json=progress_payload())

    data = client.get("/api/progress/topics/animals/status").json()
    assert data == {
        "topic_id": "animals",
        "status": "review-due",
        "next_review_type": "one_day",
        "best_score": 80,
    }

    data = client.get("/api/progress/topics/space/status").json()
    assert data["status"] == "not-started"
    assert data["next_review_type"] is None
    assert data["best_score"] is None
