import pytest
from fastapi.testclient import TestClient

from app import USER_HEADER, create_app
from autosave.tracker import ChangeTracker
from config import Settings
from errors import ExternalServiceError


class FakeRenderer:
    def __init__(self, error=None):
        self.error = error
        self.html = []

    def render(self, html):
        self.html.append(html)
        if self.error is not None:
            raise self.error
        return b"%PDF-1.4 fake"


@pytest.fixture
def renderer():
    return FakeRenderer()


@pytest.fixture
def llm(fake_llm):
    return fake_llm()


@pytest.fixture
def tracker(store, timers):
    return ChangeTracker(store, debounce_seconds=5.0, timer_factory=timers)


@pytest.fixture
def client(store, llm, renderer, tracker):
    app = create_app(
        settings=Settings(app_env="test"),
        store=store,
        llm_client=llm,
        renderer=renderer,
        tracker=tracker,
    )
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def created(client, resume_data):
    response = client.post("/resume/create", json={"resumeData": resume_data})
    assert response.status_code == 201
    return response.json()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_create_returns_document_with_id(client, resume_data):
    response = client.post("/resume", json={"resumeData": resume_data})
    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["resumeId"]
    assert body["data"]["id"] == body["resumeId"]
    assert body["data"]["email"] == "aditya@example.com"
    assert body["data"]["experience"][0]["companyName"] == "Unilever"


def test_create_duplicate_email_conflicts(client, created, resume_data):
    response = client.post("/resume/create", json={"resumeData": resume_data})
    assert response.status_code == 409
    assert response.json()["success"] is False


def test_create_incomplete_resume_lists_errors(client, resume_data):
    resume_data["name"] = ""
    resume_data["skills"] = []
    response = client.post("/resume/create", json={"resumeData": resume_data})
    assert response.status_code == 400
    errors = response.json()["errors"]
    assert "Name is required" in errors
    assert "At least one skill is required" in errors


def test_create_without_resume_data(client):
    response = client.post("/resume/create", json={})
    assert response.status_code == 400
    assert response.json()["message"] == "Resume data is required"


def test_save_creates_then_updates(client, resume_data):
    first = client.post("/resume/save", json={"resumeData": resume_data})
    assert first.status_code == 200
    assert first.json()["lastSavedAt"]

    resume_data["summary"] = "Updated summary."
    second = client.post("/resume/save", json={"resumeData": resume_data})
    assert second.status_code == 200
    assert second.json()["resumeId"] == first.json()["resumeId"]
    assert second.json()["data"]["summary"] == "Updated summary."


def test_save_with_unknown_id_is_not_found(client, resume_data):
    resume_data["_id"] = "does-not-exist"
    response = client.post("/resume/save", json={"resumeData": resume_data})
    assert response.status_code == 404


def test_load_by_email(client, created):
    response = client.get("/resume", params={"email": "ADITYA@example.com"})
    assert response.status_code == 200
    assert response.json()["resumeId"] == created["resumeId"]


def test_load_requires_email_and_existing_resume(client):
    assert client.get("/resume").status_code == 400
    assert client.get("/resume", params={"email": "nobody@example.com"}).status_code == 404


def test_autosave_debounces_into_one_write(client, created, resume_data, store, timers):
    headers = {USER_HEADER: "user-1"}
    client.get("/resume", params={"email": resume_data["email"]}, headers=headers)

    resume_data["summary"] = "Draft one."
    first = client.post("/resume/autosave", json={"resumeData": resume_data}, headers=headers)
    resume_data["summary"] = "Draft two."
    second = client.post("/resume/autosave", json={"resumeData": resume_data}, headers=headers)

    assert first.status_code == 202
    assert second.json()["pending"] is True
    assert second.json()["state"] == "pending_save"
    assert len(timers.active) == 1

    timers.fire_all()
    assert store.get(created["resumeId"]).summary == "Draft two."


def test_first_autosave_only_starts_tracking(client, resume_data, store):
    response = client.post(
        "/resume/autosave", json={"resumeData": resume_data}, headers={USER_HEADER: "fresh"}
    )
    assert response.status_code == 202
    assert response.json()["pending"] is False
    assert store.find_by_email(resume_data["email"]) is None


def test_generate_pdf(client, renderer, resume_data):
    response = client.post("/resume/generate-pdf", json={"resumeData": resume_data})
    assert response.status_code == 200
    assert response.headers["content-type"] == "application/pdf"
    disposition = response.headers["content-disposition"]
    assert disposition.startswith('attachment; filename="resume_')
    assert disposition.endswith('.pdf"')
    assert response.content.startswith(b"%PDF")
    assert "Aditya Tiwary" in renderer.html[0]


def test_generate_pdf_unknown_template(client, resume_data):
    response = client.post(
        "/resume/generate-pdf", json={"resumeData": resume_data, "template": "fancy"}
    )
    assert response.status_code == 400


def test_generate_pdf_failure_hides_details(client, renderer, resume_data):
    renderer.error = ExternalServiceError("chromium exploded")
    response = client.post("/resume/generate-pdf", json={"resumeData": resume_data})
    assert response.status_code == 500
    body = response.json()
    assert body == {"success": False, "message": "External service failed"}


def test_enhance_entry(client, created, llm):
    llm.responses.append('{"description":"Led X","accomplishment":"Cut cost 20%"}')
    response = client.post(
        "/resume/enhanceField",
        json={"resumeId": created["resumeId"], "field": "experience", "index": 0},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["changed"] is True
    assert body["index"] == 0
    assert body["data"]["description"] == "Led X"
    assert body["data"]["companyName"] == "Unilever"


def test_enhance_with_unusable_response_reports_no_change(client, created, llm):
    llm.responses.append("I cannot help with that.")
    response = client.post(
        "/resume/enhanceField",
        json={"resumeId": created["resumeId"], "field": "experience", "index": 1},
    )
    assert response.status_code == 200
    assert response.json()["changed"] is False
    assert response.json()["data"]["companyName"] == "DHL"


@pytest.mark.parametrize(
    "payload",
    [
        {"field": "summary"},
        {"resumeId": "abc"},
        {"resumeId": "abc", "field": "summary", "index": "first"},
    ],
)
def test_enhance_rejects_incomplete_requests(client, payload):
    assert client.post("/resume/enhanceField", json=payload).status_code == 400


def test_enhance_unsupported_field_and_bad_index(client, created):
    resume_id = created["resumeId"]
    unsupported = client.post(
        "/resume/enhanceField", json={"resumeId": resume_id, "field": "hobbies"}
    )
    assert unsupported.status_code == 400
    out_of_range = client.post(
        "/resume/enhanceField",
        json={"resumeId": resume_id, "field": "education", "index": 3},
    )
    assert out_of_range.status_code == 400


def test_enhance_missing_resume(client):
    response = client.post(
        "/resume/enhanceField", json={"resumeId": "missing", "field": "summary"}
    )
    assert response.status_code == 404


def test_enhance_model_failure(client, created, llm):
    llm.responses.append(ConnectionError("model down"))
    response = client.post(
        "/resume/enhanceField", json={"resumeId": created["resumeId"], "field": "summary"}
    )
    assert response.status_code == 500
    assert response.json()["success"] is False
