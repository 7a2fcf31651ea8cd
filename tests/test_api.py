from typing import Optional

import pytest
from fastapi.testclient import TestClient

from app.api.v1.dependencies import get_object_store, get_orchestrator, get_scanner
from app.core.config import MB
from app.features.transcription.services import RetryPolicy, TranscriptionOrchestrator
from app.main import create_app
from app.security.tokens import create_access_token
from app.utils.s3 import ObjectStore

from fakes import FakeScanner, FakeS3Client, ScriptedProvider

AUDIO = b"ID3" + b"\x01" * 4096


@pytest.fixture
def s3() -> FakeS3Client:
    return FakeS3Client()


@pytest.fixture
def providers():
    return [
        ScriptedProvider("openai", ["bonjour"], max_bytes=25 * MB),
        ScriptedProvider("deepgram", ["from deepgram"]),
        ScriptedProvider("assemblyai", configured=False),
    ]


@pytest.fixture
def make_client(make_settings, s3, providers):
    clients = []

    def _make(scanner: Optional[FakeScanner] = None, **overrides) -> TestClient:
        settings = make_settings(**overrides)
        app = create_app(settings)
        app.dependency_overrides[get_object_store] = lambda: ObjectStore(s3, bucket="media-bucket")
        app.dependency_overrides[get_orchestrator] = lambda: TranscriptionOrchestrator(
            providers, policy=RetryPolicy(retries=0), sleep=lambda _: None
        )
        app.dependency_overrides[get_scanner] = lambda: scanner
        client = TestClient(app)
        client.__enter__()
        clients.append(client)
        client.headers["Authorization"] = "Bearer " + create_access_token(user_id=1, settings=settings.jwt)
        return client

    yield _make
    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture
def client(make_client) -> TestClient:
    return make_client()


def _upload(client: TestClient, name: str = "test.mp3", **form):
    data = {"hasPII": "false", "hasPCI": "false"}
    data.update(form)
    return client.post("/api/v1/upload", files={"file": (name, AUDIO, "audio/mpeg")}, data=data)


def test_health(client: TestClient) -> None:
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_requests_without_a_token_are_rejected(client: TestClient) -> None:
    del client.headers["Authorization"]
    response = client.get("/api/v1/files")
    assert response.status_code == 401
    assert response.json()["detail"] == "Unauthorized"


def test_forged_token_is_rejected(client: TestClient) -> None:
    client.headers["Authorization"] = "Bearer not-a-jwt"
    response = client.get("/api/v1/files")
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid token"


def test_upload_then_list_then_read(client: TestClient, s3: FakeS3Client) -> None:
    response = _upload(client)
    assert response.status_code == 200, response.text
    body = response.json()
    assert body["message"] == "File processed successfully"
    file_id = body["fileId"]
    assert s3.objects["completed/test.mp3.txt"] == b"bonjour"

    listing = client.get("/api/v1/files").json()["files"]
    assert len(listing) == 1
    item = listing[0]
    assert item["id"] == file_id
    assert item["originalName"] == "test.mp3"
    assert item["status"] == "completed"
    assert item["hasPii"] is False
    assert item["processedUrl"].endswith("processed/test.mp3?expires=3600")

    transcript = client.get(f"/api/v1/files/{file_id}/transcript")
    assert transcript.status_code == 200
    assert transcript.text == "bonjour"


def test_sensitive_upload_is_encrypted_and_readable(client: TestClient, s3: FakeS3Client) -> None:
    file_id = _upload(client, "card.mp3", hasPCI="true").json()["fileId"]
    assert s3.objects["completed/card.mp3.txt"] != b"bonjour"
    item = client.get("/api/v1/files").json()["files"][0]
    assert item["encrypted"] is True and item["hasPci"] is True
    assert client.get(f"/api/v1/files/{file_id}/transcript").text == "bonjour"


def test_infected_upload_is_a_bad_request(make_client, s3: FakeS3Client) -> None:
    client = make_client(scanner=FakeScanner(clean=False), SKIP_VIRUS_SCAN=False)
    response = _upload(client)
    assert response.status_code == 400
    assert response.json()["detail"] == "Virus detected by ClamAV"
    assert s3.objects == {}
    assert client.get("/api/v1/files").json()["files"] == []


def test_upload_without_a_file(client: TestClient) -> None:
    response = client.post("/api/v1/upload", data={"hasPII": "false"})
    assert response.status_code == 400
    assert response.json()["detail"] == "No file uploaded"


def test_upload_without_storage_configuration(make_client) -> None:
    response = _upload(make_client(S3_BUCKET=None))
    assert response.status_code == 500
    assert "S3_BUCKET" in response.json()["detail"]


def test_revise_writes_a_sibling_transcript(client: TestClient, s3: FakeS3Client) -> None:
    file_id = _upload(client).json()["fileId"]
    response = client.post(f"/api/v1/files/{file_id}/revise", json={"text": "bonjour corrigé"})
    assert response.status_code == 200
    body = response.json()
    assert body["revisedTranscriptKey"] == "completed/revised-test.mp3.txt"
    assert body["revisedTranscriptUrl"].startswith("https://signed.example/")
    assert s3.objects["completed/revised-test.mp3.txt"] == "bonjour corrigé".encode("utf-8")


def test_retranscribe_with_an_explicit_provider(client: TestClient, s3: FakeS3Client) -> None:
    file_id = _upload(client).json()["fileId"]
    response = client.post(f"/api/v1/files/{file_id}/retranscribe", json={"provider": "deepgram"})
    assert response.status_code == 200, response.text
    assert response.json()["provider"] == "deepgram"
    assert s3.objects["completed/test.mp3.txt"] == b"from deepgram"


def test_retranscribe_without_a_body_uses_auto(client: TestClient) -> None:
    file_id = _upload(client).json()["fileId"]
    response = client.post(f"/api/v1/files/{file_id}/retranscribe")
    assert response.status_code == 200, response.text
    assert response.json()["provider"] == "openai"


def test_retranscribe_of_an_encrypted_file_is_refused(client: TestClient) -> None:
    file_id = _upload(client, hasPII="true").json()["fileId"]
    response = client.post(f"/api/v1/files/{file_id}/retranscribe", json={"provider": "auto"})
    assert response.status_code == 400
    assert response.json()["detail"] == "Cannot retranscribe encrypted files"


def test_files_of_other_users_are_not_found(make_client, make_settings) -> None:
    owner = make_client()
    file_id = _upload(owner).json()["fileId"]

    intruder = make_client()
    intruder.headers["Authorization"] = "Bearer " + create_access_token(
        user_id=2, settings=make_settings().jwt
    )
    assert intruder.get(f"/api/v1/files/{file_id}/transcript").status_code == 404
    assert intruder.post(f"/api/v1/files/{file_id}/revise", json={"text": "x"}).status_code == 404


def test_diag_reports_unconfigured_providers(client: TestClient) -> None:
    response = client.get("/api/v1/diag/assemblyai")
    assert response.status_code == 400
    assert response.json() == {"ok": False, "error": "ASSEMBLYAI_API_KEY not set"}
    assert client.get("/api/v1/diag/deepgram").json() == {"ok": True, "configured": True}
