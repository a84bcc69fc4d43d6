from dataclasses import replace

import httpx
import pytest
from fastapi.testclient import TestClient

from idverify.clients.account_store import ImagingApiAccountStore, InMemoryAccountStore
from idverify.main import create_app
from idverify.models.domain import ReferenceEntry

from conftest import LIVE, MATCHING, NO_FACE, OTHER, FakeProvider, data_url, png_bytes, vector


@pytest.fixture
def client(provider, accounts, settings):
    app = create_app(settings, provider=provider,
                     account_store=InMemoryAccountStore(accounts), configure_logging=False)
    with TestClient(app) as test_client:
        yield test_client


def signature_files(level1, level2, mime="image/png"):
    return {
        "signature1": ("sig1.png", png_bytes(level1, (300, 150)), mime),
        "signature2": ("sig2.png", png_bytes(level2, (300, 150)), mime),
    }


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_identical_signatures(client):
    response = client.post("/compare-signatures", files=signature_files(100, 100))
    assert response.status_code == 200
    assert response.json() == {"similarity": "1.0000"}


def test_signatures_with_constant_offset(client):
    response = client.post("/compare-signatures", files=signature_files(100, 150))
    assert response.json() == {"similarity": "0.8039"}


def test_inverted_signatures(client):
    response = client.post("/compare-signatures", files=signature_files(0, 255))
    assert response.json() == {"similarity": "0.0000"}


def test_signature_upload_must_be_image(client):
    response = client.post("/compare-signatures", files=signature_files(0, 0, "image/gif"))
    assert response.status_code == 415
    assert response.json()["error"]["kind"] == "UnsupportedFormat"


def test_signature_upload_undecodable(client):
    files = signature_files(0, 0)
    files["signature2"] = ("sig2.png", b"not an image", "image/png")
    response = client.post("/compare-signatures", files=files)
    assert response.status_code == 400
    assert response.json()["error"]["kind"] == "DecodeError"


def test_signature_upload_too_large(provider, accounts, settings):
    app = create_app(replace(settings, max_upload_bytes=64), provider=provider,
                     account_store=InMemoryAccountStore(accounts), configure_logging=False)
    with TestClient(app) as client:
        response = client.post("/compare-signatures", files=signature_files(0, 0))
    assert response.status_code == 413
    assert response.json()["error"]["kind"] == "OversizeInput"


def test_missing_signature(client):
    response = client.post("/compare-signatures",
                           files={"signature1": ("sig1.png", png_bytes(1), "image/png")})
    assert response.status_code == 400
    assert response.json()["error"]["kind"] == "BadRequest"


def test_compare_faces(client):
    response = client.post(
        "/compare-faces",
        data={"accountNumber": "9040007857211"},
        files={"livePhoto": ("live.png", png_bytes(LIVE), "image/png")},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["isMatch"] is True
    assert body["bestSimilarity"] == pytest.approx(0.7)
    assert body["faces"] == [
        {"sourceId": "ref-no-face", "isMatch": False, "similarity": 0.0, "reason": "no_face_detected"},
        {"sourceId": "ref-match", "isMatch": True, "similarity": 0.7, "reason": None},
    ]


def test_compare_faces_no_live_face(client):
    response = client.post(
        "/compare-faces",
        data={"accountNumber": "9040007857211"},
        files={"livePhoto": ("live.png", png_bytes(NO_FACE), "image/png")},
    )
    assert response.status_code == 400
    assert response.json()["error"] == {
        "kind": "NoLiveFace",
        "message": "No face detected in the live photo",
    }


def test_compare_faces_unknown_account(client):
    response = client.post(
        "/compare-faces",
        data={"accountNumber": "42"},
        files={"livePhoto": ("live.png", png_bytes(LIVE), "image/png")},
    )
    assert response.status_code == 404
    assert response.json()["error"]["kind"] == "AccountNotFound"


def test_compare_faces_empty_account(client):
    response = client.post(
        "/compare-faces",
        data={"accountNumber": "0000000000000"},
        files={"livePhoto": ("live.png", png_bytes(LIVE), "image/png")},
    )
    assert response.status_code == 404
    assert response.json()["error"]["kind"] == "EmptyCandidateSet"


def test_compare_faces_requires_account_number(client):
    response = client.post(
        "/compare-faces",
        files={"livePhoto": ("live.png", png_bytes(LIVE), "image/png")},
    )
    assert response.status_code == 400
    assert "accountNumber" in response.json()["error"]["message"]


def test_verify_signature(client):
    response = client.post(
        "/verify-signature",
        data={"accountNumber": "9040007857211"},
        files={"signature": ("sig.png", png_bytes(100, (300, 150)), "image/png")},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["isMatch"] is True
    assert body["bestSimilarity"] == 1.0
    assert [s["sourceId"] for s in body["signatures"]] == ["ref-no-face", "ref-match"]
    assert [s["isMatch"] for s in body["signatures"]] == [False, True]


def test_compare_faces_survives_provider_error_on_one_reference(settings):
    provider = FakeProvider({LIVE: vector(0.0), MATCHING: vector(0.3), OTHER: vector(0.1)},
                            failing={OTHER})
    store = InMemoryAccountStore({"acc": [
        ReferenceEntry("broken", photo=data_url(png_bytes(OTHER)), signature="x"),
        ReferenceEntry("good", photo=data_url(png_bytes(MATCHING)), signature="x"),
    ]})
    app = create_app(settings, provider=provider, account_store=store, configure_logging=False)
    with TestClient(app) as client:
        response = client.post(
            "/compare-faces",
            data={"accountNumber": "acc"},
            files={"livePhoto": ("live.png", png_bytes(LIVE), "image/png")},
        )

    assert response.status_code == 200
    body = response.json()
    assert body["isMatch"] is True
    assert body["faces"] == [
        {"sourceId": "broken", "isMatch": False, "similarity": 0.0, "reason": "provider_error"},
        {"sourceId": "good", "isMatch": True, "similarity": 0.7, "reason": None},
    ]


def test_compare_faces_provider_error_on_live_photo(accounts, settings):
    provider = FakeProvider({LIVE: vector(0.0)}, failing={LIVE})
    app = create_app(settings, provider=provider,
                     account_store=InMemoryAccountStore(accounts), configure_logging=False)
    with TestClient(app) as client:
        response = client.post(
            "/compare-faces",
            data={"accountNumber": "9040007857211"},
            files={"livePhoto": ("live.png", png_bytes(LIVE), "image/png")},
        )

    assert response.status_code == 503
    assert response.json()["error"]["kind"] == "ExternalCollaboratorUnavailable"


def test_compare_faces_rejects_non_string_store_photo(provider, settings):
    def handler(request):
        return httpx.Response(200, json={"approved": [{"photo": 12345, "signature": "x"}]})

    store = ImagingApiAccountStore(
        "http://imaging.test", client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
    )
    app = create_app(settings, provider=provider, account_store=store, configure_logging=False)
    with TestClient(app) as client:
        response = client.post(
            "/compare-faces",
            data={"accountNumber": "9040007857211"},
            files={"livePhoto": ("live.png", png_bytes(LIVE), "image/png")},
        )

    assert response.status_code == 503
    assert response.json()["error"]["kind"] == "ExternalCollaboratorUnavailable"
