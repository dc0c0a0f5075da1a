from fastapi.testclient import TestClient

from lawyerzen.app import create_app
from lawyerzen.config import Settings
from lawyerzen.db import InMemoryDocumentStore
from lawyerzen.indexes import composite_field_sets
from lawyerzen.storage import InMemoryStorageClient

TEST_SECRET = "test-secret-that-is-long-enough-for-hs256"


def make_settings(**overrides) -> Settings:
    values = {"jwt_secret": TEST_SECRET, "environment": "test", "store_backend": "memory"}
    values.update(overrides)
    return Settings(**values)


def make_client(store=None, storage=None, **overrides):
    settings = make_settings(**overrides)
    store = store or InMemoryDocumentStore(
        enforce_indexes=True, composite_indexes=composite_field_sets()
    )
    storage = storage or InMemoryStorageClient()
    app = create_app(settings, store=store, storage=storage)
    return TestClient(app), store, storage


def register(client: TestClient, email: str = "asha@example.com", name: str = "Asha Rao") -> dict:
    response = client.post(
        "/api/auth/register",
        json={"name": name, "email": email, "password": "s3cret-pass", "barNumber": "KA/123/2019"},
    )
    assert response.status_code == 201, response.text
    return response.json()
