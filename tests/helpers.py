import asyncio
import shutil
import tempfile
import unittest

from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from database import ExamStore
from main import app, get_assets, get_store
from storage import AssetStorage


def sample_exam(**overrides):
    payload = {
        "division": "A",
        "level": "1",
        "term": "T1",
        "subject": "Math",
        "year": "2024",
        "exam": [{"question": "2+2?", "choices": ["3", "4"]}],
    }
    payload.update(overrides)
    return payload


class ApiTestCase(unittest.TestCase):
    """Runs the app against an in-memory collection and a temporary upload dir."""

    def setUp(self) -> None:
        self.store = ExamStore(AsyncMongoMockClient()["exams_test"]["exams"])
        asyncio.run(self.store.ensure_indexes())
        self.upload_dir = tempfile.mkdtemp(prefix="exam_uploads_")
        self.assets = AssetStorage(self.upload_dir, max_bytes=1024)
        app.dependency_overrides[get_store] = lambda: self.store
        app.dependency_overrides[get_assets] = lambda: self.assets
        self.client = TestClient(app)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()
        shutil.rmtree(self.upload_dir, ignore_errors=True)

    def create_exam(self, **overrides) -> dict:
        response = self.client.post("/exams", json=sample_exam(**overrides))
        self.assertEqual(response.status_code, 201, response.text)
        return response.json()["exam"]

    def stored_exams(self) -> list:
        return asyncio.run(self.store.list_exams())
