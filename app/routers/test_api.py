import tempfile
import unittest
from pathlib import Path
from unittest import mock

from fastapi.testclient import TestClient

from app.config import AppMode, settings
from app.dependencies import get_app_mode, get_history_store, get_profile_repository, get_registry
from app.main import app
from app.services.history_store import InMemoryHistoryStore
from app.services.profile_service import ProfileRepository
from app.services.qr_generator import render_png
from app.services.scan_session import SessionRegistry
from app.services.test_history_store import memory_session_factory
from app.services.test_profile_service import png_bytes

ALICE = {"X-User-Id": "alice"}
BOB = {"X-User-Id": "bob"}


class ApiTestCase(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryHistoryStore()
        self.profiles = ProfileRepository(memory_session_factory())
        self.registry = SessionRegistry()
        self.tmp = tempfile.TemporaryDirectory()
        self.mode_patch = mock.patch.object(settings, "mode_file", Path(self.tmp.name) / "mode.json")
        self.mode_patch.start()

        app.dependency_overrides[get_history_store] = lambda: self.store
        app.dependency_overrides[get_profile_repository] = lambda: self.profiles
        app.dependency_overrides[get_registry] = lambda: self.registry

        self.client = TestClient(app)
        self.client.__enter__()

    def tearDown(self):
        self.client.__exit__(None, None, None)
        app.dependency_overrides.clear()
        self.mode_patch.stop()
        self.tmp.cleanup()


class TestClassifyApi(ApiTestCase):
    def test_health(self):
        self.assertEqual(self.client.get("/health").json(), {"status": "ok"})

    def test_classify(self):
        resp = self.client.post("/classify", json={"value": "example.com"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(
            resp.json(),
            {"value": "example.com", "type": "URL", "navigation_url": "http://example.com"},
        )

    def test_scan_uploaded_image(self):
        png = render_png("user@example.com", size=300, margin=4)
        resp = self.client.post("/scan/qr", files={"file": ("qr.png", png, "image/png")})
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertTrue(body["found"])
        self.assertEqual((body["value"], body["type"]), ("user@example.com", "EMAIL"))

    def test_scan_image_without_code(self):
        resp = self.client.post("/scan/qr", files={"file": ("p.png", png_bytes(), "image/png")})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(
            resp.json(),
            {
                "found": False,
                "value": None,
                "type": None,
                "navigation_url": None,
                "notices": ["No QR code detected"],
            },
        )

    def test_scan_unreadable_upload(self):
        resp = self.client.post("/scan/qr", files={"file": ("qr.png", b"junk", "image/png")})
        self.assertEqual(resp.status_code, 422)
        self.assertIn("detail", resp.json())


class TestSessionApi(ApiTestCase):
    def setUp(self):
        super().setUp()
        # Offline sessions skip the profile scan counter
        app.dependency_overrides[get_app_mode] = lambda: AppMode(offline=True)

    def open_session(self, headers=ALICE):
        resp = self.client.post("/sessions", headers=headers)
        self.assertEqual(resp.status_code, 200)
        return resp.json()["session_id"]

    def scan(self, session_id, value, ts, headers=ALICE):
        resp = self.client.post(
            f"/sessions/{session_id}/scan",
            json={"value": value, "timestamp_ms": ts},
            headers=headers,
        )
        self.assertEqual(resp.status_code, 200)
        return resp.json()

    def test_open_requires_user(self):
        resp = self.client.post("/sessions")
        self.assertEqual(resp.status_code, 401)

    def test_scan_flow(self):
        sid = self.open_session()
        first = self.scan(sid, "https://example.com", 1000)
        self.assertEqual(first["actions"][0]["action"], "persist")
        self.assertEqual(first["actions"][0]["type"], "URL")
        self.assertEqual(first["actions"][0]["navigation_url"], "https://example.com")

        self.assertEqual(self.scan(sid, "https://example.com", 2000)["actions"][0]["action"], "suppress")
        prompt = self.scan(sid, "https://example.com", 12000)["actions"][0]
        self.assertEqual(prompt["action"], "prompt_rescan")

        resp = self.client.post(
            f"/sessions/{sid}/rescan",
            json={"value": "https://example.com", "accept": True, "timestamp_ms": 12500},
            headers=ALICE,
        )
        self.assertEqual(resp.json()["actions"][0]["action"], "persist")

        resp = self.client.delete(f"/sessions/{sid}", headers=ALICE)
        self.assertEqual(resp.status_code, 204)
        self.assertEqual(len(self.registry), 0)

    def test_decline_rescan(self):
        sid = self.open_session()
        self.scan(sid, "hello", 1000)
        self.scan(sid, "hello", 12000)
        resp = self.client.post(
            f"/sessions/{sid}/rescan", json={"value": "hello", "accept": False}, headers=ALICE
        )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["actions"], [])
        self.assertEqual(self.scan(sid, "hello", 12100)["actions"][0]["action"], "suppress")

    def test_frame(self):
        sid = self.open_session()
        resp = self.client.post(
            f"/sessions/{sid}/frame",
            json={"values": ["a", "b"], "timestamp_ms": 1000},
            headers=ALICE,
        )
        self.assertEqual([a["action"] for a in resp.json()["actions"]], ["persist", "persist"])

    def test_gallery_image(self):
        sid = self.open_session()
        png = render_png("+1-555-0100", size=300, margin=4)
        resp = self.client.post(
            f"/sessions/{sid}/image", files={"file": ("qr.png", png, "image/png")}, headers=ALICE
        )
        action = resp.json()["actions"][0]
        self.assertEqual((action["action"], action["type"]), ("persist", "PHONE"))

        resp = self.client.post(
            f"/sessions/{sid}/image", files={"file": ("p.png", png_bytes(), "image/png")}, headers=ALICE
        )
        self.assertEqual(resp.json(), {"actions": [], "notices": ["No QR code detected"]})

    def test_accept_without_prompt_saves_nothing(self):
        sid = self.open_session()
        self.scan(sid, "hello", 1000)
        for ts in (1100, 1200, 1300):
            resp = self.client.post(
                f"/sessions/{sid}/rescan",
                json={"value": "hello", "accept": True, "timestamp_ms": ts},
                headers=ALICE,
            )
            self.assertEqual(resp.status_code, 200)
            self.assertEqual(resp.json()["actions"][0]["action"], "suppress")
        self.client.portal.call(self.registry.get(sid).wait_idle)
        self.assertEqual([e.content for e in self.store.list("alice")], ["hello"])

    def test_session_rejects_mixed_time_sources(self):
        sid = self.open_session()
        self.scan(sid, "hello", 1000)
        resp = self.client.post(f"/sessions/{sid}/scan", json={"value": "other"}, headers=ALICE)
        self.assertEqual(resp.status_code, 422)
        self.assertIn("client timestamps", resp.json()["detail"])

    def test_open_with_server_clock(self):
        resp = self.client.post("/sessions", json={"client_clock": False}, headers=ALICE)
        self.assertFalse(resp.json()["client_clock"])
        sid = resp.json()["session_id"]

        png = render_png("hello", size=300, margin=4)
        resp = self.client.post(
            f"/sessions/{sid}/image",
            files={"file": ("qr.png", png, "image/png")},
            data={"timestamp_ms": "1000"},
            headers=ALICE,
        )
        self.assertEqual(resp.status_code, 422)
        resp = self.client.post(
            f"/sessions/{sid}/image", files={"file": ("qr.png", png, "image/png")}, headers=ALICE
        )
        self.assertEqual(resp.json()["actions"][0]["action"], "persist")

    def test_other_users_cannot_use_session(self):
        sid = self.open_session()
        resp = self.client.post(f"/sessions/{sid}/scan", json={"value": "x"}, headers=BOB)
        self.assertEqual(resp.status_code, 404)

    def test_unknown_session(self):
        resp = self.client.post("/sessions/nope/scan", json={"value": "x"}, headers=ALICE)
        self.assertEqual(resp.status_code, 404)


class TestHistoryApi(ApiTestCase):
    def test_history_lifecycle(self):
        from app.services.classifier import ScanType

        entry = self.store.save("alice", "x" * 60, ScanType.TEXT)
        self.store.save("alice", "https://example.com", ScanType.URL)

        resp = self.client.get("/history", headers=ALICE)
        self.assertEqual(resp.status_code, 200)
        rows = resp.json()
        self.assertEqual(len(rows), 2)
        self.assertEqual(rows[0]["age"], "Just now")
        long_row = next(r for r in rows if r["id"] == entry.id)
        self.assertEqual(long_row["display_text"], "x" * 50 + "...")

        self.assertEqual(self.client.delete(f"/history/{entry.id}", headers=ALICE).status_code, 204)
        self.assertEqual(self.client.delete(f"/history/{entry.id}", headers=ALICE).status_code, 404)
        self.assertEqual(self.client.delete("/history", headers=ALICE).json(), {"deleted": 1})

    def test_history_requires_user(self):
        self.assertEqual(self.client.get("/history").status_code, 401)
        self.assertEqual(self.client.delete("/history").status_code, 401)


class TestGenerateApi(ApiTestCase):
    def test_generate_saves_history(self):
        resp = self.client.post("/generate", json={"text": "hello", "size": 256}, headers=ALICE)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.headers["content-type"], "image/png")
        self.assertEqual(resp.headers["x-history-saved"], "true")

        entries = self.store.list("alice")
        self.assertEqual([(e.content, e.type.value) for e in entries], [("hello", "GENERATED")])

    def test_generate_without_user_still_returns_image(self):
        resp = self.client.post("/generate", json={"text": "hello", "size": 256})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.headers["x-history-saved"], "false")

    def test_generate_blank_text(self):
        resp = self.client.post("/generate", json={"text": "  "}, headers=ALICE)
        self.assertEqual(resp.status_code, 422)


class TestProfileApi(ApiTestCase):
    def test_profile_lifecycle(self):
        self.assertEqual(self.client.get("/profile", headers=ALICE).status_code, 404)

        resp = self.client.put(
            "/profile", json={"display_name": "Alice", "email": "alice@example.com"}, headers=ALICE
        )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["display_name"], "Alice")

        resp = self.client.post(
            "/profile/photo", files={"file": ("me.png", png_bytes(), "image/png")}, headers=ALICE
        )
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.json()["photo_base64"])
        self.assertEqual(resp.json()["display_name"], "Alice")

    def test_blank_display_name(self):
        resp = self.client.put("/profile", json={"display_name": " "}, headers=ALICE)
        self.assertEqual(resp.status_code, 422)

    def test_profile_requires_user(self):
        self.assertEqual(self.client.get("/profile").status_code, 401)


class TestModeApi(ApiTestCase):
    def test_mode_round_trip_and_logout(self):
        self.assertEqual(self.client.get("/mode").json(), {"offline": settings.offline_mode})
        self.assertEqual(self.client.put("/mode", json={"offline": True}).json(), {"offline": True})
        self.assertEqual(self.client.get("/mode").json(), {"offline": True})

        self.assertEqual(self.client.post("/profile/logout", headers=ALICE).status_code, 204)
        self.assertEqual(self.client.get("/mode").json(), {"offline": settings.offline_mode})

    def test_session_captures_mode(self):
        app.dependency_overrides[get_app_mode] = lambda: AppMode(offline=True)
        resp = self.client.post("/sessions", headers=ALICE)
        self.assertTrue(resp.json()["offline"])


if __name__ == "__main__":
    unittest.main()
