import unittest

from fastapi.testclient import TestClient

from app.main import app
from app.services.dependencies import get_supabase_setup_service
from app.services.setup.supabase_setup_service import SupabaseSetupService

from fakes import FakeVerifier, cli_failure, happy_cli, make_config


class _NoSleep:
    async def __call__(self, seconds):
        return None


class SupabaseApiTests(unittest.TestCase):
    def setUp(self):
        self.config = make_config()
        self.cli = happy_cli()
        self.verifier = FakeVerifier(self.config)

        def _service():
            return SupabaseSetupService(
                config=self.config,
                cli=self.cli,
                verifier=self.verifier,
                sleep=_NoSleep(),
            )

        app.dependency_overrides[get_supabase_setup_service] = _service
        self.client = TestClient(app)

    def tearDown(self):
        app.dependency_overrides.clear()

    def test_root(self):
        response = self.client.get("/")
        self.assertEqual(response.status_code, 200)
        self.assertIn("message", response.json())

    def test_setup_existing_project(self):
        response = self.client.post(
            "/setup",
            json={"mode": "existing", "projectRef": "abcd1234", "dbPassword": "p@ss"},
        )
        self.assertEqual(response.status_code, 200)
        payload = response.json()

        self.assertTrue(payload["ok"])
        self.assertEqual(payload["projectRef"], "abcd1234")
        self.assertEqual(payload["backendUrl"], "https://abcd1234.supabase.co")
        self.assertTrue(payload["adminToken"])
        self.assertNotIn("generatedDbPassword", payload)
        self.assertIsInstance(payload["logs"], list)

        checks = payload["checks"]
        self.assertTrue(checks["table"]["ok"])
        self.assertTrue(checks["fn:openbento-analytics-track"]["ok"])
        self.assertTrue(checks["fn:openbento-analytics-admin"]["ok"])
        self.assertFalse(checks["adminAuth"]["ok"])
        self.assertEqual(checks["adminAuth"]["details"], "missing adminToken")

    def test_setup_echoes_admin_token(self):
        response = self.client.post(
            "/setup",
            json={"projectRef": "abcd1234", "dbPassword": "pw", "adminToken": "  tok  "},
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["adminToken"], "tok")
        self.assertTrue(response.json()["checks"]["adminAuth"]["ok"])

    def test_setup_create_returns_generated_password(self):
        response = self.client.post("/setup", json={"mode": "create", "projectName": "demo"})
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["projectRef"], "abcd1234")
        self.assertTrue(payload["generatedDbPassword"].endswith("A1!"))

    def test_setup_create_readiness_timeout(self):
        self.cli.on("projects", "api-keys", reply=cli_failure(["projects", "api-keys"], "not ready"))

        response = self.client.post("/setup", json={"mode": "create", "orgId": "org-1", "dbPassword": "pw"})

        self.assertEqual(response.status_code, 504)
        payload = response.json()
        self.assertFalse(payload["ok"])
        self.assertEqual(payload["projectRef"], "abcd1234")
        self.assertIn("Waiting for project to be ready...", payload["logs"])
        self.assertIn("too long", payload["error"])

    def test_setup_not_logged_in(self):
        self.cli.on("orgs", "list", reply=cli_failure(["orgs", "list"]))
        response = self.client.post("/setup", json={"projectRef": "abcd1234", "dbPassword": "pw"})
        self.assertEqual(response.status_code, 401)
        self.assertFalse(response.json()["ok"])

    def test_setup_missing_ref(self):
        response = self.client.post("/setup", json={"dbPassword": "pw", "projectRef": "   "})
        self.assertEqual(response.status_code, 400)
        self.assertIn("Missing project ref", response.json()["error"])

    def test_setup_empty_body_defaults_to_existing(self):
        response = self.client.post("/setup")
        self.assertEqual(response.status_code, 400)
        self.assertIn("Missing project ref", response.json()["error"])

    def test_setup_malformed_json(self):
        response = self.client.post(
            "/setup",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        self.assertEqual(response.status_code, 400)
        self.assertFalse(response.json()["ok"])

    def test_setup_unknown_mode(self):
        response = self.client.post("/setup", json={"mode": "destroy"})
        self.assertEqual(response.status_code, 400)

    def test_setup_parse_error_includes_raw_output(self):
        self.cli.on("projects", "create", reply="created, but no json")
        response = self.client.post("/setup", json={"mode": "create"})
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json()["raw"], "created, but no json")

    def test_status_with_token(self):
        response = self.client.get("/status", params={"projectRef": "abcd1234", "adminToken": "tok"})
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["projectRef"], "abcd1234")
        self.assertEqual(payload["backendUrl"], "https://abcd1234.supabase.co")
        self.assertNotIn("note", payload)
        self.assertTrue(payload["checks"]["adminAuth"]["ok"])

    def test_status_from_url_without_token_has_note(self):
        response = self.client.get("/status", params={"supabaseUrl": "https://abcd1234.supabase.co"})
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["projectRef"], "abcd1234")
        self.assertEqual(payload["note"], "adminAuth check skipped (missing adminToken)")

    def test_status_missing_ref(self):
        response = self.client.get("/status")
        self.assertEqual(response.status_code, 400)
        self.assertFalse(response.json()["ok"])

    def test_status_lookup_failure(self):
        self.cli.on("projects", "api-keys", reply=cli_failure(["projects", "api-keys"], "project not found"))
        response = self.client.get("/status", params={"projectRef": "abcd1234"})
        self.assertEqual(response.status_code, 500)
        self.assertIn("project not found", response.json()["raw"])


if __name__ == "__main__":
    unittest.main()
