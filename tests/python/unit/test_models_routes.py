import unittest
from unittest import mock

from fastapi.testclient import TestClient

from main import create_app
from services.model_lookup import ModelLookupError
from services.ollama import OllamaError


class TestModelsRoutes(unittest.TestCase):
    def setUp(self) -> None:
        self.ollama = mock.Mock()
        self.lookup = mock.Mock()
        for target, value in (
            ("api.routes.models._ollama", self.ollama),
            ("api.routes.models._lookup", self.lookup),
        ):
            patcher = mock.patch(target, return_value=value)
            patcher.start()
            self.addCleanup(patcher.stop)
        self.client = TestClient(create_app())

    def test_list_models_camel_case(self) -> None:
        self.ollama.list_models.return_value = [
            {
                "name": "llama3:8b",
                "display_name": "llama3",
                "type": "cpu",
                "status": "running",
                "size": "4.3 GB",
                "port": 11434,
                "api_url": "http://localhost:11434/api/chat",
            }
        ]

        resp = self.client.get("/api/models")

        self.assertEqual(resp.status_code, 200)
        model = resp.json()["models"][0]
        self.assertEqual(model["displayName"], "llama3")
        self.assertEqual(model["apiUrl"], "http://localhost:11434/api/chat")

    def test_names_with_slashes_and_tags_reach_the_client(self) -> None:
        self.ollama.show.return_value = {"name": "library/llama3:8b", "family": "llama"}

        resp = self.client.get("/api/models/library/llama3:8b")

        self.assertEqual(resp.status_code, 200)
        self.ollama.show.assert_called_once_with("library/llama3:8b")

        resp = self.client.post("/api/models/library/llama3:8b/start")
        self.assertEqual(resp.status_code, 200)
        self.ollama.start.assert_called_once_with("library/llama3:8b")

    def test_invalid_name_is_rejected(self) -> None:
        resp = self.client.delete("/api/models/llama3;reboot")

        self.assertEqual(resp.status_code, 400)
        self.ollama.delete.assert_not_called()

    def test_upstream_errors_keep_status(self) -> None:
        self.ollama.show.side_effect = OllamaError(404, 'Model "x" not found')
        self.assertEqual(self.client.get("/api/models/x").status_code, 404)

        self.ollama.stop.side_effect = OllamaError(502, "Ollama is not reachable")
        self.assertEqual(self.client.post("/api/models/x/stop").status_code, 502)

    def test_lookup(self) -> None:
        self.lookup.lookup.return_value = {
            "id": "org/name",
            "author": "org",
            "pipeline": "text-generation",
            "parameters": 7_000_000_000,
            "parameters_formatted": "7.0B",
            "has_gguf": True,
            "gguf_files": [
                {"filename": "m.Q4_0.gguf", "quantization": "Q4_0", "size_bytes": 10, "bits": 4}
            ],
        }

        resp = self.client.get("/api/models/lookup", params={"repo": "org/name"})

        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["parametersFormatted"], "7.0B")
        self.assertEqual(body["ggufFiles"][0]["sizeBytes"], 10)
        self.lookup.lookup.assert_called_once_with("org/name")
        self.ollama.show.assert_not_called()

    def test_lookup_errors(self) -> None:
        self.lookup.lookup.side_effect = ModelLookupError(400, "Missing or invalid repo")
        self.assertEqual(self.client.get("/api/models/lookup").status_code, 400)


if __name__ == "__main__":
    unittest.main()
