import json
import unittest

import httpx

from services.deployments.client import DeployClient, DeployClientError


def _sse(*events: dict) -> str:
    body = ": keep-alive\n\n"
    for event in events:
        body += f"data: {json.dumps(event)}\n\n"
    return body


class TestDeployClient(unittest.TestCase):
    def setUp(self) -> None:
        self.requests = []

    def _client(self, handler) -> DeployClient:
        def _record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        client = DeployClient("http://dash.local", transport=httpx.MockTransport(_record))
        self.addCleanup(client.close)
        return client

    def test_create_sends_camel_case_payload(self) -> None:
        client = self._client(
            lambda r: httpx.Response(200, json={"deployId": "abc123", "status": "started"})
        )

        deploy_id = client.create(backend="gpu", model="org/model", gpu_slot=1)

        self.assertEqual(deploy_id, "abc123")
        request = self.requests[0]
        self.assertEqual(request.url.path, "/api/deploy")
        self.assertEqual(
            json.loads(request.content), {"backend": "gpu", "model": "org/model", "gpuSlot": 1}
        )

    def test_conflict_raises_with_detail(self) -> None:
        client = self._client(
            lambda r: httpx.Response(409, json={"detail": "a deployment is already in progress"})
        )

        with self.assertRaises(DeployClientError) as ctx:
            client.create(backend="cpu", model="llama3")
        self.assertEqual(ctx.exception.status_code, 409)
        self.assertIn("already in progress", str(ctx.exception))

    def test_events_parses_data_lines(self) -> None:
        body = _sse(
            {"type": "status", "data": "connected", "timestamp": 1},
            {"type": "output", "data": "hello", "timestamp": 2},
        ) + "data: not-json\n\n"
        client = self._client(lambda r: httpx.Response(200, text=body))

        events = list(client.events("abc"))

        self.assertEqual([e["data"] for e in events], ["connected", "hello"])
        self.assertEqual(self.requests[0].url.params["deployId"], "abc")

    def test_watch_answers_prompts_through_stdin(self) -> None:
        body = _sse(
            {"type": "status", "data": "connected", "timestamp": 1},
            {"type": "output", "data": "Model fits! Proceed? [Y/n]", "timestamp": 2},
            {"type": "output", "data": "Deployment completed successfully!", "timestamp": 3},
            {"type": "complete", "data": "completed", "timestamp": 4},
        )

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/api/deploy/stream":
                return httpx.Response(200, text=body)
            if request.url.path == "/api/deploy/stdin":
                return httpx.Response(200, json={"success": True})
            return httpx.Response(404, json={"detail": "Not Found"})

        client = self._client(handler)
        seen = []

        state = client.watch(
            "abc",
            lambda orch, prompt: orch.confirm(),
            on_event=seen.append,
        )

        self.assertEqual(state, "completed")
        self.assertEqual(len(seen), 4)
        stdin_calls = [r for r in self.requests if r.url.path == "/api/deploy/stdin"]
        self.assertEqual(len(stdin_calls), 1)
        self.assertEqual(json.loads(stdin_calls[0].content), {"deployId": "abc", "input": "y"})

    def test_watch_without_complete_event_is_failed(self) -> None:
        body = _sse({"type": "status", "data": "connected", "timestamp": 1})
        client = self._client(lambda r: httpx.Response(200, text=body))

        self.assertEqual(client.watch("abc", lambda orch, prompt: None), "failed")

    def test_stream_not_found(self) -> None:
        client = self._client(lambda r: httpx.Response(404, json={"detail": "Deployment not found"}))

        with self.assertRaises(DeployClientError) as ctx:
            list(client.events("missing"))
        self.assertEqual(ctx.exception.status_code, 404)

    def test_cancel_and_status(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/cancel"):
                return httpx.Response(200, json={"ok": True})
            return httpx.Response(200, json={"deployId": "abc", "status": "running"})

        client = self._client(handler)
        self.assertTrue(client.cancel("abc"))
        self.assertEqual(client.status("abc")["status"], "running")


if __name__ == "__main__":
    unittest.main()
