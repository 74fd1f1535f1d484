import json
import unittest

from starlette.testclient import TestClient

from graph_power_mcp.config import Settings
from graph_power_mcp.orchestrator import GraphOrchestrator
from graph_power_mcp.server_http import create_app

from fakes import FakeClock, FakeHttpClient, SleepRecorder, response

TOKEN = "Bearer eyJ0eXAiOiJKV1QiLCJhbGciOi.test"


class TestHttpServer(unittest.TestCase):

    def setUp(self):
        self.http = FakeHttpClient()
        settings = Settings()
        orchestrator = GraphOrchestrator(
            settings=settings,
            http_client=self.http,
            sleep=SleepRecorder(),
            cache_clock=FakeClock(),
        )
        self.app = create_app(orchestrator=orchestrator, settings=settings)

    def test_parse_error_still_returns_200(self):
        with TestClient(self.app) as client:
            reply = client.post("/mcp", content=b"{oops", headers={"Content-Type": "application/json"})

        self.assertEqual(reply.status_code, 200)
        self.assertEqual(reply.json()["error"]["code"], -32700)
        self.assertIsNone(reply.json()["id"])

    def test_root_and_mcp_paths_serve_rpc(self):
        body = json.dumps({"jsonrpc": "2.0", "id": 1, "method": "tools/list"})
        with TestClient(self.app) as client:
            root = client.post("/", content=body)
            mcp = client.post("/mcp", content=body)

        self.assertEqual(root.status_code, 200)
        self.assertEqual(root.json(), mcp.json())
        self.assertEqual(len(root.json()["result"]["tools"]), 3)

    def test_authorization_header_reaches_graph(self):
        self.http.responses.append(response(200, {"id": "me"}))
        body = json.dumps({
            "jsonrpc": "2.0",
            "id": 7,
            "method": "tools/call",
            "params": {"name": "invoke_graph", "arguments": {"endpoint": "/me", "method": "GET"}},
        })

        with TestClient(self.app) as client:
            reply = client.post("/mcp", content=body, headers={"Authorization": TOKEN})

        self.assertEqual(reply.status_code, 200)
        self.assertFalse(reply.json()["result"]["isError"])
        self.assertEqual(self.http.calls[0]["headers"]["Authorization"], TOKEN)
        self.assertEqual(self.http.calls[0]["url"], "https://graph.microsoft.com/v1.0/me")

    def test_health(self):
        with TestClient(self.app) as client:
            reply = client.get("/health")

        self.assertEqual(reply.status_code, 200)
        payload = reply.json()
        self.assertEqual(payload["status"], "healthy")
        self.assertEqual(payload["tools"], ["discover_graph", "invoke_graph", "batch_invoke_graph"])
        self.assertIs(self.app.state.orchestrator.http, self.http)


if __name__ == '__main__':
    unittest.main()
