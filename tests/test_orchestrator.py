import json
import unittest

from graph_power_mcp.config import Settings
from graph_power_mcp.orchestrator import GraphOrchestrator, ToolCallRequest

from fakes import FakeClock, FakeDocs, FakeHttpClient, SleepRecorder, response

TOKEN = "Bearer eyJ0eXAiOiJKV1QiLCJhbGciOi.test"


def rpc(method, params=None, request_id=1):
    message = {"jsonrpc": "2.0", "id": request_id, "method": method}
    if params is not None:
        message["params"] = params
    return json.dumps(message)


def tool_payload(result):
    return json.loads(result["content"][0]["text"])


class TestGraphOrchestrator(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.http = FakeHttpClient()
        self.sleep = SleepRecorder()
        self.clock = FakeClock()
        self.docs = FakeDocs(result=[{
            "title": "List users - Microsoft Graph v1.0",
            "contentUrl": "https://learn.microsoft.com/en-us/graph/api/user-list",
            "content": "GET /users",
        }])
        self.orchestrator = GraphOrchestrator(
            settings=Settings(),
            http_client=self.http,
            sleep=self.sleep,
            cache_clock=self.clock,
            docs_client=self.docs,
        )

    async def test_parse_error(self):
        reply = await self.orchestrator.handle("{not json")
        self.assertIsNone(reply["id"])
        self.assertEqual(reply["error"]["code"], -32700)

    async def test_invalid_request(self):
        reply = await self.orchestrator.handle(json.dumps([1, 2]))
        self.assertEqual(reply["error"]["code"], -32600)

        reply = await self.orchestrator.handle(json.dumps({"jsonrpc": "2.0", "id": 4}))
        self.assertEqual(reply["id"], 4)
        self.assertEqual(reply["error"]["code"], -32600)

    async def test_method_not_found(self):
        reply = await self.orchestrator.handle(rpc("sampling/createMessage", request_id="abc"))
        self.assertEqual(reply["id"], "abc")
        self.assertEqual(reply["error"]["code"], -32601)

    async def test_initialize_echoes_protocol_version(self):
        reply = await self.orchestrator.handle(rpc("initialize", {"protocolVersion": "2025-03-26"}))
        result = reply["result"]
        self.assertEqual(result["protocolVersion"], "2025-03-26")
        self.assertEqual(result["serverInfo"]["name"], "graph-power-orchestration")
        self.assertIn("tools", result["capabilities"])

        reply = await self.orchestrator.handle(rpc("initialize", {}))
        self.assertEqual(reply["result"]["protocolVersion"], "2024-11-05")

    async def test_notifications_and_static_methods(self):
        reply = await self.orchestrator.handle(rpc("notifications/initialized"))
        self.assertEqual(reply["result"], {})

        reply = await self.orchestrator.handle(rpc("ping"))
        self.assertEqual(reply["result"], {})

        reply = await self.orchestrator.handle(rpc("resources/list"))
        self.assertEqual(reply["result"], {"resources": []})

        reply = await self.orchestrator.handle(rpc("prompts/list"))
        self.assertEqual(reply["result"], {"prompts": []})

        reply = await self.orchestrator.handle(rpc("logging/setLevel", {"level": "info"}))
        self.assertEqual(reply["result"], {})

    async def test_tools_list_is_stable(self):
        first = await self.orchestrator.handle(rpc("tools/list"))
        second = await self.orchestrator.handle(rpc("tools/list", request_id=2))

        self.assertEqual(first["result"], second["result"])
        names = [tool["name"] for tool in first["result"]["tools"]]
        self.assertEqual(names, ["discover_graph", "invoke_graph", "batch_invoke_graph"])
        for tool in first["result"]["tools"]:
            self.assertEqual(tool["inputSchema"]["type"], "object")
            self.assertTrue(tool["description"])

    async def test_tools_call_requires_name(self):
        reply = await self.orchestrator.handle(rpc("tools/call", {"arguments": {}}))
        self.assertEqual(reply["error"]["code"], -32602)

    async def test_non_object_params(self):
        reply = await self.orchestrator.handle(json.dumps({"jsonrpc": "2.0", "id": 9, "method": "tools/list", "params": [1]}))
        self.assertEqual(reply["error"]["code"], -32602)

    async def test_unknown_tool_is_tool_error(self):
        reply = await self.orchestrator.handle(rpc("tools/call", {"name": "delete_everything", "arguments": {}}))

        result = reply["result"]
        self.assertTrue(result["isError"])
        text = result["content"][0]["text"]
        self.assertIn("Unknown tool: delete_everything", text)
        self.assertIn("discover_graph", text)

    async def test_missing_argument_is_tool_error(self):
        reply = await self.orchestrator.handle(rpc("tools/call", {"name": "invoke_graph", "arguments": {"method": "GET"}}))

        result = reply["result"]
        self.assertTrue(result["isError"])
        self.assertTrue(result["content"][0]["text"].startswith("Invalid arguments:"))
        self.assertEqual(self.http.calls, [])

    async def test_invoke_graph_forwards_authorization(self):
        self.http.responses.append(response(200, {"displayName": "Adele Vance"}))

        reply = await self.orchestrator.handle(
            rpc("tools/call", {"name": "invoke_graph", "arguments": {"endpoint": "/me", "method": "GET"}}),
            authorization=TOKEN,
        )

        self.assertFalse(reply["result"]["isError"])
        self.assertEqual(tool_payload(reply["result"])["data"], {"displayName": "Adele Vance"})
        self.assertEqual(self.http.calls[0]["headers"]["Authorization"], TOKEN)

    async def test_graph_error_is_tool_error(self):
        self.http.responses.append(response(403, {"error": {"code": "ErrorAccessDenied", "message": "Access is denied."}}))

        result = await self.orchestrator.call_tool(
            ToolCallRequest(tool_name="invoke_graph", arguments={"endpoint": "/me/messages", "method": "GET"}),
            TOKEN,
        )

        self.assertTrue(result["isError"])
        self.assertEqual(tool_payload(result)["errorType"], "permission_denied")

    async def test_discover_graph_falls_back_when_docs_fail(self):
        self.docs.error = OSError("Name or service not known")

        result = await self.orchestrator.call_tool(ToolCallRequest(tool_name="discover_graph", arguments={"query": "mail"}))

        self.assertFalse(result["isError"])
        payload = tool_payload(result)
        self.assertEqual(payload["source"], "fallback")
        self.assertEqual(payload["operationCount"], 10)

    async def test_discovery_cache_follows_injected_clock(self):
        request = ToolCallRequest(tool_name="discover_graph", arguments={"query": "list users"})

        await self.orchestrator.call_tool(request)
        cached = tool_payload(await self.orchestrator.call_tool(request))
        self.assertTrue(cached["cached"])
        self.assertEqual(len(self.docs.queries), 1)
        self.assertEqual(self.orchestrator.health()["discovery_cache_entries"], 1)

        self.clock.advance(601)
        fresh = tool_payload(await self.orchestrator.call_tool(request))

        self.assertNotIn("cached", fresh)
        self.assertEqual(len(self.docs.queries), 2)
        self.assertEqual(fresh["operations"][0]["endpoint"], "/users")

    async def test_unexpected_tool_failure_is_tool_error(self):
        self.http.responses.append(RuntimeError("socket closed"))

        result = await self.orchestrator.call_tool(
            ToolCallRequest(tool_name="invoke_graph", arguments={"endpoint": "/me", "method": "GET"}),
        )

        self.assertTrue(result["isError"])
        self.assertEqual(result["content"][0]["text"], "Tool error: socket closed")

    async def test_health(self):
        health = self.orchestrator.health()
        self.assertEqual(health["status"], "healthy")
        self.assertEqual(health["discovery_cache_entries"], 0)
        self.assertFalse(health["telemetry_enabled"])


if __name__ == '__main__':
    unittest.main()
