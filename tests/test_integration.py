#!/usr/bin/env python3
"""
Integration Tests for the Block Relay Service
Drives the HTTP surface (node callback and wallet RPC) end to end with
in-memory backing services.
"""

import json
import os
import tempfile
import unittest
from unittest.mock import patch

from fastapi.testclient import TestClient

from common.error_handling import NodeCallError
from common.schemas import RpcAction
from common.settings import settings
from relay_service.main import RPC_HANDLERS, RelayServices, create_app
from relay_service.provisioner import AccountProvisioner
from relay_service.router import BlockRouter
from fakes import FakeDirectory, FakeNode, FakePublisher, RecordingTracer, sqlite_session_factory


class RelayServiceTestCase(unittest.TestCase):
    """Spins up the app with fakes for Redis, MQTT and the node"""

    def setUp(self):
        self.directory = FakeDirectory({"A1": "W1", "A2": "W2"})
        self.publisher = FakePublisher()
        self.node = FakeNode(answer={"available": "133248061996216572282917317807824970865"})
        self.services = RelayServices(
            router=BlockRouter(self.directory, self.publisher),
            provisioner=AccountProvisioner(
                sqlite_session_factory(),
                [{"pattern": "canoecontrol"}],
                [{"pattern": "wallet/+/#"}],
            ),
            directory=self.directory,
            node=self.node,
        )
        self.client = TestClient(create_app(self.services))
        self.client.__enter__()

    def tearDown(self):
        self.client.__exit__(None, None, None)

    def rpc(self, **body):
        return self.client.post("/rpc", json=body)


class TestCallback(RelayServiceTestCase):

    def test_open_block_routed(self):
        body = {"account": "A1", "amount": "1", "block": json.dumps({"type": "open"})}
        response = self.client.post("/callback", json=body)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {})
        self.assertEqual(self.publisher.published, [("wallet/W1/open", body)])

    def test_send_routed_to_destination_wallet(self):
        self.directory.mapping = {"A2": "W2"}
        body = {"account": "A1", "destination": "A2", "block": {"type": "send"}}
        response = self.client.post("/callback", json=body)
        self.assertEqual(response.json(), {})
        self.assertEqual([t for t, _ in self.publisher.published], ["wallet/W2/send"])

    def test_change_block_acknowledged_without_publish(self):
        response = self.client.post("/callback", json={"account": "A3", "block": {"type": "change"}})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {})
        self.assertEqual(self.publisher.published, [])

    def test_directory_miss_acknowledged(self):
        response = self.client.post("/callback", json={"account": "A9", "block": {"type": "receive"}})
        self.assertEqual(response.json(), {})
        self.assertEqual(self.publisher.published, [])

    def test_directory_down_acknowledged(self):
        self.directory.fail = True
        response = self.client.post("/callback", json={"account": "A1", "block": {"type": "open"}})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {})
        self.assertEqual(self.publisher.published, [])

    def test_body_without_content_type(self):
        body = json.dumps({"account": "A1", "block": json.dumps({"type": "receive"})})
        response = self.client.post("/callback", content=body.encode())
        self.assertEqual(response.json(), {})
        self.assertEqual([t for t, _ in self.publisher.published], ["wallet/W1/receive"])

    def test_garbage_body_acknowledged(self):
        response = self.client.post("/callback", content=b"<xml/>")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {})

    def test_routing_continues_callback_trace(self):
        tracer = RecordingTracer()
        self.services.router.tracer = tracer
        body = {"account": "A1", "block": {"type": "open"}}
        response = self.client.post("/callback", json=body, headers={"X-Trace-ID": "node-cb-42"})
        self.assertEqual(response.headers["X-Trace-ID"], "node-cb-42")
        self.assertEqual([s.trace_id for s in tracer.spans], ["node-cb-42"])

    def test_trace_headers_returned(self):
        response = self.client.post("/callback", json={}, headers={"X-Trace-ID": "abc123"})
        self.assertEqual(response.headers["X-Trace-ID"], "abc123")


class TestCreateAccount(RelayServiceTestCase):

    def test_create_account(self):
        response = self.rpc(action="create_account", token="xrb_1", tokenpass="pw")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {})

    def test_duplicate_account(self):
        self.assertEqual(self.rpc(action="create_account", token="xrb_1", tokenpass="pw").json(), {})
        response = self.rpc(action="create_account", token="xrb_1", tokenpass="pw")
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["error"], "account already exists")
        self.assertEqual(response.json()["code"], "ACCOUNT_EXISTS")

    def test_database_failure(self):
        self.services.provisioner = AccountProvisioner(sqlite_session_factory(create_tables=False), [], [])
        response = self.rpc(action="create_account", token="xrb_1", tokenpass="pw")
        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json()["error"], "account provisioning failed")
        self.assertEqual(response.json()["code"], "DATABASE_ERROR")

    def test_missing_tokenpass(self):
        response = self.rpc(action="create_account", token="xrb_1")
        self.assertEqual(response.status_code, 400)
        self.assertIn("tokenpass", response.json()["error"])


class TestRpc(RelayServiceTestCase):

    def test_every_action_has_handler(self):
        self.assertEqual(set(RPC_HANDLERS), set(RpcAction))

    def test_unknown_action(self):
        response = self.rpc(action="launch_rockets")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"], "unknown action")

    def test_missing_action(self):
        self.assertEqual(self.rpc(token="x").json()["error"], "unknown action")

    def test_non_json_body(self):
        response = self.client.post("/rpc", content=b"nope")
        self.assertEqual(response.status_code, 400)
        self.assertIn("error", response.json())

    def test_available_supply_passthrough(self):
        response = self.rpc(action="available_supply")
        self.assertEqual(response.json(), {"available": "133248061996216572282917317807824970865"})
        self.assertEqual(self.node.calls, [{"action": "available_supply"}])

    def test_available_supply_node_timeout(self):
        self.node.error = NodeCallError("node call timed out", timeout=True)
        response = self.rpc(action="available_supply")
        self.assertEqual(response.status_code, 504)
        self.assertEqual(response.json()["error"], "node call timed out")

    def test_available_supply_node_down(self):
        self.node.error = NodeCallError("node unreachable")
        response = self.rpc(action="available_supply")
        self.assertEqual(response.status_code, 502)
        self.assertEqual(response.json()["error"], "node unreachable")

    def test_quota_full(self):
        self.assertEqual(self.rpc(action="quota_full").json(), {"full": False})

    def test_server_status_default(self):
        with patch.object(settings, "status_file", "/nonexistent/canoeServerStatus.json"):
            self.assertEqual(self.rpc(action="canoe_server_status").json(), {"status": "ok"})

    def test_server_status_from_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "canoeServerStatus.json")
            with open(path, "w") as f:
                json.dump({"status": "maintenance", "message": "Back soon"}, f)
            with patch.object(settings, "status_file", path):
                response = self.rpc(action="canoe_server_status")
        self.assertEqual(response.json(), {"status": "maintenance", "message": "Back soon"})

    def test_server_status_malformed_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "canoeServerStatus.json")
            with open(path, "w") as f:
                f.write("{status: maintenance")
            with patch.object(settings, "status_file", path):
                response = self.rpc(action="canoe_server_status")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok"})

    def test_update_server_map_makes_accounts_routable(self):
        response = self.rpc(action="update_server_map", wallet="W7", accounts=["A7", "A8"])
        self.assertEqual(response.json(), {"status": "ok"})
        self.client.post("/callback", json={"account": "A8", "block": {"type": "open"}})
        self.assertEqual([t for t, _ in self.publisher.published], ["wallet/W7/open"])

    def test_update_server_map_directory_down(self):
        self.directory.fail = True
        response = self.rpc(action="update_server_map", wallet="W7", accounts=["A7"])
        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json()["error"], "account directory unavailable")

    def test_health(self):
        self.assertEqual(self.client.get("/health").json(), {"ok": True, "service": "relay"})



class TestRoutingErrors(RelayServiceTestCase):
    """Errors raised by the HTTP router itself use the same error body as RPC failures"""

    def test_unknown_path(self):
        response = self.client.get("/nope")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["code"], "NOT_FOUND")
        self.assertEqual(response.json()["error"], "Not Found")

    def test_wrong_method(self):
        response = self.client.get("/callback")
        self.assertEqual(response.status_code, 405)
        self.assertEqual(response.json()["code"], "METHOD_NOT_ALLOWED")
        self.assertIn("POST", response.headers["allow"])
        self.assertNotIn("detail", response.json())

if __name__ == "__main__":
    unittest.main()
