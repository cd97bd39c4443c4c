"""
HTTP tests for the resource and operation endpoints.
"""

import threading
import uuid

from fastapi.testclient import TestClient

from statusflow.api.app import create_app
from statusflow.api.gateway import OPERATION_LOCATION_HEADER
from statusflow.application.factories import StatusFlowFactory
from statusflow.domain.models import ResourceKindRegistry

from tests.mocks import FailingSideEffect, WIDGET, build_widget_kind


class TestGetResource:

    def test_idle_resource_shape(self, client, risky_user):
        resp = client.get("/resources/alice")

        assert resp.status_code == 200
        body = resp.json()
        assert body["id"] == "alice"
        assert body["kind"] == "riskyUser"
        assert body["status"] == "none"
        assert "lastUpdated" in body
        assert "desiredStatus" not in body

    def test_unknown_resource(self, client):
        resp = client.get("/resources/nobody")

        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "NotFound"

    def test_invalid_resource_id(self, client):
        resp = client.get("/resources/%20bad%20id")

        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "ValidationError"


class TestSynchronousChange:

    def test_patch_completes_with_mirrored_desired_status(self, client, risky_user):
        resp = client.patch("/resources/alice", json={"status": "confirmedCompromised"})

        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "confirmedCompromised"
        assert body["desiredStatus"] == "confirmedCompromised"
        assert OPERATION_LOCATION_HEADER not in resp.headers

        follow_up = client.get("/resources/alice").json()
        assert follow_up["status"] == "confirmedCompromised"
        assert "desiredStatus" not in follow_up

    def test_status_detail_stored(self, client, risky_user):
        resp = client.patch(
            "/resources/alice",
            json={"status": "dismissed", "statusDetail": "false positive"},
        )

        assert resp.json()["statusDetail"] == "false positive"

    def test_change_request_without_duration_is_synchronous(self, client, risky_user):
        resp = client.post("/resources/alice/changeRequests", json={"status": "confirmedCompromised"})

        assert resp.status_code == 200
        assert resp.json()["status"] == "confirmedCompromised"

    def test_same_status_is_ok(self, client, risky_user):
        resp = client.patch("/resources/alice", json={"status": "none"})

        assert resp.status_code == 200
        assert resp.json()["status"] == "none"


class TestAsynchronousChange:

    def test_end_to_end(self, client, memory_services, directory):
        memory_services.engine.register(
            "riskyUser", resource_id="bob", attributes={"userPrincipalName": "bob@contoso.com"}
        )

        resp = client.post(
            "/resources/bob/changeRequests",
            json={"status": "confirmedCompromised", "duration": 3600},
        )

        assert resp.status_code == 202
        body = resp.json()
        assert body["id"] == "bob"
        assert body["status"] == "confirmingCompromising"
        assert body["desiredStatus"] == "confirmedCompromised"
        assert body["operation"]["state"] == "pending"
        location = resp.headers[OPERATION_LOCATION_HEADER]
        assert location == f"/operations/{body['operation']['id']}"

        in_flight = client.get("/resources/bob").json()
        assert in_flight["status"] == "none"
        assert in_flight["desiredStatus"] == "confirmedCompromised"

        assert memory_services.processor.process_once() == 1

        operation = client.get(location).json()
        assert operation["state"] == "succeeded"
        assert operation["targetStatus"] == "confirmedCompromised"
        assert "completedAt" in operation

        done = client.get("/resources/bob").json()
        assert done["status"] == "confirmedCompromised"
        assert "desiredStatus" not in done
        assert directory.is_disabled("bob@contoso.com")

    def test_failed_operation_reports_reason(self):
        services = StatusFlowFactory.create_for_testing(
            kinds=ResourceKindRegistry([build_widget_kind(FailingSideEffect(RuntimeError("jammed")))])
        )
        widget = services.engine.register(WIDGET)

        with TestClient(create_app(services=services)) as http:
            accepted = http.patch(f"/resources/{widget.id}", json={"status": "on"}).json()
            services.processor.process_once()

            operation = http.get(f"/operations/{accepted['operation']['id']}").json()
            assert operation["state"] == "failed"
            assert operation["failureReason"] == "RuntimeError: jammed"
            assert http.get(f"/resources/{widget.id}").json()["status"] == "off"


class TestErrors:

    def test_disallowed_transition(self, client, risky_user):
        client.patch("/resources/alice", json={"status": "dismissed"})

        resp = client.patch("/resources/alice", json={"status": "confirmedCompromised"})

        assert resp.status_code == 422
        error = resp.json()["error"]
        assert error["code"] == "InvalidTransition"
        assert client.get("/resources/alice").json()["status"] == "dismissed"

    def test_unknown_status(self, client, risky_user):
        resp = client.patch("/resources/alice", json={"status": "hacked"})

        assert resp.status_code == 422

    def test_change_unknown_resource(self, client):
        resp = client.patch("/resources/nobody", json={"status": "dismissed"})

        assert resp.status_code == 404

    def test_request_while_in_flight(self, client, risky_user):
        client.post("/resources/alice/changeRequests", json={"status": "confirmedCompromised", "duration": 60})

        resp = client.patch("/resources/alice", json={"status": "dismissed"})

        assert resp.status_code == 409
        error = resp.json()["error"]
        assert error["code"] == "Conflict"
        assert error["details"]["desired_status"] == "confirmedCompromised"

    def test_expected_status_mismatch(self, client, risky_user):
        resp = client.patch(
            "/resources/alice",
            json={"status": "dismissed", "expectedStatus": "confirmedCompromised"},
        )

        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "Conflict"

    def test_missing_status(self, client, risky_user):
        resp = client.patch("/resources/alice", json={})

        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "ValidationError"

    def test_patch_rejects_unknown_fields(self, client, risky_user):
        resp = client.patch("/resources/alice", json={"status": "dismissed", "duration": 60})

        assert resp.status_code == 422
        assert client.get("/resources/alice").json()["status"] == "none"

    def test_negative_duration(self, client, risky_user):
        resp = client.post(
            "/resources/alice/changeRequests",
            json={"status": "confirmedCompromised", "duration": -5},
        )

        assert resp.status_code == 422
        assert "duration" in resp.json()["error"]["message"]

    def test_malformed_operation_id(self, client):
        resp = client.get("/operations/not-a-uuid")

        assert resp.status_code == 422

    def test_unknown_operation(self, client):
        resp = client.get(f"/operations/{uuid.uuid4()}")

        assert resp.status_code == 404


class TestListOperations:

    def test_newest_first(self, client, memory_services, risky_user):
        first = client.post(
            "/resources/alice/changeRequests",
            json={"status": "confirmedCompromised", "duration": 60},
        ).json()
        memory_services.processor.process_once()

        resp = client.get("/resources/alice/operations")

        assert resp.status_code == 200
        operations = resp.json()["value"]
        assert [o["id"] for o in operations] == [first["operation"]["id"]]
        assert operations[0]["state"] == "succeeded"

    def test_limit_bounds(self, client, risky_user):
        assert client.get("/resources/alice/operations", params={"limit": 0}).status_code == 422

    def test_unknown_resource(self, client):
        assert client.get("/resources/nobody/operations").status_code == 404


class TestConcurrentRequests:

    def test_same_expected_status_exactly_one_wins(self, app, risky_user):
        barrier = threading.Barrier(2)
        codes = []
        lock = threading.Lock()

        def send():
            http = TestClient(app)
            barrier.wait()
            resp = http.patch(
                "/resources/alice",
                json={"status": "confirmedCompromised", "expectedStatus": "none"},
            )
            with lock:
                codes.append(resp.status_code)

        threads = [threading.Thread(target=send) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        assert sorted(codes) == [200, 409]


class TestHealth:

    def test_health(self, client):
        resp = client.get("/health")

        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "healthy"
        assert body["storageMode"] == "inmemory"
        assert body["processorRunning"] is False
