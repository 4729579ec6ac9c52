"""Tests for ResourceClient and ServiceClient."""

import pytest

from conftest import FakeTransport, http_error
from cloudrpc.batch_manager import BatchExecutor
from cloudrpc.client import ResourceClient, ServiceClient
from cloudrpc.config import ClientSettings
from cloudrpc.exceptions import ServiceError, TransportError
from cloudrpc.operation_poller import OperationPoller
from cloudrpc.options import CallOptions
from cloudrpc.types import Resource, ResourceId

DATASETS = "projects/demo/datasets"


@pytest.fixture
def datasets(transport, fast_policy):
    for name in ("alpha", "beta", "gamma", "delta", "epsilon"):
        transport.add(DATASETS, name, friendlyName=name.title())
    return ResourceClient(transport, DATASETS, fast_policy)


class TestGet:
    """Test get and exists."""

    def test_get(self, datasets):
        dataset = datasets.get("alpha")

        assert dataset.resource_id == ResourceId(DATASETS, "alpha")
        assert dataset.get("friendlyName") == "Alpha"
        assert dataset.generation == 1

    def test_missing_returns_none(self, datasets):
        assert datasets.get("missing") is None

    def test_exists(self, transport, datasets):
        assert datasets.exists("alpha")
        assert not datasets.exists("missing")
        assert transport.calls[-1][2] == {"fields": "name"}

    def test_fields_option_passed(self, transport, datasets):
        datasets.get("alpha", CallOptions(fields="name,etag"))

        assert transport.calls[-1][2] == {"fields": "name,etag"}

    def test_other_errors_raise(self, transport, datasets):
        transport.fail("GET", f"{DATASETS}/alpha", http_error(403, "forbidden", "forbidden"))

        with pytest.raises(ServiceError) as exc_info:
            datasets.get("alpha")

        assert exc_info.value.code == 403
        assert exc_info.value.reason == "forbidden"

    def test_network_failure_retried(self, transport, datasets):
        transport.fail("GET", f"{DATASETS}/alpha", TransportError("connection reset"))

        assert datasets.get("alpha").name == "alpha"
        assert len(transport.calls_to("GET")) == 2


class TestList:
    """Test listing."""

    def test_list_all_pages(self, transport, datasets):
        names = [d.name for d in datasets.list(CallOptions(page_size=2))]

        assert names == ["alpha", "beta", "delta", "epsilon", "gamma"]
        assert [c[2].get("pageToken") for c in transport.calls_to("GET")] == [None, "2", "4"]

    def test_list_page(self, datasets):
        page = datasets.list_page(CallOptions(page_size=3))

        assert [d.name for d in page.items] == ["alpha", "beta", "delta"]
        assert page.next_page_token == "3"

    def test_list_is_lazy(self, transport, datasets):
        listing = datasets.list(CallOptions(page_size=2))

        assert transport.calls == []
        next(listing)
        assert len(transport.calls) == 1

    def test_list_missing_collection_raises(self, fast_policy):
        client = ResourceClient(FakeTransport(), "projects/demo/nothing", fast_policy)

        with pytest.raises(ServiceError) as exc_info:
            list(client.list())

        assert exc_info.value.not_found

    def test_custom_items_key(self, fast_policy):
        class Tables:
            def call(self, method, path, params=None, body=None, headers=None):
                return {"tables": [{"name": "t1"}, {"name": "t2"}]}

        client = ResourceClient(Tables(), f"{DATASETS}/alpha/tables", fast_policy, items_key="tables")

        assert [t.name for t in client.list()] == ["t1", "t2"]


class TestMutations:
    """Test insert, update, patch and delete."""

    def test_insert(self, transport, datasets):
        created = datasets.insert(Resource(datasets.resource_id("zeta"), {"friendlyName": "Zeta"}))

        assert created.name == "zeta"
        assert f"{DATASETS}/zeta" in transport.resources

    def test_insert_not_retried_after_network_failure(self, transport, datasets):
        transport.fail("POST", DATASETS, TransportError("connection reset"))

        with pytest.raises(ServiceError):
            datasets.insert(Resource(datasets.resource_id("zeta")))

        assert len(transport.calls_to("POST")) == 1

    def test_insert_retried_on_server_error(self, transport, datasets):
        transport.fail("POST", DATASETS, http_error(503, "unavailable", "backendError"))

        assert datasets.insert(Resource(datasets.resource_id("zeta"))).name == "zeta"
        assert len(transport.calls_to("POST")) == 2

    def test_update(self, datasets):
        alpha = datasets.get("alpha")

        updated = datasets.update(alpha.with_data(description="first"))

        assert updated.get("description") == "first"
        assert updated.generation == 2
        assert alpha.get("description") is None

    def test_update_missing_raises(self, datasets):
        with pytest.raises(ServiceError) as exc_info:
            datasets.update(Resource(datasets.resource_id("missing")))

        assert exc_info.value.not_found

    def test_patch(self, datasets):
        patched = datasets.patch("beta", {"description": "second"})

        assert patched.get("description") == "second"
        assert patched.get("friendlyName") == "Beta"

    def test_patch_missing_raises(self, datasets):
        with pytest.raises(ServiceError) as exc_info:
            datasets.patch("missing", {"description": "x"})

        assert exc_info.value.not_found

    def test_patch_precondition_passed_through(self, transport, datasets):
        with pytest.raises(ServiceError) as exc_info:
            datasets.patch("beta", {"description": "x"}, CallOptions(if_generation_match=5))

        assert exc_info.value.precondition_failed
        assert not exc_info.value.retryable
        assert len(transport.calls_to("PATCH")) == 1
        assert transport.calls_to("PATCH")[0][2] == {"ifGenerationMatch": "5"}

    def test_patch_with_precondition_is_idempotent(self, transport, datasets):
        transport.fail("PATCH", f"{DATASETS}/beta", TransportError("reset"))

        patched = datasets.patch("beta", {"description": "x"}, CallOptions(if_generation_match=1))

        assert patched.get("description") == "x"
        assert len(transport.calls_to("PATCH")) == 2

    def test_etag_precondition(self, transport, datasets):
        transport.resources[f"{DATASETS}/gamma"]["etag"] = "e1"

        with pytest.raises(ServiceError):
            datasets.delete("gamma", CallOptions(if_etag_match="stale"))

        assert transport.calls_to("DELETE")[0][4] == {"If-Match": "stale"}
        assert datasets.delete("gamma", CallOptions(if_etag_match="e1"))

    def test_delete(self, transport, datasets):
        assert datasets.delete("alpha") is True
        assert datasets.delete("alpha") is False
        assert f"{DATASETS}/alpha" not in transport.resources

    def test_delete_with_contents(self, transport, datasets):
        datasets.delete("alpha", CallOptions(delete_contents=True))

        assert transport.calls_to("DELETE")[0][2] == {"deleteContents": "true"}


class TestServiceClient:
    """Test the ServiceClient facade."""

    def test_hands_out_clients(self, transport):
        settings = ClientSettings(max_attempts=2, check_every=0.1, batch_workers=3, max_batch_size=20)

        with ServiceClient(transport, settings) as service:
            datasets = service.resource(DATASETS)
            poller = service.operations("projects/demo/global/operations")
            executor = service.batch(DATASETS)

        assert isinstance(datasets, ResourceClient)
        assert datasets.retry_policy.max_attempts == 2
        assert isinstance(poller, OperationPoller)
        assert poller.policy.check_every == 0.1
        assert isinstance(executor, BatchExecutor)
        assert executor.max_workers == 3
        assert executor.max_batch_size == 20

    def test_close_closes_transport(self):
        class Closable(FakeTransport):
            closed = False

            def close(self):
                self.closed = True

        transport = Closable()
        with ServiceClient(transport, ClientSettings()):
            pass

        assert transport.closed

    def test_from_settings_builds_http_transport(self):
        service = ServiceClient.from_settings(
            ClientSettings(base_url="https://service.example.com/v1", request_timeout=5)
        )

        assert service.transport.base_url == "https://service.example.com/v1"
        assert service.transport.timeout == 5
        service.close()


def dataset_id(payload):
    return payload["datasetReference"]["datasetId"]


class BigQueryDatasets:
    """Transport answering with datasets identified by a reference block."""

    def __init__(self):
        self.bodies = []

    def call(self, method, path, params=None, body=None, headers=None):
        if method == "GET" and path == DATASETS:
            return {"datasets": [
                {"datasetReference": {"projectId": "demo", "datasetId": "sales"}},
                {"datasetReference": {"projectId": "demo", "datasetId": "ops"}},
            ]}
        if method == "GET":
            return {"id": "demo:sales", "datasetReference": {"projectId": "demo", "datasetId": "sales"}}
        self.bodies.append(body)
        return None


class TestIdentity:
    """Test resources not identified by a "name" field."""

    def test_list_with_identity_callable(self, fast_policy):
        client = ResourceClient(
            BigQueryDatasets(), DATASETS, fast_policy, items_key="datasets", identity=dataset_id
        )

        assert [d.name for d in client.list()] == ["sales", "ops"]

    def test_get_with_identity_callable(self, fast_policy):
        client = ResourceClient(BigQueryDatasets(), DATASETS, fast_policy, identity=dataset_id)

        dataset = client.get("sales")

        assert dataset.resource_id == ResourceId(DATASETS, "sales")
        assert dataset.get("id") == "demo:sales"

    def test_identity_key(self, fast_policy):
        client = ResourceClient(BigQueryDatasets(), DATASETS, fast_policy, identity="id")

        assert client.get("sales").name == "demo:sales"

    def test_callable_identity_leaves_body_alone(self, fast_policy):
        transport = BigQueryDatasets()
        client = ResourceClient(transport, DATASETS, fast_policy, identity=dataset_id)
        dataset = client.get("sales")

        client.update(dataset.with_data(description="d"))

        assert "name" not in transport.bodies[0]
        assert transport.bodies[0]["description"] == "d"

    def test_payload_without_name_rejected(self, fast_policy):
        client = ResourceClient(BigQueryDatasets(), DATASETS, fast_policy)

        with pytest.raises(ValueError, match="'name'"):
            client.get("sales")

    def test_service_client_passes_identity(self, transport):
        datasets = ServiceClient(transport, ClientSettings()).resource(
            DATASETS, items_key="datasets", identity=dataset_id
        )

        assert datasets.items_key == "datasets"
        assert datasets.identity is dataset_id


class TestEmptyResponses:
    """Test mutations the service acknowledges without a body."""

    def test_insert_and_update_return_submitted_record(self, fast_policy):
        client = ResourceClient(BigQueryDatasets(), DATASETS, fast_policy)
        record = Resource(ResourceId(DATASETS, "new"), {"description": "d"})

        assert client.insert(record) is record
        assert client.update(record) is record

    def test_patch_fetches_again(self, fast_policy):
        class Silent(FakeTransport):
            def call(self, method, path, params=None, body=None, headers=None):
                result = super().call(method, path, params, body, headers)
                return None if method == "PATCH" else result

        silent = Silent()
        silent.add(DATASETS, "alpha")
        client = ResourceClient(silent, DATASETS, fast_policy)

        patched = client.patch("alpha", {"description": "x"})

        assert patched.get("description") == "x"
        assert [c[0] for c in silent.calls] == ["PATCH", "GET"]
