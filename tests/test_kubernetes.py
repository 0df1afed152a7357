from __future__ import annotations

import pytest

from abrha.core.exceptions import NotFoundError, ValidationError
from abrha.resources.kubernetes import NodePoolController, NodePoolSpec, Taint, pool_state
from abrha.wait import PollTimings

from .conftest import FakeAbrhaClient

pytestmark = [pytest.mark.unit, pytest.mark.xdist_group("unit")]

CLUSTER = "k8s-1"


@pytest.fixture
def pools(client: FakeAbrhaClient, fast: PollTimings) -> NodePoolController:
    return NodePoolController(client, timings=fast)


def node(state: str) -> dict:
    return {"id": state, "name": state, "status": {"state": state}}


def pool(count: int, *states: str) -> dict:
    return {"id": "pool-1", "name": "workers", "size": "s-2", "count": count, "nodes": [node(s) for s in states]}


class TestNodePoolSpec:
    def test_fixed_count_request(self):
        spec = NodePoolSpec(name="workers", size="s-2", node_count=3, labels={"role": "web"})
        body = spec.to_request()
        assert body["count"] == 3
        assert body["labels"] == {"role": "web"}
        assert body["auto_scale"] is False
        assert "min_nodes" not in body

    def test_auto_scale_request(self):
        spec = NodePoolSpec(name="workers", size="s-2", auto_scale=True, min_nodes=1, max_nodes=5)
        body = spec.to_request()
        assert (body["min_nodes"], body["max_nodes"]) == (1, 5)
        assert "count" not in body

    def test_count_required_without_auto_scale(self):
        with pytest.raises(ValidationError):
            NodePoolSpec(name="workers", size="s-2")

    def test_auto_scale_bounds(self):
        with pytest.raises(ValidationError):
            NodePoolSpec(name="workers", size="s-2", auto_scale=True, min_nodes=5, max_nodes=1)
        with pytest.raises(ValidationError):
            NodePoolSpec(name="workers", size="s-2", auto_scale=True, min_nodes=1)

    def test_invalid_taint_effect(self):
        with pytest.raises(ValidationError):
            Taint(key="dedicated", value="gpu", effect="Sometimes")

    def test_taints_serialized(self):
        spec = NodePoolSpec(
            name="workers", size="s-2", node_count=1, taints=[Taint("dedicated", "gpu", "NoSchedule")]
        )
        assert spec.to_request()["taints"] == [{"key": "dedicated", "value": "gpu", "effect": "NoSchedule"}]


class TestPoolState:
    def test_running_when_all_nodes_run(self):
        assert pool_state(pool(2, "running", "running")) == "running"

    def test_provisioning_while_nodes_missing(self):
        assert pool_state(pool(3, "running", "running")) == "provisioning"

    def test_provisioning_while_a_node_is_not_running(self):
        assert pool_state(pool(2, "running", "provisioning")) == "provisioning"

    def test_empty_pool_is_running(self):
        assert pool_state(pool(0)) == "running"


class TestNodePoolController:
    @pytest.mark.asyncio
    async def test_create_waits_for_nodes(self, pools: NodePoolController, client: FakeAbrhaClient):
        client.script(
            "node_pool:pool-1",
            pool(2, "provisioning"),
            pool(2, "running", "provisioning"),
            pool(2, "running", "running"),
        )

        result = await pools.create(CLUSTER, NodePoolSpec(name="workers", size="s-2", node_count=2))

        assert pool_state(result) == "running"
        assert len(client.called("get_node_pool")) == 3

    @pytest.mark.asyncio
    async def test_update_waits_for_new_count(self, pools: NodePoolController, client: FakeAbrhaClient):
        created = await pools.create(CLUSTER, NodePoolSpec(name="workers", size="s-2", node_count=1))
        client.script(
            f"node_pool:{created['id']}",
            pool(3, "running"),
            pool(3, "running", "running", "running"),
        )

        result = await pools.update(CLUSTER, created["id"], NodePoolSpec(name="workers", size="s-2", node_count=3))

        assert result["count"] == 3
        assert client.called("update_node_pool")[0][3]["count"] == 3

    @pytest.mark.asyncio
    async def test_delete_waits_until_gone(self, pools: NodePoolController, client: FakeAbrhaClient):
        created = await pools.create(CLUSTER, NodePoolSpec(name="workers", size="s-2", node_count=1))
        client.script(f"node_pool:{created['id']}", pool(1, "running"), NotFoundError(404, "gone"))

        await pools.delete(CLUSTER, created["id"])

        assert len(client.called("get_node_pool")) == 3

    @pytest.mark.asyncio
    async def test_delete_missing_is_noop(self, pools: NodePoolController, client: FakeAbrhaClient):
        await pools.delete(CLUSTER, "pool-x")
        assert client.called("get_node_pool") == []

    @pytest.mark.asyncio
    async def test_read_missing_returns_none(self, pools: NodePoolController):
        assert await pools.read(CLUSTER, "pool-x") is None
