from __future__ import annotations

import itertools
from collections import defaultdict, deque
from copy import deepcopy
from typing import Any

import pytest

from abrha.core.exceptions import ApiError, NotFoundError
from abrha.wait import PollTimings

FAST = PollTimings(delay=0.0, interval=0.01, min_timeout=0.0, not_found_checks=3)


class FakeAbrhaClient:
    """In-memory stand-in for AbrhaClient.

    Mutations take effect immediately and return completed actions. Tests
    inject failures with ``fail()`` and script successive reads of one
    object with ``script()`` (the last scripted value repeats).
    """

    def __init__(self) -> None:
        self.vms: dict[str, dict[str, Any]] = {}
        self.volumes: dict[str, dict[str, Any]] = {}
        self.reserved_ips: dict[str, dict[str, Any]] = {}
        self.node_pools: dict[tuple[str, str], dict[str, Any]] = {}
        self.autoscale_pools: dict[str, dict[str, Any]] = {}
        self.autoscale_members: dict[str, list[dict[str, Any]]] = {}
        self.snapshots: dict[str, dict[str, Any]] = {}
        self.vm_snapshots: dict[str, list[dict[str, Any]]] = defaultdict(list)
        self.tags: set[str] = set()
        self.tagged: dict[str, set[str]] = defaultdict(set)
        self.actions: dict[int, dict[str, Any]] = {}
        self.calls: list[tuple[Any, ...]] = []
        self._failures: dict[str, deque[Exception]] = defaultdict(deque)
        self._scripts: dict[str, deque[Any]] = {}
        self._ids = itertools.count(1)

    # ─── Test hooks ──────────────────────────────────────────────────

    def fail(self, key: str, *errors: Exception) -> None:
        self._failures[key].extend(errors)

    def script(self, key: str, *values: Any) -> None:
        self._scripts[key] = deque(values)

    def called(self, name: str) -> list[tuple[Any, ...]]:
        return [c for c in self.calls if c[0] == name]

    def add_vm(self, vm_id: str = "vm-1", **fields: Any) -> dict[str, Any]:
        vm = {
            "id": vm_id,
            "name": "web-1",
            "status": "active",
            "locked": False,
            "size_slug": "s-1",
            "features": [],
            "tags": [],
            "volume_ids": [],
        }
        vm.update(fields)
        self.vms[vm_id] = vm
        return vm

    def add_volume(self, volume_id: str, **fields: Any) -> dict[str, Any]:
        volume = {"id": volume_id, "name": volume_id, "size_gigabytes": 10, "vm_ids": [], "tags": []}
        volume.update(fields)
        self.volumes[volume_id] = volume
        return volume

    def _maybe_fail(self, key: str) -> None:
        if self._failures[key]:
            raise self._failures[key].popleft()

    def _scripted(self, key: str) -> Any:
        queue = self._scripts.get(key)
        if not queue:
            return None
        value = queue.popleft() if len(queue) > 1 else queue[0]
        return value if isinstance(value, Exception) else deepcopy(value)

    def _action(self, type_: str, resource_id: str) -> dict[str, Any]:
        action_id = next(self._ids)
        stamp = f"2026-01-01T00:00:{action_id:02d}Z"
        action = {
            "id": action_id,
            "status": "completed",
            "type": type_,
            "started_at": stamp,
            "completed_at": stamp,
            "resource_id": resource_id,
        }
        self.actions[action_id] = action
        return dict(action)

    # ─── Actions ─────────────────────────────────────────────────────

    async def get_action(self, action_id: int) -> dict[str, Any]:
        self.calls.append(("get_action", action_id))
        self._maybe_fail("get_action")
        scripted = self._scripted(f"action:{action_id}")
        if scripted is not None:
            return scripted
        if action_id not in self.actions:
            raise NotFoundError(404, "action not found")
        return dict(self.actions[action_id])

    # ─── VMs ─────────────────────────────────────────────────────────

    async def create_vm(self, body: dict[str, Any]) -> dict[str, Any]:
        self.calls.append(("create_vm", body))
        self._maybe_fail("create_vm")
        vm_id = f"vm-{next(self._ids)}"
        features = [f for f in ("backups", "ipv6", "private_networking", "monitoring") if body.get(f)]
        vm = self.add_vm(
            vm_id,
            name=body["name"],
            size_slug=body["size"],
            features=features,
            tags=list(body.get("tags", [])),
            volume_ids=list(body.get("volumes", [])),
        )
        action = self._action("create", vm_id)
        return {"vm": dict(vm), "links": {"actions": [{"id": action["id"], "rel": "create"}]}}

    async def get_vm(self, vm_id: str) -> dict[str, Any]:
        self.calls.append(("get_vm", vm_id))
        self._maybe_fail("get_vm")
        scripted = self._scripted(f"vm:{vm_id}")
        if scripted is not None:
            return scripted
        if vm_id not in self.vms:
            raise NotFoundError(404, "The resource you were accessing could not be found.")
        return deepcopy(self.vms[vm_id])

    async def delete_vm(self, vm_id: str) -> None:
        self.calls.append(("delete_vm", vm_id))
        self._maybe_fail("delete_vm")
        self._scripts.pop(f"vm:{vm_id}", None)
        if self.vms.pop(vm_id, None) is None:
            raise NotFoundError(404, "vm not found")

    async def vm_action(self, vm_id: str, body: dict[str, Any]) -> dict[str, Any]:
        kind = body["type"]
        self.calls.append(("vm_action", vm_id, kind))
        self._maybe_fail(f"vm_action:{kind}")
        vm = self.vms[vm_id]
        match kind:
            case "power_off" | "shutdown":
                vm["status"] = "off"
            case "power_on":
                vm["status"] = "active"
            case "resize":
                vm["size_slug"] = body["size"]
            case "rename":
                vm["name"] = body["name"]
            case "enable_ipv6":
                vm["features"].append("ipv6")
            case "enable_private_networking":
                vm["features"].append("private_networking")
            case "enable_backups":
                vm["features"].append("backups")
            case "disable_backups":
                vm["features"].remove("backups")
            case "snapshot":
                action = self._action(kind, vm_id)
                self.vm_snapshots[vm_id].append(
                    {"id": f"snap-{action['id']}", "name": body["name"], "created_at": action["started_at"]}
                )
                return action
        return self._action(kind, vm_id)

    async def list_vm_snapshots(self, vm_id: str) -> list[dict[str, Any]]:
        self.calls.append(("list_vm_snapshots", vm_id))
        return list(self.vm_snapshots[vm_id])

    # ─── Volumes & Snapshots ─────────────────────────────────────────

    async def create_volume(self, body: dict[str, Any]) -> dict[str, Any]:
        self.calls.append(("create_volume", body))
        self._maybe_fail("create_volume")
        volume_id = f"vol-{next(self._ids)}"
        return dict(self.add_volume(volume_id, name=body["name"], size_gigabytes=body.get("size_gigabytes")))

    async def get_volume(self, volume_id: str) -> dict[str, Any]:
        self.calls.append(("get_volume", volume_id))
        if volume_id not in self.volumes:
            raise NotFoundError(404, "volume not found")
        return deepcopy(self.volumes[volume_id])

    async def delete_volume(self, volume_id: str) -> None:
        self.calls.append(("delete_volume", volume_id))
        if self.volumes.pop(volume_id, None) is None:
            raise NotFoundError(404, "volume not found")

    async def volume_action(self, volume_id: str, body: dict[str, Any]) -> dict[str, Any]:
        kind = body["type"]
        self.calls.append(("volume_action", volume_id, kind, body.get("vm_id")))
        self._maybe_fail(f"volume_action:{kind}")
        volume = self.volumes.setdefault(volume_id, {"id": volume_id, "vm_ids": []})
        vm = self.vms.get(body.get("vm_id", ""))
        match kind:
            case "attach":
                volume["vm_ids"] = [body["vm_id"]]
                if vm is not None:
                    vm["volume_ids"].append(volume_id)
            case "detach":
                volume["vm_ids"] = []
                if vm is not None and volume_id in vm["volume_ids"]:
                    vm["volume_ids"].remove(volume_id)
            case "resize":
                volume["size_gigabytes"] = body["size_gigabytes"]
        return self._action(kind, volume_id)

    async def create_volume_snapshot(self, volume_id: str, body: dict[str, Any]) -> dict[str, Any]:
        self.calls.append(("create_volume_snapshot", volume_id, body))
        snapshot = {"id": f"snap-{next(self._ids)}", "name": body["name"], "created_at": "now", "tags": body["tags"]}
        self.snapshots[snapshot["id"]] = snapshot
        return dict(snapshot)

    async def get_snapshot(self, snapshot_id: str) -> dict[str, Any]:
        self.calls.append(("get_snapshot", snapshot_id))
        if snapshot_id not in self.snapshots:
            raise NotFoundError(404, "snapshot not found")
        return dict(self.snapshots[snapshot_id])

    async def delete_snapshot(self, snapshot_id: str) -> None:
        self.calls.append(("delete_snapshot", snapshot_id))
        if self.snapshots.pop(snapshot_id, None) is None:
            raise NotFoundError(404, "snapshot not found")

    # ─── Reserved IPs ────────────────────────────────────────────────

    async def create_reserved_ip(self, family: str, body: dict[str, Any]) -> dict[str, Any]:
        self.calls.append(("create_reserved_ip", family, body))
        ip = f"203.0.113.{next(self._ids)}" if family == "ipv4" else f"2001:db8::{next(self._ids)}"
        self.reserved_ips[ip] = {"ip": ip, "vm": None}
        return dict(self.reserved_ips[ip])

    async def get_reserved_ip(self, family: str, ip: str) -> dict[str, Any]:
        self.calls.append(("get_reserved_ip", family, ip))
        if ip not in self.reserved_ips:
            raise NotFoundError(404, "reserved ip not found")
        return deepcopy(self.reserved_ips[ip])

    async def delete_reserved_ip(self, family: str, ip: str) -> None:
        self.calls.append(("delete_reserved_ip", family, ip))
        self._maybe_fail("delete_reserved_ip")
        if self.reserved_ips.pop(ip, None) is None:
            raise NotFoundError(404, "reserved ip not found")

    async def reserved_ip_action(self, family: str, ip: str, body: dict[str, Any]) -> dict[str, Any]:
        kind = body["type"]
        self.calls.append(("reserved_ip_action", family, ip, kind))
        self._maybe_fail(f"reserved_ip_action:{kind}")
        self.reserved_ips[ip]["vm"] = {"id": body["vm_id"]} if kind == "assign" else None
        return self._action(kind, ip)

    # ─── Kubernetes ──────────────────────────────────────────────────

    async def create_node_pool(self, cluster_id: str, body: dict[str, Any]) -> dict[str, Any]:
        self.calls.append(("create_node_pool", cluster_id, body))
        pool_id = f"pool-{next(self._ids)}"
        count = body.get("count", 0)
        pool = {
            "id": pool_id,
            "name": body["name"],
            "size": body["size"],
            "count": count,
            "nodes": [
                {"id": f"node-{i}", "name": f"node-{i}", "status": {"state": "running"}} for i in range(count)
            ],
        }
        self.node_pools[(cluster_id, pool_id)] = pool
        return dict(pool)

    async def get_node_pool(self, cluster_id: str, pool_id: str) -> dict[str, Any]:
        self.calls.append(("get_node_pool", cluster_id, pool_id))
        scripted = self._scripted(f"node_pool:{pool_id}")
        if scripted is not None:
            if isinstance(scripted, Exception):
                raise scripted
            return scripted
        if (cluster_id, pool_id) not in self.node_pools:
            raise NotFoundError(404, "node pool not found")
        return deepcopy(self.node_pools[(cluster_id, pool_id)])

    async def update_node_pool(self, cluster_id: str, pool_id: str, body: dict[str, Any]) -> dict[str, Any]:
        self.calls.append(("update_node_pool", cluster_id, pool_id, body))
        pool = self.node_pools[(cluster_id, pool_id)]
        pool.update({k: v for k, v in body.items() if k in ("name", "count")})
        return deepcopy(pool)

    async def delete_node_pool(self, cluster_id: str, pool_id: str) -> None:
        self.calls.append(("delete_node_pool", cluster_id, pool_id))
        if self.node_pools.pop((cluster_id, pool_id), None) is None:
            raise NotFoundError(404, "node pool not found")

    # ─── Autoscale ───────────────────────────────────────────────────

    async def create_autoscale_pool(self, body: dict[str, Any]) -> dict[str, Any]:
        self.calls.append(("create_autoscale_pool", body))
        pool_id = f"asp-{next(self._ids)}"
        self.autoscale_pools[pool_id] = {
            "id": pool_id,
            "name": body["name"],
            "status": "active",
            "config": body["config"],
            "vm_template": body["vm_template"],
        }
        self.autoscale_members.setdefault(pool_id, [])
        return dict(self.autoscale_pools[pool_id])

    async def get_autoscale_pool(self, pool_id: str) -> dict[str, Any]:
        self.calls.append(("get_autoscale_pool", pool_id))
        scripted = self._scripted(f"autoscale:{pool_id}")
        if scripted is not None:
            return scripted
        if pool_id not in self.autoscale_pools:
            raise NotFoundError(404, f"autoscale group with id {pool_id} not found")
        return deepcopy(self.autoscale_pools[pool_id])

    async def update_autoscale_pool(self, pool_id: str, body: dict[str, Any]) -> dict[str, Any]:
        self.calls.append(("update_autoscale_pool", pool_id, body))
        self.autoscale_pools[pool_id].update(body)
        return deepcopy(self.autoscale_pools[pool_id])

    async def delete_autoscale_pool_dangerous(self, pool_id: str) -> None:
        self.calls.append(("delete_autoscale_pool_dangerous", pool_id))
        if self.autoscale_pools.pop(pool_id, None) is None:
            raise NotFoundError(404, f"autoscale group with id {pool_id} not found")

    async def list_autoscale_members(self, pool_id: str) -> list[dict[str, Any]]:
        self.calls.append(("list_autoscale_members", pool_id))
        scripted = self._scripted(f"members:{pool_id}")
        if scripted is not None:
            return scripted
        return deepcopy(self.autoscale_members.get(pool_id, []))

    # ─── Tags ────────────────────────────────────────────────────────

    async def create_tag(self, name: str) -> dict[str, Any]:
        self.calls.append(("create_tag", name))
        self._maybe_fail("create_tag")
        self.tags.add(name)
        return {"name": name}

    async def get_tag(self, name: str) -> dict[str, Any]:
        self.calls.append(("get_tag", name))
        if name not in self.tags:
            raise NotFoundError(404, "tag not found")
        return {"name": name}

    async def delete_tag(self, name: str) -> None:
        self.calls.append(("delete_tag", name))
        if name not in self.tags:
            raise NotFoundError(404, "tag not found")
        self.tags.discard(name)

    async def tag_resources(self, name: str, resources: list[dict[str, str]]) -> None:
        self.calls.append(("tag_resources", name, [r["resource_id"] for r in resources]))
        if name not in self.tags:
            raise ApiError(422, f"tag {name} does not exist")
        self.tagged[name].update(r["resource_id"] for r in resources)

    async def untag_resources(self, name: str, resources: list[dict[str, str]]) -> None:
        self.calls.append(("untag_resources", name, [r["resource_id"] for r in resources]))
        self.tagged[name].difference_update(r["resource_id"] for r in resources)


@pytest.fixture
def client() -> FakeAbrhaClient:
    return FakeAbrhaClient()


@pytest.fixture
def fast() -> PollTimings:
    return FAST
