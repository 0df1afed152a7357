"""Async HTTP client for the Abrha API."""

from __future__ import annotations

from typing import Any, Literal

from loguru import logger

from abrha import __version__
from abrha.config import Abrha
from abrha.infra.http import BearerAuth, HttpClient, HttpError
from abrha.infra.retry import on_status_code, retrying
from abrha.infra.throttle import Limiter, throttle

from .types import (
    ActionResponse,
    AutoscaleMemberResponse,
    AutoscalePoolResponse,
    NodePoolResponse,
    ReservedIPResponse,
    SnapshotResponse,
    TaggedResource,
    TagResponse,
    VmEnvelope,
    VmResponse,
    VolumeResponse,
)

API_PREFIX = "api/public/v1"
USER_AGENT = f"abrha-python/{__version__}"
PER_PAGE = 100
RETRYABLE_STATUS = (429, 500, 502, 503, 504)

type IPFamily = Literal["ipv4", "ipv6"]

_RESERVED_IP_PATHS: dict[str, str] = {
    "ipv4": "reserved_ips",
    "ipv6": "reserved_ipv6",
}


def _has_next_page(response: dict[str, Any]) -> bool:
    links = response.get("links") or {}
    pages = links.get("pages") or {}
    return bool(pages.get("next"))


# =============================================================================
# Async Client
# =============================================================================


class AbrhaClient:
    """Async HTTP client for the Abrha API.

    Retries 429 and 5xx responses with exponential backoff and, when
    ``requests_per_second`` is set, spaces requests evenly.
    """

    def __init__(self, config: Abrha, *, http: HttpClient | None = None) -> None:
        self.config = config
        self._http = http or HttpClient(
            config.api_endpoint,
            BearerAuth(config.require_token()),
            timeout=config.request_timeout,
            default_headers={"Accept-Language": "en", "User-Agent": USER_AGENT},
        )
        self._limiter = Limiter.per_second(config.requests_per_second)
        self._send = throttle(limiter=self._limiter)(self._do_request) if self._limiter else self._do_request
        self._log = logger.bind(component="client")

    async def __aenter__(self) -> AbrhaClient:
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await self._http.close()

    async def _do_request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        return await self._http.request(
            method, f"{API_PREFIX}/{path}", json=json, params=params, headers=headers
        )

    async def _request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        controller = retrying(
            on_status_code(*RETRYABLE_STATUS),
            max_attempts=self.config.http_retry_max + 1,
            base_delay=self.config.http_retry_wait_min,
            max_delay=self.config.http_retry_wait_max,
        )
        try:
            return await controller(self._send, method, path, json, params, headers)
        except HttpError as e:
            self._log.debug(
                "API error {method} {path}: {status}",
                method=method, path=path, status=e.status,
            )
            raise e.to_api_error() from e

    async def _paginate(self, path: str, key: str) -> list[Any]:
        items: list[Any] = []
        page = 1
        while True:
            result = await self._request("GET", path, params={"page": page, "per_page": PER_PAGE})
            items.extend(result.get(key) or [])
            if not _has_next_page(result):
                return items
            page += 1

    # =========================================================================
    # Actions
    # =========================================================================

    async def get_action(self, action_id: int) -> ActionResponse:
        result = await self._request("GET", f"actions/{action_id}")
        return result["action"]

    # =========================================================================
    # VMs
    # =========================================================================

    async def create_vm(self, body: dict[str, Any]) -> VmEnvelope:
        return await self._request("POST", "vms", body)

    async def get_vm(self, vm_id: str) -> VmResponse:
        result = await self._request("GET", f"vms/{vm_id}")
        return result["vm"]

    async def delete_vm(self, vm_id: str) -> None:
        await self._request("DELETE", f"vms/{vm_id}")

    async def vm_action(self, vm_id: str, body: dict[str, Any]) -> ActionResponse:
        result = await self._request("POST", f"vms/{vm_id}/actions", body)
        return result["action"]

    async def list_vm_snapshots(self, vm_id: str) -> list[SnapshotResponse]:
        return await self._paginate(f"vms/{vm_id}/snapshots", "snapshots")

    # =========================================================================
    # Volumes & Snapshots
    # =========================================================================

    async def create_volume(self, body: dict[str, Any]) -> VolumeResponse:
        result = await self._request("POST", "volumes", body)
        return result["volume"]

    async def get_volume(self, volume_id: str) -> VolumeResponse:
        result = await self._request("GET", f"volumes/{volume_id}")
        return result["volume"]

    async def delete_volume(self, volume_id: str) -> None:
        await self._request("DELETE", f"volumes/{volume_id}")

    async def volume_action(self, volume_id: str, body: dict[str, Any]) -> ActionResponse:
        result = await self._request("POST", f"volumes/{volume_id}/actions", body)
        return result["action"]

    async def create_volume_snapshot(self, volume_id: str, body: dict[str, Any]) -> SnapshotResponse:
        result = await self._request("POST", f"volumes/{volume_id}/snapshots", body)
        return result["snapshot"]

    async def get_snapshot(self, snapshot_id: str) -> SnapshotResponse:
        result = await self._request("GET", f"snapshots/{snapshot_id}")
        return result["snapshot"]

    async def delete_snapshot(self, snapshot_id: str) -> None:
        await self._request("DELETE", f"snapshots/{snapshot_id}")

    # =========================================================================
    # Reserved IPs
    # =========================================================================

    async def create_reserved_ip(self, family: IPFamily, body: dict[str, Any]) -> ReservedIPResponse:
        result = await self._request("POST", _RESERVED_IP_PATHS[family], body)
        return result["reserved_ip"]

    async def get_reserved_ip(self, family: IPFamily, ip: str) -> ReservedIPResponse:
        result = await self._request("GET", f"{_RESERVED_IP_PATHS[family]}/{ip}")
        return result["reserved_ip"]

    async def delete_reserved_ip(self, family: IPFamily, ip: str) -> None:
        await self._request("DELETE", f"{_RESERVED_IP_PATHS[family]}/{ip}")

    async def reserved_ip_action(
        self, family: IPFamily, ip: str, body: dict[str, Any]
    ) -> ActionResponse:
        result = await self._request("POST", f"{_RESERVED_IP_PATHS[family]}/{ip}/actions", body)
        return result["action"]

    # =========================================================================
    # Kubernetes Node Pools
    # =========================================================================

    async def create_node_pool(self, cluster_id: str, body: dict[str, Any]) -> NodePoolResponse:
        result = await self._request("POST", f"kubernetes/clusters/{cluster_id}/node_pools", body)
        return result["node_pool"]

    async def get_node_pool(self, cluster_id: str, pool_id: str) -> NodePoolResponse:
        result = await self._request("GET", f"kubernetes/clusters/{cluster_id}/node_pools/{pool_id}")
        return result["node_pool"]

    async def update_node_pool(
        self, cluster_id: str, pool_id: str, body: dict[str, Any]
    ) -> NodePoolResponse:
        result = await self._request(
            "PUT", f"kubernetes/clusters/{cluster_id}/node_pools/{pool_id}", body
        )
        return result["node_pool"]

    async def delete_node_pool(self, cluster_id: str, pool_id: str) -> None:
        await self._request("DELETE", f"kubernetes/clusters/{cluster_id}/node_pools/{pool_id}")

    # =========================================================================
    # Autoscale Pools
    # =========================================================================

    async def create_autoscale_pool(self, body: dict[str, Any]) -> AutoscalePoolResponse:
        result = await self._request("POST", "vms/autoscale", body)
        return result["autoscale_pool"]

    async def get_autoscale_pool(self, pool_id: str) -> AutoscalePoolResponse:
        result = await self._request("GET", f"vms/autoscale/{pool_id}")
        return result["autoscale_pool"]

    async def update_autoscale_pool(self, pool_id: str, body: dict[str, Any]) -> AutoscalePoolResponse:
        result = await self._request("PUT", f"vms/autoscale/{pool_id}", body)
        return result["autoscale_pool"]

    async def delete_autoscale_pool_dangerous(self, pool_id: str) -> None:
        """Delete the pool together with every VM it manages."""
        await self._request(
            "DELETE", f"vms/autoscale/{pool_id}/dangerous", headers={"X-Dangerous": "true"}
        )

    async def list_autoscale_members(self, pool_id: str) -> list[AutoscaleMemberResponse]:
        return await self._paginate(f"vms/autoscale/{pool_id}/members", "vms")

    # =========================================================================
    # Tags
    # =========================================================================

    async def create_tag(self, name: str) -> TagResponse:
        result = await self._request("POST", "tags", {"name": name})
        return result["tag"] if result else {"name": name}

    async def get_tag(self, name: str) -> TagResponse:
        result = await self._request("GET", f"tags/{name}")
        return result["tag"]

    async def delete_tag(self, name: str) -> None:
        await self._request("DELETE", f"tags/{name}")

    async def tag_resources(self, name: str, resources: list[TaggedResource]) -> None:
        await self._request("POST", f"tags/{name}/resources", {"resources": resources})

    async def untag_resources(self, name: str, resources: list[TaggedResource]) -> None:
        await self._request("DELETE", f"tags/{name}/resources", {"resources": resources})


__all__ = ["API_PREFIX", "AbrhaClient", "IPFamily", "PER_PAGE", "RETRYABLE_STATUS"]
