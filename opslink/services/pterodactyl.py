"""
OpsLink Hosting - Pterodactyl Application API client
Creates game/web servers from plan templates.

Servers are tagged with the order id as Pterodactyl's external_id, and every
provisioning attempt looks the tag up before creating. A server left behind
by an earlier attempt whose response was lost is reused, never duplicated.
"""
import logging
from typing import Optional

import httpx

from opslink.config import PlanTemplate
from opslink.errors import ProvisioningError

logger = logging.getLogger(__name__)


class PterodactylClient:

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        location_id: int = 1,
        name_prefix: str = "OpsLink",
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.location_id = location_id
        self.name_prefix = name_prefix
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Accept": "application/json",
                "Content-Type": "application/json",
            },
        )

    def close(self):
        self._client.close()

    def server_name(self, order_id: str) -> str:
        return f"{self.name_prefix}-{order_id}"

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise ProvisioningError(f"Pterodactyl request failed: {e}") from e

    @staticmethod
    def _server_id(response: httpx.Response) -> str:
        try:
            return str(response.json()["attributes"]["id"])
        except (ValueError, KeyError, TypeError) as e:
            raise ProvisioningError("Unexpected Pterodactyl response body", response.status_code) from e

    def find_server_by_external_id(self, external_id: str) -> Optional[str]:
        response = self._request("GET", f"/api/application/servers/external/{external_id}")
        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise ProvisioningError(
                f"Server lookup failed with HTTP {response.status_code}", response.status_code
            )
        return self._server_id(response)

    def create_server(self, name: str, owner_ref: str, plan: PlanTemplate, external_id: str) -> str:
        body = {
            "name": name,
            "user": int(owner_ref),
            "external_id": external_id,
            "egg": plan.egg,
            "docker_image": plan.docker_image,
            "startup": plan.startup,
            "environment": dict(plan.environment),
            "limits": {"memory": plan.memory, "swap": 0, "disk": plan.disk, "io": 500, "cpu": plan.cpu},
            "feature_limits": {"databases": 0, "allocations": 1, "backups": plan.backups},
            "deploy": {"locations": [self.location_id], "dedicated_ip": False, "port_range": []},
            "start_on_completion": True,
        }
        response = self._request("POST", "/api/application/servers", json=body)
        if response.status_code not in (200, 201):
            raise ProvisioningError(
                f"Server creation failed with HTTP {response.status_code}: {response.text[:200]}",
                response.status_code,
            )
        return self._server_id(response)

    def provision(self, order_id: str, owner_ref: str, plan: PlanTemplate) -> str:
        """Create the server for an order, or return the one already created for it."""
        existing = self.find_server_by_external_id(order_id)
        if existing:
            logger.info(f"Reusing Pterodactyl server {existing} for order {order_id}")
            return existing
        server_id = self.create_server(self.server_name(order_id), owner_ref, plan, order_id)
        logger.info(f"Created Pterodactyl server {server_id} for order {order_id} (plan={plan.key})")
        return server_id
