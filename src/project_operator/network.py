"""Default network teardown.

There is no "don't create the default network" switch on project creation,
only "delete it afterwards". A network cannot be deleted while firewall rules
reference it, so every matching rule is deleted and awaited first.
"""

from __future__ import annotations

import logging

from .clients import ComputeClient
from .operations import OperationWaiter

logger = logging.getLogger(__name__)

DEFAULT_NETWORK_NAME = "default"
COMPUTE_API_BASE = "https://www.googleapis.com/compute/v1"


def network_self_link(project_id: str, network_name: str) -> str:
    return f"{COMPUTE_API_BASE}/projects/{project_id}/global/networks/{network_name}"


def force_delete_network(
    compute: ComputeClient,
    waiter: OperationWaiter,
    project_id: str,
    network_name: str = DEFAULT_NETWORK_NAME,
) -> int:
    """Delete a network along with the firewall rules attached to it.

    Args:
        compute: Compute capability client.
        waiter: Waiter used for every delete operation.
        project_id: Project owning the network.
        network_name: Network to delete.

    Returns:
        Number of firewall rules deleted.

    Raises:
        RemoteApiError: If listing or a delete call fails.
        OperationError: If a delete operation finished with an error.
        WaitTimeoutError: If waiting on a delete operation gave up.
    """
    filter_expr = f"network eq {network_self_link(project_id, network_name)}"
    deleted = 0
    page_token: str | None = None

    while True:
        firewalls, page_token = compute.list_firewalls(project_id, filter_expr, page_token)
        logger.debug(
            "Found firewall rules in network",
            extra={"project_id": project_id, "network": network_name, "count": len(firewalls)},
        )

        for firewall in firewalls:
            name = firewall["name"]
            operation = compute.delete_firewall(project_id, name)
            waiter.wait(
                operation,
                compute.get_operation,
                f"firewall {name} in project {project_id} to delete",
            )
            deleted += 1

        if not page_token:
            break

    operation = compute.delete_network(project_id, network_name)
    waiter.wait(
        operation,
        compute.get_operation,
        f"network {network_name} in project {project_id} to delete",
    )

    logger.info(
        "Deleted network",
        extra={"project_id": project_id, "network": network_name, "firewalls_deleted": deleted},
    )
    return deleted
