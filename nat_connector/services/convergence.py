"""
NAT convergence engine.

Drives one NatEvent's desired topology into the account, in dependency order:

  create: elastic IP -> internet gateway (reuse or create) -> NAT gateway
          -> wait available -> per routed subnet: route table (reuse or
          create) + default route
  update: per routed subnet: route table (reuse or create) + default route
          unless it is already there
  delete: delete NAT gateway -> wait deleted

Subnets are handled strictly in the order given. The first failure aborts
the workflow; anything created before it is left in place.
"""
from __future__ import annotations

import logging
import threading
from typing import Optional

from nat_connector.core.errors import OperationNotSupportedError
from nat_connector.models.event import NatEvent
from nat_connector.services.cloud.ec2_client import Ec2NatClient, RouteTable

logger = logging.getLogger(__name__)


class ConvergenceEngine:
    WORKFLOW_ACTIONS = ("create", "update", "delete")

    def __init__(self, cloud: Ec2NatClient) -> None:
        self._cloud = cloud

    def run(self, action: str, event: NatEvent, stop_event: Optional[threading.Event] = None) -> None:
        if action == "create":
            self.create(event)
        elif action == "update":
            self.update(event)
        elif action == "delete":
            self.delete(event, stop_event)
        else:
            self.get(action)

    def create(self, event: NatEvent) -> None:
        event.nat_gateway_allocation_id, event.nat_gateway_allocation_ip = self._cloud.allocate_address()

        event.internet_gateway_id = self._resolve_internet_gateway(event.vpc_id)

        event.nat_gateway_aws_id = self._cloud.create_nat_gateway(
            event.nat_gateway_allocation_id, event.public_network_aws_id,
        )
        self._cloud.wait_until_available(event.nat_gateway_aws_id)

        for subnet_id in event.routed_networks_aws_ids:
            table = self._resolve_route_table(event.vpc_id, subnet_id)
            self._cloud.create_default_route(table.route_table_id, event.nat_gateway_aws_id)

    def update(self, event: NatEvent) -> None:
        for subnet_id in event.routed_networks_aws_ids:
            table = self._resolve_route_table(event.vpc_id, subnet_id)
            if table.has_default_route_to(event.nat_gateway_aws_id):
                logger.info(
                    "Route table %s already routes to %s, skipping",
                    table.route_table_id, event.nat_gateway_aws_id,
                )
                continue
            self._cloud.create_default_route(table.route_table_id, event.nat_gateway_aws_id)

    def delete(self, event: NatEvent, stop_event: Optional[threading.Event] = None) -> None:
        self._cloud.delete_nat_gateway(event.nat_gateway_aws_id)
        self._cloud.wait_until_deleted(event.nat_gateway_aws_id, stop_event)

    @staticmethod
    def get(action: str = "get") -> None:
        """Reading NAT topology back is not supported; no client is touched."""
        raise OperationNotSupportedError(f"nat.{action}.aws not implemented")

    def _resolve_internet_gateway(self, vpc_id: str) -> str:
        gateway_id = self._cloud.find_internet_gateway_by_vpc(vpc_id)
        if gateway_id:
            logger.info("Reusing internet gateway %s for %s", gateway_id, vpc_id)
            return gateway_id
        return self._cloud.create_and_attach_internet_gateway(vpc_id)

    def _resolve_route_table(self, vpc_id: str, subnet_id: str) -> RouteTable:
        table = self._cloud.find_route_table_by_subnet(subnet_id)
        if table is not None:
            logger.info("Reusing route table %s for %s", table.route_table_id, subnet_id)
            return table
        return self._cloud.create_and_associate_route_table(vpc_id, subnet_id)
