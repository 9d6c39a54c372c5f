"""
EC2 networking facade used by the convergence engine.

Each method is one resource concern. botocore exceptions are translated into
ProviderError here and never leak to callers. Lookups return None when
nothing matches.
"""
from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, Optional

from botocore.exceptions import BotoCoreError, ClientError, WaiterError

from nat_connector.core.config import Settings, get_settings
from nat_connector.core.errors import ProviderError, WaitCancelledError, WaitTimeoutError

logger = logging.getLogger(__name__)

DEFAULT_ROUTE_CIDR = "0.0.0.0/0"

NAT_STATE_AVAILABLE = "available"
NAT_STATE_DELETED = "deleted"
NAT_STATE_FAILED = "failed"

_NOT_FOUND_CODES = {"NatGatewayNotFound", "InvalidNatGatewayID.NotFound"}


@dataclass
class RouteTable:
    route_table_id: str
    routes: list[dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "RouteTable":
        return cls(route_table_id=data["RouteTableId"], routes=list(data.get("Routes", [])))

    def has_default_route_to(self, nat_gateway_id: str) -> bool:
        for route in self.routes:
            if (
                route.get("DestinationCidrBlock") == DEFAULT_ROUTE_CIDR
                and route.get("NatGatewayId") == nat_gateway_id
            ):
                return True
        return False


@contextmanager
def _provider_call(operation: str) -> Iterator[None]:
    try:
        yield
    except ClientError as e:
        err = e.response.get("Error", {})
        raise ProviderError(
            err.get("Message") or str(e), code=err.get("Code", ""), operation=operation,
        ) from e
    except WaiterError as e:
        reason = e.kwargs.get("reason", "")
        if "Max attempts exceeded" in reason:
            raise WaitTimeoutError(str(e), code="WaiterTimeout", operation=operation) from e
        raise ProviderError(str(e), code="WaiterError", operation=operation) from e
    except BotoCoreError as e:
        raise ProviderError(str(e), operation=operation) from e


class Ec2NatClient:
    """Typed facade over a boto3 EC2 client (or the in-memory MockEc2Client)."""

    def __init__(
        self,
        client: Any,
        settings: Optional[Settings] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self._settings = settings or get_settings()
        self._clock = clock

    # ── Elastic IP ────────────────────────────────────────────────────────────

    def allocate_address(self) -> tuple[str, str]:
        with _provider_call("allocate_address"):
            resp = self._client.allocate_address(Domain="vpc")
        logger.info("Allocated elastic IP %s (%s)", resp["PublicIp"], resp["AllocationId"])
        return resp["AllocationId"], resp["PublicIp"]

    # ── Internet gateway ──────────────────────────────────────────────────────

    def find_internet_gateway_by_vpc(self, vpc_id: str) -> Optional[str]:
        with _provider_call("describe_internet_gateways"):
            resp = self._client.describe_internet_gateways(
                Filters=[{"Name": "attachment.vpc-id", "Values": [vpc_id]}]
            )
        gateways = resp.get("InternetGateways", [])
        if not gateways:
            return None
        return gateways[0]["InternetGatewayId"]

    def create_and_attach_internet_gateway(self, vpc_id: str) -> str:
        with _provider_call("create_internet_gateway"):
            resp = self._client.create_internet_gateway()
        gateway_id = resp["InternetGateway"]["InternetGatewayId"]

        with _provider_call("attach_internet_gateway"):
            self._client.attach_internet_gateway(InternetGatewayId=gateway_id, VpcId=vpc_id)
        logger.info("Created internet gateway %s attached to %s", gateway_id, vpc_id)
        return gateway_id

    # ── NAT gateway ───────────────────────────────────────────────────────────

    def create_nat_gateway(self, allocation_id: str, subnet_id: str) -> str:
        with _provider_call("create_nat_gateway"):
            resp = self._client.create_nat_gateway(AllocationId=allocation_id, SubnetId=subnet_id)
        gateway_id = resp["NatGateway"]["NatGatewayId"]
        logger.info("Created NAT gateway %s in %s", gateway_id, subnet_id)
        return gateway_id

    def wait_until_available(self, nat_gateway_id: str) -> None:
        """Block on the EC2 `nat_gateway_available` waiter."""
        with _provider_call("wait_until_available"):
            waiter = self._client.get_waiter("nat_gateway_available")
            waiter.wait(
                NatGatewayIds=[nat_gateway_id],
                WaiterConfig={
                    "Delay": self._settings.nat_available_delay,
                    "MaxAttempts": self._settings.nat_available_max_attempts,
                },
            )
        logger.info("NAT gateway %s is available", nat_gateway_id)

    def describe_nat_gateway(self, nat_gateway_id: str) -> Optional[str]:
        """Return the gateway state, or None if EC2 does not know the gateway."""
        try:
            with _provider_call("describe_nat_gateways"):
                resp = self._client.describe_nat_gateways(NatGatewayIds=[nat_gateway_id])
        except ProviderError as e:
            if e.code in _NOT_FOUND_CODES:
                return None
            raise
        gateways = resp.get("NatGateways", [])
        if not gateways:
            return None
        return gateways[0].get("State")

    def delete_nat_gateway(self, nat_gateway_id: str) -> None:
        with _provider_call("delete_nat_gateway"):
            self._client.delete_nat_gateway(NatGatewayId=nat_gateway_id)
        logger.info("Requested deletion of NAT gateway %s", nat_gateway_id)

    def wait_until_deleted(
        self, nat_gateway_id: str, stop_event: Optional[threading.Event] = None,
    ) -> None:
        """
        Poll until the gateway reports `deleted`.

        Bounded by DELETE_POLL_TIMEOUT. A describe error counts as "not yet
        deleted" until DELETE_POLL_ERROR_BUDGET consecutive errors, then the
        last one is raised. Setting `stop_event` aborts the wait.
        """
        stop_event = stop_event or threading.Event()
        interval = self._settings.delete_poll_interval
        budget = self._settings.delete_poll_error_budget
        deadline = self._clock() + self._settings.delete_poll_timeout
        consecutive_errors = 0

        while True:
            try:
                state = self.describe_nat_gateway(nat_gateway_id)
            except ProviderError as e:
                consecutive_errors += 1
                logger.warning(
                    "Describe of %s failed while waiting for deletion (%d/%d): %s",
                    nat_gateway_id, consecutive_errors, budget, e,
                )
                if consecutive_errors >= budget:
                    raise
            else:
                consecutive_errors = 0
                if state is None or state == NAT_STATE_DELETED:
                    logger.info("NAT gateway %s is deleted", nat_gateway_id)
                    return
                if state == NAT_STATE_FAILED:
                    raise ProviderError(
                        f"NAT gateway {nat_gateway_id} entered failed state while deleting",
                        code="NatGatewayFailed",
                        operation="wait_until_deleted",
                    )
                logger.debug("NAT gateway %s is %s", nat_gateway_id, state)

            if self._clock() >= deadline:
                raise WaitTimeoutError(
                    f"NAT gateway {nat_gateway_id} exceeded wait budget of "
                    f"{self._settings.delete_poll_timeout:g}s waiting for deletion",
                    code="WaitTimeout",
                    operation="wait_until_deleted",
                )
            if stop_event.wait(interval):
                raise WaitCancelledError(
                    f"Wait for deletion of NAT gateway {nat_gateway_id} cancelled",
                    code="WaitCancelled",
                    operation="wait_until_deleted",
                )

    # ── Route tables ──────────────────────────────────────────────────────────

    def find_route_table_by_subnet(self, subnet_id: str) -> Optional[RouteTable]:
        with _provider_call("describe_route_tables"):
            resp = self._client.describe_route_tables(
                Filters=[{"Name": "association.subnet-id", "Values": [subnet_id]}]
            )
        tables = resp.get("RouteTables", [])
        if not tables:
            return None
        return RouteTable.from_api(tables[0])

    def create_and_associate_route_table(self, vpc_id: str, subnet_id: str) -> RouteTable:
        with _provider_call("create_route_table"):
            resp = self._client.create_route_table(VpcId=vpc_id)
        table = RouteTable.from_api(resp["RouteTable"])

        with _provider_call("associate_route_table"):
            self._client.associate_route_table(RouteTableId=table.route_table_id, SubnetId=subnet_id)
        logger.info("Created route table %s for %s", table.route_table_id, subnet_id)
        return table

    def create_default_route(self, route_table_id: str, nat_gateway_id: str) -> None:
        with _provider_call("create_route"):
            self._client.create_route(
                RouteTableId=route_table_id,
                DestinationCidrBlock=DEFAULT_ROUTE_CIDR,
                NatGatewayId=nat_gateway_id,
            )
        logger.info("Routed %s via %s on %s", DEFAULT_ROUTE_CIDR, nat_gateway_id, route_table_id)
