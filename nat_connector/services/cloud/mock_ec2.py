"""
In-memory EC2 simulator used when MOCK_AWS=true.

Implements the subset of the boto3 EC2 client surface that Ec2NatClient
calls, with boto3-shaped responses. Every call is recorded in `calls`, and
`fail()` makes a chosen call raise a botocore ClientError.
"""
from __future__ import annotations

import random
import uuid
from collections import deque
from typing import Any, Callable, Optional

from botocore.exceptions import ClientError, WaiterError


def _id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:17]}"


class MockWaiter:
    def __init__(self, client: "MockEc2Client", name: str) -> None:
        self._client = client
        self._name = name

    def wait(self, NatGatewayIds: list[str], WaiterConfig: Optional[dict[str, Any]] = None) -> None:
        max_attempts = (WaiterConfig or {}).get("MaxAttempts", 40)
        resp: dict[str, Any] = {}
        for _ in range(max_attempts):
            resp = self._client.describe_nat_gateways(NatGatewayIds=NatGatewayIds)
            state = resp["NatGateways"][0]["State"]
            if state == "available":
                return
            if state in ("failed", "deleting", "deleted"):
                raise WaiterError(
                    name="NatGatewayAvailable",
                    reason=f"Waiter encountered a terminal failure state: {state}",
                    last_response=resp,
                )
        raise WaiterError(name="NatGatewayAvailable", reason="Max attempts exceeded", last_response=resp)


class MockEc2Client:
    def __init__(self, region: str = "us-east-1") -> None:
        self.region = region
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.addresses: dict[str, dict[str, Any]] = {}
        self.internet_gateways: dict[str, dict[str, Any]] = {}
        self.nat_gateways: dict[str, dict[str, Any]] = {}
        self.route_tables: dict[str, dict[str, Any]] = {}

        # States a NAT gateway walks through on successive describes
        self.create_states: list[str] = ["pending", "available"]
        self.delete_states: list[str] = ["deleting", "deleted"]
        self._state_script: dict[str, deque] = {}
        self._failures: list[tuple[str, Callable[[dict[str, Any]], bool], ClientError]] = []

    # ── Test / demo helpers ───────────────────────────────────────────────────

    def fail(
        self,
        operation: str,
        code: str = "InternalError",
        message: str = "simulated failure",
        when: Optional[Callable[[dict[str, Any]], bool]] = None,
    ) -> None:
        """Make `operation` raise a ClientError whenever `when(kwargs)` is true."""
        error = ClientError({"Error": {"Code": code, "Message": message}}, operation)
        self._failures.append((operation, when or (lambda kwargs: True), error))

    def seed_internet_gateway(self, vpc_id: str) -> str:
        gateway_id = _id("igw")
        self.internet_gateways[gateway_id] = {
            "InternetGatewayId": gateway_id,
            "Attachments": [{"VpcId": vpc_id, "State": "available"}],
        }
        return gateway_id

    def seed_route_table(self, vpc_id: str, subnet_id: str, routes: Optional[list[dict[str, Any]]] = None) -> str:
        table_id = _id("rtb")
        self.route_tables[table_id] = {
            "RouteTableId": table_id,
            "VpcId": vpc_id,
            "Routes": list(routes or []),
            "Associations": [{"SubnetId": subnet_id, "RouteTableId": table_id}],
        }
        return table_id

    def seed_nat_gateway(self, subnet_id: str, state: str = "available") -> str:
        gateway_id = _id("nat")
        self.nat_gateways[gateway_id] = {
            "NatGatewayId": gateway_id,
            "SubnetId": subnet_id,
            "State": state,
        }
        return gateway_id

    def calls_to(self, operation: str) -> list[dict[str, Any]]:
        return [kwargs for op, kwargs in self.calls if op == operation]

    def _record(self, operation: str, **kwargs: Any) -> None:
        self.calls.append((operation, kwargs))
        for op, when, error in self._failures:
            if op == operation and when(kwargs):
                raise error

    def _advance(self, gateway_id: str) -> None:
        script = self._state_script.get(gateway_id)
        if script:
            self.nat_gateways[gateway_id]["State"] = script.popleft()

    # ── EC2 surface ───────────────────────────────────────────────────────────

    def allocate_address(self, Domain: str = "vpc") -> dict[str, Any]:
        self._record("allocate_address", Domain=Domain)
        allocation_id = _id("eipalloc")
        public_ip = f"54.{random.randint(1, 254)}.{random.randint(0, 254)}.{random.randint(1, 254)}"
        self.addresses[allocation_id] = {"AllocationId": allocation_id, "PublicIp": public_ip, "Domain": Domain}
        return {"AllocationId": allocation_id, "PublicIp": public_ip, "Domain": Domain}

    def describe_internet_gateways(self, Filters: list[dict[str, Any]]) -> dict[str, Any]:
        self._record("describe_internet_gateways", Filters=Filters)
        vpc_ids = set(Filters[0]["Values"])
        matches = [
            gw for gw in self.internet_gateways.values()
            if any(a["VpcId"] in vpc_ids for a in gw["Attachments"])
        ]
        return {"InternetGateways": matches}

    def create_internet_gateway(self) -> dict[str, Any]:
        self._record("create_internet_gateway")
        gateway_id = _id("igw")
        self.internet_gateways[gateway_id] = {"InternetGatewayId": gateway_id, "Attachments": []}
        return {"InternetGateway": dict(self.internet_gateways[gateway_id])}

    def attach_internet_gateway(self, InternetGatewayId: str, VpcId: str) -> dict[str, Any]:
        self._record("attach_internet_gateway", InternetGatewayId=InternetGatewayId, VpcId=VpcId)
        self.internet_gateways[InternetGatewayId]["Attachments"].append({"VpcId": VpcId, "State": "available"})
        return {}

    def create_nat_gateway(self, AllocationId: str, SubnetId: str) -> dict[str, Any]:
        self._record("create_nat_gateway", AllocationId=AllocationId, SubnetId=SubnetId)
        gateway_id = _id("nat")
        self.nat_gateways[gateway_id] = {
            "NatGatewayId": gateway_id,
            "SubnetId": SubnetId,
            "State": "pending",
            "NatGatewayAddresses": [{"AllocationId": AllocationId}],
        }
        self._state_script[gateway_id] = deque(self.create_states)
        return {"NatGateway": dict(self.nat_gateways[gateway_id])}

    def describe_nat_gateways(self, NatGatewayIds: list[str]) -> dict[str, Any]:
        self._record("describe_nat_gateways", NatGatewayIds=NatGatewayIds)
        found = []
        for gateway_id in NatGatewayIds:
            if gateway_id not in self.nat_gateways:
                raise ClientError(
                    {"Error": {"Code": "NatGatewayNotFound", "Message": f"NAT gateway {gateway_id} was not found"}},
                    "DescribeNatGateways",
                )
            self._advance(gateway_id)
            found.append(dict(self.nat_gateways[gateway_id]))
        return {"NatGateways": found}

    def delete_nat_gateway(self, NatGatewayId: str) -> dict[str, Any]:
        self._record("delete_nat_gateway", NatGatewayId=NatGatewayId)
        if NatGatewayId not in self.nat_gateways:
            raise ClientError(
                {"Error": {"Code": "NatGatewayNotFound", "Message": f"NAT gateway {NatGatewayId} was not found"}},
                "DeleteNatGateway",
            )
        self.nat_gateways[NatGatewayId]["State"] = "deleting"
        self._state_script[NatGatewayId] = deque(self.delete_states)
        return {"NatGatewayId": NatGatewayId}

    def get_waiter(self, name: str) -> MockWaiter:
        return MockWaiter(self, name)

    def describe_route_tables(self, Filters: list[dict[str, Any]]) -> dict[str, Any]:
        self._record("describe_route_tables", Filters=Filters)
        subnet_ids = set(Filters[0]["Values"])
        matches = [
            dict(rt) for rt in self.route_tables.values()
            if any(a.get("SubnetId") in subnet_ids for a in rt["Associations"])
        ]
        return {"RouteTables": matches}

    def create_route_table(self, VpcId: str) -> dict[str, Any]:
        self._record("create_route_table", VpcId=VpcId)
        table_id = _id("rtb")
        self.route_tables[table_id] = {
            "RouteTableId": table_id,
            "VpcId": VpcId,
            "Routes": [{"DestinationCidrBlock": "10.0.0.0/16", "GatewayId": "local"}],
            "Associations": [],
        }
        return {"RouteTable": dict(self.route_tables[table_id])}

    def associate_route_table(self, RouteTableId: str, SubnetId: str) -> dict[str, Any]:
        self._record("associate_route_table", RouteTableId=RouteTableId, SubnetId=SubnetId)
        self.route_tables[RouteTableId]["Associations"].append({"SubnetId": SubnetId, "RouteTableId": RouteTableId})
        return {"AssociationId": _id("rtbassoc")}

    def create_route(self, RouteTableId: str, DestinationCidrBlock: str, NatGatewayId: str) -> dict[str, Any]:
        self._record(
            "create_route",
            RouteTableId=RouteTableId, DestinationCidrBlock=DestinationCidrBlock, NatGatewayId=NatGatewayId,
        )
        routes = self.route_tables[RouteTableId]["Routes"]
        if any(r.get("DestinationCidrBlock") == DestinationCidrBlock for r in routes):
            raise ClientError(
                {"Error": {"Code": "RouteAlreadyExists", "Message": f"The route identified by {DestinationCidrBlock} already exists."}},
                "CreateRoute",
            )
        routes.append({"DestinationCidrBlock": DestinationCidrBlock, "NatGatewayId": NatGatewayId, "State": "active"})
        return {"Return": True}
