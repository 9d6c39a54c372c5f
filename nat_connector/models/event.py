"""
NAT event envelope.

One `NatEvent` is decoded per inbound message, validated once, mutated by
the convergence engine as remote IDs are discovered and encoded back as the
reply.
"""
from __future__ import annotations

import json
from typing import Any, List

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from nat_connector.core.errors import (
    CredentialsInvalidError,
    EventDecodeError,
    NatGatewayIdInvalidError,
    NetworkIdInvalidError,
    RegionInvalidError,
    RoutedNetworksEmptyError,
    VpcIdInvalidError,
)

ACTIONS = ("create", "update", "delete", "get")


def action_from_subject(subject: str) -> str:
    """`nat.create.aws` -> `create`."""
    parts = subject.split(".")
    return parts[1] if len(parts) > 1 else ""


class NatEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    uuid: str = Field("", alias="_uuid")
    batch_id: str = Field("", alias="_batch_id")
    provider_type: str = Field("", alias="_type")
    vpc_id: str = ""
    datacenter_region: str = ""
    datacenter_secret: str = ""
    datacenter_token: str = ""
    network_aws_id: str = ""
    public_network: str = ""
    public_network_aws_id: str = ""
    routed_networks: List[str] = Field(default_factory=list)
    routed_networks_aws_ids: List[str] = Field(default_factory=list)
    nat_gateway_aws_id: str = ""
    nat_gateway_allocation_id: str = ""
    nat_gateway_allocation_ip: str = ""
    internet_gateway_id: str = ""
    error_message: str = ""

    @field_validator(
        "uuid", "batch_id", "provider_type", "vpc_id", "datacenter_region",
        "datacenter_secret", "datacenter_token", "network_aws_id",
        "public_network", "public_network_aws_id", "nat_gateway_aws_id",
        "nat_gateway_allocation_id", "nat_gateway_allocation_ip",
        "internet_gateway_id", "error_message",
        mode="before",
    )
    @classmethod
    def _null_string(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("routed_networks", "routed_networks_aws_ids", mode="before")
    @classmethod
    def _null_list(cls, v: Any) -> Any:
        return [] if v is None else v

    # ── Wire format ───────────────────────────────────────────────────────────

    @classmethod
    def decode(cls, body: bytes) -> "NatEvent":
        try:
            data = json.loads(body)
        except (TypeError, ValueError) as e:
            raise EventDecodeError(f"Invalid JSON payload: {e}", body) from e
        if not isinstance(data, dict):
            raise EventDecodeError("Payload must be a JSON object", body)
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise EventDecodeError(f"Payload does not match schema: {e}", body) from e

    def encode(self) -> bytes:
        exclude = None if self.error_message else {"error_message"}
        return json.dumps(self.model_dump(by_alias=True, exclude=exclude)).encode()

    # ── Validation ────────────────────────────────────────────────────────────

    def validate_for(self, action: str) -> None:
        """Raise the matching EventValidationError if the event cannot be processed."""
        if not self.vpc_id:
            raise VpcIdInvalidError()

        if not self.datacenter_region:
            raise RegionInvalidError()

        if not self.datacenter_secret or not self.datacenter_token:
            raise CredentialsInvalidError()

        if action == "delete":
            if not self.nat_gateway_aws_id:
                raise NatGatewayIdInvalidError()
            return

        if not self.public_network_aws_id:
            raise NetworkIdInvalidError()

        if len(self.routed_networks_aws_ids) < 1:
            raise RoutedNetworksEmptyError()
