"""Tests for the NAT event envelope: decoding, validation, encoding."""
import json
import os
os.environ["MOCK_AWS"] = "true"

import pytest

from nat_connector.core.errors import (
    CredentialsInvalidError,
    EventDecodeError,
    NatGatewayIdInvalidError,
    NetworkIdInvalidError,
    RegionInvalidError,
    RoutedNetworksEmptyError,
    VpcIdInvalidError,
)
from nat_connector.models.event import NatEvent, action_from_subject


def _make_payload(**overrides):
    payload = {
        "_uuid": "req-1",
        "_batch_id": "batch-1",
        "_type": "aws",
        "vpc_id": "vpc-1",
        "datacenter_region": "us-east-1",
        "datacenter_secret": "k",
        "datacenter_token": "t",
        "public_network_aws_id": "subnet-pub",
        "routed_networks_aws_ids": ["subnet-a", "subnet-b"],
    }
    payload.update(overrides)
    return payload


def _decode(**overrides):
    return NatEvent.decode(json.dumps(_make_payload(**overrides)).encode())


def test_action_from_subject():
    assert action_from_subject("nat.create.aws") == "create"
    assert action_from_subject("nat.delete.aws") == "delete"
    assert action_from_subject("nat") == ""


def test_decode_reads_wire_names():
    event = _decode()
    assert event.uuid == "req-1"
    assert event.batch_id == "batch-1"
    assert event.provider_type == "aws"
    assert event.vpc_id == "vpc-1"
    assert event.routed_networks_aws_ids == ["subnet-a", "subnet-b"]


def test_decode_treats_null_as_empty():
    event = _decode(routed_networks_aws_ids=None, nat_gateway_aws_id=None)
    assert event.routed_networks_aws_ids == []
    assert event.nat_gateway_aws_id == ""


def test_decode_ignores_unknown_fields():
    event = _decode(something_else="x")
    assert event.vpc_id == "vpc-1"


def test_decode_rejects_malformed_json():
    with pytest.raises(EventDecodeError) as exc:
        NatEvent.decode(b"{not json")
    assert exc.value.body == b"{not json"


def test_decode_rejects_non_object():
    with pytest.raises(EventDecodeError):
        NatEvent.decode(b'["vpc-1"]')


def test_decode_rejects_wrong_field_type():
    with pytest.raises(EventDecodeError):
        _decode(routed_networks_aws_ids="subnet-a")


def test_valid_create_passes():
    _decode().validate_for("create")
    _decode().validate_for("update")


@pytest.mark.parametrize(
    "overrides, error",
    [
        ({"vpc_id": ""}, VpcIdInvalidError),
        ({"datacenter_region": ""}, RegionInvalidError),
        ({"datacenter_secret": ""}, CredentialsInvalidError),
        ({"datacenter_token": ""}, CredentialsInvalidError),
        ({"public_network_aws_id": ""}, NetworkIdInvalidError),
        ({"routed_networks_aws_ids": []}, RoutedNetworksEmptyError),
    ],
)
def test_create_validation_errors(overrides, error):
    with pytest.raises(error):
        _decode(**overrides).validate_for("create")


def test_update_requires_routed_networks():
    with pytest.raises(RoutedNetworksEmptyError):
        _decode(routed_networks_aws_ids=[]).validate_for("update")


def test_delete_requires_nat_gateway_id():
    event = _decode(public_network_aws_id="", routed_networks_aws_ids=[])
    with pytest.raises(NatGatewayIdInvalidError) as exc:
        event.validate_for("delete")
    assert str(exc.value) == "Nat Gateway aws id invalid"


def test_delete_does_not_need_subnets():
    event = _decode(public_network_aws_id="", routed_networks_aws_ids=[], nat_gateway_aws_id="nat-1")
    event.validate_for("delete")


def test_vpc_checked_before_region():
    with pytest.raises(VpcIdInvalidError):
        _decode(vpc_id="", datacenter_region="").validate_for("create")


def test_encode_uses_wire_names_and_omits_empty_error():
    data = json.loads(_decode().encode())
    assert data["_uuid"] == "req-1"
    assert data["vpc_id"] == "vpc-1"
    assert "uuid" not in data
    assert "error_message" not in data


def test_encode_includes_error_message_when_set():
    event = _decode()
    event.error_message = "Routed networks are empty"
    data = json.loads(event.encode())
    assert data["error_message"] == "Routed networks are empty"
