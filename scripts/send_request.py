"""
Publish a NAT request and wait for the connector's reply.
Run: python scripts/send_request.py create --vpc-id vpc-1 --region us-east-1 \
         --public-subnet subnet-pub --routed-subnet subnet-a --routed-subnet subnet-b
"""
import argparse
import asyncio
import json
import os
import sys
import uuid

import nats


def build_payload(args: argparse.Namespace) -> dict:
    return {
        "_uuid": str(uuid.uuid4()),
        "_batch_id": args.batch_id,
        "_type": "aws",
        "vpc_id": args.vpc_id,
        "datacenter_region": args.region,
        "datacenter_secret": args.access_key or os.getenv("AWS_ACCESS_KEY_ID", ""),
        "datacenter_token": args.secret_key or os.getenv("AWS_SECRET_ACCESS_KEY", ""),
        "public_network_aws_id": args.public_subnet,
        "routed_networks_aws_ids": args.routed_subnet,
        "nat_gateway_aws_id": args.nat_gateway_id,
    }


async def send(args: argparse.Namespace) -> int:
    subject = f"nat.{args.action}.aws"
    nc = await nats.connect(servers=[args.nats_uri])
    replies: asyncio.Queue = asyncio.Queue()

    async def on_reply(msg):
        await replies.put(msg)

    await nc.subscribe(f"{subject}.done", cb=on_reply)
    await nc.subscribe(f"{subject}.error", cb=on_reply)

    payload = build_payload(args)
    await nc.publish(subject, json.dumps(payload).encode())
    print(f"Sent {subject} ({payload['_uuid']})")

    try:
        msg = await asyncio.wait_for(replies.get(), timeout=args.timeout)
    except asyncio.TimeoutError:
        print(f"No reply within {args.timeout}s", file=sys.stderr)
        await nc.drain()
        return 2
    await nc.drain()

    print(f"Reply on {msg.subject}:")
    try:
        print(json.dumps(json.loads(msg.data), indent=2))
    except ValueError:
        print(msg.data.decode(errors="replace"))
    return 0 if msg.subject.endswith(".done") else 1


def main():
    parser = argparse.ArgumentParser(description="Send a NAT gateway request to the connector")
    parser.add_argument("action", choices=["create", "update", "delete", "get"])
    parser.add_argument("--nats-uri", default=os.getenv("NATS_URI", "nats://127.0.0.1:4222"))
    parser.add_argument("--vpc-id", default="")
    parser.add_argument("--region", default="us-east-1")
    parser.add_argument("--access-key", default="")
    parser.add_argument("--secret-key", default="")
    parser.add_argument("--public-subnet", default="")
    parser.add_argument("--routed-subnet", action="append", default=[])
    parser.add_argument("--nat-gateway-id", default="")
    parser.add_argument("--batch-id", default="")
    parser.add_argument("--timeout", type=float, default=900.0)
    args = parser.parse_args()

    sys.exit(asyncio.run(send(args)))


if __name__ == "__main__":
    main()
