"""Create the DynamoDB conversation table.

Usage:
    python scripts/create_tables.py --endpoint-url http://localhost:4566
"""

from __future__ import annotations

import argparse
from typing import Any

import boto3

DEFAULT_TABLE = "switchyard-conversations"
TTL_ATTRIBUTE = "expires_at"


def create_tables(ddb: Any, table_name: str = DEFAULT_TABLE, suffix: str = "") -> bool:
    """Create the conversation table with TTL enabled. Skips if it already exists.

    Returns True when the table was created.
    """
    client = ddb.meta.client
    full_name = f"{table_name}{suffix}"
    existing = client.list_tables().get("TableNames", [])
    if full_name in existing:
        print(f"  Table {full_name} already exists, skipping")
        return False

    client.create_table(
        TableName=full_name,
        KeySchema=[
            {"AttributeName": "PK", "KeyType": "HASH"},
            {"AttributeName": "SK", "KeyType": "RANGE"},
        ],
        AttributeDefinitions=[
            {"AttributeName": "PK", "AttributeType": "S"},
            {"AttributeName": "SK", "AttributeType": "S"},
        ],
        BillingMode="PAY_PER_REQUEST",
    )
    client.get_waiter("table_exists").wait(TableName=full_name)
    client.update_time_to_live(
        TableName=full_name,
        TimeToLiveSpecification={"Enabled": True, "AttributeName": TTL_ATTRIBUTE},
    )
    print(f"  Created table {full_name}")
    return True


def main() -> None:
    parser = argparse.ArgumentParser(description="Create DynamoDB tables for Switchyard")
    parser.add_argument("--endpoint-url", default=None, help="DynamoDB endpoint (e.g. http://localhost:4566)")
    parser.add_argument("--table-name", default=DEFAULT_TABLE, help="Base table name")
    parser.add_argument("--table-suffix", default="", help="Table name suffix (e.g. -dev)")
    parser.add_argument("--region", default="us-east-1", help="AWS region")
    args = parser.parse_args()

    kwargs: dict[str, Any] = {"region_name": args.region}
    if args.endpoint_url:
        kwargs["endpoint_url"] = args.endpoint_url

    ddb = boto3.resource("dynamodb", **kwargs)

    print("Creating tables...")
    create_tables(ddb, table_name=args.table_name, suffix=args.table_suffix)
    print("Done!")


if __name__ == "__main__":
    main()
