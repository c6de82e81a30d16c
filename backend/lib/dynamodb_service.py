"""
=============================================================================
DYNAMODB SERVICE - Device records in Amazon DynamoDB
=============================================================================

The simulator and the device controls never talk to DynamoDB directly:
they go through a "device store" with five operations:

    get_devices_for_owner(owner_id) -> list of records
    get_device(device_id)           -> record or None
    update_device(device_id, fields) -> bool
    put_device(record)              -> bool
    delete_device(device_id)        -> bool

This class is the DynamoDB implementation of that store. The local
fallback (a JSON file) lives in local_store.py.

Our Table Schema:
-----------------
Table: Devices
- id (String)        - Partition Key - one item per device
- user_id (String)   - Owner of the device, key of the GSI below
- name, device_type  - Display label and optional class tag
- power_status (Bool)
- current_consumption, daily_usage, monthly_usage (Number)
- daily_limit, weekly_limit, monthly_limit (Number, absent when unset)
- updated_at (String) - ISO timestamp of the last change

Global Secondary Index: user_id-index (HASH user_id, projection ALL)
so the devices of one account can be fetched with Query instead of Scan.

Example Item:
{
    "id": "dev-42",
    "user_id": "user-1",
    "name": "Living room heater",
    "power_status": true,
    "daily_usage": 1.25,
    "monthly_usage": 31.7,
    "daily_limit": 5,
    "updated_at": "2025-11-28T10:30:00+00:00"
}

Note on concurrency:
--------------------
update_device() overwrites the given attributes with absolute values.
Two simulators (for example a dashboard and a device page) updating the
same device can therefore lose an increment: last writer wins.
=============================================================================
"""

# boto3 - AWS SDK for Python
import boto3

# Key - builds KeyConditionExpression for Query
from boto3.dynamodb.conditions import Key

# ClientError - Exception class for AWS API errors
from botocore.exceptions import ClientError

# os - For reading environment variables
import os

# typing - For type hints
from typing import Optional, List, Dict, Tuple

# Decimal - DynamoDB uses Decimal, not float
from decimal import Decimal


def to_dynamo(value):
    """Convert a Python value to something DynamoDB accepts (floats -> Decimal)."""
    # bool is a subclass of int, keep it as a real boolean
    if isinstance(value, bool):
        return value
    if isinstance(value, float):
        # via str to avoid binary float noise (0.1 -> 0.1000000000000000055...)
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: to_dynamo(v) for k, v in value.items()}
    return value


def from_dynamo(item: Dict) -> Dict:
    """Convert a DynamoDB item back to plain Python (Decimal -> float)."""
    return {k: float(v) if isinstance(v, Decimal) else v for k, v in item.items()}


def build_update(fields: Dict) -> Tuple[str, Dict, Dict]:
    """
    Build UpdateExpression, ExpressionAttributeNames and
    ExpressionAttributeValues for an update.

    None values are REMOVEd (an unset limit is an absent attribute),
    everything else is SET.

    Example:
        build_update({"daily_usage": 1.5, "daily_limit": None})
        # -> ("SET #f0 = :v0 REMOVE #f1",
        #     {"#pk": "id", "#f0": "daily_usage", "#f1": "daily_limit"},
        #     {":v0": Decimal("1.5")})
    """
    # placeholders for every name: several columns (name, id) are reserved words
    names = {"#pk": "id"}
    values = {}
    set_parts = []
    remove_parts = []

    for i, (field, value) in enumerate(fields.items()):
        placeholder = f"#f{i}"
        names[placeholder] = field
        if value is None:
            remove_parts.append(placeholder)
        else:
            values[f":v{i}"] = to_dynamo(value)
            set_parts.append(f"{placeholder} = :v{i}")

    clauses = []
    if set_parts:
        clauses.append("SET " + ", ".join(set_parts))
    if remove_parts:
        clauses.append("REMOVE " + ", ".join(remove_parts))
    return " ".join(clauses), names, values


class DynamoDBService:
    """
    Device store backed by a DynamoDB table.

    Usage:
        db = DynamoDBService()
        db.create_table_if_not_exists()
        devices = db.get_devices_for_owner("user-1")
        db.update_device("dev-42", {"daily_usage": 1.3, "updated_at": "..."})
    """

    def __init__(self, table_name: str = None, owner_index: str = None):
        """
        Initialize the DynamoDB service.

        Args:
            table_name: Optional custom table name. If not provided,
                       uses DYNAMODB_TABLE_NAME from environment or 'Devices'.
            owner_index: Name of the GSI on user_id
                       (DYNAMODB_OWNER_INDEX, default 'user_id-index').
        """
        self.table_name = table_name or os.getenv('DYNAMODB_TABLE_NAME', 'Devices')
        self.owner_index = owner_index or os.getenv('DYNAMODB_OWNER_INDEX', 'user_id-index')

        self.region = os.getenv('AWS_REGION', 'us-east-1')

        # Session token is only set for temporary credentials
        session_token = os.getenv('AWS_SESSION_TOKEN')

        # Resource: Table objects with put_item / query / update_item
        self.dynamodb = boto3.resource(
            'dynamodb',
            region_name=self.region,
            aws_access_key_id=os.getenv('AWS_ACCESS_KEY_ID'),
            aws_secret_access_key=os.getenv('AWS_SECRET_ACCESS_KEY'),
            aws_session_token=session_token if session_token else None
        )

        # Client: needed for describe_table
        self.client = boto3.client(
            'dynamodb',
            region_name=self.region,
            aws_access_key_id=os.getenv('AWS_ACCESS_KEY_ID'),
            aws_secret_access_key=os.getenv('AWS_SECRET_ACCESS_KEY'),
            aws_session_token=session_token if session_token else None
        )

        # Table object - set lazily on first use
        self.table = None

    def _table(self):
        if not self.table:
            self.table = self.dynamodb.Table(self.table_name)
        return self.table

    def create_table_if_not_exists(self) -> bool:
        """
        Create the Devices table (and its owner index) if it doesn't exist.

        Returns:
            bool: True if table exists or was created successfully
        """
        try:
            self.client.describe_table(TableName=self.table_name)
            self.table = self.dynamodb.Table(self.table_name)
            print(f"DynamoDB table '{self.table_name}' exists")
            return True

        except ClientError as e:
            if e.response['Error']['Code'] != 'ResourceNotFoundException':
                print(f"Error checking table: {e}")
                return False

        try:
            table = self.dynamodb.create_table(
                TableName=self.table_name,
                KeySchema=[
                    {'AttributeName': 'id', 'KeyType': 'HASH'}
                ],
                AttributeDefinitions=[
                    {'AttributeName': 'id', 'AttributeType': 'S'},
                    {'AttributeName': 'user_id', 'AttributeType': 'S'}
                ],
                GlobalSecondaryIndexes=[
                    {
                        'IndexName': self.owner_index,
                        'KeySchema': [
                            {'AttributeName': 'user_id', 'KeyType': 'HASH'}
                        ],
                        'Projection': {'ProjectionType': 'ALL'}
                    }
                ],
                # On-demand pricing (no capacity planning needed)
                BillingMode='PAY_PER_REQUEST'
            )

            # Table creation takes a few seconds
            table.wait_until_exists()
            self.table = table
            print(f"Created DynamoDB table '{self.table_name}'")
            return True

        except ClientError as create_error:
            print(f"Failed to create table: {create_error}")
            return False

    def get_devices_for_owner(self, owner_id: str) -> List[Dict]:
        """
        Get all devices belonging to one account.

        Uses Query on the user_id GSI and follows LastEvaluatedKey,
        since DynamoDB returns at most 1MB per page.

        Returns:
            list: Device records, or [] on error
        """
        table = self._table()

        try:
            response = table.query(
                IndexName=self.owner_index,
                KeyConditionExpression=Key('user_id').eq(owner_id)
            )
            devices = [from_dynamo(item) for item in response.get('Items', [])]

            while 'LastEvaluatedKey' in response:
                response = table.query(
                    IndexName=self.owner_index,
                    KeyConditionExpression=Key('user_id').eq(owner_id),
                    ExclusiveStartKey=response['LastEvaluatedKey']
                )
                devices.extend(from_dynamo(item) for item in response.get('Items', []))

            return devices

        except ClientError as e:
            print(f"Error fetching devices: {e}")
            return []

    def get_device(self, device_id: str) -> Optional[Dict]:
        """
        Get one device by id.

        Returns:
            dict: The device record, or None if missing or on error
        """
        try:
            response = self._table().get_item(Key={'id': device_id})
            item = response.get('Item')
            return from_dynamo(item) if item else None

        except ClientError as e:
            print(f"Error fetching device {device_id}: {e}")
            return None

    def update_device(self, device_id: str, fields: Dict) -> bool:
        """
        Update some attributes of an existing device.

        The update is conditional on the item existing, so a device that
        was deleted in the meantime is not brought back as a partial item.

        Args:
            device_id: The device id (partition key)
            fields: Column -> new value; None removes the attribute

        Returns:
            bool: True if successful, False otherwise
        """
        if not fields:
            return True

        expression, names, values = build_update(fields)
        kwargs = {
            'Key': {'id': device_id},
            'UpdateExpression': expression,
            'ConditionExpression': 'attribute_exists(#pk)',
            'ExpressionAttributeNames': names
        }
        # DynamoDB rejects an empty ExpressionAttributeValues map
        if values:
            kwargs['ExpressionAttributeValues'] = values

        try:
            self._table().update_item(**kwargs)
            return True

        except ClientError as e:
            if e.response['Error']['Code'] == 'ConditionalCheckFailedException':
                print(f"Device {device_id} no longer exists, update dropped")
            else:
                print(f"Error updating device {device_id}: {e}")
            return False

    def put_device(self, record: Dict) -> bool:
        """
        Store a complete device record (unset limits are left out).

        Returns:
            bool: True if successful, False otherwise
        """
        item = {k: to_dynamo(v) for k, v in record.items() if v is not None}
        try:
            self._table().put_item(Item=item)
            return True

        except ClientError as e:
            print(f"Failed to put device: {e}")
            return False

    def delete_device(self, device_id: str) -> bool:
        try:
            self._table().delete_item(Key={'id': device_id})
            return True

        except ClientError as e:
            print(f"Failed to delete device: {e}")
            return False
