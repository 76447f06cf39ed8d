"""
=============================================================================
DYNAMODB SERVICE - Amazon DynamoDB Record Store
=============================================================================
Alternative remote store for deployments on AWS. The table holds one item
per period record, keyed by the record id.

Our Table Schema:
-----------------
Table: MeterRecords
- id (String) - Partition Key - Opaque record id
- year, month (Number)
- householdState, householdConsumption (Number)
- carState, carConsumption (Number)
- bojlerConsumption, totalConsumption (Number)
- updated_at (String) - When the item was last written

Example Item:
{
    "id": "4f1c0e5e9a8b4c0f9d2e7a3b1c6d8e90",
    "year": 2024, "month": 2,
    "householdState": 150, "householdConsumption": 50,
    "carState": 0, "carConsumption": 0,
    "bojlerConsumption": 12.5, "totalConsumption": 50,
    "updated_at": "2024-02-29T18:30:00"
}
=============================================================================
"""

import logging
import os
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Sequence

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from backend.lib.meter_core.errors import ImportDocumentError, SyncError
from backend.lib.meter_core.io import records_from_rows
from backend.lib.meter_core.models import RECORD_FIELDS, Record

logger = logging.getLogger(__name__)


def _to_item(record: Record, updated_at: str) -> Dict:
    """
    DynamoDB requires Decimal for numbers, not float.
    We convert via str() to avoid floating-point precision issues.
    """
    item = {}
    for name, value in record.to_dict().items():
        item[name] = value if name == "id" else Decimal(str(value))
    item["updated_at"] = updated_at
    return item


def _from_item(item: Dict) -> Dict:
    row = {}
    for name in RECORD_FIELDS:
        value = item.get(name)
        row[name] = float(value) if isinstance(value, Decimal) else value
    return row


class DynamoDBService:
    """
    Persistence gateway storing the record set in a DynamoDB table.

    Usage:
        db = DynamoDBService()
        db.create_table_if_not_exists()
        db.save(records)
        records = db.load()
    """

    name = "dynamodb"

    def __init__(self, table_name: str = None):
        """
        Initialize the DynamoDB service.

        Args:
            table_name: Optional custom table name. If not provided,
                       uses DYNAMODB_TABLE_NAME from environment or default.
        """
        self.table_name = table_name or os.getenv('DYNAMODB_TABLE_NAME', 'MeterRecords')
        self.region = os.getenv('AWS_REGION', 'us-east-1')

        # Session token is only present for temporary credentials
        session_token = os.getenv('AWS_SESSION_TOKEN')

        self.dynamodb = boto3.resource(
            'dynamodb',
            region_name=self.region,
            aws_access_key_id=os.getenv('AWS_ACCESS_KEY_ID'),
            aws_secret_access_key=os.getenv('AWS_SECRET_ACCESS_KEY'),
            aws_session_token=session_token if session_token else None
        )

        # The client is needed for describe_table
        self.client = boto3.client(
            'dynamodb',
            region_name=self.region,
            aws_access_key_id=os.getenv('AWS_ACCESS_KEY_ID'),
            aws_secret_access_key=os.getenv('AWS_SECRET_ACCESS_KEY'),
            aws_session_token=session_token if session_token else None
        )

        self.table = None

    def _get_table(self):
        if not self.table:
            self.table = self.dynamodb.Table(self.table_name)
        return self.table

    def create_table_if_not_exists(self) -> bool:
        """
        Create the DynamoDB table if it doesn't exist.

        Billing mode is PAY_PER_REQUEST: a household writes a few items a
        month, so there is no capacity to plan.

        Returns:
            bool: True if table exists or was created successfully
        """
        try:
            self.client.describe_table(TableName=self.table_name)
            self.table = self.dynamodb.Table(self.table_name)
            logger.info("DynamoDB table '%s' exists", self.table_name)
            return True

        except ClientError as e:
            if e.response['Error']['Code'] != 'ResourceNotFoundException':
                logger.error("Error checking table: %s", e)
                return False

        try:
            table = self.dynamodb.create_table(
                TableName=self.table_name,
                KeySchema=[
                    {'AttributeName': 'id', 'KeyType': 'HASH'}
                ],
                AttributeDefinitions=[
                    {'AttributeName': 'id', 'AttributeType': 'S'}
                ],
                BillingMode='PAY_PER_REQUEST'
            )
            table.wait_until_exists()
            self.table = table
            logger.info("Created DynamoDB table '%s'", self.table_name)
            return True

        except ClientError as create_error:
            logger.error("Failed to create table: %s", create_error)
            return False

    def _scan(self, **kwargs) -> List[Dict]:
        """Scan the whole table, following LastEvaluatedKey pagination."""
        table = self._get_table()
        response = table.scan(**kwargs)
        items = list(response.get('Items', []))
        while 'LastEvaluatedKey' in response:
            response = table.scan(ExclusiveStartKey=response['LastEvaluatedKey'], **kwargs)
            items.extend(response.get('Items', []))
        return items

    def load(self) -> List[Record]:
        """
        Get every record in the table.

        Raises:
            SyncError: if DynamoDB cannot be reached or holds invalid items
        """
        try:
            items = self._scan()
        except (ClientError, BotoCoreError) as e:
            raise SyncError(self.name, str(e)) from e
        try:
            records = records_from_rows(_from_item(item) for item in items)
        except ImportDocumentError as e:
            raise SyncError(self.name, f"invalid item in {self.table_name}: {e}") from e
        logger.debug("Scanned %d records from %s", len(records), self.table_name)
        return records

    def save(self, records: Sequence[Record]) -> None:
        """
        Make the table hold exactly records.

        Items are upserted with batch_writer (which batches 25 at a time
        and retries unprocessed items), then ids no longer present are deleted.

        Raises:
            SyncError: if any write fails
        """
        updated_at = datetime.now(timezone.utc).isoformat()
        keep = {r.id for r in records}
        try:
            stale = [
                item['id'] for item in self._scan(ProjectionExpression='id')
                if item['id'] not in keep
            ]
            with self._get_table().batch_writer() as writer:
                for r in records:
                    writer.put_item(Item=_to_item(r, updated_at))
                for record_id in stale:
                    writer.delete_item(Key={'id': record_id})
        except (ClientError, BotoCoreError) as e:
            raise SyncError(self.name, str(e)) from e
        logger.debug(
            "Wrote %d records to %s, removed %d", len(records), self.table_name, len(stale)
        )
