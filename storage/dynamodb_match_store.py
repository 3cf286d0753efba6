"""DynamoDB store for authoritative match records."""
import logging
import uuid
from datetime import datetime, timezone
from typing import Dict, Optional

import boto3
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import ClientError

from processor.models import RemoteMatch

logger = logging.getLogger(__name__)


class DynamoDBMatchStore:
    """Create/read/update/delete operations on the matches table."""

    def __init__(self, table_name: str):
        """
        Initialize DynamoDB client and table reference.

        Args:
            table_name: Name of the DynamoDB matches table
        """
        self.table_name = table_name
        self.dynamodb = boto3.resource('dynamodb')
        self.table = self.dynamodb.Table(table_name)
        logger.info(f"Initialized DynamoDBMatchStore for table: {table_name}")

    def get_all_matches(self) -> Dict[str, RemoteMatch]:
        """
        Retrieve all matches from DynamoDB using Scan operation.

        Returns:
            Dictionary mapping match id to RemoteMatch objects
        """
        logger.info("Scanning DynamoDB table for all matches")
        matches = {}

        try:
            response = self.table.scan()
            items = response.get('Items', [])

            # Handle pagination
            while 'LastEvaluatedKey' in response:
                response = self.table.scan(
                    ExclusiveStartKey=response['LastEvaluatedKey']
                )
                items.extend(response.get('Items', []))

            for item in items:
                match = self._item_to_match(item)
                if match:
                    matches[match.id] = match

            logger.info(f"Retrieved {len(matches)} matches from DynamoDB")
            return matches

        except ClientError as e:
            logger.error(f"Error scanning DynamoDB table: {e}")
            raise

    def get_match(self, match_id: str) -> Optional[RemoteMatch]:
        try:
            response = self.table.get_item(Key={'match_id': match_id})
        except ClientError as e:
            logger.error(f"Error reading match {match_id}: {e}")
            raise
        item = response.get('Item')
        return self._item_to_match(item) if item else None

    def create_match(self, match: RemoteMatch) -> RemoteMatch:
        """
        Insert a new match.

        A missing id is replaced by a fresh UUID and created_at/updated_at
        are stamped.

        Args:
            match: RemoteMatch to insert

        Returns:
            The stored RemoteMatch
        """
        now = self._now()
        match.id = match.id or str(uuid.uuid4())
        match.created_at = match.created_at or now
        match.updated_at = now

        try:
            self.table.put_item(
                Item=self._match_to_item(match),
                ConditionExpression=Attr('match_id').not_exists()
            )
        except ClientError as e:
            logger.error(f"Error creating match {match.id}: {e}")
            raise

        logger.info(f"Created match {match.id}: {match.team} vs {match.opponent}")
        return match

    def update_match(self, match: RemoteMatch) -> RemoteMatch:
        """
        Overwrite an existing match.

        Args:
            match: RemoteMatch with updated fields

        Returns:
            The stored RemoteMatch
        """
        match.updated_at = self._now()
        try:
            self.table.put_item(
                Item=self._match_to_item(match),
                ConditionExpression=Attr('match_id').exists()
            )
        except ClientError as e:
            logger.error(f"Error updating match {match.id}: {e}")
            raise

        logger.info(f"Updated match {match.id}")
        return match

    def delete_match(self, match_id: str) -> None:
        try:
            self.table.delete_item(Key={'match_id': match_id})
        except ClientError as e:
            logger.error(f"Error deleting match {match_id}: {e}")
            raise
        logger.info(f"Deleted match {match_id}")

    def _now(self) -> str:
        return datetime.now(timezone.utc).isoformat()

    def _item_to_match(self, item: dict) -> Optional[RemoteMatch]:
        """
        Convert DynamoDB item to RemoteMatch object.

        Args:
            item: DynamoDB item dictionary

        Returns:
            RemoteMatch object or None if conversion fails
        """
        try:
            home_score = item.get('home_score')
            away_score = item.get('away_score')
            return RemoteMatch(
                id=item['match_id'],
                team=item['team'],
                opponent=item['opponent'],
                date=item['date'],
                time=item.get('time'),
                location=item.get('location'),
                description=item.get('description'),
                home_score=int(home_score) if home_score is not None else None,
                away_score=int(away_score) if away_score is not None else None,
                canceled=bool(item.get('canceled', item.get('status') == 'canceled')),
                created_at=item.get('created_at'),
                updated_at=item.get('updated_at')
            )
        except (KeyError, ValueError) as e:
            logger.warning(f"Failed to convert item to RemoteMatch: {e}")
            return None

    def _match_to_item(self, match: RemoteMatch) -> dict:
        """
        Convert RemoteMatch object to DynamoDB item.

        Args:
            match: RemoteMatch object

        Returns:
            DynamoDB item dictionary
        """
        item = {
            'match_id': match.id,
            'team': match.team,
            'opponent': match.opponent,
            'date': match.date,
            'status': match.status.value,
            'canceled': match.canceled,
        }

        # Add optional fields if present
        for name in ('time', 'location', 'description', 'created_at', 'updated_at'):
            value = getattr(match, name)
            if value:
                item[name] = value
        if match.has_result:
            item['home_score'] = match.home_score
            item['away_score'] = match.away_score

        return item
