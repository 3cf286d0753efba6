"""Shared fixtures for calendar import tests."""
import os

import boto3
import pytest
from moto import mock_aws

TWO_EVENT_ICS = (
    "BEGIN:VCALENDAR\r\n"
    "VERSION:2.0\r\n"
    "PRODID:-//Club//Spielplan//DE\r\n"
    "BEGIN:VEVENT\r\n"
    "SUMMARY:Herren I vs TTC Musterstadt\r\n"
    "DTSTART:20241130T190000\r\n"
    "LOCATION:Sporthalle Nord\r\n"
    "END:VEVENT\r\n"
    "BEGIN:VEVENT\r\n"
    "UID:evt-42\r\n"
    "SUMMARY:Damen I vs SV Beispiel\r\n"
    "DTSTART;VALUE=DATE:20241201\r\n"
    "END:VEVENT\r\n"
    "END:VCALENDAR\r\n"
)


@pytest.fixture(autouse=True)
def aws_credentials():
    """Fake AWS credentials so boto3 never reaches a real account."""
    env = {
        'AWS_ACCESS_KEY_ID': 'testing',
        'AWS_SECRET_ACCESS_KEY': 'testing',
        'AWS_SECURITY_TOKEN': 'testing',
        'AWS_SESSION_TOKEN': 'testing',
        'AWS_DEFAULT_REGION': 'us-east-1',
    }
    previous = {key: os.environ.get(key) for key in env}
    os.environ.update(env)
    yield
    for key, value in previous.items():
        if value is None:
            os.environ.pop(key, None)
        else:
            os.environ[key] = value


@pytest.fixture
def two_event_ics():
    return TWO_EVENT_ICS


@pytest.fixture
def matches_table():
    """Create a mock DynamoDB matches table."""
    with mock_aws():
        dynamodb = boto3.resource('dynamodb', region_name='us-east-1')
        table = dynamodb.create_table(
            TableName='test-club-matches',
            KeySchema=[
                {'AttributeName': 'match_id', 'KeyType': 'HASH'}
            ],
            AttributeDefinitions=[
                {'AttributeName': 'match_id', 'AttributeType': 'S'}
            ],
            BillingMode='PAY_PER_REQUEST'
        )
        yield table


@pytest.fixture
def cache_bucket():
    """Create a mock S3 bucket for the import cache."""
    with mock_aws():
        s3 = boto3.client('s3', region_name='us-east-1')
        s3.create_bucket(Bucket='test-club-cache')
        yield 'test-club-cache'
