"""Shared pytest configuration."""
import os

import pytest


@pytest.fixture(autouse=True)
def aws_credentials(monkeypatch):
    """Fake AWS credentials so boto3 never touches a real account."""
    monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
    monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')
    monkeypatch.setenv('AWS_SECURITY_TOKEN', 'testing')
    monkeypatch.setenv('AWS_SESSION_TOKEN', 'testing')
    monkeypatch.setenv('AWS_DEFAULT_REGION', 'us-east-1')
    # Keep developer settings out of the handler tests
    for name in ('GOOGLE_API_KEY', 'TABLE_NAME', 'CACHE_PREFIX', 'LEGACY_DUPLICATES'):
        if name in os.environ:
            monkeypatch.delenv(name)
