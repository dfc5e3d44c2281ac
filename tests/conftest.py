"""Shared fixtures for the backup tests."""

import pytest

import config

BASE_ENV = {
    "DATABASES": "orders,users",
    "S3_BUCKET": "backups-bucket",
    "S3_REGION": "eu-west-1",
    "DISCORD_URL": "https://discord.example/api/webhooks/1/abc",
    "MYSQL_USER": "backup",
    "MYSQL_PASSWORD": "s3cret",
    "MYSQL_HOST": "mysql",
    "MYSQL_PORT": "3306",
}


@pytest.fixture
def base_env():
    return dict(BASE_ENV)


@pytest.fixture
def backup_config(base_env):
    return config.load_config(base_env)
