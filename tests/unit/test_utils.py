"""Unit tests for error classification, helpers and settings."""

import json
import pytest
from datetime import datetime, timedelta, timezone
from kubernetes_asyncio.client import ApiException
from shardingsphere_operator.types.settings import Settings
from shardingsphere_operator.utils.errors import (
    already_exists_error,
    conflict_error,
    not_found_error,
)
from shardingsphere_operator.utils.helpers import (
    format_timestamp,
    selector_to_str,
)


def api_error(status, reason, body=None):
    ex = ApiException(status=status, reason=reason)
    if body is not None:
        ex.body = json.dumps(body)
    return ex


class TestErrors:
    def test_already_exists(self):
        ex = api_error(409, "Conflict", {"reason": "AlreadyExists"})
        assert already_exists_error(ex)
        assert not conflict_error(ex)

    def test_conflict(self):
        ex = api_error(409, "Conflict", {"reason": "Conflict"})
        assert conflict_error(ex)
        assert not already_exists_error(ex)

    def test_conflict_without_body(self):
        assert conflict_error(api_error(409, "Conflict"))

    def test_not_found(self):
        assert not_found_error(api_error(404, "Not Found"))
        assert not not_found_error(api_error(500, "Internal Server Error"))

    def test_other_exceptions_are_not_api_errors(self):
        assert not not_found_error(RuntimeError("404"))
        assert not conflict_error(ValueError())


class TestHelpers:
    def test_format_timestamp(self):
        ts = datetime(2024, 3, 1, 14, 0, 0, 999999, tzinfo=timezone(timedelta(hours=2)))
        assert format_timestamp(ts) == "2024-03-01T12:00:00Z"

    def test_selector_to_str(self):
        assert selector_to_str({"app": "proxy", "tier": "db"}) == "app=proxy,tier=db"
        assert selector_to_str(None) == ""


class TestSettings:
    def test_overrides(self):
        conf = Settings(status_update_max_retries=5, proxy_image="registry.local/proxy")
        assert conf.status_update_max_retries == 5
        assert conf.proxy_image == "registry.local/proxy"

    def test_defaults_are_shared(self):
        assert Settings().requeue_delay_seconds == Settings.requeue_delay_seconds
