"""Shared fixtures: an in-memory TXT resolver and a DoH resolver on a mock transport."""

import httpx
import pytest

from email_auth_check.config import ResolverConfig
from email_auth_check.dns_utils import DohResolver
from email_auth_check.errors import NameNotFound


class FakeResolver:
    """Stands in for DohResolver; answers TXT queries from a dict.

    Values are a list of answers (a str is a single-segment answer) or an
    exception instance to raise. Unknown names raise NameNotFound.
    """

    def __init__(self, records=None, mx=None):
        self.records = records or {}
        self.mx = mx or {}
        self.calls = []

    async def resolve_txt(self, name):
        self.calls.append(name)
        if name not in self.records:
            raise NameNotFound(f"DNS TXT query for {name} resulted in NXDOMAIN (status 3)", name, "TXT")
        value = self.records[name]
        if isinstance(value, Exception):
            raise value
        return [[v] if isinstance(v, str) else list(v) for v in value]

    async def resolve_mx(self, name):
        self.calls.append(name)
        return list(self.mx.get(name, []))


@pytest.fixture
def fake_resolver():
    return FakeResolver


@pytest.fixture
def doh_resolver():
    """Factory building a DohResolver whose HTTP client runs on ``handler``."""

    def build(handler, **config):
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return DohResolver(ResolverConfig(**config), client=client)

    return build
