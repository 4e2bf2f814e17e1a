"""Shared fixtures: a store config and clients backed by a stub transport."""

from datetime import datetime, timezone
from typing import Callable, List

import httpx
import pytest

from vend_cli.clients import VendClient
from vend_cli.config import ClientConfig

FIXED_NOW = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def config() -> ClientConfig:
    return ClientConfig(domain_prefix="mystore", token="secret-token")


@pytest.fixture
def sleeps() -> List[float]:
    """Durations the client asked to sleep for, in order."""
    return []


@pytest.fixture
def make_client(config: ClientConfig, sleeps: List[float]):
    """Build a VendClient whose requests are answered by ``handler``."""
    clients = []

    def factory(handler: Callable[[httpx.Request], httpx.Response], **overrides) -> VendClient:
        client_config = config.model_copy(update=overrides) if overrides else config
        client = VendClient(
            client_config,
            transport=httpx.MockTransport(handler),
            sleep=sleeps.append,
            clock=lambda: FIXED_NOW,
        )
        clients.append(client)
        return client

    yield factory

    for client in clients:
        client.close()
