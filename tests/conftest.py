# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Shared test fixtures for irmin_http tests."""

from __future__ import annotations

from collections.abc import Iterator

import httpx
import pytest

from irmin_http import Connection, Path, connect
from irmin_http.testing import MemoryStore, make_app, make_test_client

from tests._support import BASE_URL


@pytest.fixture
def store() -> MemoryStore:
    """A store with a few keys on the default branch."""
    return MemoryStore(
        {
            "master": {
                Path("a"): b"1",
                Path("b", "c"): b"hello",
                Path("b", "d"): bytes([0xFF, 0x00]),
            }
        }
    )


@pytest.fixture
def test_client(store: MemoryStore) -> Iterator[httpx.Client]:
    """An httpx client calling the in-memory server in-process."""
    client = make_test_client(make_app(store))
    yield client
    client.close()


@pytest.fixture
def conn(test_client: httpx.Client) -> Iterator[Connection]:
    """A connection to the in-memory server, owned by ``tester``."""
    with connect(BASE_URL, task_owner="tester", client=test_client) as c:
        yield c
