"""
Shared test fixtures and configuration.
"""

from __future__ import annotations

import pytest

from hostconverge.adapters.mock import MockCommandRunner
from hostconverge.core.context import Host
from tests.fakes import FakeAccounts, FakeSystem, make_host


@pytest.fixture
def runner() -> MockCommandRunner:
    return MockCommandRunner()


@pytest.fixture
def fake(runner: MockCommandRunner) -> FakeSystem:
    return FakeSystem(runner)


@pytest.fixture
def accounts(runner: MockCommandRunner) -> FakeAccounts:
    return FakeAccounts(runner)


@pytest.fixture
def host(runner: MockCommandRunner, fake: FakeSystem, accounts: FakeAccounts) -> Host:
    return make_host(runner, accounts=accounts)
