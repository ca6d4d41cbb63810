"""Pytest configuration and fixtures."""

import os
import tempfile
from typing import Any, Dict, List, Optional

import pytest

from flowgraph.config import get_testing_config
from flowgraph.core.authorization import AuthorizationPolicy, InMemoryCapabilityProvider
from flowgraph.core.execution_engine import ExecutionEngine
from flowgraph.core.executor_registry import ExecutorRegistry
from flowgraph.core.notifications import RecordingNotifier
from flowgraph.models.core import Node, Edge
from flowgraph.storage.database import create_tables, get_database_engine, reset_database_engine


def make_node(node_id: str, subtype: str, config: Optional[Dict[str, Any]] = None, label: str = "") -> Node:
    return Node(id=node_id, subtype=subtype, label=label, config=config if config is not None else {"value": 1})


def make_edge(source: str, target: str, edge_id: Optional[str] = None) -> Edge:
    return Edge(id=edge_id or "", source=source, target=target)


def chain(*node_ids: str) -> List[Edge]:
    return [make_edge(source, target) for source, target in zip(node_ids, node_ids[1:])]


@pytest.fixture
def node():
    """Factory for nodes; configuration defaults to a non-empty mapping."""
    return make_node


@pytest.fixture
def edge():
    return make_edge


@pytest.fixture
def registry():
    return ExecutorRegistry()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def capabilities():
    return InMemoryCapabilityProvider()


@pytest.fixture
def engine(registry, notifier, capabilities):
    """Engine that keeps node statuses until the test resets them."""
    return ExecutionEngine(
        executor_registry=registry,
        authorization_policy=AuthorizationPolicy(),
        capability_provider=capabilities,
        notifier=notifier,
        status_reset_delay=60.0,
    )


@pytest.fixture
def temp_db():
    """Point the storage layer at a temporary sqlite database."""
    db_fd, db_path = tempfile.mkstemp(suffix=".db")
    os.close(db_fd)

    reset_database_engine()
    get_database_engine(f"sqlite:///{db_path}")
    create_tables()

    yield db_path

    reset_database_engine()
    try:
        os.unlink(db_path)
    except OSError:
        pass


@pytest.fixture
def client():
    """TestClient over an app backed by an in-memory database."""
    from fastapi.testclient import TestClient
    from flowgraph.main import create_app

    app = create_app(get_testing_config())
    with TestClient(app) as test_client:
        yield test_client
