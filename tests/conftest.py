"""
Pytest configuration and shared fixtures.
"""

import pytest
import json
from pathlib import Path
from typing import Dict, Any, List

from entitypicker.catalog import InMemoryCatalog


def make_user(name: str, title: str = None, email: str = None, namespace: str = None) -> Dict[str, Any]:
    metadata = {"name": name}
    if title is not None:
        metadata["title"] = title
    if namespace is not None:
        metadata["namespace"] = namespace
    spec = {"profile": {"email": email}} if email else {}
    return {"apiVersion": "backstage.io/v1alpha1", "kind": "User", "metadata": metadata, "spec": spec}


@pytest.fixture
def jane() -> Dict[str, Any]:
    """The user from the display template walkthrough."""
    return {
        "kind": "User",
        "metadata": {"name": "jdoe", "title": "Jane Doe"},
        "spec": {"profile": {"email": "jane@x.com"}},
    }


@pytest.fixture
def users() -> List[Dict[str, Any]]:
    return [
        make_user("jdoe", "Jane Doe", "jane@x.com"),
        make_user("jsmith", "John Smith", "john@x.com"),
        make_user("jdoe2", "Jane Doe", "jane.doe@y.com"),
        make_user("ops-bot"),
    ]


@pytest.fixture
def groups() -> List[Dict[str, Any]]:
    return [
        {
            "kind": "Group",
            "metadata": {"name": "platform", "title": "Platform Team", "annotations": {"slack": "#platform"}},
            "spec": {"type": "team", "children": []},
        },
        {
            "kind": "Group",
            "metadata": {"name": "payments", "namespace": "finance"},
            "spec": {"type": "team", "children": ["payments-api"]},
        },
    ]


@pytest.fixture
def catalog(users, groups) -> InMemoryCatalog:
    return InMemoryCatalog(users + groups)


@pytest.fixture
def snapshot_file(tmp_path, users, groups) -> Path:
    """A catalog snapshot in REST response shape."""
    path = tmp_path / "catalog.json"
    path.write_text(json.dumps({"items": users + groups}, indent=2))
    return path
