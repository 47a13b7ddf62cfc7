"""
Shared fixtures: engine params pinned to a fixed reference time, event logs, and a fresh in-memory backend.
"""

import copy
import json

import pandas as pd
import pytest

from common.constants import ENGINE
from events.event_store import EventStore
from indexing.memory_backend import InMemoryIndexBackend

OFFSET_DATE = "2024-01-10T00:00:00Z"

EVENT_COLUMNS = [
    "event",
    "entity_type",
    "entity_id",
    "target_entity_type",
    "target_entity_id",
    "properties",
    "event_time",
]


def _interaction(event, user, item, day):
    return (event, "user", user, "item", item, "", f"2024-01-{day:02d}T12:00:00Z")


def _item_property(event, item, properties, day):
    return (event, "item", item, "", "", json.dumps(properties), f"2024-01-{day:02d}T12:00:00Z")


@pytest.fixture
def params():
    """Engine params with rankings measured from a fixed date."""
    p = copy.deepcopy(ENGINE)
    p["rankings"] = [
        {
            "name": "popRank",
            "type": "popular",
            "event_names": None,
            "duration": "30 days",
            "offset_date": OFFSET_DATE,
        }
    ]
    return p


@pytest.fixture
def make_event_log():
    """Build an event log frame from tuples in EVENT_COLUMNS order."""
    def _make(rows):
        return pd.DataFrame(rows, columns=EVENT_COLUMNS)
    return _make


@pytest.fixture
def interaction():
    return _interaction


@pytest.fixture
def item_property():
    return _item_property


@pytest.fixture
def sample_rows():
    """
    Purchases: u1 and u2 bought i1 and i2, u3 and u4 bought i3. Views: u1 viewed i1, u2 viewed i2.
    Items i1 and i4 carry properties.
    """
    return [
        _interaction("purchase", "u1", "i1", 1),
        _interaction("purchase", "u1", "i2", 1),
        _interaction("purchase", "u2", "i1", 2),
        _interaction("purchase", "u2", "i2", 2),
        _interaction("purchase", "u3", "i3", 3),
        _interaction("purchase", "u4", "i3", 3),
        _interaction("view", "u1", "i1", 4),
        _interaction("view", "u2", "i2", 4),
        _item_property("$set", "i1", {"category": ["shoes"], "expireDate": "2030-01-01T00:00:00Z"}, 1),
        _item_property("$set", "i4", {"category": ["hats"]}, 1),
    ]


@pytest.fixture
def store(make_event_log, sample_rows):
    return EventStore(make_event_log(sample_rows))


@pytest.fixture
def backend():
    return InMemoryIndexBackend()
