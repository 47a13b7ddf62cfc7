from unittest.mock import patch

import pytest

from common.errors import IndexBackendError, PlaceholderModelError, PublishError, RetirementError
from fusion.data_models import TextList
from indexing.publisher import HotSwapPublisher, PublishState
from ml_pipeline.stages.stage_4_fusion import build_model, load_model

ALIAS = "urindex"

FULL_CYCLE = ["idle", "building", "indexed", "swapped", "old_retired", "idle"]


@pytest.fixture
def model(params):
    properties = {
        "i1": {"category": ["shoes"], "expireDate": "2030-01-01T00:00:00Z"},
        "i2": {"category": ["hats"]},
        "i3": {"color": "red"},
    }
    return build_model([], properties, {"i1": {"popRank": 3.0}}, params)


@pytest.fixture
def empty_model(params):
    return build_model([], {}, {}, params)


@pytest.fixture
def publisher(backend):
    return HotSwapPublisher(backend, alias=ALIAS)


def _served(backend):
    return sorted(backend.read_all(ALIAS), key=lambda doc: doc["id"])


class TestPublish:
    def test_first_publish(self, backend, publisher, model):
        result = publisher.publish(model)

        assert result["status"] == "published"
        assert result["previous_index"] is None
        assert result["documents"] == 3
        assert result["states"] == FULL_CYCLE
        assert result["retirement_error"] is None
        assert backend.get_alias_target(ALIAS) == result["index_name"]
        assert result["index_name"].startswith(f"{ALIAS}_")
        assert publisher.state == PublishState.IDLE

    def test_documents_are_rendered(self, backend, publisher, model):
        publisher.publish(model)

        assert _served(backend) == [
            {"id": "i1", "category": ["shoes"], "expireDate": "2030-01-01T00:00:00+00:00", "popRank": 3.0},
            {"id": "i2", "category": ["hats"]},
            {"id": "i3", "color": "red"},
        ]

    def test_mappings_declare_every_field(self, backend, publisher, model):
        result = publisher.publish(model)

        properties = backend.indices[result["index_name"]]["mappings"]["mappings"]["properties"]
        assert properties["id"] == {"type": "keyword", "norms": False}
        assert properties["category"] == {"type": "keyword", "norms": False}
        assert properties["color"] == {"type": "keyword", "norms": False}
        assert properties["expireDate"] == {"type": "date"}
        assert properties["popRank"] == {"type": "float"}

    def test_publishing_twice_leaves_one_equivalent_index(self, backend, publisher, model):
        first = publisher.publish(model)
        first_docs = _served(backend)

        second = publisher.publish(model)

        assert second["previous_index"] == first["index_name"]
        assert second["index_name"] != first["index_name"]
        assert second["states"] == FULL_CYCLE
        assert _served(backend) == first_docs
        assert list(backend.indices) == [second["index_name"]]

    def test_writes_in_batches(self, backend, model):
        publisher = HotSwapPublisher(backend, alias=ALIAS, batch_size=2)
        with patch.object(backend, "bulk_write", wraps=backend.bulk_write) as bulk_write:
            result = publisher.publish(model)

        assert bulk_write.call_count == 2
        assert result["documents"] == 3


class TestNothingToPublish:
    def test_empty_model_leaves_alias_alone(self, backend, publisher, model, empty_model):
        live = publisher.publish(model)["index_name"]

        result = publisher.publish(empty_model)

        assert result["status"] == "no_data"
        assert result["index_name"] is None
        assert result["states"] == ["idle"]
        assert backend.get_alias_target(ALIAS) == live
        assert list(backend.indices) == [live]

    def test_empty_model_on_fresh_backend(self, backend, publisher, empty_model):
        result = publisher.publish(empty_model)

        assert result["status"] == "no_data"
        assert backend.indices == {}
        assert backend.get_alias_target(ALIAS) is None

    def test_placeholder_model_cannot_publish(self, backend, publisher):
        with pytest.raises(PlaceholderModelError):
            publisher.publish(load_model())
        assert backend.indices == {}


class TestFailures:
    def test_create_failure(self, backend, publisher, model):
        live = publisher.publish(model)["index_name"]

        with patch.object(backend, "create_index", side_effect=IndexBackendError("cluster red")):
            with pytest.raises(PublishError) as exc_info:
                publisher.publish(model)

        assert exc_info.value.stage == "building"
        assert backend.get_alias_target(ALIAS) == live
        assert list(backend.indices) == [live]
        assert publisher.state == PublishState.IDLE

    def test_write_failure_discards_partial_index(self, backend, publisher, model):
        live = publisher.publish(model)["index_name"]

        with patch.object(backend, "bulk_write", side_effect=IndexBackendError("disk full")):
            with pytest.raises(PublishError) as exc_info:
                publisher.publish(model)

        assert exc_info.value.stage == "indexed"
        assert exc_info.value.index_name != live
        assert backend.get_alias_target(ALIAS) == live
        assert list(backend.indices) == [live]

    def test_swap_failure_keeps_old_alias(self, backend, publisher, model):
        live = publisher.publish(model)["index_name"]

        with patch.object(backend, "swap_alias", side_effect=IndexBackendError("timeout")):
            with pytest.raises(PublishError) as exc_info:
                publisher.publish(model)

        assert exc_info.value.stage == "swapped"
        assert backend.get_alias_target(ALIAS) == live
        assert list(backend.indices) == [live]

    def test_swap_error_after_alias_moved_still_publishes(self, backend, publisher, model):
        real_swap = backend.swap_alias

        def swap_then_fail(alias, from_index, to_index):
            real_swap(alias, from_index, to_index)
            raise IndexBackendError("response lost")

        with patch.object(backend, "swap_alias", side_effect=swap_then_fail):
            result = publisher.publish(model)

        assert result["status"] == "published"
        assert backend.get_alias_target(ALIAS) == result["index_name"]

    def test_retirement_failure_is_reported_and_retryable(self, backend, publisher, model):
        first = publisher.publish(model)

        with patch.object(backend, "delete_index", side_effect=IndexBackendError("locked")):
            second = publisher.publish(model)

        assert second["status"] == "published"
        assert second["retirement_error"]
        assert "old_retired" not in second["states"]
        assert backend.get_alias_target(ALIAS) == second["index_name"]
        assert set(backend.indices) == {first["index_name"], second["index_name"]}

        publisher.retire(first["index_name"])
        assert list(backend.indices) == [second["index_name"]]

    def test_retire_raises_retirement_error(self, publisher):
        with pytest.raises(RetirementError) as exc_info:
            publisher.retire("urindex_missing")
        assert exc_info.value.index_name == "urindex_missing"


def test_held_over_records(backend, publisher, model, params):
    assert publisher.held_over_records(params["date_fields"]) is None

    publisher.publish(model)
    held = publisher.held_over_records(params["date_fields"])

    assert held.count() == 3
    assert "id" not in held.get("i1")
    assert held.get("i1")["expireDate"].value.year == 2030


def test_held_over_records_restricted_to_fields(backend, publisher, model, params):
    publisher.publish(model)

    held = publisher.held_over_records(params["date_fields"], fields=["category"])

    assert held.collect().keys() == {"i1", "i2"}
    assert held.get("i1") == {"category": TextList(("shoes",))}
    assert publisher.held_over_records(params["date_fields"], fields=["purchase"]).is_empty()
