from unittest.mock import Mock

import pytest

from common.errors import DateParseError
from events.event_store import EventStore
from ml_pipeline.handler import STAGES, run_stage_1_events, run_stage_2_correlators, train


def test_stage_registry_order():
    names = [name for name, _, _ in STAGES]
    assert names == ["stage_1_events", "stage_2_correlators", "stage_3_rankings", "stage_4_fusion", "stage_5_publish"]
    for position, (_, _, dependencies) in enumerate(STAGES):
        assert all(names.index(dep) < position for dep in dependencies)


def test_stage_1_collects_actions_and_properties(store, params):
    training_data = run_stage_1_events(store, params)

    assert [name for name, _ in training_data["actions"]] == ["purchase", "view"]
    assert set(training_data["properties"]) == {"i1", "i4"}
    assert len(training_data["events"]) == 8


def test_stage_2_passes_primary_dataset_to_provider(store, params):
    training_data = run_stage_1_events(store, params)
    provider = Mock()

    run_stage_2_correlators(training_data, params, provider=provider)

    primary = dict(training_data["actions"])["purchase"]
    assert [c.args[0] for c in provider.compute_correlators.call_args_list] == ["purchase", "view"]
    for call in provider.compute_correlators.call_args_list:
        assert call.args[1] is primary


def test_stage_2_skipped_for_backfill(store, params):
    params["mode"] = "backfill"
    provider = Mock()

    assert run_stage_2_correlators(run_stage_1_events(store, params), params, provider=provider) == []
    provider.compute_correlators.assert_not_called()


def test_train_publishes_fused_records(store, backend, params):
    result = train(store, backend, params)

    assert result["status"] == "published"
    docs = {doc["id"]: doc for doc in backend.read_all(params["index_name"])}
    assert set(docs) == {"i1", "i2", "i3", "i4"}
    assert docs["i1"] == {
        "id": "i1",
        "purchase": ["i2"],
        "view": ["i2"],
        "category": ["shoes"],
        "expireDate": "2030-01-01T00:00:00+00:00",
        "popRank": 3.0,
    }
    assert docs["i3"] == {"id": "i3", "popRank": 2.0}
    assert docs["i4"] == {"id": "i4", "category": ["hats"]}


def test_train_reports_stage_progress(store, backend, params):
    seen = []
    train(store, backend, params, on_stage=lambda name, status: seen.append((name, status)))

    assert seen[0] == ("stage_1_events", "running")
    assert seen[-1] == ("stage_5_publish", "completed")
    assert len(seen) == 2 * len(STAGES)


def test_backfill_refresh_keeps_correlators_and_updates_rankings(
    make_event_log, sample_rows, interaction, backend, params
):
    train(EventStore(make_event_log(sample_rows)), backend, params)

    more_rows = sample_rows + [interaction("purchase", f"u{n}", "i3", 8) for n in range(5, 8)]
    params["mode"] = "backfill"
    result = train(EventStore(make_event_log(more_rows)), backend, params)

    assert result["status"] == "published"
    docs = {doc["id"]: doc for doc in backend.read_all(params["index_name"])}
    assert docs["i1"]["purchase"] == ["i2"]
    assert docs["i1"]["view"] == ["i2"]
    assert docs["i3"]["popRank"] == 5.0
    assert len(backend.indices) == 1


def test_failed_stage_is_reported_and_raised(make_event_log, interaction, item_property, backend, params):
    rows = [interaction("purchase", "u1", "i1", 1), item_property("$set", "i1", {"expireDate": "soon"}, 1)]
    seen = []

    with pytest.raises(DateParseError):
        train(EventStore(make_event_log(rows)), backend, params, on_stage=lambda name, status: seen.append((name, status)))

    assert ("stage_4_fusion", "failed") in seen
    assert backend.get_alias_target(params["index_name"]) is None


def test_blank_ids_never_reach_the_index(make_event_log, interaction, backend, params):
    rows = [interaction("purchase", "u1", "i1", 1), interaction("purchase", "u2", "", 2), interaction("view", "", "i1", 2)]

    training_data = run_stage_1_events(EventStore(make_event_log(rows)), params)
    assert list(training_data["events"]["target_id"]) == ["i1"]

    train(EventStore(make_event_log(rows)), backend, params)

    docs = {doc["id"]: doc for doc in backend.read_all(params["index_name"])}
    assert set(docs) == {"i1"}
    assert docs["i1"]["popRank"] == 1.0


def test_backfill_refresh_drops_stale_rankings_and_properties(
    make_event_log, sample_rows, item_property, backend, params
):
    with_color = sample_rows + [item_property("$set", "i3", {"color": "red"}, 1)]
    train(EventStore(make_event_log(with_color)), backend, params)
    before = {doc["id"]: doc for doc in backend.read_all(params["index_name"])}
    assert before["i3"] == {"id": "i3", "color": "red", "popRank": 2.0}

    # i3 loses its events and its color
    refreshed = [row for row in with_color if row[4] != "i3"] + [item_property("$unset", "i3", {"color": None}, 5)]
    params["mode"] = "backfill"
    train(EventStore(make_event_log(refreshed)), backend, params)

    docs = {doc["id"]: doc for doc in backend.read_all(params["index_name"])}
    assert "popRank" not in docs.get("i3", {})
    assert "color" not in docs.get("i3", {})
    assert docs["i1"]["purchase"] == ["i2"]
    assert docs["i1"]["popRank"] == 3.0
