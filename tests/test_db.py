# Copyright (c) Syntropy Systems
"""Tests for experiment storage."""

import sqlite3
import threading
from datetime import datetime, timedelta, timezone

import pytest

from promptgrid.db import ExperimentNotFoundError, ExperimentStore, default_experiment_name
from promptgrid.grid import build_parameter_grid
from promptgrid.models.db import format_timestamp
from promptgrid.models.experiment import ExperimentSummary, ParameterSet


def make_experiment(generator, name=None, prompt="Summarise TDD", created_at=None, grid=None):
    """Build an experiment summary and its generated responses."""
    grid = grid or build_parameter_grid([0.2, 0.8], [1.0], 2)
    summary = ExperimentSummary(
        name=name,
        prompt=prompt,
        model="gpt-4o-mini",
        parameter_sets=grid,
        variations=grid[0].variations,
        created_at=created_at or datetime.now(timezone.utc),
    )
    return summary, generator.generate(prompt, "gpt-4o-mini", grid)


def count_rows(conn: sqlite3.Connection, table: str, experiment_id: str) -> int:
    column = "id" if table == "experiments" else "experiment_id"
    row = conn.execute(f"SELECT COUNT(*) FROM {table} WHERE {column} = ?", (experiment_id,)).fetchone()
    return row[0]


class TestSaveExperiment:
    """Tests for saving experiments."""

    def test_save_and_get_round_trip(self, store, generator):
        """A saved experiment reads back with all of its responses."""
        summary, responses = make_experiment(generator, name="baseline")

        saved = store.save_experiment(summary, responses)
        loaded = store.get_experiment(summary.id)

        assert loaded is not None
        assert loaded.id == saved.id
        assert loaded.name == "baseline"
        assert loaded.prompt == "Summarise TDD"
        assert loaded.parameter_sets == summary.parameter_sets
        assert [r.id for r in loaded.responses] == [r.id for r in responses]
        assert [r.text for r in loaded.responses] == [r.text for r in responses]
        assert [r.metrics for r in loaded.responses] == [r.metrics for r in responses]

    def test_responses_are_linked(self, store, generator):
        """Stored responses carry their experiment id."""
        summary, responses = make_experiment(generator)

        saved = store.save_experiment(summary, responses)

        assert all(r.experiment_id == summary.id for r in saved.responses)
        assert all(r.experiment_id is None for r in responses)

    def test_default_name(self, store, generator):
        """A missing name becomes a timestamp label."""
        summary, responses = make_experiment(generator)

        saved = store.save_experiment(summary, responses)

        assert saved.name is not None
        assert saved.name.startswith("New Experiment ")
        assert store.get_experiment(summary.id).name == saved.name

    def test_default_experiment_name_format(self):
        """The label uses a second-resolution timestamp."""
        label = default_experiment_name(datetime(2024, 3, 5, 14, 7, 9))

        assert label == "New Experiment 2024-03-05 14:07:09"

    def test_timestamps_round_trip(self, store, generator):
        """Creation times keep microseconds and stay timezone-aware."""
        created = datetime(2024, 1, 2, 3, 4, 5, 678901, tzinfo=timezone.utc)
        summary, responses = make_experiment(generator, created_at=created)

        store.save_experiment(summary, responses)

        assert store.get_experiment(summary.id).created_at == created

    def test_response_outside_grid_rejected(self, store, generator):
        """Responses must belong to a cell of the experiment grid."""
        summary, responses = make_experiment(generator)
        stray = responses[0].model_copy(
            update={"parameter_set": ParameterSet(temperature=1.9, top_p=0.1, variations=2)}
        )

        with pytest.raises(ValueError, match="not in the experiment grid"):
            store.save_experiment(summary, [*responses, stray])

        assert store.get_experiment(summary.id) is None

    def test_failed_save_leaves_nothing(self, store, db_connection, generator):
        """A write failure part way through rolls back the whole experiment."""
        first, responses = make_experiment(generator)
        store.save_experiment(first, responses)

        # Same response ids under a new experiment hit the primary key
        second = first.model_copy(update={"id": "second-experiment"})
        with pytest.raises(sqlite3.IntegrityError):
            store.save_experiment(second, responses)

        assert count_rows(db_connection, "experiments", "second-experiment") == 0
        assert store.get_experiment("second-experiment") is None
        assert len(store.get_experiment(first.id).responses) == len(responses)

    def test_store_usable_after_failure(self, store, generator):
        """The connection is not left inside a transaction."""
        summary, responses = make_experiment(generator)
        store.save_experiment(summary, responses)
        with pytest.raises(sqlite3.IntegrityError):
            store.save_experiment(summary, responses)

        other, other_responses = make_experiment(generator, name="after")
        store.save_experiment(other, other_responses)

        assert store.get_experiment(other.id).name == "after"

    def test_save_without_responses(self, store):
        """An experiment can be stored with an empty response set."""
        summary = ExperimentSummary(
            prompt="p",
            model="m",
            parameter_sets=build_parameter_grid([0.1], [0.2], 1),
            variations=1,
        )

        saved = store.save_experiment(summary, [])

        assert saved.responses == []
        assert store.get_experiment(summary.id).responses == []


class TestListExperiments:
    """Tests for listing and finding experiments."""

    def test_most_recent_first(self, store, generator):
        """Listing is ordered by creation time, newest first."""
        base = datetime(2024, 6, 1, tzinfo=timezone.utc)
        ids = []
        for offset in range(3):
            summary, responses = make_experiment(
                generator, name=f"exp-{offset}", created_at=base + timedelta(minutes=offset)
            )
            store.save_experiment(summary, responses)
            ids.append(summary.id)

        listed = store.list_experiments()

        assert [e.id for e in listed] == list(reversed(ids))

    def test_order_ignores_utc_offsets(self, store, generator):
        """Offsets are normalized so ordering follows the actual instant."""
        plus_two = timezone(timedelta(hours=2))
        earlier, earlier_responses = make_experiment(
            generator, created_at=datetime(2024, 6, 1, 10, 0, tzinfo=plus_two)
        )
        later, later_responses = make_experiment(
            generator, created_at=datetime(2024, 6, 1, 9, 0, tzinfo=timezone.utc)
        )
        store.save_experiment(earlier, earlier_responses)
        store.save_experiment(later, later_responses)

        assert [e.id for e in store.list_experiments()] == [later.id, earlier.id]
        assert store.get_experiment(earlier.id).created_at == earlier.created_at

    def test_format_timestamp_is_utc(self):
        """Stored timestamps are always UTC with a Z suffix."""
        value = datetime(2024, 6, 1, 10, 0, tzinfo=timezone(timedelta(hours=2)))

        assert format_timestamp(value) == "2024-06-01T08:00:00.000000Z"

    def test_limit(self, store, generator):
        """The limit caps the number of summaries."""
        for _ in range(4):
            store.save_experiment(*make_experiment(generator))

        assert len(store.list_experiments(limit=2)) == 2

    def test_summaries_carry_grid(self, store, generator):
        """Summaries include parameter sets and variations."""
        summary, responses = make_experiment(generator)
        store.save_experiment(summary, responses)

        (listed,) = store.list_experiments()

        assert listed.parameter_sets == summary.parameter_sets
        assert listed.variations == 2

    def test_empty_store(self, store):
        """No experiments gives an empty list."""
        assert store.list_experiments() == []

    def test_find_by_prefix(self, store, generator):
        """Experiments can be found by id prefix."""
        summary, responses = make_experiment(generator)
        store.save_experiment(summary, responses)

        assert [e.id for e in store.find_experiments(summary.id[:8])] == [summary.id]
        assert store.find_experiments("zzzz") == []

    def test_find_treats_wildcards_literally(self, store, generator):
        """LIKE wildcards in the prefix match nothing special."""
        store.save_experiment(*make_experiment(generator))

        assert store.find_experiments("%") == []
        assert store.find_experiments("_") == []


class TestGetExperiment:
    """Tests for fetching one experiment."""

    def test_unknown_id(self, store):
        """An unknown id gives None."""
        assert store.get_experiment("missing") is None

    def test_response_order(self, store, generator):
        """Responses come back in grid then variation order."""
        grid = build_parameter_grid([0.9, 0.1], [0.5, 1.0], 2)
        summary, responses = make_experiment(generator, grid=grid)
        store.save_experiment(summary, responses)

        loaded = store.get_experiment(summary.id)

        assert [
            (r.parameter_set.temperature, r.parameter_set.top_p, r.variation_index)
            for r in loaded.responses
        ] == [
            (0.9, 0.5, 0),
            (0.9, 0.5, 1),
            (0.9, 1.0, 0),
            (0.9, 1.0, 1),
            (0.1, 0.5, 0),
            (0.1, 0.5, 1),
            (0.1, 1.0, 0),
            (0.1, 1.0, 1),
        ]

    def test_responses_carry_cell_variations(self, store, generator):
        """Loaded parameter sets keep the experiment's variation count."""
        summary, responses = make_experiment(generator)
        store.save_experiment(summary, responses)

        loaded = store.get_experiment(summary.id)

        assert all(r.parameter_set.variations == 2 for r in loaded.responses)


class TestRenameExperiment:
    """Tests for renaming experiments."""

    def test_rename(self, store, generator):
        """Renaming updates the stored name."""
        summary, responses = make_experiment(generator, name="old")
        store.save_experiment(summary, responses)

        renamed = store.rename_experiment(summary.id, "new")

        assert renamed.name == "new"
        assert store.get_experiment(summary.id).name == "new"

    def test_rename_keeps_responses(self, store, generator):
        """Renaming does not touch responses."""
        summary, responses = make_experiment(generator)
        store.save_experiment(summary, responses)

        store.rename_experiment(summary.id, "new")

        assert len(store.get_experiment(summary.id).responses) == 4

    def test_rename_unknown(self, store):
        """Renaming an unknown id raises."""
        with pytest.raises(ExperimentNotFoundError) as exc_info:
            store.rename_experiment("missing", "name")

        assert exc_info.value.experiment_id == "missing"


class TestDeleteExperiment:
    """Tests for deleting experiments."""

    def test_delete_cascades(self, store, db_connection, generator):
        """Deleting an experiment removes its responses."""
        summary, responses = make_experiment(generator)
        store.save_experiment(summary, responses)
        assert count_rows(db_connection, "responses", summary.id) == 4

        assert store.delete_experiment(summary.id) is True

        assert store.get_experiment(summary.id) is None
        assert count_rows(db_connection, "experiments", summary.id) == 0
        assert count_rows(db_connection, "responses", summary.id) == 0

    def test_delete_is_idempotent(self, store, generator):
        """Deleting twice or deleting an unknown id is a no-op."""
        summary, responses = make_experiment(generator)
        store.save_experiment(summary, responses)

        assert store.delete_experiment(summary.id) is True
        assert store.delete_experiment(summary.id) is False
        assert store.delete_experiment("never-existed") is False

    def test_delete_leaves_others(self, store, generator):
        """Only the targeted experiment is removed."""
        keep, keep_responses = make_experiment(generator, name="keep")
        drop, drop_responses = make_experiment(generator, name="drop")
        store.save_experiment(keep, keep_responses)
        store.save_experiment(drop, drop_responses)

        store.delete_experiment(drop.id)

        assert [e.id for e in store.list_experiments()] == [keep.id]
        assert len(store.get_experiment(keep.id).responses) == 4


class TestExperimentStore:
    """Tests for the store wrapper."""

    def test_in_memory(self, generator):
        """The store works on an in-memory database."""
        with ExperimentStore(":memory:") as memory_store:
            memory_store.init_schema()
            summary, responses = make_experiment(generator)
            memory_store.save_experiment(summary, responses)

            assert memory_store.get_experiment(summary.id) is not None

    def test_init_schema_is_idempotent(self, store):
        """Initializing an existing database is safe."""
        store.init_schema()

        assert store.list_experiments() == []


class TestConcurrentAccess:
    """Tests for readers running alongside a writer."""

    def test_readers_never_see_partial_experiments(self, tmp_path, generator):
        """Every experiment a reader sees already has all of its responses."""
        db_path = tmp_path / "shared.db"
        grid = build_parameter_grid([0.1, 0.5, 0.9], [0.5, 1.0], 4)
        expected = len(grid) * 4
        batches = [make_experiment(generator, grid=grid) for _ in range(20)]

        writer = ExperimentStore(db_path)
        writer.init_schema()
        reader = ExperimentStore(db_path)

        done = threading.Event()
        errors: list[Exception] = []
        observed: dict[str, int] = {}

        def write():
            try:
                for summary, responses in batches:
                    writer.save_experiment(summary, responses)
            except Exception as e:
                errors.append(e)
            finally:
                done.set()

        def read_once():
            for summary in reader.list_experiments(limit=100):
                experiment = reader.get_experiment(summary.id)
                assert experiment is not None
                observed[experiment.id] = len(experiment.responses)
                if len(experiment.responses) != expected:
                    errors.append(AssertionError(f"{experiment.id} had {len(experiment.responses)}"))

        def read():
            try:
                while not done.is_set():
                    read_once()
            except Exception as e:
                errors.append(e)

        try:
            threads = [threading.Thread(target=write), threading.Thread(target=read)]
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join(timeout=30)
            read_once()
        finally:
            writer.close()
            reader.close()

        assert errors == []
        assert len(observed) == len(batches)
        assert set(observed.values()) == {expected}

    def test_shared_store_across_threads(self, store, generator):
        """One store can be used from several threads at once."""
        batches = [make_experiment(generator) for _ in range(8)]
        errors: list[Exception] = []

        def save(summary, responses):
            try:
                store.save_experiment(summary, responses)
                assert len(store.get_experiment(summary.id).responses) == 4
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=save, args=batch) for batch in batches]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        assert errors == []
        assert len(store.list_experiments(limit=20)) == 8
