"""Tests for the PRNG and task pool utilities."""

import threading

import pytest

from py_planet.utils.random import AleaPRNG
from py_planet.utils.task_pool import TaskPool, TaskPriority


class TestAleaPRNG:
    """Test the seeded generator."""

    def test_same_seed_same_sequence(self):
        first = AleaPRNG("seed")
        second = AleaPRNG("seed")
        assert [first.random() for _ in range(20)] == [second.random() for _ in range(20)]

    def test_different_seeds_differ(self):
        assert [AleaPRNG("a").random() for _ in range(5)] != [AleaPRNG("b").random() for _ in range(5)]

    def test_seed_is_stringified(self):
        assert AleaPRNG(42).random() == AleaPRNG("42").random()

    def test_random_range(self):
        rng = AleaPRNG("range")
        values = [rng.random() for _ in range(1000)]
        assert all(0.0 <= v < 1.0 for v in values)
        assert rng.call_count == 1000

    def test_randint_is_inclusive(self):
        rng = AleaPRNG("ints")
        values = {rng.randint(0, 3) for _ in range(500)}
        assert values == {0, 1, 2, 3}

    def test_randint_empty_range(self):
        with pytest.raises(ValueError):
            AleaPRNG("x").randint(3, 2)

    def test_uniform(self):
        rng = AleaPRNG("uniform")
        assert all(-2.0 <= rng.uniform(-2.0, 5.0) < 5.0 for _ in range(200))

    def test_choice_and_sample(self):
        rng = AleaPRNG("pick")
        items = list(range(10))
        assert rng.choice(items) in items
        sample = rng.sample(items, 4)
        assert len(sample) == len(set(sample)) == 4
        assert rng.sample(items, 50) != [] and len(rng.sample(items, 50)) == 10
        with pytest.raises(IndexError):
            rng.choice([])

    def test_shuffle_is_permutation(self):
        items = list(range(20))
        AleaPRNG("shuffle").shuffle(items)
        assert sorted(items) == list(range(20))

    def test_chance_edges(self):
        rng = AleaPRNG("chance")
        assert rng.chance(1.0) is True
        assert rng.chance(0.0) is False

    def test_radians(self):
        rng = AleaPRNG("angle")
        for _ in range(100):
            assert -6.2832 <= rng.radians(-360, 360) <= 6.2832

    def test_fork(self):
        parent = AleaPRNG("parent")
        fork = parent.fork("biome", 3)
        assert fork.seed == "parent:biome:3"
        assert fork.random() == AleaPRNG("parent").fork("biome", 3).random()
        assert parent.fork("biome", 4).random() != AleaPRNG("parent:biome:3").random()


class TestTaskPool:
    """Test the background task service."""

    def test_results_in_submission_order(self):
        with TaskPool(max_workers=4) as pool:
            handles = [pool.submit(lambda i=i: i * i, task_id=f"t{i}") for i in range(10)]
            assert pool.wait_all(handles) == [i * i for i in range(10)]

    def test_run(self):
        with TaskPool(max_workers=1) as pool:
            assert pool.run(lambda: "done", task_id="single", priority=TaskPriority.HIGH) == "done"

    def test_wait_all_defaults_to_everything(self):
        with TaskPool(max_workers=2) as pool:
            pool.submit(lambda: 1, task_id="a")
            pool.submit(lambda: 2, task_id="b")
            assert sorted(pool.wait_all()) == [1, 2]
            assert pool.wait_all() == []

    def test_error_is_raised_after_all_tasks_settle(self):
        finished = threading.Event()

        def fail():
            raise RuntimeError("boom")

        def slow():
            finished.wait(0.05)
            finished.set()
            return "ok"

        with TaskPool(max_workers=2) as pool:
            handles = [pool.submit(fail, task_id="fail"), pool.submit(slow, task_id="slow")]
            with pytest.raises(RuntimeError, match="boom"):
                pool.wait_all(handles)
            assert finished.is_set()
            assert handles[1].done()

    def test_handle_metadata(self):
        with TaskPool(max_workers=1) as pool:
            handle = pool.submit(lambda: None, task_id="meta", priority=TaskPriority.LOW, owner="tests")
            pool.wait_all([handle])
        assert handle.task_id == "meta"
        assert handle.priority == TaskPriority.LOW
        assert handle.owner == "tests"
        assert handle.done()
