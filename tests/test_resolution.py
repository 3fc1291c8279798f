import threading
import time
import unittest
from concurrent.futures import ThreadPoolExecutor

import pytest

from scopebind import CircularDependency, Container, Lifetime, ResolutionError, UnregisteredToken


class TestCircularDependencies(unittest.TestCase):
    cont: Container

    def setUp(self):
        self.cont = Container()

    def test_two_factories_depending_on_each_other(self):
        self.cont.register("x", factory=lambda s: s.resolve("y"))
        self.cont.register("y", factory=lambda s: s.resolve("x"))

        with pytest.raises(CircularDependency) as ctx:
            self.cont.resolve("x")

        assert ctx.value.cycle == ("x", "y", "x")
        assert "'x' -> 'y' -> 'x'" in str(ctx.value)

    def test_constructor_cycle_through_declared_dependencies(self):
        class X:
            def __init__(self, y):
                self.y = y

        class Y:
            def __init__(self, x: X):
                self.x = x

        self.cont.register(X, X, dependencies=[Y])
        self.cont.register(Y, Y)

        with pytest.raises(CircularDependency) as ctx:
            self.cont.resolve(Y)

        assert ctx.value.cycle == (Y, X, Y)
        assert "Y -> " in str(ctx.value)

    def test_self_dependency(self):
        self.cont.register("loop", factory=lambda s: s.resolve("loop"))

        with pytest.raises(CircularDependency) as ctx:
            self.cont.resolve("loop")
        assert ctx.value.cycle == ("loop", "loop")

    def test_cycle_detected_for_transient_registrations(self):
        self.cont.register("x", factory=lambda s: s.resolve("y"), lifetime=Lifetime.TRANSIENT)
        self.cont.register("y", factory=lambda s: s.resolve("x"), lifetime=Lifetime.TRANSIENT)

        with pytest.raises(CircularDependency):
            self.cont.resolve("y")

    def test_cycle_leaves_nothing_cached(self):
        self.cont.register("x", factory=lambda s: s.resolve("y"))
        self.cont.register("y", factory=lambda s: s.resolve("x"))

        with pytest.raises(CircularDependency):
            self.cont.resolve("x")

        self.cont.override("y", "fixed")
        assert self.cont.resolve("x") == "fixed"

    def test_cycle_is_a_resolution_error(self):
        self.cont.register("x", factory=lambda s: s.resolve("x"))

        with pytest.raises(ResolutionError):
            self.cont.resolve("x")

    def test_diamond_is_not_a_cycle(self):
        self.cont.register("base", factory=lambda _: object())
        self.cont.register("left", factory=lambda s: s.resolve("base"))
        self.cont.register("right", factory=lambda s: s.resolve("base"))
        self.cont.register("top", factory=lambda s: (s.resolve("left"), s.resolve("right")))

        left, right = self.cont.resolve("top")
        assert left is right


class TestFailedConstruction(unittest.TestCase):
    def test_factory_exception_propagates_unchanged_and_is_not_cached(self):
        cont = Container()
        attempts = []

        def flaky(_):
            attempts.append(1)
            if len(attempts) == 1:
                msg = "database unavailable"
                raise ConnectionError(msg)
            return "connected"

        cont.register("db", factory=flaky)

        with pytest.raises(ConnectionError, match="database unavailable"):
            cont.resolve("db")

        assert cont.resolve("db") == "connected"
        assert len(attempts) == 2

    def test_constructor_exception_propagates(self):
        cont = Container()

        class Broken:
            def __init__(self):
                msg = "boom"
                raise ValueError(msg)

        cont.register(Broken, Broken)

        with pytest.raises(ValueError, match="boom"):
            cont.resolve(Broken)

    def test_unregistered_dependency_names_the_missing_token(self):
        cont = Container()
        cont.register("service", factory=lambda s: s.resolve("repository"))

        with pytest.raises(UnregisteredToken) as ctx:
            cont.resolve("service")
        assert ctx.value.token == "repository"

    def test_unregistered_anywhere_in_scope_chain(self):
        root = Container()
        root.register_instance("a", 1)
        child = root.create_child().create_child()

        with pytest.raises(UnregisteredToken):
            child.resolve("b")


class TestConcurrentResolution(unittest.TestCase):
    def test_singleton_is_constructed_once_under_concurrency(self):
        cont = Container()
        calls = []
        calls_lock = threading.Lock()

        def slow(_):
            with calls_lock:
                calls.append(1)
            time.sleep(0.05)
            return object()

        cont.register("slow", factory=slow)

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: cont.resolve("slow"), range(16)))

        assert len(calls) == 1
        assert all(r is results[0] for r in results)

    def test_concurrent_graph_construction_shares_dependencies(self):
        cont = Container()

        class DB:
            def __init__(self):
                time.sleep(0.01)

        class Repo:
            def __init__(self, db: DB):
                self.db = db

        cont.register(DB, DB)
        cont.register(Repo, Repo, lifetime=Lifetime.TRANSIENT)

        with ThreadPoolExecutor(max_workers=4) as pool:
            repos = list(pool.map(lambda _: cont.resolve(Repo), range(8)))

        assert len({id(r) for r in repos}) == 8
        assert all(r.db is repos[0].db for r in repos)

    def test_child_scopes_resolve_independently_across_threads(self):
        root = Container()
        root.register("value", factory=lambda s: s.resolve("seed") * 2)
        root.register_instance("seed", 1)

        def run(n):
            scope = root.create_child()
            scope.override("seed", n)
            return scope.resolve("value")

        with ThreadPoolExecutor(max_workers=4) as pool:
            results = list(pool.map(run, range(10)))

        assert results == [n * 2 for n in range(10)]
        assert root.resolve("value") == 2


class TestCrossThreadResolution(unittest.TestCase):
    def test_cycle_entered_from_two_threads_raises_instead_of_deadlocking(self):
        cont = Container()
        both_building = threading.Barrier(2, timeout=5)
        first_call = {"x": True, "y": True}

        def depends_on(name, other):
            def factory(scope):
                if first_call.pop(name, False):
                    # make sure each thread holds its own token before asking for the other
                    both_building.wait()
                return scope.resolve(other)

            return factory

        cont.register("x", factory=depends_on("x", "y"))
        cont.register("y", factory=depends_on("y", "x"))

        outcomes = {}

        def run(token):
            try:
                outcomes[token] = cont.resolve(token)
            except CircularDependency as e:
                outcomes[token] = e

        threads = [threading.Thread(target=run, args=(t,), daemon=True) for t in ("x", "y")]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)

        assert not any(t.is_alive() for t in threads), f"resolution hung, outcomes={outcomes}"
        assert set(outcomes) == {"x", "y"}
        assert all(isinstance(o, CircularDependency) for o in outcomes.values())
        assert {"x", "y"} <= set(outcomes["x"].cycle)

    def test_override_during_running_build_wins(self):
        cont = Container()
        building = threading.Event()
        proceed = threading.Event()

        def slow(_):
            building.set()
            proceed.wait(timeout=5)
            return "real"

        cont.register("svc", factory=slow)

        with ThreadPoolExecutor(max_workers=1) as pool:
            pending = pool.submit(cont.resolve, "svc")
            assert building.wait(timeout=5)

            cont.override("svc", "mock")
            proceed.set()

            assert pending.result(timeout=5) == "real"

        assert cont.resolve("svc") == "mock"
        assert cont.resolve("svc") == "mock"
