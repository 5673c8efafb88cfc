"""
Unit tests for the backend pool: registration, selection policy, failure
feedback and health checks.
"""

import asyncio

import pytest

from core.domain import Capability, HealthStatus
from core.exceptions import BackendUnavailableError, InvalidInputError, NoHealthyBackendError
from services.backend_pool import BackendPool

from fakes import FakeBackend

CHAT_ONLY = frozenset({Capability.CHAT})


def pool_of(*backends, probe_timeout: float = 0.5) -> BackendPool:
    pool = BackendPool(probe_timeout=probe_timeout)
    for backend in backends:
        pool.register(backend)
    return pool


class TestRegistration:

    def test_new_backend_starts_healthy_and_unchecked(self):
        pool = pool_of(FakeBackend(name="a"))
        descriptor = pool.get("a")

        assert descriptor.status == HealthStatus.HEALTHY
        assert descriptor.last_checked is None
        assert descriptor.model == "fake-model"
        assert descriptor.supports(Capability.EMBED)

    def test_descriptors_keep_registration_order(self):
        pool = pool_of(FakeBackend(name="b"), FakeBackend(name="a"), FakeBackend(name="c"))
        assert [d.name for d in pool.descriptors()] == ["b", "a", "c"]

    def test_duplicate_name_rejected(self):
        pool = pool_of(FakeBackend(name="a"))
        with pytest.raises(InvalidInputError):
            pool.register(FakeBackend(name="a"))

    def test_empty_name_rejected(self):
        with pytest.raises(InvalidInputError):
            pool_of(FakeBackend(name=""))


class TestSelect:

    def test_first_healthy_in_registration_order(self):
        first, second = FakeBackend(name="first"), FakeBackend(name="second")
        pool = pool_of(first, second)
        assert pool.select(Capability.CHAT) is first

    def test_skips_backends_without_capability(self):
        chat_only = FakeBackend(name="chat", capabilities=CHAT_ONLY)
        full = FakeBackend(name="full")
        pool = pool_of(chat_only, full)

        assert pool.select(Capability.EMBED) is full
        assert pool.select(Capability.CHAT) is chat_only

    def test_no_backend_with_capability(self):
        pool = pool_of(FakeBackend(name="chat", capabilities=CHAT_ONLY))
        with pytest.raises(NoHealthyBackendError) as exc_info:
            pool.select(Capability.EMBED)
        assert exc_info.value.capability == "embed"

    def test_empty_pool(self):
        with pytest.raises(NoHealthyBackendError):
            BackendPool().select(Capability.CHAT)

    def test_degraded_backend_skipped(self):
        first, second = FakeBackend(name="first"), FakeBackend(name="second")
        pool = pool_of(first, second)

        pool.report_failure("first", RuntimeError("boom"))
        assert pool.select(Capability.CHAT) is second

        pool.report_failure("second", RuntimeError("boom"))
        with pytest.raises(NoHealthyBackendError):
            pool.select(Capability.CHAT)

    def test_single_degraded_backend_not_selected(self):
        pool = pool_of(FakeBackend(name="only"))
        pool.report_failure("only", BackendUnavailableError("connection reset"))

        with pytest.raises(NoHealthyBackendError):
            pool.select(Capability.CHAT)

    def test_unreachable_never_selected(self):
        down = FakeBackend(name="down", probe_error=BackendUnavailableError("refused"))
        pool = pool_of(down)
        asyncio.run(pool.health_check())

        with pytest.raises(NoHealthyBackendError):
            pool.select(Capability.CHAT)


class TestReportFailure:

    def test_marks_degraded_with_error(self):
        pool = pool_of(FakeBackend(name="a"))
        pool.report_failure("a", BackendUnavailableError("connection reset"))

        descriptor = pool.get("a")
        assert descriptor.status == HealthStatus.DEGRADED
        assert "connection reset" in descriptor.last_error

    def test_unknown_backend_ignored(self):
        pool = pool_of(FakeBackend(name="a"))
        pool.report_failure("ghost", RuntimeError("boom"))
        assert [d.name for d in pool.descriptors()] == ["a"]

    def test_descriptors_are_replaced_not_mutated(self):
        pool = pool_of(FakeBackend(name="a"))
        snapshot = pool.descriptors()
        pool.report_failure("a", RuntimeError("boom"))

        assert snapshot[0].status == HealthStatus.HEALTHY
        assert pool.get("a").status == HealthStatus.DEGRADED


class TestHealthCheck:

    def test_probe_outcomes_become_statuses(self):
        pool = pool_of(
            FakeBackend(name="ok"),
            FakeBackend(name="partial", probe_status=HealthStatus.DEGRADED),
            FakeBackend(name="down", probe_error=BackendUnavailableError("refused")),
            FakeBackend(name="buggy", probe_error=KeyError("models")),
        )
        descriptors = {d.name: d for d in asyncio.run(pool.health_check())}

        assert descriptors["ok"].status == HealthStatus.HEALTHY
        assert descriptors["partial"].status == HealthStatus.DEGRADED
        assert descriptors["down"].status == HealthStatus.UNREACHABLE
        assert descriptors["down"].last_error == "refused"
        assert descriptors["buggy"].status == HealthStatus.UNREACHABLE
        assert "KeyError" in descriptors["buggy"].last_error
        assert all(d.last_checked is not None for d in descriptors.values())

    def test_slow_probe_times_out(self):
        pool = pool_of(FakeBackend(name="slow", probe_delay=1.0), probe_timeout=0.05)
        descriptors = asyncio.run(pool.health_check())

        assert descriptors[0].status == HealthStatus.UNREACHABLE
        assert "timed out" in descriptors[0].last_error

    def test_probes_run_concurrently(self):
        backends = [FakeBackend(name=f"b{i}", probe_delay=0.2) for i in range(5)]
        pool = pool_of(*backends, probe_timeout=1.0)

        async def scenario():
            loop = asyncio.get_running_loop()
            started = loop.time()
            await pool.health_check()
            return loop.time() - started

        assert asyncio.run(scenario()) < 0.8

    def test_recovery_restores_healthy(self):
        backend = FakeBackend(name="a")
        pool = pool_of(backend)
        pool.report_failure("a", RuntimeError("boom"))

        asyncio.run(pool.health_check())

        descriptor = pool.get("a")
        assert descriptor.status == HealthStatus.HEALTHY
        assert descriptor.last_error is None

    def test_failure_during_health_check_kept(self):
        """A failure reported while a health check runs survives the swap."""
        backend = FakeBackend(name="a", probe_delay=0.1)
        pool = pool_of(backend)

        async def scenario():
            check = asyncio.create_task(pool.health_check())
            await asyncio.sleep(0.02)
            pool.report_failure("a", BackendUnavailableError("connection reset"))
            await check

        asyncio.run(scenario())

        descriptor = pool.get("a")
        assert descriptor.status == HealthStatus.DEGRADED
        assert descriptor.last_error == "[BackendUnavailable] connection reset"
        assert descriptor.last_checked is not None

        asyncio.run(pool.health_check())
        assert pool.get("a").status == HealthStatus.HEALTHY

    def test_select_during_health_check(self):
        """select() keeps answering from the old map while probes are in flight."""
        first = FakeBackend(name="first", probe_delay=0.1, probe_error=BackendUnavailableError("down"))
        second = FakeBackend(name="second", probe_delay=0.1)
        pool = pool_of(first, second)

        async def scenario():
            check = asyncio.create_task(pool.health_check())
            await asyncio.sleep(0.02)
            during = pool.select(Capability.CHAT)
            await check
            return during, pool.select(Capability.CHAT)

        during, after = asyncio.run(scenario())
        assert during is first
        assert after is second


class TestLifecycle:

    def test_start_runs_periodic_checks(self):
        backend = FakeBackend(name="a")
        pool = pool_of(backend)

        async def scenario():
            pool.start(interval=0.02)
            assert pool.running
            await asyncio.sleep(0.1)
            await pool.stop()
            return pool.running

        assert asyncio.run(scenario()) is False
        assert backend.probes >= 2

    def test_start_rejects_non_positive_interval(self):
        async def scenario():
            with pytest.raises(InvalidInputError):
                BackendPool().start(interval=0)

        asyncio.run(scenario())

    def test_stop_without_start(self):
        asyncio.run(BackendPool().stop())

    def test_aclose_closes_backends(self):
        backends = [FakeBackend(name="a"), FakeBackend(name="b")]
        pool = pool_of(*backends)

        async def scenario():
            pool.start(interval=10)
            await pool.aclose()

        asyncio.run(scenario())
        assert not pool.running
        assert all(b.closed for b in backends)
