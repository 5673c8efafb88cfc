# services/backend_pool.py
"""Named completion backends, their health, and selection policy"""
import asyncio
import logging
from dataclasses import replace
from typing import Dict, List, Optional

from core.domain import BackendDescriptor, Capability, HealthStatus
from core.exceptions import BackendUnavailableError, InvalidInputError, NoHealthyBackendError
from core.interfaces import ICompletionBackend
from config import settings
from utils.common import utc_now

logger = logging.getLogger(settings.LOGGER_NAME)

class BackendPool:
    """
    Registration-ordered set of backends with health state.

    select() is synchronous and never waits: it reads the current descriptor
    map, which is only ever replaced wholesale. health_check() probes without
    holding any lock and takes the pool lock just for the swap.

    Only HEALTHY backends are selected. A failed call marks its backend
    DEGRADED, which takes it out of rotation until a health check restores it.
    """

    def __init__(self, probe_timeout: float = settings.HEALTH_CHECK_TIMEOUT):
        self._backends: Dict[str, ICompletionBackend] = {}
        self._descriptors: Dict[str, BackendDescriptor] = {}
        self._probe_timeout = probe_timeout
        self._lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None

    # ---------- Registration & lookup ----------

    def register(self, backend: ICompletionBackend) -> BackendDescriptor:
        if not backend.name:
            raise InvalidInputError("Backend name must not be empty")
        if backend.name in self._backends:
            raise InvalidInputError(f"Backend '{backend.name}' is already registered")

        descriptor = BackendDescriptor(
            name=backend.name,
            model=backend.model,
            capabilities=frozenset(backend.capabilities),
        )
        self._backends[backend.name] = backend
        self._descriptors = {**self._descriptors, backend.name: descriptor}
        logger.info(
            f"[POOL] Registered backend '{backend.name}' "
            f"(model={backend.model}, capabilities={sorted(c.value for c in backend.capabilities)})"
        )
        return descriptor

    def descriptors(self) -> List[BackendDescriptor]:
        """Current descriptors in registration order."""
        return list(self._descriptors.values())

    def get(self, name: str) -> Optional[BackendDescriptor]:
        return self._descriptors.get(name)

    def select(self, capability: Capability) -> ICompletionBackend:
        """First healthy backend with the capability, in registration order."""
        for descriptor in self._descriptors.values():
            if descriptor.supports(capability) and descriptor.status == HealthStatus.HEALTHY:
                return self._backends[descriptor.name]
        raise NoHealthyBackendError(capability.value)

    # ---------- Feedback ----------

    def report_failure(self, name: str, error: Exception) -> None:
        """Called by users of a selected backend when an actual call failed."""
        descriptor = self._descriptors.get(name)
        if descriptor is None:
            return
        if descriptor.status == HealthStatus.HEALTHY:
            logger.warning(f"[POOL] Marking '{name}' degraded after failure: {error}")
        self._descriptors = {
            **self._descriptors,
            name: replace(descriptor, status=HealthStatus.DEGRADED, last_error=str(error)),
        }

    # ---------- Health checks ----------

    async def health_check(self) -> List[BackendDescriptor]:
        """Probe every backend concurrently and swap in the new descriptors."""
        names = list(self._backends)
        before = self._descriptors
        outcomes = await asyncio.gather(*(self._probe(name) for name in names))
        checked_at = utc_now()

        async with self._lock:
            updated = dict(self._descriptors)
            for name, (status, error) in zip(names, outcomes):
                previous = updated[name]
                if previous is not before[name] and status == HealthStatus.HEALTHY:
                    # a call failed after this check started; the failure is the newer state
                    logger.info(f"[POOL] '{name}' failed during health check, keeping it degraded")
                    updated[name] = replace(previous, last_checked=checked_at)
                    continue
                if previous.status != status:
                    logger.info(f"[POOL] '{name}' {previous.status.value} -> {status.value}")
                updated[name] = replace(previous, status=status, last_checked=checked_at, last_error=error)
            self._descriptors = updated

        return self.descriptors()

    async def _probe(self, name: str):
        backend = self._backends[name]
        try:
            status = await asyncio.wait_for(backend.probe(), timeout=self._probe_timeout)
            return HealthStatus(status), None
        except asyncio.TimeoutError:
            return HealthStatus.UNREACHABLE, f"probe timed out after {self._probe_timeout:g}s"
        except BackendUnavailableError as e:
            return HealthStatus.UNREACHABLE, e.message
        except Exception as e:
            logger.error(f"[POOL] Probe of '{name}' raised {type(e).__name__}: {e}", exc_info=True)
            return HealthStatus.UNREACHABLE, f"{type(e).__name__}: {e}"

    # ---------- Periodic task ----------

    def start(self, interval: float = settings.HEALTH_CHECK_INTERVAL) -> None:
        """Run health_check every `interval` seconds on a background task."""
        if interval <= 0:
            raise InvalidInputError("Health-check interval must be positive")
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.create_task(self._run(interval), name="backend-pool-health")
        logger.info(f"[POOL] Health checks every {interval:g}s")

    async def _run(self, interval: float) -> None:
        while True:
            try:
                await self.health_check()
            except Exception:
                logger.exception("[POOL] Health check cycle failed")
            await asyncio.sleep(interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def aclose(self) -> None:
        """Stop health checks and close every backend client."""
        await self.stop()
        for backend in self._backends.values():
            await backend.aclose()
