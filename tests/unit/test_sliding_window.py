import asyncio

import pytest

from bookgate.governor.window import SlidingWindowLimiter


class _FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


def _limiter(clock: _FakeClock, **kwargs: float) -> SlidingWindowLimiter:
    return SlidingWindowLimiter(clock=clock, sleep=clock.sleep, **kwargs)  # type: ignore[arg-type]


def test_admits_immediately_while_window_has_room() -> None:
    clock = _FakeClock()
    limiter = _limiter(clock, max_requests=3, window_s=60.0, safety_margin_s=1.0)

    async def run() -> list[float]:
        return [await limiter.acquire() for _ in range(3)]

    assert asyncio.run(run()) == [0.0, 0.0, 0.0]
    assert clock.sleeps == []
    assert limiter.remaining() == 0


def test_full_window_waits_until_oldest_call_expires() -> None:
    clock = _FakeClock()
    limiter = _limiter(clock, max_requests=2, window_s=1.0, safety_margin_s=0.0)

    async def run() -> float:
        await limiter.acquire()
        clock.now = 0.010
        await limiter.acquire()
        clock.now = 0.020
        return await limiter.acquire()

    waited = asyncio.run(run())

    assert waited == pytest.approx(0.98)
    assert clock.now == pytest.approx(1.0)
    assert limiter.in_window() == pytest.approx([0.010, 1.0])


def test_safety_margin_is_added_to_wait() -> None:
    clock = _FakeClock()
    limiter = _limiter(clock, max_requests=1, window_s=60.0, safety_margin_s=1.0)

    async def run() -> float:
        await limiter.acquire()
        clock.now = 10.0
        return await limiter.acquire()

    assert asyncio.run(run()) == pytest.approx(51.0)


def test_window_never_holds_more_than_max_requests() -> None:
    clock = _FakeClock()
    limiter = _limiter(clock, max_requests=3, window_s=5.0, safety_margin_s=0.5)
    admitted: list[float] = []

    async def run() -> None:
        for _ in range(10):
            await limiter.acquire()
            admitted.append(clock.now)
            clock.now += 0.1

    asyncio.run(run())

    for idx, start in enumerate(admitted):
        in_span = [ts for ts in admitted[idx:] if ts < start + 5.0]
        assert len(in_span) <= 3


def test_entries_older_than_window_are_pruned() -> None:
    clock = _FakeClock()
    limiter = _limiter(clock, max_requests=2, window_s=1.0, safety_margin_s=0.0)

    async def run() -> float:
        await limiter.acquire()
        await limiter.acquire()
        clock.now = 1.0
        return await limiter.acquire()

    assert asyncio.run(run()) == 0.0
    assert clock.sleeps == []


def test_concurrent_callers_are_admitted_in_arrival_order() -> None:
    clock = _FakeClock()
    limiter = _limiter(clock, max_requests=1, window_s=1.0, safety_margin_s=0.0)
    order: list[tuple[str, float]] = []

    async def caller(name: str) -> None:
        await limiter.acquire()
        order.append((name, clock.now))

    async def run() -> None:
        await asyncio.gather(caller("a"), caller("b"), caller("c"))

    asyncio.run(run())

    assert [name for name, _ in order] == ["a", "b", "c"]
    assert [at for _, at in order] == pytest.approx([0.0, 1.0, 2.0])


def test_cancelled_waiter_releases_the_limiter() -> None:
    blocked = asyncio.Event()

    async def never_wakes(_: float) -> None:
        blocked.set()
        await asyncio.Event().wait()

    limiter = SlidingWindowLimiter(
        max_requests=1, window_s=60.0, clock=lambda: 0.0, sleep=never_wakes
    )

    async def run() -> None:
        await limiter.acquire()
        waiter = asyncio.create_task(limiter.acquire())
        await blocked.wait()
        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter

    asyncio.run(run())

    assert not limiter._lock.locked()
    assert len(limiter.in_window()) == 1


def test_summary_reports_budget() -> None:
    clock = _FakeClock()
    limiter = SlidingWindowLimiter(
        max_requests=50, window_s=60.0, clock=clock, sleep=clock.sleep, name="shared"
    )
    asyncio.run(limiter.acquire())

    assert limiter.summary() == {
        "name": "shared",
        "max_requests": 50,
        "window_ms": 60000,
        "used": 1,
        "remaining": 49,
    }


@pytest.mark.parametrize("kwargs", [{"max_requests": 0}, {"window_s": 0.0}])
def test_invalid_configuration_is_rejected(kwargs: dict[str, float]) -> None:
    with pytest.raises(ValueError):
        SlidingWindowLimiter(**kwargs)  # type: ignore[arg-type]


class _ObservedClock(_FakeClock):
    """Reads the limiter budget while a caller is suspended in admission."""

    def __init__(self) -> None:
        super().__init__()
        self.limiter: SlidingWindowLimiter | None = None
        self.observed: list[dict[str, object]] = []

    async def sleep(self, seconds: float) -> None:
        assert self.limiter is not None
        self.observed.append(self.limiter.summary())
        await super().sleep(seconds)
        self.observed.append(self.limiter.summary())


def test_budget_reads_during_admission_wait_do_not_disturb_the_window() -> None:
    clock = _ObservedClock()
    limiter = _limiter(clock, max_requests=1, window_s=1.0, safety_margin_s=0.0)
    clock.limiter = limiter

    async def run() -> float:
        await limiter.acquire()
        return await limiter.acquire()

    assert asyncio.run(run()) == pytest.approx(1.0)
    assert limiter.in_window() == pytest.approx([1.0])
    assert [item["remaining"] for item in clock.observed] == [0, 1]


def test_budget_reads_never_free_a_slot_inside_the_window() -> None:
    clock = _ObservedClock()
    limiter = _limiter(clock, max_requests=2, window_s=1.0, safety_margin_s=0.0)
    clock.limiter = limiter

    async def run() -> float:
        await limiter.acquire()
        clock.now = 0.5
        await limiter.acquire()
        await limiter.acquire()
        assert clock.now == pytest.approx(1.0)
        assert limiter.in_window() == pytest.approx([0.5, 1.0])
        return await limiter.acquire()

    assert asyncio.run(run()) == pytest.approx(0.5)
    assert clock.now == pytest.approx(1.5)
