import asyncio

import pytest

from catalog_etl.scheduler import BoundedTaskGroup


def test_never_exceeds_limit_and_waits_for_all():
    active = 0
    peak = 0

    async def work(i):
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.01)
        active -= 1
        return i * 2

    async def main():
        group = BoundedTaskGroup(3, name="fetch")
        for i in range(10):
            group.submit(i, lambda i=i: work(i))
        return group, await group.join()

    group, outcomes = asyncio.run(main())

    assert peak == 3
    assert group.peak_active == 3
    assert sorted(o.result for o in outcomes) == [i * 2 for i in range(10)]
    assert all(o.ok for o in outcomes)


def test_failures_are_captured_not_raised():
    finished = []

    async def work(i):
        await asyncio.sleep(0)
        if i % 2:
            raise ValueError(f"task {i} broke")
        finished.append(i)
        return i

    async def main():
        group = BoundedTaskGroup(2)
        for i in range(6):
            group.submit(f"cat-{i}", lambda i=i: work(i))
        return await group.join()

    outcomes = asyncio.run(main())

    failed = {o.key: o.error for o in outcomes if not o.ok}
    assert set(failed) == {"cat-1", "cat-3", "cat-5"}
    assert all(isinstance(err, ValueError) for err in failed.values())
    assert sorted(finished) == [0, 2, 4]


def test_permit_is_released_when_a_task_fails():
    async def boom():
        raise RuntimeError("boom")

    async def fine():
        return "ok"

    async def main():
        group = BoundedTaskGroup(1)
        group.submit("first", boom)
        group.submit("second", fine)
        group.submit("third", fine)
        return await asyncio.wait_for(group.join(), timeout=5)

    outcomes = asyncio.run(main())

    assert [o.key for o in outcomes] == ["first", "second", "third"]
    assert [o.result for o in outcomes] == [None, "ok", "ok"]


def test_join_with_nothing_submitted():
    async def main():
        return await BoundedTaskGroup(3).join()

    assert asyncio.run(main()) == []


def test_limit_must_be_positive():
    with pytest.raises(ValueError):
        BoundedTaskGroup(0)
