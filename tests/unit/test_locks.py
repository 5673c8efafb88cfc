"""Unit tests for AsyncReadWriteLock."""

import asyncio

from utils.locks import AsyncReadWriteLock


def test_readers_share():
    async def scenario():
        lock = AsyncReadWriteLock()
        peak = 0

        async def reader():
            nonlocal peak
            async with lock.read():
                peak = max(peak, lock.readers)
                await asyncio.sleep(0.01)

        await asyncio.gather(*(reader() for _ in range(5)))
        return peak, lock.readers

    peak, remaining = asyncio.run(scenario())
    assert peak == 5
    assert remaining == 0


def test_writer_excludes_readers():
    async def scenario():
        lock = AsyncReadWriteLock()
        events = []

        async def writer():
            async with lock.write():
                events.append("write-start")
                await asyncio.sleep(0.02)
                events.append("write-end")

        async def reader():
            await asyncio.sleep(0.005)
            async with lock.read():
                events.append("read")

        await asyncio.gather(writer(), reader())
        return events

    assert asyncio.run(scenario()) == ["write-start", "write-end", "read"]


def test_waiting_writer_blocks_new_readers():
    async def scenario():
        lock = AsyncReadWriteLock()
        events = []

        async def first_reader():
            async with lock.read():
                await asyncio.sleep(0.03)
                events.append("first-read-end")

        async def writer():
            await asyncio.sleep(0.005)
            async with lock.write():
                events.append("write")

        async def late_reader():
            await asyncio.sleep(0.01)
            async with lock.read():
                events.append("late-read")

        await asyncio.gather(first_reader(), writer(), late_reader())
        return events

    assert asyncio.run(scenario()) == ["first-read-end", "write", "late-read"]


def test_cancelled_writer_releases_readers():
    async def scenario():
        lock = AsyncReadWriteLock()

        async with lock.read():
            pending_writer = asyncio.create_task(_hold_write(lock))
            await asyncio.sleep(0.01)
            pending_writer.cancel()
            await asyncio.gather(pending_writer, return_exceptions=True)

        async with lock.read():
            return lock.writing, lock.readers

    assert asyncio.run(scenario()) == (False, 1)


async def _hold_write(lock):
    async with lock.write():
        pass
