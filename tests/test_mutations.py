import asyncio

import pytest

from unilink.errors import ConflictError, RemoteCallError
from unilink.mutations import Mutation, MutationCoordinator, NoticeBoard


class Counter:
    """Tiny piece of local state to mutate optimistically."""

    def __init__(self, value=0):
        self.value = value

    def bump(self, delta):
        def apply():
            before = self.value
            self.value = max(0, self.value + delta)

            def undo():
                self.value = before

            return undo

        return apply


async def test_local_change_is_visible_before_remote_runs():
    state = Counter(5)
    seen = []

    async def remote():
        seen.append(state.value)
        return "ok"

    result = await MutationCoordinator().run(Mutation(key="k", apply=state.bump(1), remote=remote))

    assert seen == [6]
    assert result.ok and result.value == "ok"


async def test_failure_reverts_and_posts_notice():
    notices = NoticeBoard()
    state = Counter(5)

    async def remote():
        raise RemoteCallError("offline")

    result = await MutationCoordinator(notices).run(
        Mutation(key="k", apply=state.bump(1), remote=remote, label="like this post"))

    assert state.value == 5
    assert not result.ok
    assert isinstance(result.error, RemoteCallError)
    assert [n.message for n in notices.items] == ["Could not like this post. Please try again."]


async def test_conflict_uses_its_own_message():
    notices = NoticeBoard()

    async def remote():
        raise ConflictError("duplicate")

    await MutationCoordinator(notices).run(Mutation(
        key="k", apply=Counter().bump(1), remote=remote, conflict_message="Already done."))

    assert notices.items[0].message == "Already done."
    assert notices.items[0].level == "warning"


async def test_same_key_runs_remote_in_issue_order():
    coordinator = MutationCoordinator()
    order = []
    first_gate = asyncio.Event()

    async def first():
        await first_gate.wait()
        order.append("first")

    async def second():
        order.append("second")

    t1 = asyncio.create_task(coordinator.run(Mutation(key="post-1", apply=Counter().bump(1), remote=first)))
    t2 = asyncio.create_task(coordinator.run(Mutation(key="post-1", apply=Counter().bump(1), remote=second)))
    await asyncio.sleep(0.01)
    assert order == []
    assert coordinator.in_flight("post-1") == 2

    first_gate.set()
    await asyncio.gather(t1, t2)
    assert order == ["first", "second"]
    assert coordinator.in_flight("post-1") == 0


async def test_different_keys_do_not_wait_for_each_other():
    coordinator = MutationCoordinator()
    gate = asyncio.Event()
    done = []

    async def slow():
        await gate.wait()

    async def fast():
        done.append("fast")

    slow_task = asyncio.create_task(coordinator.run(Mutation(key="a", apply=Counter().bump(1), remote=slow)))
    await coordinator.run(Mutation(key="b", apply=Counter().bump(1), remote=fast))

    assert done == ["fast"]
    assert not slow_task.done()
    gate.set()
    await slow_task


async def test_only_latest_intent_is_confirmed():
    coordinator = MutationCoordinator()
    state = Counter(0)
    confirmed = []
    gate = asyncio.Event()

    async def remote_one():
        await gate.wait()
        return 1

    async def remote_two():
        return 2

    t1 = asyncio.create_task(coordinator.run(Mutation(
        key="k", apply=state.bump(1), remote=remote_one, confirm=confirmed.append)))
    await asyncio.sleep(0)
    t2 = asyncio.create_task(coordinator.run(Mutation(
        key="k", apply=state.bump(1), remote=remote_two, confirm=confirmed.append)))
    gate.set()
    first, second = await asyncio.gather(t1, t2)

    assert first.superseded and first.ok
    assert not second.superseded
    assert confirmed == [2]


async def test_superseded_failure_resyncs_instead_of_undoing():
    resynced = []
    state = Counter(5)

    async def resync(key):
        resynced.append((key, state.value))

    coordinator = MutationCoordinator(resync=resync)
    gate = asyncio.Event()

    async def failing():
        await gate.wait()
        raise RemoteCallError("offline")

    async def succeeding():
        return "ok"

    t1 = asyncio.create_task(coordinator.run(Mutation(key="k", apply=state.bump(1), remote=failing)))
    await asyncio.sleep(0)
    t2 = asyncio.create_task(coordinator.run(Mutation(key="k", apply=state.bump(-1), remote=succeeding)))
    gate.set()
    first, second = await asyncio.gather(t1, t2)

    assert not first.ok and first.superseded
    assert second.ok
    # The newer local intent stays on screen; the entity is re-read afterwards.
    assert state.value == 5
    assert resynced == [("k", 5)]


async def test_finished_keys_are_forgotten():
    resynced = []

    async def resync(key):
        resynced.append(key)

    coordinator = MutationCoordinator(resync=resync)
    state = Counter(0)
    gate = asyncio.Event()

    async def succeeding():
        return "ok"

    async def failing():
        await gate.wait()
        raise RemoteCallError("offline")

    for i in range(3):
        await coordinator.run(Mutation(key=("messages", f"temp-{i}"), apply=state.bump(1), remote=succeeding))
    assert coordinator.tracked_keys == []

    t1 = asyncio.create_task(coordinator.run(Mutation(key="k", apply=state.bump(1), remote=failing)))
    await asyncio.sleep(0)
    t2 = asyncio.create_task(coordinator.run(Mutation(key="k", apply=state.bump(1), remote=succeeding)))
    await asyncio.sleep(0)
    assert coordinator.tracked_keys == ["k"]
    gate.set()
    await asyncio.gather(t1, t2)

    assert resynced == ["k"]
    assert coordinator.tracked_keys == []
    assert coordinator.in_flight("k") == 0


async def test_superseded_failure_without_resync_undoes():
    coordinator = MutationCoordinator()
    state = Counter(0)
    gate = asyncio.Event()

    async def failing():
        await gate.wait()
        raise RemoteCallError("offline")

    async def succeeding():
        return None

    t1 = asyncio.create_task(coordinator.run(Mutation(key="k", apply=state.bump(10), remote=failing)))
    await asyncio.sleep(0)
    t2 = asyncio.create_task(coordinator.run(Mutation(key="k", apply=state.bump(1), remote=succeeding)))
    gate.set()
    await asyncio.gather(t1, t2)

    assert state.value == 0


async def test_settle_and_discard_always_run():
    coordinator = MutationCoordinator()
    settled, discarded = [], []

    async def ok():
        return "stored"

    async def broken():
        raise RemoteCallError("offline")

    await coordinator.run(Mutation(key="k", apply=Counter().bump(1), remote=ok,
                                   settle=settled.append, discard=lambda: discarded.append("x")))
    await coordinator.run(Mutation(key="k", apply=Counter().bump(1), remote=broken,
                                   settle=settled.append, discard=lambda: discarded.append("y")))

    assert settled == ["stored"]
    assert discarded == ["y"]


async def test_non_unilink_errors_propagate():
    async def remote():
        raise KeyError("bug")

    with pytest.raises(KeyError):
        await MutationCoordinator().run(Mutation(key="k", apply=Counter().bump(1), remote=remote))


def test_notice_board_listeners_and_drain():
    board = NoticeBoard()
    heard = []
    unsubscribe = board.subscribe(lambda notice: heard.append(notice.message))

    board.post("one")
    unsubscribe()
    board.post("two", level="warning")

    assert heard == ["one"]
    assert [n.message for n in board.drain()] == ["one", "two"]
    assert board.items == []
