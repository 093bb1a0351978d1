import threading

import pytest

from ugc_eval.locks import KeyedLock


def test_hold_releases_entry():
    locks = KeyedLock()

    with locks.hold("sub-1"):
        assert locks.is_locked("sub-1")
        assert not locks.is_locked("sub-2")

    assert not locks.is_locked("sub-1")
    assert len(locks) == 0


def test_empty_key_rejected():
    with pytest.raises(ValueError):
        with KeyedLock().hold(""):
            pass


def test_same_key_is_serialised():
    locks = KeyedLock()
    entered = threading.Event()
    order = []

    def worker():
        entered.set()
        with locks.hold("sub-1"):
            order.append("worker")

    with locks.hold("sub-1"):
        thread = threading.Thread(target=worker)
        thread.start()
        entered.wait(timeout=1)
        order.append("main")
    thread.join(timeout=1)

    assert order == ["main", "worker"]
    assert len(locks) == 0
