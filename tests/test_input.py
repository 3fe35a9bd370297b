"""
Input latch tests: snapshot normalization and the single-slot mailbox.
"""
import threading

import pytest

from C8Input import KEY_COUNT, KeyMailbox, normalize_keys


class TestNormalizeKeys:

    def test_truthy_values_become_bools(self):
        keys = normalize_keys([0, 1] * 8)
        assert keys == (False, True) * 8
        assert isinstance(keys, tuple)

    @pytest.mark.parametrize("size", [0, 15, 17])
    def test_wrong_length(self, size):
        with pytest.raises(ValueError):
            normalize_keys([False] * size)


class TestKeyMailbox:

    def test_starts_released(self):
        assert KeyMailbox().latest() == (False,) * KEY_COUNT

    def test_post_replaces_snapshot(self):
        box = KeyMailbox()
        box.post([True] * 16)
        box.post([False] * 15 + [True])
        assert box.latest() == (False,) * 15 + (True,)

    def test_press_and_release(self):
        box = KeyMailbox()
        box.press(0xA)
        box.press(0x3)
        box.release(0xA)
        latest = box.latest()
        assert latest[0x3] and not latest[0xA]
        assert sum(latest) == 1

    def test_press_after_post_keeps_posted_keys(self):
        box = KeyMailbox()
        box.post([True] + [False] * 15)
        box.press(1)
        assert box.latest()[:2] == (True, True)

    def test_bad_key_code(self):
        with pytest.raises(ValueError):
            KeyMailbox().press(16)

    def test_snapshot_is_not_affected_by_later_posts(self):
        box = KeyMailbox()
        box.press(2)
        seen = box.latest()
        box.release(2)
        assert seen[2]
        assert not box.latest()[2]

    def test_reader_never_sees_torn_snapshot(self):
        """Producer alternates all-down / all-up; consumer only sees those two."""
        box = KeyMailbox()
        stop = threading.Event()

        def producer():
            down = True
            while not stop.is_set():
                box.post([down] * 16)
                down = not down

        t = threading.Thread(target=producer)
        t.start()
        try:
            for _ in range(2000):
                assert len(set(box.latest())) == 1
        finally:
            stop.set()
            t.join()
