import threading

KEY_COUNT = 16  # keypad with 16 keys


def normalize_keys(keys):
    """Return a 16-tuple of bools for a key latch, indexed by CHIP-8 key code."""
    snapshot = tuple(bool(k) for k in keys)
    if len(snapshot) != KEY_COUNT:
        raise ValueError(
            "Key latch must have {} entries, got {}".format(KEY_COUNT, len(snapshot))
        )
    return snapshot


class KeyMailbox:
    """Single-slot mailbox between an input reader and the interpreter.

    The reader may post at any time, from any thread. The interpreter side
    calls latest() once per cycle and always gets a complete snapshot; it
    never waits for the reader.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._keys = (False,) * KEY_COUNT
        self._pending = list(self._keys)

    def post(self, keys):
        snapshot = normalize_keys(keys)
        with self._lock:
            self._pending = list(snapshot)
            self._keys = snapshot

    def press(self, code):
        self._set(code, True)

    def release(self, code):
        self._set(code, False)

    def _set(self, code, pressed):
        if not 0 <= code < KEY_COUNT:
            raise ValueError("Not a CHIP-8 key: {}".format(code))
        with self._lock:
            self._pending[code] = pressed
            self._keys = tuple(self._pending)

    def latest(self):
        # tuple swap is atomic, no lock needed on the reading side
        return self._keys
