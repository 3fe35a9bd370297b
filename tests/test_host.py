"""
Host-side tests: ROM reading, the per-frame cycle loop and CLI parsing.
No window is opened.
"""
import logging

import pytest

from C8Errors import RomIoError, StackUnderflow, UnknownOpcode
from C8Interpreter import C8Interpreter
from main import FRAME_TIME_TARGET, FramePacer, parse_args, read_rom, run_frame

NO_KEYS = (False,) * 16


def interpreter_with(data):
    interp = C8Interpreter()
    interp.load_program(data)
    return interp


class TestReadRom:

    def test_reads_bytes(self, tmp_path):
        rom = tmp_path / "pong.ch8"
        rom.write_bytes(b"\x00\xe0\x12\x00")
        assert read_rom(str(rom)) == b"\x00\xe0\x12\x00"

    def test_missing_file(self, tmp_path):
        missing = tmp_path / "nope.ch8"
        with pytest.raises(RomIoError) as excinfo:
            read_rom(str(missing))
        assert excinfo.value.path == str(missing)
        assert isinstance(excinfo.value.__cause__, OSError)


class TestRunFrame:

    def test_runs_requested_cycles(self):
        interp = interpreter_with(bytes([0x70, 0x01]) * 5)
        redraw = run_frame(interp, NO_KEYS, 3, skip_unknown=False)
        assert interp.V[0] == 3
        assert interp.pc == 0x206
        assert not redraw

    def test_reports_redraw(self):
        interp = interpreter_with(bytes([0x60, 0x00, 0x00, 0xE0, 0x60, 0x00]))
        assert run_frame(interp, NO_KEYS, 3, skip_unknown=False)

    def test_unknown_opcode_halts(self):
        interp = interpreter_with(bytes([0x01, 0x23]))
        with pytest.raises(UnknownOpcode):
            run_frame(interp, NO_KEYS, 1, skip_unknown=False)

    def test_unknown_opcode_skipped(self, caplog):
        interp = interpreter_with(bytes([0x01, 0x23, 0x61, 0x42]))
        with caplog.at_level(logging.WARNING):
            run_frame(interp, NO_KEYS, 2, skip_unknown=True)
        assert interp.V[1] == 0x42
        assert "0123" in caplog.text

    def test_other_errors_are_not_skipped(self):
        interp = interpreter_with(bytes([0x00, 0xEE]))
        with pytest.raises(StackUnderflow):
            run_frame(interp, NO_KEYS, 1, skip_unknown=True)

    def test_elapsed_is_spread_over_cycles(self):
        interp = C8Interpreter(realtime_timers=True)
        interp.load_program(bytes([0x61, 0x05, 0xF1, 0x15]) + bytes([0x12, 0x04]))
        run_frame(interp, NO_KEYS, 2, skip_unknown=False, elapsed=0.0)
        assert interp.delay_timer == 5
        run_frame(interp, NO_KEYS, 10, skip_unknown=False, elapsed=1.5 / 60)
        assert interp.delay_timer == 4


class TestFramePacer:

    def test_first_frame_covers_one_frame(self):
        """Before any frame has run, elapsed is a single frame, not two."""
        assert FramePacer().elapsed == FRAME_TIME_TARGET

    def test_short_frame_sleeps_the_rest(self):
        now = [10.0]
        slept = []
        pacer = FramePacer(clock=lambda: now[0], sleep=slept.append)
        pacer.start()
        now[0] += 0.004
        pacer.finish()
        assert slept == [pytest.approx(FRAME_TIME_TARGET - 0.004)]
        assert pacer.elapsed == pytest.approx(FRAME_TIME_TARGET)

    def test_slow_frame_does_not_sleep(self):
        now = [0.0]
        slept = []
        pacer = FramePacer(clock=lambda: now[0], sleep=slept.append)
        pacer.start()
        now[0] += 0.1
        pacer.finish()
        assert slept == []
        assert pacer.elapsed == pytest.approx(0.1)


class TestParseArgs:

    def test_defaults(self):
        args = parse_args(["game.ch8"])
        assert args.rom == "game.ch8"
        assert args.ipf == 11
        assert not args.skip_unknown
        assert not args.realtime_timers

    def test_rejects_zero_ipf(self):
        with pytest.raises(SystemExit):
            parse_args(["game.ch8", "--ipf", "0"])
