import logging
import random
from dataclasses import dataclass
from typing import Tuple

from C8Errors import (
    ImageTooLarge,
    InvalidMemoryAccess,
    InvalidSpriteIndex,
    StackOverflow,
    StackUnderflow,
    UnknownOpcode,
)
from C8Input import normalize_keys

logger = logging.getLogger(__name__)

MEMORY_SIZE = 4096  # 4KB memory
START_ADDRESS = 0x200  # programs are loaded at 0x200
FONT_ADDRESS = 0x000
GLYPH_SIZE = 5
SCREEN_WIDTH = 64
SCREEN_HEIGHT = 32
STACK_SIZE = 16
REGISTER_COUNT = 16
TIMER_HZ = 60
MAX_PROGRAM_SIZE = MEMORY_SIZE - START_ADDRESS

FONTSET = (
    0xF0, 0x90, 0x90, 0x90, 0xF0,  # 0
    0x20, 0x60, 0x20, 0x20, 0x70,  # 1
    0xF0, 0x10, 0xF0, 0x80, 0xF0,  # 2
    0xF0, 0x10, 0xF0, 0x10, 0xF0,  # 3
    0x90, 0x90, 0xF0, 0x10, 0x10,  # 4
    0xF0, 0x80, 0xF0, 0x10, 0xF0,  # 5
    0xF0, 0x80, 0xF0, 0x90, 0xF0,  # 6
    0xF0, 0x10, 0x20, 0x40, 0x40,  # 7
    0xF0, 0x90, 0xF0, 0x90, 0xF0,  # 8
    0xF0, 0x90, 0xF0, 0x10, 0xF0,  # 9
    0xF0, 0x90, 0xF0, 0x90, 0x90,  # A
    0xE0, 0x90, 0xE0, 0x90, 0xE0,  # B
    0xF0, 0x80, 0x80, 0x80, 0xF0,  # C
    0xE0, 0x90, 0x90, 0x90, 0xE0,  # D
    0xF0, 0x80, 0xF0, 0x80, 0xF0,  # E
    0xF0, 0x80, 0xF0, 0x80, 0x80,  # F
)


@dataclass(frozen=True)
class StepReport:
    framebuffer_changed: bool = False
    beep_edge: bool = False


@dataclass(frozen=True)
class C8Snapshot:
    """Copy of the interpreter state taken for diagnostics."""

    memory: bytes
    V: Tuple[int, ...]
    I: int
    pc: int
    sp: int
    stack: Tuple[int, ...]
    delay_timer: int
    sound_timer: int

    def format(self, row_width=16):
        lines = [
            "PC: {:04X}  I: {:04X}  SP: {:2d}  DT: {:3d}  ST: {:3d}".format(
                self.pc, self.I, self.sp, self.delay_timer, self.sound_timer
            ),
            "V:  " + " ".join("{:02X}".format(v) for v in self.V),
            "Stack: " + " ".join("{:04X}".format(a) for a in self.stack[: self.sp]),
        ]
        for base in range(0, len(self.memory), row_width):
            row = self.memory[base : base + row_width]
            # all-zero rows only add noise to the dump
            if any(row):
                lines.append("{:03X}: {}".format(base, row.hex(" ")))
        return "\n".join(lines)


class C8Interpreter:

    def __init__(self, rng=None, realtime_timers=False):
        self.rng = rng if rng is not None else random.Random()
        self.realtime_timers = realtime_timers
        self.memory = [0] * MEMORY_SIZE
        self.V = [0] * REGISTER_COUNT  # registers
        self.I = 0  # index register
        self.pc = START_ADDRESS
        self.gfx = [0] * (SCREEN_WIDTH * SCREEN_HEIGHT)  # graphics
        self.delay_timer = 0  # max 255
        self.sound_timer = 0  # max 255
        self.stack = [0] * STACK_SIZE  # return addresses for subroutine calls
        self.sp = 0  # next free stack slot
        self._timer_credit = 0.0

        self._load_fontset()

    def _load_fontset(self):
        self.memory[FONT_ADDRESS : FONT_ADDRESS + len(FONTSET)] = FONTSET

    def load_program(self, data):
        if len(data) > MAX_PROGRAM_SIZE:
            raise ImageTooLarge(len(data), MAX_PROGRAM_SIZE)
        # raises ValueError for anything outside 0..255
        image = bytes(data)

        # load ROM into memory starting at 0x200, clearing what an earlier image left
        self.memory[START_ADDRESS:] = image + bytes(MAX_PROGRAM_SIZE - len(image))
        logger.info("ROM loaded (%d bytes)", len(data))

    @property
    def framebuffer(self):
        return tuple(self.gfx)

    def pixel(self, x, y):
        return self.gfx[(y % SCREEN_HEIGHT) * SCREEN_WIDTH + x % SCREEN_WIDTH]

    def skip_instruction(self):
        """Move past the word at pc without executing it."""
        self.pc += 2

    def snapshot(self):
        return C8Snapshot(
            memory=bytes(self.memory),
            V=tuple(self.V),
            I=self.I,
            pc=self.pc,
            sp=self.sp,
            stack=tuple(self.stack),
            delay_timer=self.delay_timer,
            sound_timer=self.sound_timer,
        )

    def step(self, keys, elapsed=None):
        """Execute one instruction and tick the timers.

        keys is the 16-entry input latch for this cycle. elapsed is the wall
        time in seconds since the previous step and is only used when the
        interpreter was built with realtime_timers=True.

        Raises an ExecError subclass if the instruction cannot execute; in
        that case no state has been changed.
        """
        keys = normalize_keys(keys)
        changed = self._execute(keys)
        beep = self._update_timers(elapsed)
        return StepReport(framebuffer_changed=changed, beep_edge=beep)

    def _check_range(self, address, length, pc):
        if address < 0 or address + length > MEMORY_SIZE:
            raise InvalidMemoryAccess(address, pc)

    def _execute(self, keys):
        # use local references for performance
        memory = self.memory
        V = self.V
        pc = self.pc
        I = self.I
        changed = False

        self._check_range(pc, 2, pc)
        opcode = (memory[pc] << 8) | memory[pc + 1]

        first_nibble = opcode & 0xF000
        x = (opcode & 0x0F00) >> 8
        y = (opcode & 0x00F0) >> 4
        nn = opcode & 0x00FF
        nnn = opcode & 0x0FFF

        if first_nibble == 0xD000:
            # opcode 0xDXYN
            # draw sprite at coordinate (VX, VY) with height N
            n = opcode & 0x000F
            self._check_range(I, n, pc)
            V[0xF] = self._draw_sprite(V[x], V[y], n, I)
            changed = True
            pc += 2

        elif first_nibble == 0x0000:

            if opcode == 0x00E0:
                # opcode 0x00E0
                # clear the display
                self.gfx = [0] * (SCREEN_WIDTH * SCREEN_HEIGHT)
                changed = True
                pc += 2
            elif opcode == 0x00EE:
                # opcode 0x00EE
                # return from subroutine
                if self.sp == 0:
                    raise StackUnderflow(pc)
                self.sp -= 1
                pc = self.stack[self.sp]
            else:
                raise UnknownOpcode(opcode, pc)

        elif first_nibble == 0x1000:
            # opcode 0x1NNN
            # jump to address NNN
            pc = nnn

        elif first_nibble == 0x2000:
            # opcode 0x2NNN
            # call subroutine at address NNN, return to the next instruction
            if self.sp == STACK_SIZE:
                raise StackOverflow(pc)
            self.stack[self.sp] = pc + 2
            self.sp += 1
            pc = nnn

        elif first_nibble == 0x3000:
            # opcode 0x3XNN
            # skip next instruction if VX == NN
            pc += 4 if V[x] == nn else 2

        elif first_nibble == 0x4000:
            # opcode 0x4XNN
            # skip next instruction if VX != NN
            pc += 4 if V[x] != nn else 2

        elif first_nibble == 0x5000:
            # opcode 0x5XY0
            # skip next instruction if VX == VY
            if opcode & 0x000F:
                raise UnknownOpcode(opcode, pc)
            pc += 4 if V[x] == V[y] else 2

        elif first_nibble == 0x6000:
            # opcode 0x6XNN
            # set register VX to NN
            V[x] = nn
            pc += 2

        elif first_nibble == 0x7000:
            # opcode 0x7XNN
            # add NN to register VX, no carry flag
            V[x] = (V[x] + nn) & 0xFF
            pc += 2

        elif first_nibble == 0x8000:
            self._execute_alu(opcode, x, y, pc)
            pc += 2

        elif first_nibble == 0x9000:
            # opcode 0x9XY0
            # skip next instruction if VX != VY
            if opcode & 0x000F:
                raise UnknownOpcode(opcode, pc)
            pc += 4 if V[x] != V[y] else 2

        elif first_nibble == 0xA000:
            # opcode 0xANNN
            # set index register I to NNN
            self.I = nnn
            pc += 2

        elif first_nibble == 0xB000:
            # opcode 0xBNNN
            # jump to address NNN + V0
            pc = nnn + V[0]

        elif first_nibble == 0xC000:
            # opcode 0xCXNN
            # set VX to random byte AND NN
            V[x] = self.rng.randint(0, 255) & nn
            pc += 2

        elif first_nibble == 0xE000:

            # keys past 0xF do not exist and read as released
            pressed = V[x] < len(keys) and keys[V[x]]

            if nn == 0x9E:
                # opcode 0xEX9E
                # skip next instruction if key with value VX is pressed
                pc += 4 if pressed else 2

            elif nn == 0xA1:
                # opcode 0xEXA1
                # skip next instruction if key with value VX is not pressed
                pc += 4 if not pressed else 2

            else:
                raise UnknownOpcode(opcode, pc)

        elif first_nibble == 0xF000:
            pc = self._execute_misc(opcode, x, nn, pc, keys)

        self.pc = pc
        return changed

    def _execute_alu(self, opcode, x, y, pc):
        V = self.V
        last_nibble = opcode & 0x000F

        if last_nibble == 0x0:
            # opcode 0x8XY0
            # set VX to VY
            V[x] = V[y]

        elif last_nibble == 0x1:
            # opcode 0x8XY1
            # set VX to VX OR VY
            V[x] |= V[y]

        elif last_nibble == 0x2:
            # opcode 0x8XY2
            # set VX to VX AND VY
            V[x] &= V[y]

        elif last_nibble == 0x3:
            # opcode 0x8XY3
            # set VX to VX XOR VY
            V[x] ^= V[y]

        elif last_nibble == 0x4:
            # opcode 0x8XY4
            # add VY to VX, set VF to 1 on carry, else 0
            total = V[x] + V[y]
            V[x] = total & 0xFF
            V[0xF] = 1 if total > 0xFF else 0

        elif last_nibble == 0x5:
            # opcode 0x8XY5
            # set VX to VX - VY, set VF to 1 on borrow, else 0
            borrow = V[x] < V[y]
            V[x] = (V[x] - V[y]) & 0xFF
            V[0xF] = 1 if borrow else 0

        elif last_nibble == 0x6:
            # opcode 0x8XY6
            # shift VX right, VF gets the bit shifted out
            flag = V[x] & 0x01
            V[x] >>= 1
            V[0xF] = flag

        elif last_nibble == 0x7:
            # opcode 0x8XY7
            # set VX to VY - VX, set VF to 1 on borrow, else 0
            borrow = V[y] < V[x]
            V[x] = (V[y] - V[x]) & 0xFF
            V[0xF] = 1 if borrow else 0

        elif last_nibble == 0xE:
            # opcode 0x8XYE
            # shift VX left, VF gets the bit shifted out
            flag = (V[x] >> 7) & 0x01
            V[x] = (V[x] << 1) & 0xFF
            V[0xF] = flag

        else:
            raise UnknownOpcode(opcode, pc)

    def _execute_misc(self, opcode, x, nn, pc, keys):
        memory = self.memory
        V = self.V
        I = self.I

        if nn == 0x07:
            # opcode 0xFX07
            # set VX to value of delay timer
            V[x] = self.delay_timer

        elif nn == 0x0A:
            # opcode 0xFX0A
            # wait for a key press, store the value in VX
            for i, down in enumerate(keys):
                if down:
                    V[x] = i
                    break
            else:
                # nothing pressed, fetch this instruction again next cycle
                return pc

        elif nn == 0x15:
            # opcode 0xFX15
            # set delay timer to VX
            self.delay_timer = V[x]

        elif nn == 0x18:
            # opcode 0xFX18
            # set sound timer to VX
            self.sound_timer = V[x]

        elif nn == 0x1E:
            # opcode 0xFX1E
            # add VX to I
            self.I = I + V[x]

        elif nn == 0x29:
            # opcode 0xFX29
            # set I to the location of the sprite for digit VX
            if V[x] > 0xF:
                raise InvalidSpriteIndex(V[x], pc)
            self.I = FONT_ADDRESS + V[x] * GLYPH_SIZE

        elif nn == 0x33:
            # opcode 0xFX33
            # store digits of VX in memory at addresses I, I+1, I+2
            self._check_range(I, 3, pc)
            memory[I : I + 3] = bcd(V[x])

        elif nn == 0x55:
            # opcode 0xFX55
            # store registers V0 to VX in memory starting at address I
            self._check_range(I, x + 1, pc)
            memory[I : I + x + 1] = V[: x + 1]

        elif nn == 0x65:
            # opcode 0xFX65
            # read registers V0 to VX from memory starting at address I
            self._check_range(I, x + 1, pc)
            V[: x + 1] = memory[I : I + x + 1]

        else:
            raise UnknownOpcode(opcode, pc)

        return pc + 2

    def _draw_sprite(self, x, y, n, I):
        """XOR an 8xN sprite from memory[I] onto the screen, wrapping on both axes.

        Returns 1 if any lit pixel was switched off, else 0.
        """
        gfx = self.gfx
        mem = self.memory

        collision = 0
        for row in range(n):
            sprite_byte = mem[I + row]
            if not sprite_byte:
                continue
            y_coord = ((y + row) % SCREEN_HEIGHT) * SCREEN_WIDTH

            for col in range(8):
                if (sprite_byte >> (7 - col)) & 1:
                    idx = y_coord + (x + col) % SCREEN_WIDTH
                    collision |= gfx[idx]
                    gfx[idx] ^= 1

        return collision

    def _update_timers(self, elapsed):
        if self.realtime_timers:
            if elapsed is None:
                raise ValueError("realtime timers need the elapsed time of each step")
            # a stalled host does not get to replay the missed ticks
            self._timer_credit = min(self._timer_credit + elapsed, 1 / TIMER_HZ)
            if self._timer_credit < 1 / TIMER_HZ:
                return False
            self._timer_credit -= 1 / TIMER_HZ

        if self.delay_timer > 0:
            self.delay_timer -= 1

        beep = False
        if self.sound_timer > 0:
            beep = self.sound_timer == 1
            self.sound_timer -= 1
        return beep


def bcd(value):
    """Hundreds, tens and ones digits of an 8-bit value."""
    return [value // 100, (value // 10) % 10, value % 10]
