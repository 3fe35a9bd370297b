import argparse
import logging
import sys
import time

import pygame
from cpuinfo import get_cpu_info

from C8Errors import ExecError, LoadError, RomIoError, UnknownOpcode
from C8Input import KeyMailbox
from C8Interpreter import SCREEN_HEIGHT, SCREEN_WIDTH, C8Interpreter

logger = logging.getLogger(__name__)

FPS_TARGET = 60
FRAME_TIME_TARGET = 1 / FPS_TARGET

# key mapping for Chip-8 keys
KEYMAP = {
    pygame.K_1: 0x1,
    pygame.K_2: 0x2,
    pygame.K_3: 0x3,
    pygame.K_4: 0xC,
    pygame.K_q: 0x4,
    pygame.K_w: 0x5,
    pygame.K_e: 0x6,
    pygame.K_r: 0xD,
    pygame.K_a: 0x7,
    pygame.K_s: 0x8,
    pygame.K_d: 0x9,
    pygame.K_f: 0xE,
    pygame.K_z: 0xA,
    pygame.K_x: 0x0,
    pygame.K_c: 0xB,
    pygame.K_v: 0xF,
}


def read_rom(path):
    try:
        with open(path, "rb") as f:
            return f.read()
    except OSError as e:
        raise RomIoError(path, e.strerror or e) from e


class Frontend:
    """pygame window and keyboard around an interpreter."""

    def __init__(self, scale):
        self.running = True
        self.scale = scale
        self.keys = KeyMailbox()

        pygame.init()
        self.screen = pygame.display.set_mode((SCREEN_WIDTH * scale, SCREEN_HEIGHT * scale))

    def close(self):
        pygame.quit()

    def handle_input(self):
        for event in pygame.event.get():
            if event.type == pygame.QUIT:
                self.running = False
            elif event.type in (pygame.KEYDOWN, pygame.KEYUP):
                if event.key == pygame.K_ESCAPE:
                    self.running = False
                elif event.key in KEYMAP:
                    if event.type == pygame.KEYDOWN:
                        self.keys.press(KEYMAP[event.key])
                    else:
                        self.keys.release(KEYMAP[event.key])

    def draw(self, gfx):
        scale = self.scale
        screen = self.screen
        square_color = (255, 165, 0)  # orange

        # clear screen
        screen.fill((0, 0, 0))

        for y in range(SCREEN_HEIGHT):
            row_base = y * SCREEN_WIDTH
            py = y * scale
            for x in range(SCREEN_WIDTH):
                if gfx[row_base + x]:
                    screen.fill(square_color, (x * scale, py, scale, scale))

        pygame.display.flip()

    def set_caption(self, text):
        pygame.display.set_caption(text)


class FramePacer:
    """Holds each frame to FRAME_TIME_TARGET and measures the real frame length."""

    def __init__(self, clock=time.time, sleep=time.sleep):
        self.clock = clock
        self.sleep = sleep
        self.frame_time = FRAME_TIME_TARGET
        self.sleep_time = 0
        self.start_time = None

    @property
    def elapsed(self):
        """Wall time covered by the previous frame."""
        return self.frame_time + self.sleep_time

    def start(self):
        self.start_time = self.clock()

    def finish(self):
        self.frame_time = self.clock() - self.start_time
        self.sleep_time = max(0, FRAME_TIME_TARGET - self.frame_time)
        if self.sleep_time > 0:
            self.sleep(self.sleep_time)


def run_frame(interpreter, keys, instructions, skip_unknown, elapsed=None):
    """Run one frame worth of cycles. Returns True if the screen needs a redraw."""
    redraw = False
    per_step = None if elapsed is None else elapsed / instructions

    for _ in range(instructions):
        try:
            report = interpreter.step(keys, per_step)
        except UnknownOpcode as e:
            if not skip_unknown:
                raise
            logger.warning("%s, skipping", e)
            interpreter.skip_instruction()
            continue

        redraw |= report.framebuffer_changed
        if report.beep_edge:
            logger.debug("beep")

    return redraw


def main(args, system_info):
    rom = read_rom(args.rom)
    interpreter = C8Interpreter(realtime_timers=args.realtime_timers)
    interpreter.load_program(rom)

    frontend = Frontend(args.scale)
    pacer = FramePacer()
    system_info = system_info + " | IPF: {}".format(args.ipf)
    last_title_update = time.time()

    try:
        while frontend.running:
            pacer.start()

            frontend.handle_input()
            elapsed = pacer.elapsed if args.realtime_timers else None

            try:
                redraw = run_frame(
                    interpreter, frontend.keys.latest(), args.ipf, args.skip_unknown, elapsed
                )
            except ExecError as e:
                logger.error("%s\n%s", e, interpreter.snapshot().format())
                return 1

            if redraw:
                frontend.draw(interpreter.gfx)

            pacer.finish()

            current_time = time.time()
            if current_time - last_title_update >= 2.0:
                real_fps = 1 / pacer.elapsed
                frontend.set_caption(
                    "{} | FPS: {:.2f} | MIPS: {:.2f}".format(
                        system_info,
                        real_fps,
                        (args.ipf * real_fps) / 1000000,
                    )
                )
                last_title_update = current_time
    finally:
        frontend.close()

    return 0


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="CHIP-8 interpreter")
    parser.add_argument("rom", help="Path to CHIP-8 ROM")
    parser.add_argument("--scale", type=int, default=24, help="Pixel scale factor (default 24)")
    parser.add_argument(
        "--ipf", type=int, default=11, help="Instructions per frame (default 11)"
    )
    parser.add_argument(
        "--skip-unknown",
        action="store_true",
        help="Step over unknown opcodes instead of halting",
    )
    parser.add_argument(
        "--realtime-timers",
        action="store_true",
        help="Tick timers at 60 Hz wall time instead of once per instruction",
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level (default INFO)")
    args = parser.parse_args(argv)
    if args.ipf < 1 or args.scale < 1:
        parser.error("--ipf and --scale must be positive")
    return args


if __name__ == "__main__":
    args = parse_args()
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    system_info = "Python: {} | CPU: {}".format(
        sys.version.split()[0],
        get_cpu_info().get("brand_raw", "Unknown CPU"),
    )

    try:
        sys.exit(main(args, system_info))
    except LoadError as e:
        logger.error("%s", e)
        sys.exit(1)
