class Chip8Error(Exception):
    pass


class LoadError(Chip8Error):
    """Raised when a program image cannot be put into memory."""


class ImageTooLarge(LoadError, ValueError):

    def __init__(self, size, limit):
        self.size = size
        self.limit = limit
        super().__init__(
            "ROM too large to fit in memory ({} bytes, limit {})".format(size, limit)
        )


class RomIoError(LoadError):

    def __init__(self, path, reason):
        self.path = path
        super().__init__("Cannot read ROM {}: {}".format(path, reason))


class ExecError(Chip8Error):
    """Raised by a cycle that cannot execute.

    pc is the address of the faulting instruction. The interpreter state is
    left as it was before the cycle started.
    """

    def __init__(self, message, pc):
        self.pc = pc
        super().__init__("{} at PC {:03X}".format(message, pc))


class UnknownOpcode(ExecError):

    def __init__(self, opcode, pc):
        self.opcode = opcode
        super().__init__("Unknown opcode: {:04X}".format(opcode), pc)


class StackOverflow(ExecError):

    def __init__(self, pc):
        super().__init__("Stack overflow on CALL", pc)


class StackUnderflow(ExecError):

    def __init__(self, pc):
        super().__init__("Stack underflow on RET", pc)


class InvalidSpriteIndex(ExecError):

    def __init__(self, value, pc):
        self.value = value
        super().__init__("No font glyph for value {:02X}".format(value), pc)


class InvalidMemoryAccess(ExecError):

    def __init__(self, address, pc):
        self.address = address
        super().__init__("Memory access out of range: {:04X}".format(address), pc)
