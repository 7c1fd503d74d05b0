"""Exception hierarchy for static analysis and job handoff."""


class EstimatorError(Exception):
    """Base class for every error raised by this package."""


class BinaryReadError(EstimatorError):
    """A binary or disassembly file could not be read."""

    def __init__(self, path, cause: OSError):
        super().__init__(f"Cannot read {path}: {cause}")
        self.path = str(path)
        self.cause = cause


class ParseError(EstimatorError):
    """A declaration was found but its contents could not be parsed.

    Aborts the analysis of the whole binary.
    """


class UnsupportedBinaryError(EstimatorError):
    """The binary is not a core WebAssembly module (e.g. a component)."""


class DescriptorError(EstimatorError):
    """A task descriptor file or payload is malformed."""


class ScratchCollisionError(DescriptorError):
    """A scratch descriptor for the same task_id already exists."""


class EngineError(EstimatorError):
    """The execution engine could not load or call the job's function."""


class DisassemblerUnavailableError(EstimatorError):
    """No external disassembler is installed."""
