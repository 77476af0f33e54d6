class BreakerError(Exception):
    """Base class for every error raised by subbreaker."""


class AlphabetError(BreakerError, ValueError):
    pass


class InvalidKeyError(BreakerError, ValueError):
    pass


class CorpusTooShort(BreakerError, ValueError):
    pass


class ModelFileError(BreakerError):
    pass


class InputIOError(BreakerError):
    pass
