class UnityPackError(RuntimeError):
    """Base class for every failure surfaced by the reader.

    ``kind`` names the failure class independently of the Python type, it is what the
    command line driver prints in front of the message.
    """

    kind: str = 'Error'


class BundleIOError(UnityPackError):
    kind = 'Io'


class UnsupportedFormatError(UnityPackError):
    kind = 'UnsupportedFormat'


class TruncatedError(UnityPackError):
    kind = 'Truncated'


class CorruptStreamError(UnityPackError):
    kind = 'CorruptStream'


class BadHandleError(UnityPackError):
    kind = 'BadHandle'


class OutOfRangeError(BadHandleError):
    kind = 'OutOfRange'


__all__ = [
    'UnityPackError',
    'BundleIOError',
    'UnsupportedFormatError',
    'TruncatedError',
    'CorruptStreamError',
    'BadHandleError',
    'OutOfRangeError',
]
