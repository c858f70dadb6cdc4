import io
from io import SEEK_CUR, SEEK_END
from typing import IO, Literal
from struct import unpack

from .errors import BundleIOError, CorruptStreamError, TruncatedError


class BinaryReader:
    _stream: IO[bytes]
    _length: int
    _format_head: str
    _big_endian: bool
    _byte_order: Literal['big'] | Literal['little']

    def __init__(self, stream: IO[bytes] | bytes | bytearray | memoryview, big_endian: bool = True):
        if isinstance(stream, (bytes, bytearray, memoryview)):
            self._stream = io.BytesIO(stream)
        else:
            self._stream = stream
        try:
            self._length = self._stream.seek(0, SEEK_END)
            self._stream.seek(0)
        except OSError as e:
            raise BundleIOError(f'cannot seek byte source: {e}') from e
        self.big_endian = big_endian

    @property
    def boolean(self) -> bool:
        return bool(self.read(1)[0])

    @property
    def pos(self) -> int:
        return self._stream.tell()

    @pos.setter
    def pos(self, new_pos: int):
        if new_pos >= 0:
            self._stream.seek(new_pos)
        else:
            self._stream.seek(new_pos, SEEK_END)

    @property
    def remaining(self) -> int:
        return max(self._length - self.pos, 0)

    def __len__(self) -> int:
        return self._length

    @property
    def big_endian(self) -> bool:
        return self._big_endian

    @big_endian.setter
    def big_endian(self, big_endian: bool):
        self._big_endian = big_endian
        if big_endian:
            self._format_head = '>'
            self._byte_order = 'big'
        else:
            self._format_head = '<'
            self._byte_order = 'little'

    def skip(self, count: int):
        self.read(count)

    def align(self, size: int = 4) -> int:
        return self._stream.seek(-self._stream.tell() % size, SEEK_CUR)

    def read(self, count: int) -> bytes:
        pos = self.pos
        if count < 0:
            raise CorruptStreamError(f'negative read length {count} at offset {pos}')
        if count > self.remaining:
            raise TruncatedError(f'need {count} bytes at offset {pos}, only {self.remaining} left')
        try:
            data = self._stream.read(count)
        except OSError as e:
            raise BundleIOError(f'read of {count} bytes at offset {pos} failed: {e}') from e
        if len(data) != count:
            raise TruncatedError(f'need {count} bytes at offset {pos}, got {len(data)}')
        return data

    def string(self, length: int, encoding: str = 'utf-8') -> str:
        return self._decode(self.read(length), encoding)

    def bcstr(self) -> bytes:
        barr = bytearray()
        while (b := self.read(1)) != b'\0':
            barr += b
        return bytes(barr)

    def cstr(self) -> str:
        return self._decode(self.bcstr())

    def bcstrl(self, max_size: int) -> bytes | None:
        """Zero-terminated string of at most ``max_size`` bytes, ``None`` when no terminator shows up in time."""
        barr = bytearray()
        while (b := self.read(1)) != b'\0':
            if len(barr) == max_size:
                return None
            barr.extend(b)
        return bytes(barr)

    def aligned_string(self) -> str:
        res = self.string(self.i32)
        self.align(4)
        return res

    def read_int(self, size: int, signed: bool = False, big_endian: bool | None = None) -> int:
        if big_endian is None:
            byte_order = self._byte_order
        else:
            byte_order = 'big' if big_endian else 'little'
        return int.from_bytes(self.read(size), byte_order, signed=signed)

    @staticmethod
    def _decode(data: bytes, encoding: str = 'utf-8') -> str:
        try:
            return data.decode(encoding)
        except UnicodeDecodeError as e:
            raise CorruptStreamError(f'invalid {encoding} string {data[:32]!r}') from e

    @property
    def f32(self) -> float:
        return unpack(self._format_head + 'f', self.read(4))[0]

    @property
    def f64(self) -> float:
        return unpack(self._format_head + 'd', self.read(8))[0]

    @property
    def i8(self) -> int:
        return self.read_int(1, True)

    @property
    def u8(self) -> int:
        return self.read_int(1)

    @property
    def i16(self) -> int:
        return self.read_int(2, True)

    @property
    def u16(self) -> int:
        return self.read_int(2)

    @property
    def i32(self) -> int:
        return self.read_int(4, True)

    @property
    def u32(self) -> int:
        return self.read_int(4)

    @property
    def i64(self) -> int:
        return self.read_int(8, True)

    @property
    def u64(self) -> int:
        return self.read_int(8)

    def __enter__(self):
        return self

    def __exit__(self, *_):
        pass


__all__ = ['BinaryReader']
