import logging
import lzma
from enum import IntEnum
from struct import unpack

import lz4.block

from .errors import CorruptStreamError, UnsupportedFormatError

log = logging.getLogger(__name__)

COMPRESSION_MASK = 0x3F
LZMA_PROPS_SIZE = 5


class CompressionType(IntEnum):
    NONE = 0
    LZMA = 1
    LZ4 = 2
    LZ4HC = 3
    LZHAM = 4

    @classmethod
    def from_flags(cls, flags: int) -> 'CompressionType':
        value = flags & COMPRESSION_MASK
        try:
            return cls(value)
        except ValueError:
            raise UnsupportedFormatError(f'unknown compression type {value}') from None


def decompress_lzma(data: bytes, uncompressed_size: int) -> bytes:
    """Raw LZMA1 stream behind a 5-byte properties header (lc/lp/pb byte + little endian dictionary size)."""
    if len(data) < LZMA_PROPS_SIZE:
        raise CorruptStreamError(f'lzma stream of {len(data)} bytes has no properties header')
    props, dict_size = unpack('<BI', data[:LZMA_PROPS_SIZE])
    if props >= 9 * 5 * 5:
        raise CorruptStreamError(f'invalid lzma properties byte 0x{props:02x}')
    lc = props % 9
    props //= 9
    lp = props % 5
    pb = props // 5
    try:
        decompressor = lzma.LZMADecompressor(
            format=lzma.FORMAT_RAW,
            filters=[
                {
                    'id': lzma.FILTER_LZMA1,
                    'dict_size': max(dict_size, 4096),
                    'lc': lc,
                    'lp': lp,
                    'pb': pb,
                }
            ],
        )
        result = decompressor.decompress(data[LZMA_PROPS_SIZE:], max_length=uncompressed_size)
        if not decompressor.eof and not decompressor.needs_input and decompressor.decompress(b'', max_length=1):
            raise CorruptStreamError(f'lzma stream decodes past its declared {uncompressed_size} bytes')
    except lzma.LZMAError as e:
        raise CorruptStreamError(f'lzma decompression error: {e}') from e
    return result


def decompress(data: bytes, compression: CompressionType, uncompressed_size: int) -> bytes:
    match compression:
        case CompressionType.NONE:
            result = bytes(data)
        case CompressionType.LZMA:
            result = decompress_lzma(data, uncompressed_size)
        case CompressionType.LZ4 | CompressionType.LZ4HC:
            try:
                result = lz4.block.decompress(data, uncompressed_size=uncompressed_size)
            except lz4.block.LZ4BlockError as e:
                raise CorruptStreamError(f'lz4 decompression error: {e}') from e
        case _:
            raise UnsupportedFormatError(f'{compression.name} compression is not supported')

    if len(result) != uncompressed_size:
        raise CorruptStreamError(
            f'{compression.name} block decompressed to {len(result)} bytes, expected {uncompressed_size}'
        )
    log.debug('%s: %d -> %d bytes', compression.name, len(data), uncompressed_size)
    return result


__all__ = ['CompressionType', 'COMPRESSION_MASK', 'decompress', 'decompress_lzma']
