import lzma

import lz4.block
import pytest

from unitypack.compression import CompressionType, decompress, decompress_lzma
from unitypack.errors import CorruptStreamError, UnsupportedFormatError

from builders import compress

DATA = b'The quick brown fox jumps over the lazy dog. ' * 64


@pytest.mark.parametrize(
    'compression',
    [CompressionType.NONE, CompressionType.LZMA, CompressionType.LZ4, CompressionType.LZ4HC],
)
def test_decompress(compression):
    assert decompress(compress(DATA, compression), compression, len(DATA)) == DATA


def test_compression_from_flags():
    assert CompressionType.from_flags(0x43) == CompressionType.LZ4HC
    assert CompressionType.from_flags(0x80 | 0x40 | 1) == CompressionType.LZMA
    with pytest.raises(UnsupportedFormatError):
        CompressionType.from_flags(0x3F)


def test_lzham_is_unsupported():
    with pytest.raises(UnsupportedFormatError):
        decompress(b'\x00' * 16, CompressionType.LZHAM, 16)


def test_size_mismatch():
    with pytest.raises(CorruptStreamError):
        decompress(DATA, CompressionType.NONE, len(DATA) + 1)
    with pytest.raises(CorruptStreamError):
        decompress(compress(DATA, CompressionType.LZ4), CompressionType.LZ4, len(DATA) + 100)


def test_lzma_stops_at_declared_size():
    data = compress(DATA, CompressionType.LZMA)
    with pytest.raises(CorruptStreamError):
        decompress(data, CompressionType.LZMA, len(DATA) - 10)


def test_lz4_garbage():
    with pytest.raises(CorruptStreamError):
        decompress(b'\xff\xff\xff\xff', CompressionType.LZ4, 64)


def test_lzma_bad_header():
    with pytest.raises(CorruptStreamError):
        decompress_lzma(b'\x5d\x00', 10)
    with pytest.raises(CorruptStreamError):
        decompress_lzma(b'\xff\x00\x00\x10\x00' + b'\x00' * 8, 10)


def test_lzma_properties_rejected_by_decoder():
    # lc=8, lp=4 fits in the properties byte but exceeds lc + lp <= 4
    data = bytes([(0 * 5 + 4) * 9 + 8]) + (1 << 16).to_bytes(4, 'little') + b'\x00' * 16
    with pytest.raises(CorruptStreamError):
        decompress_lzma(data, 10)


def test_lzma_properties_are_honored():
    filters = [{'id': lzma.FILTER_LZMA1, 'dict_size': 1 << 16, 'lc': 0, 'lp': 2, 'pb': 0}]
    props = bytes([(0 * 5 + 2) * 9 + 0]) + (1 << 16).to_bytes(4, 'little')
    data = props + lzma.compress(DATA, format=lzma.FORMAT_RAW, filters=filters)
    assert decompress_lzma(data, len(DATA)) == DATA


def test_lz4_block_without_size_prefix():
    data = lz4.block.compress(DATA, store_size=False)
    assert decompress(data, CompressionType.LZ4, len(DATA)) == DATA
