import logging
import os
from typing import Iterator

from rich.console import Console
from rich.progress import track

from .binary_reader import BinaryReader
from .compression import CompressionType, decompress
from .config import DEFAULT_CONFIG, ReaderConfig
from .errors import BundleIOError, CorruptStreamError, TruncatedError, UnsupportedFormatError
from .serialized_file import SerializedFile

log = logging.getLogger(__name__)

SIGNATURES = ('UnityWeb', 'UnityRaw', 'UnityFS')
MAX_SIGNATURE_SIZE = 20
BLOCKS_INFO_HASH_SIZE = 16
LZMA_ALONE_HEADER_SIZE = 13


class ArchiveFlags:
    BLOCKS_INFO_AT_THE_END = 0x80
    BLOCK_INFO_NEED_PADDING_AT_START = 0x200


class StreamFile:
    path: str
    stream: bytes


class BundleFile:
    """Container level of a ``.unity3d`` file: header, storage blocks and the directory.

    After construction ``files`` holds one decompressed blob per directory entry, in directory order.
    """

    class Header:
        signature: str
        version: int
        unity_version: str
        unity_revision: str
        size: int
        compressed_blocks_info_size: int
        uncompressed_blocks_info_size: int
        flags: int

    class StorageBlock:
        compressed_size: int
        uncompressed_size: int
        flags: int

        @property
        def compression(self) -> CompressionType:
            return CompressionType.from_flags(self.flags)

    class Node:
        offset: int
        size: int
        flags: int
        path: str

    header: Header
    blocks_info_compression: CompressionType
    blocks_info: list[StorageBlock]
    directory_info: list[Node]
    files: list[StreamFile]

    def __init__(self, reader: BinaryReader, config: ReaderConfig = DEFAULT_CONFIG):
        reader.big_endian = True
        self.header = self.Header()
        self.header.size = 0
        self.header.compressed_blocks_info_size = 0
        self.header.uncompressed_blocks_info_size = 0
        self.header.flags = 0
        self.blocks_info_compression = CompressionType.NONE
        self.blocks_info = []
        self.directory_info = []
        self.files = []

        raw_signature = reader.bcstrl(MAX_SIGNATURE_SIZE)
        signature = raw_signature.decode('ascii', 'replace') if raw_signature is not None else None
        if signature not in SIGNATURES:
            raise UnsupportedFormatError(f'unknown bundle signature {raw_signature!r}')

        self.header.signature = signature
        self.header.version = reader.u32
        self.header.unity_version = reader.cstr()
        self.header.unity_revision = reader.cstr()
        version = self.header.version

        if signature == 'UnityFS':
            if version not in config.unityfs_versions:
                raise UnsupportedFormatError(f'UnityFS format version {version} is not supported')
            self._read_unityfs(reader)
        else:
            if version not in config.legacy_bundle_versions:
                raise UnsupportedFormatError(f'{signature} format version {version} is not supported')
            if version == 6:
                self._read_unityfs(reader)
            else:
                self._read_legacy(reader)

        log.debug(
            '%s v%d (%s, %s): %d blocks, %d files',
            signature,
            version,
            self.header.unity_version,
            self.header.unity_revision,
            len(self.blocks_info),
            len(self.files),
        )

    @property
    def compression(self) -> CompressionType:
        if self.blocks_info:
            return self.blocks_info[0].compression
        return self.blocks_info_compression

    def _check_size(self, reader: BinaryReader, declared_size: int):
        if declared_size > len(reader):
            raise TruncatedError(f'bundle declares {declared_size} bytes but the file holds {len(reader)}')

    def _read_unityfs(self, reader: BinaryReader):
        header = self.header
        header.size = reader.i64
        header.compressed_blocks_info_size = reader.u32
        header.uncompressed_blocks_info_size = reader.u32
        header.flags = reader.u32
        if header.signature != 'UnityFS':
            reader.skip(1)

        if header.version >= 7:
            reader.align(16)

        self._check_size(reader, header.size)

        if header.flags & ArchiveFlags.BLOCKS_INFO_AT_THE_END:
            position = reader.pos
            start = len(reader) - header.compressed_blocks_info_size
            if start < position:
                raise TruncatedError('blocks info at the end overlaps the bundle header')
            reader.pos = start
            block_info_bytes = reader.read(header.compressed_blocks_info_size)
            reader.pos = position
        else:
            block_info_bytes = reader.read(header.compressed_blocks_info_size)

        self.blocks_info_compression = CompressionType.from_flags(header.flags)
        uncompressed_data = decompress(
            block_info_bytes, self.blocks_info_compression, header.uncompressed_blocks_info_size
        )

        with BinaryReader(uncompressed_data) as uc_reader:
            _uncompressed_data_hash = uc_reader.read(BLOCKS_INFO_HASH_SIZE)
            for _ in range(self._count(uc_reader, 'block')):
                block = self.StorageBlock()
                block.uncompressed_size = uc_reader.u32
                block.compressed_size = uc_reader.u32
                block.flags = uc_reader.u16
                self.blocks_info.append(block)

            for _ in range(self._count(uc_reader, 'directory')):
                node = self.Node()
                node.offset = uc_reader.i64
                node.size = uc_reader.i64
                node.flags = uc_reader.u32
                node.path = uc_reader.cstr()
                self.directory_info.append(node)

        if header.flags & ArchiveFlags.BLOCK_INFO_NEED_PADDING_AT_START:
            reader.align(16)

        block_stream = bytearray()
        for block in self.blocks_info:
            block_stream.extend(
                decompress(reader.read(block.compressed_size), block.compression, block.uncompressed_size)
            )

        self._read_files(block_stream)

    def _read_legacy(self, reader: BinaryReader):
        header = self.header
        if header.version >= 4:
            _hash = reader.read(16)
            _crc = reader.u32

        _minimum_streamed_bytes = reader.u32
        header_size = reader.u32
        _levels_before_streaming = reader.u32
        level_count = reader.i32
        if level_count <= 0:
            raise CorruptStreamError(f'{header.signature} bundle lists {level_count} levels')

        for _ in range(level_count):
            block = self.StorageBlock()
            block.compressed_size = reader.u32
            block.uncompressed_size = reader.u32
            block.flags = CompressionType.LZMA if header.signature == 'UnityWeb' else CompressionType.NONE
            # only the last level describes the complete body
            self.blocks_info = [block]

        if header.version >= 2:
            header.size = reader.u32
            self._check_size(reader, header.size)

        if header.version >= 3:
            _file_info_header_size = reader.u32

        reader.pos = header_size
        block = self.blocks_info[0]
        data = reader.read(block.compressed_size)
        if block.compression == CompressionType.LZMA:
            if len(data) < LZMA_ALONE_HEADER_SIZE:
                raise CorruptStreamError(f'UnityWeb body of {len(data)} bytes has no lzma header')
            # properties, then an 8-byte size field the raw decoder does not expect
            data = data[:5] + data[LZMA_ALONE_HEADER_SIZE:]
        block_stream = decompress(data, block.compression, block.uncompressed_size)

        with BinaryReader(block_stream) as blocks_reader:
            for _ in range(self._count(blocks_reader, 'directory')):
                node = self.Node()
                node.path = blocks_reader.cstr()
                node.offset = blocks_reader.u32
                node.size = blocks_reader.u32
                node.flags = 0
                self.directory_info.append(node)

        self._read_files(block_stream)

    def _count(self, reader: BinaryReader, what: str) -> int:
        count = reader.i32
        if count < 0:
            raise CorruptStreamError(f'negative {what} count {count}')
        return count

    def _read_files(self, block_stream: bytes | bytearray):
        self.files = []
        for node in self.directory_info:
            if node.offset < 0 or node.size < 0:
                raise CorruptStreamError(f'directory entry {node.path!r} has offset {node.offset}, size {node.size}')
            end = node.offset + node.size
            if end > len(block_stream):
                raise TruncatedError(
                    f'directory entry {node.path!r} ends at {end}, past the {len(block_stream)} byte payload'
                )
            file = StreamFile()
            file.path = node.path
            file.stream = bytes(block_stream[node.offset : end])
            self.files.append(file)


class Bundle:
    """A fully parsed asset bundle.

    Every asset's header, type table and object table is parsed at load time, either the
    whole directory parses or construction fails. The result is not mutated afterwards.
    """

    path: str
    signature: str
    format_version: int
    player_version: str
    engine_version: str
    compression: CompressionType
    assets: tuple[SerializedFile, ...]

    def __init__(self, bundle_file: BundleFile, assets: tuple[SerializedFile, ...], path: str):
        header = bundle_file.header
        self.path = path
        self.signature = header.signature
        self.format_version = header.version
        self.player_version = header.unity_version
        self.engine_version = header.unity_revision
        self.compression = bundle_file.compression
        self.assets = assets

    @classmethod
    def from_reader(
        cls,
        reader: BinaryReader,
        path: str,
        config: ReaderConfig = DEFAULT_CONFIG,
        console: Console | None = None,
    ) -> 'Bundle':
        bundle_file = BundleFile(reader, config)
        files = bundle_file.files
        if console:
            files = track(files, description='Parsing assets...', console=console)

        assets = tuple(SerializedFile(file.path, file.stream, config) for file in files)
        return cls(bundle_file, assets, path)

    @classmethod
    def from_file(
        cls,
        path: str | os.PathLike,
        config: ReaderConfig = DEFAULT_CONFIG,
        console: Console | None = None,
    ) -> 'Bundle':
        try:
            f = open(path, 'rb')
        except OSError as e:
            raise BundleIOError(f'{path}: {e.strerror or e}') from e
        with f:
            return cls.from_reader(BinaryReader(f), os.fspath(path), config, console)

    @classmethod
    def from_bytes(
        cls,
        data: bytes | bytearray,
        path: str = '<memory>',
        config: ReaderConfig = DEFAULT_CONFIG,
    ) -> 'Bundle':
        return cls.from_reader(BinaryReader(data), path, config)

    @property
    def num_assets(self) -> int:
        return len(self.assets)

    def asset_by_name(self, name: str) -> SerializedFile:
        for asset in self.assets:
            if asset.name == name:
                return asset
        raise KeyError(name)

    def __len__(self) -> int:
        return len(self.assets)

    def __iter__(self) -> Iterator[SerializedFile]:
        return iter(self.assets)

    def __getitem__(self, index: int) -> SerializedFile:
        return self.assets[index]

    def __repr__(self) -> str:
        return f'<Bundle {self.signature} v{self.format_version} {self.path!r} assets={len(self.assets)}>'


__all__ = ['BundleFile', 'Bundle', 'StreamFile', 'ArchiveFlags', 'SIGNATURES']
