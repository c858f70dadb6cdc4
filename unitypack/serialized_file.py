import logging
import re
from types import MappingProxyType
from typing import Any, Mapping

from .binary_reader import BinaryReader
from .classes import ClassID, get_unity_class
from .config import DEFAULT_CONFIG, ReaderConfig
from .errors import CorruptStreamError, TruncatedError, UnsupportedFormatError
from .object_reader import ObjectReader
from .typetree import TypeTree, read_type_tree

log = logging.getLogger(__name__)


class SerializedType:
    class_id: int
    is_stripped_type: bool
    script_type_index: int
    type_tree: TypeTree | None
    script_id: bytes
    old_type_hash: bytes
    type_dependencies: list[int]
    class_name: str
    namespace: str
    asm_name: str

    def __init__(self, class_id: int = 0):
        self.class_id = class_id
        self.is_stripped_type = False
        self.script_type_index = -1
        self.type_tree = None
        self.script_id = b''
        self.old_type_hash = b''
        self.type_dependencies = []
        self.class_name = ''
        self.namespace = ''
        self.asm_name = ''

    @property
    def type_name(self) -> str:
        if self.type_tree is not None:
            return self.type_tree.type_name
        return get_unity_class(self.class_id)

    def __repr__(self) -> str:
        return f'<SerializedType {self.type_name} class_id={self.class_id}>'


class ObjectInfo:
    path_id: int
    byte_start: int
    byte_size: int
    type_id: int
    class_id: int
    is_destroyed: bool
    stripped: bool
    script_type_index: int
    serialized_type: SerializedType

    def __init__(self):
        self.is_destroyed = False
        self.stripped = False
        self.script_type_index = -1

    @property
    def type_name(self) -> str:
        return self.serialized_type.type_name

    def __repr__(self) -> str:
        return f'<ObjectInfo {self.type_name} path_id={self.path_id} class_id={self.class_id}>'


class LocalSerializedObjectIdentifier:
    local_serialized_file_index: int
    local_identifier_in_file: int


class FileIdentifier:
    asset_path: str
    guid: bytes
    type: int
    path_name: str

    def __init__(self):
        self.asset_path = ''
        self.guid = b''
        self.type = 0
        self.path_name = ''


def is_serialized_file(data: bytes) -> bool:
    """Cheap header sanity check telling serialized files apart from streamed resource blobs."""
    length = len(data)
    if length < 20:
        return False

    with BinaryReader(data) as reader:
        reader.skip(4)
        file_size = reader.u32
        version = reader.u32
        data_offset = reader.u32
        reader.skip(4)

        if version >= 22:
            if length < 48:
                return False
            reader.skip(4)
            file_size = reader.u64
            data_offset = reader.u64

    return file_size == length and data_offset <= file_size


class SerializedFile:
    """One serialized file ("asset") of a bundle: its type table and object table.

    Object payloads stay in ``data`` and are only decoded on request through
    :meth:`read_object_data` or :meth:`read_object`.
    """

    class FileHeader:
        metadata_size: int
        file_size: int
        version: int
        data_offset: int
        big_endian: bool
        reserved_bytes: bytes

    name: str
    data: bytes
    is_resource: bool
    file_header: FileHeader | None
    big_endian: bool
    unity_version: str
    version: list[int]
    target_platform: int
    enable_type_tree: bool
    types: list[SerializedType]
    big_id_enabled: bool
    object_infos: tuple[ObjectInfo, ...]
    script_types: list[LocalSerializedObjectIdentifier]
    externals: list[FileIdentifier]
    ref_types: list[SerializedType]
    user_information: str

    def __init__(self, name: str, data: bytes, config: ReaderConfig = DEFAULT_CONFIG):
        self.name = name
        self.data = bytes(data)
        self.file_header = None
        self.big_endian = True
        self.unity_version = ''
        self.version = []
        self.target_platform = 0
        self.enable_type_tree = False
        self.types = []
        self.big_id_enabled = False
        self.object_infos = ()
        self.script_types = []
        self.externals = []
        self.ref_types = []
        self.user_information = ''
        self._type_table: dict[int, SerializedType] = {}
        self._object_map: dict[int, ObjectInfo] = {}

        self.is_resource = config.is_resource_name(name) or not is_serialized_file(self.data)
        if self.is_resource:
            log.debug('%s: resource entry of %d bytes', name, len(self.data))
            return

        with BinaryReader(self.data) as reader:
            self._read(reader, config)
        log.debug(
            '%s: format %d, unity %s, %d types, %d objects',
            name,
            self.format_version,
            self.unity_version,
            len(self.types),
            len(self.object_infos),
        )

    @property
    def format_version(self) -> int:
        return self.file_header.version if self.file_header else 0

    @property
    def type_table(self) -> Mapping[int, SerializedType]:
        """Types keyed the way object entries reference them: by index from format 16, by class id before."""
        return MappingProxyType(self._type_table)

    def _read(self, reader: BinaryReader, config: ReaderConfig):
        header = self.file_header = self.FileHeader()
        header.metadata_size = reader.u32
        header.file_size = reader.u32
        header.version = reader.u32
        header.data_offset = reader.u32
        version = header.version

        if version not in config.serialized_formats:
            raise UnsupportedFormatError(f'{self.name}: serialized file format {version} is not supported')

        # header
        if version >= 9:
            header.big_endian = reader.boolean
            header.reserved_bytes = reader.read(3)
        else:
            metadata_start = header.file_size - header.metadata_size
            if not 0 <= metadata_start < len(reader):
                raise CorruptStreamError(f'{self.name}: metadata offset {metadata_start} is outside the file')
            reader.pos = metadata_start
            header.big_endian = reader.boolean

        if version >= 22:
            header.metadata_size = reader.u32
            header.file_size = reader.u64
            header.data_offset = reader.u64
            reader.skip(8)

        # metadata
        self.big_endian = header.big_endian
        reader.big_endian = header.big_endian

        if version >= 7:
            self.unity_version = reader.cstr()
            self.set_version(self.unity_version)

        if version >= 8:
            self.target_platform = reader.i32

        self.enable_type_tree = True
        if version >= 13:
            self.enable_type_tree = reader.boolean

        # types
        self.types = [self._read_serialized_type(reader, False) for _ in range(self._count(reader, 'type'))]
        if version >= 16:
            self._type_table = dict(enumerate(self.types))
        else:
            self._type_table = {t.class_id: t for t in self.types}

        if 7 <= version < 14:
            self.big_id_enabled = bool(reader.i32)

        # objects
        object_infos = []
        for _ in range(self._count(reader, 'object')):
            obj_info = ObjectInfo()

            if self.big_id_enabled:
                obj_info.path_id = reader.i64
            elif version < 14:
                obj_info.path_id = reader.i32
            else:
                reader.align(4)
                obj_info.path_id = reader.i64

            if version >= 22:
                obj_info.byte_start = reader.i64
            else:
                obj_info.byte_start = reader.u32

            obj_info.byte_start += header.data_offset
            obj_info.byte_size = reader.u32
            obj_info.type_id = reader.i32

            if version < 16:
                obj_info.class_id = reader.u16

            try:
                obj_info.serialized_type = self._type_table[obj_info.type_id]
            except KeyError:
                raise CorruptStreamError(
                    f'{self.name}: object {obj_info.path_id} references missing type {obj_info.type_id}'
                ) from None

            if version >= 16:
                obj_info.class_id = obj_info.serialized_type.class_id

            if version < 11:
                obj_info.is_destroyed = bool(reader.u16)

            if 11 <= version < 17:
                obj_info.script_type_index = reader.i16

            if version == 15 or version == 16:
                obj_info.stripped = reader.boolean

            self._check_bounds(obj_info, config)
            object_infos.append(obj_info)

        previous = None
        for obj_info in object_infos:
            if obj_info.path_id in self._object_map:
                raise CorruptStreamError(f'{self.name}: duplicate path id {obj_info.path_id}')
            # the object table is sorted by path id
            if previous is not None and obj_info.path_id < previous.path_id:
                raise CorruptStreamError(f'{self.name}: path id {obj_info.path_id} follows {previous.path_id}')
            self._object_map[obj_info.path_id] = obj_info
            previous = obj_info
        self.object_infos = tuple(object_infos)

        # scripts
        if version >= 11:
            self.script_types = []
            for _ in range(self._count(reader, 'script')):
                script_type = LocalSerializedObjectIdentifier()
                script_type.local_serialized_file_index = reader.i32

                if version < 14:
                    script_type.local_identifier_in_file = reader.i32
                else:
                    reader.align(4)
                    script_type.local_identifier_in_file = reader.i64

                self.script_types.append(script_type)

        # externals
        self.externals = []
        for _ in range(self._count(reader, 'external')):
            external = FileIdentifier()
            if version >= 6:
                external.asset_path = reader.cstr()

            if version >= 5:
                external.guid = reader.read(16)
                external.type = reader.i32

            external.path_name = reader.cstr()
            self.externals.append(external)

        # ref types
        if version >= 20:
            self.ref_types = [self._read_serialized_type(reader, True) for _ in range(self._count(reader, 'ref type'))]

        if version >= 5:
            self.user_information = reader.cstr()

    def _read_serialized_type(self, reader: BinaryReader, is_ref_type: bool) -> SerializedType:
        t = SerializedType(reader.i32)

        version = self.format_version
        if version >= 16:
            t.is_stripped_type = reader.boolean

        if version >= 17:
            t.script_type_index = reader.i16

        if version >= 13:
            if is_ref_type and t.script_type_index >= 0:
                t.script_id = reader.read(16)
            elif (version < 16 and t.class_id < 0) or (version >= 16 and t.class_id == ClassID.MONO_BEHAVIOUR):
                t.script_id = reader.read(16)
            t.old_type_hash = reader.read(16)

        if self.enable_type_tree:
            t.type_tree = read_type_tree(reader, version)

            if version >= 21:
                if is_ref_type:
                    t.class_name = reader.cstr()
                    t.namespace = reader.cstr()
                    t.asm_name = reader.cstr()
                else:
                    t.type_dependencies = [reader.i32 for _ in range(self._count(reader, 'dependency'))]

        return t

    def _count(self, reader: BinaryReader, what: str) -> int:
        count = reader.i32
        if count < 0:
            raise CorruptStreamError(f'{self.name}: negative {what} count {count}')
        return count

    def _check_bounds(self, obj_info: ObjectInfo, config: ReaderConfig):
        if obj_info.byte_start < 0:
            raise CorruptStreamError(f'{self.name}: object {obj_info.path_id} starts at {obj_info.byte_start}')
        if config.check_object_bounds and obj_info.byte_start + obj_info.byte_size > len(self.data):
            raise TruncatedError(
                f'{self.name}: object {obj_info.path_id} ends at {obj_info.byte_start + obj_info.byte_size}, '
                f'past the {len(self.data)} byte asset'
            )

    def set_version(self, unity_version: str):
        self.version = []
        for sp in unity_version.split('.'):
            if m := re.match(r'\d+', sp):
                self.version.append(int(m.group()))

    def type_name(self, obj_info: ObjectInfo) -> str:
        return obj_info.serialized_type.type_name

    def objects_with_type(self, type_name: str) -> list[ObjectInfo]:
        return [obj_info for obj_info in self.object_infos if obj_info.type_name == type_name]

    def object_by_path_id(self, path_id: int) -> ObjectInfo:
        return self._object_map[path_id]

    def read_object_data(self, obj_info: ObjectInfo) -> bytes:
        end = obj_info.byte_start + obj_info.byte_size
        if end > len(self.data):
            raise TruncatedError(f'{self.name}: object {obj_info.path_id} ends past the asset')
        return self.data[obj_info.byte_start : end]

    def read_object(self, obj_info: ObjectInfo) -> Any:
        return ObjectReader(self, obj_info).read_typetree()

    def __len__(self) -> int:
        return len(self.object_infos)

    def __iter__(self):
        return iter(self.object_infos)

    def __repr__(self) -> str:
        if self.is_resource:
            return f'<SerializedFile {self.name} (resource, {len(self.data)} bytes)>'
        return f'<SerializedFile {self.name} format={self.format_version} objects={len(self.object_infos)}>'


__all__ = [
    'SerializedType',
    'ObjectInfo',
    'LocalSerializedObjectIdentifier',
    'FileIdentifier',
    'SerializedFile',
    'is_serialized_file',
]
