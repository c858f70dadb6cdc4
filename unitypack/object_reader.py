from typing import TYPE_CHECKING, Any

from .binary_reader import BinaryReader
from .errors import CorruptStreamError, TruncatedError, UnsupportedFormatError
from .typetree import TypeTreeNode

if TYPE_CHECKING:
    from .serialized_file import ObjectInfo, SerializedFile, SerializedType

PRIMITIVE_READERS = {
    'bool': 'boolean',
    'SInt8': 'i8',
    'UInt8': 'u8',
    'char': 'u8',
    'SInt16': 'i16',
    'short': 'i16',
    'UInt16': 'u16',
    'unsigned short': 'u16',
    'SInt32': 'i32',
    'int': 'i32',
    'UInt32': 'u32',
    'unsigned int': 'u32',
    'Type*': 'u32',
    'SInt64': 'i64',
    'long long': 'i64',
    'UInt64': 'u64',
    'unsigned long long': 'u64',
    'FileSize': 'u64',
    'float': 'f32',
    'double': 'f64',
}
BYTE_ELEMENTS = ('UInt8', 'char')
ARRAY_WRAPPERS = ('vector', 'staticvector', 'set', 'list', 'deque')


class ObjectReader(BinaryReader):
    """Decodes one object payload by walking its type tree.

    Structs become dicts keyed by field name, arrays become lists (``bytes`` for byte arrays),
    maps become lists of ``(key, value)`` pairs.
    """

    asset_file: 'SerializedFile'
    path_id: int
    byte_start: int
    byte_size: int
    class_id: int
    serialized_type: 'SerializedType'
    version: list[int]
    platform: int
    format_version: int

    def __init__(self, asset_file: 'SerializedFile', object_info: 'ObjectInfo'):
        super().__init__(asset_file.read_object_data(object_info), asset_file.big_endian)
        self.asset_file = asset_file
        self.path_id = object_info.path_id
        self.byte_start = object_info.byte_start
        self.byte_size = object_info.byte_size
        self.class_id = object_info.class_id
        self.serialized_type = object_info.serialized_type
        self.platform = asset_file.target_platform
        self.version = asset_file.version
        self.format_version = asset_file.format_version

    def read_typetree(self) -> Any:
        type_tree = self.serialized_type.type_tree
        if type_tree is None:
            raise UnsupportedFormatError(
                f'{self.serialized_type.type_name} object {self.path_id} was serialized without a type tree'
            )
        self.pos = 0
        return self.read_node(type_tree.root)

    def read_node(self, node: TypeTreeNode) -> Any:
        if node.is_array:
            value = self._read_array(node)
        elif (attr := PRIMITIVE_READERS.get(node.type_)) is not None:
            value = getattr(self, attr)
        elif node.type_ == 'string':
            value = self._read_string(node)
        elif node.type_ == 'TypelessData':
            value = self.read(self.i32)
        elif node.type_ == 'map':
            value = self._read_map(node)
        elif node.type_ in ARRAY_WRAPPERS and len(node.children) == 1 and node.children[0].is_array:
            # containers wrap a single Array node
            value = self.read_node(node.children[0])
        else:
            value = {child.name: self.read_node(child) for child in node.children}

        if node.post_align:
            self.align(4)
        return value

    def _array_size(self, node: TypeTreeNode) -> int:
        size = self.i32
        if size < 0:
            raise CorruptStreamError(f'{node.name}: negative array size {size} in object {self.path_id}')
        if size > self.remaining:
            raise TruncatedError(f'{node.name}: {size} elements do not fit in object {self.path_id}')
        return size

    def _read_array(self, node: TypeTreeNode) -> list | bytes:
        if len(node.children) != 2:
            raise CorruptStreamError(f'array node {node.name!r} has {len(node.children)} children, expected 2')
        element = node.children[1]
        size = self._array_size(node)
        if element.type_ in BYTE_ELEMENTS:
            return self.read(size)
        return [self.read_node(element) for _ in range(size)]

    def _read_string(self, node: TypeTreeNode) -> str:
        value = self.string(self._array_size(node))
        if node.children and node.children[0].post_align:
            self.align(4)
        return value

    def _read_map(self, node: TypeTreeNode) -> list[tuple[Any, Any]]:
        array = node.children[0] if node.children else None
        if array is None or len(array.children) != 2 or len(array.children[1].children) != 2:
            raise CorruptStreamError(f'map node {node.name!r} is malformed')
        first, second = array.children[1].children
        size = self._array_size(node)
        pairs = [(self.read_node(first), self.read_node(second)) for _ in range(size)]
        if array.post_align:
            self.align(4)
        return pairs


__all__ = ['ObjectReader', 'PRIMITIVE_READERS']
