import logging
from types import MappingProxyType

from .binary_reader import BinaryReader
from .errors import CorruptStreamError

log = logging.getLogger(__name__)

# serialized files from this format on store type trees as a node table plus a string blob
BLOB_TYPE_TREE_FORMAT = 14
# node records grow an 8-byte reference type hash
REF_TYPE_HASH_FORMAT = 19
COMMON_STRING_FLAG = 0x80000000
POST_ALIGN_FLAG = 0x4000
MAX_TREE_DEPTH = 255

# offsets into Unity's built-in common string table
_COMMON_STRINGS = {
    0: 'AABB',
    5: 'AnimationClip',
    19: 'AnimationCurve',
    34: 'AnimationState',
    49: 'Array',
    55: 'Base',
    60: 'BitField',
    69: 'bitset',
    76: 'bool',
    81: 'char',
    86: 'ColorRGBA',
    96: 'Component',
    106: 'data',
    111: 'deque',
    117: 'double',
    124: 'dynamic_array',
    138: 'FastPropertyName',
    155: 'first',
    161: 'float',
    167: 'Font',
    172: 'GameObject',
    183: 'Generic Mono',
    196: 'GradientNEW',
    208: 'GUID',
    213: 'GUIStyle',
    222: 'int',
    226: 'list',
    231: 'long long',
    241: 'map',
    245: 'Matrix4x4f',
    256: 'MdFour',
    263: 'MonoBehaviour',
    277: 'MonoScript',
    288: 'm_ByteSize',
    299: 'm_Curve',
    307: 'm_EditorClassIdentifier',
    331: 'm_EditorHideFlags',
    349: 'm_Enabled',
    359: 'm_ExtensionPtr',
    374: 'm_GameObject',
    387: 'm_Index',
    395: 'm_IsArray',
    405: 'm_IsStatic',
    416: 'm_MetaFlag',
    427: 'm_Name',
    434: 'm_ObjectHideFlags',
    452: 'm_PrefabInternal',
    469: 'm_PrefabParentObject',
    490: 'm_Script',
    499: 'm_StaticEditorFlags',
    519: 'm_Type',
    526: 'm_Version',
    536: 'Object',
    543: 'pair',
    548: 'PPtr<Component>',
    564: 'PPtr<GameObject>',
    581: 'PPtr<Material>',
    596: 'PPtr<MonoBehaviour>',
    616: 'PPtr<MonoScript>',
    633: 'PPtr<Object>',
    646: 'PPtr<Prefab>',
    659: 'PPtr<Sprite>',
    672: 'PPtr<TextAsset>',
    688: 'PPtr<Texture>',
    702: 'PPtr<Texture2D>',
    718: 'PPtr<Transform>',
    734: 'Prefab',
    741: 'Quaternionf',
    753: 'Rectf',
    759: 'RectInt',
    767: 'RectOffset',
    778: 'second',
    785: 'set',
    789: 'short',
    795: 'size',
    800: 'SInt16',
    807: 'SInt32',
    814: 'SInt64',
    821: 'SInt8',
    827: 'staticvector',
    840: 'string',
    847: 'TextAsset',
    857: 'TextMesh',
    866: 'Texture',
    874: 'Texture2D',
    884: 'Transform',
    894: 'TypelessData',
    907: 'UInt16',
    914: 'UInt32',
    921: 'UInt64',
    928: 'UInt8',
    934: 'unsigned int',
    947: 'unsigned long long',
    966: 'unsigned short',
    981: 'vector',
    988: 'Vector2f',
    997: 'Vector3f',
    1006: 'Vector4f',
    1015: 'm_ScriptingClassIdentifier',
    1042: 'Gradient',
    1051: 'Type*',
    1057: 'int2_storage',
    1070: 'int3_storage',
    1083: 'BoundsInt',
    1093: 'm_CorrespondingSourceObject',
    1121: 'm_PrefabInstance',
    1138: 'm_PrefabAsset',
    1152: 'FileSize',
    1161: 'Hash128',
}
COMMON_STRINGS = MappingProxyType(_COMMON_STRINGS)


def common_string(offset: int) -> str:
    try:
        return COMMON_STRINGS[offset]
    except KeyError:
        log.warning('unknown common string offset %d', offset)
        return str(offset)


class TypeTreeNode:
    type_: str
    name: str
    byte_size: int
    index: int
    type_flags: int
    version: int
    meta_flag: int
    level: int
    ref_type_hash: int
    children: list['TypeTreeNode']

    def __init__(
        self,
        type_: str = '',
        name: str = '',
        byte_size: int = -1,
        index: int = 0,
        type_flags: int = 0,
        version: int = 1,
        meta_flag: int = 0,
        level: int = 0,
    ):
        self.type_ = type_
        self.name = name
        self.byte_size = byte_size
        self.index = index
        self.type_flags = type_flags
        self.version = version
        self.meta_flag = meta_flag
        self.level = level
        self.ref_type_hash = 0
        self.children = []

    @property
    def is_array(self) -> bool:
        return bool(self.type_flags & 1)

    @property
    def post_align(self) -> bool:
        return bool(self.meta_flag & POST_ALIGN_FLAG)

    def walk(self):
        yield self
        for child in self.children:
            yield from child.walk()

    def __repr__(self) -> str:
        return (
            f'<{self.type_} {self.name} (size={self.byte_size}, index={self.index}, '
            f'is_array={self.is_array}, flags={self.meta_flag})>'
        )


class TypeTree:
    nodes: list[TypeTreeNode]
    string_buffer: bytes

    def __init__(self, nodes: list[TypeTreeNode], string_buffer: bytes = b''):
        self.nodes = nodes
        self.string_buffer = string_buffer

    @property
    def root(self) -> TypeTreeNode:
        return self.nodes[0]

    @property
    def type_name(self) -> str:
        return self.root.type_

    def __len__(self) -> int:
        return len(self.nodes)


def read_type_tree(reader: BinaryReader, format_version: int) -> TypeTree:
    if format_version >= BLOB_TYPE_TREE_FORMAT:
        return read_blob_type_tree(reader, format_version)
    return read_legacy_type_tree(reader)


def read_legacy_type_tree(reader: BinaryReader) -> TypeTree:
    nodes: list[TypeTreeNode] = []

    def read_node(level: int) -> TypeTreeNode:
        if level > MAX_TREE_DEPTH:
            raise CorruptStreamError(f'type tree nested deeper than {MAX_TREE_DEPTH} levels')
        node = TypeTreeNode(level=level)
        nodes.append(node)
        node.type_ = reader.cstr()
        node.name = reader.cstr()
        node.byte_size = reader.i32
        node.index = reader.i32
        node.type_flags = reader.i32
        node.version = reader.i32
        node.meta_flag = reader.i32

        child_count = reader.i32
        if child_count < 0:
            raise CorruptStreamError(f'type tree node {node.name!r} has {child_count} children')
        for _ in range(child_count):
            node.children.append(read_node(level + 1))
        return node

    read_node(0)
    return TypeTree(nodes)


def read_blob_type_tree(reader: BinaryReader, format_version: int) -> TypeTree:
    node_count = reader.i32
    string_size = reader.i32
    if node_count <= 0:
        raise CorruptStreamError(f'type tree with {node_count} nodes')

    record_size = 32 if format_version >= REF_TYPE_HASH_FORMAT else 24
    node_data = reader.read(node_count * record_size)
    string_buffer = reader.read(string_size)

    nodes: list[TypeTreeNode] = []
    with BinaryReader(node_data, reader.big_endian) as node_reader:
        for _ in range(node_count):
            node = TypeTreeNode()
            node.version = node_reader.u16
            node.level = node_reader.u8
            node.type_flags = node_reader.u8
            type_offset = node_reader.u32
            name_offset = node_reader.u32
            node.byte_size = node_reader.i32
            node.index = node_reader.i32
            node.meta_flag = node_reader.i32
            if format_version >= REF_TYPE_HASH_FORMAT:
                node.ref_type_hash = node_reader.u64

            node.type_ = _blob_string(string_buffer, type_offset)
            node.name = _blob_string(string_buffer, name_offset)
            nodes.append(node)

    link_nodes(nodes)
    return TypeTree(nodes, string_buffer)


def link_nodes(nodes: list[TypeTreeNode]):
    """Rebuild parent/child links of a flat node table from its depth column.

    A node at depth ``d`` becomes the next child of the last node seen at depth ``d - 1``.
    """
    root = nodes[0]
    if root.level != 0:
        raise CorruptStreamError(f'type tree root has depth {root.level}')

    parents = [root]
    for node in nodes[1:]:
        if node.level == 0:
            raise CorruptStreamError(f'type tree has a second root {node.type_!r}')
        if node.level > parents[-1].level + 1:
            raise CorruptStreamError(
                f'type tree depth jumps from {parents[-1].level} to {node.level} at {node.name!r}'
            )
        del parents[node.level :]
        parents[-1].children.append(node)
        parents.append(node)


def _blob_string(buffer: bytes, offset: int) -> str:
    if offset & COMMON_STRING_FLAG:
        return common_string(offset & ~COMMON_STRING_FLAG)
    if offset >= len(buffer):
        raise CorruptStreamError(f'string offset {offset} outside a {len(buffer)} byte string table')
    end = buffer.find(b'\0', offset)
    if end < 0:
        raise CorruptStreamError(f'unterminated string at offset {offset} of the string table')
    return BinaryReader._decode(buffer[offset:end])


__all__ = [
    'COMMON_STRINGS',
    'BLOB_TYPE_TREE_FORMAT',
    'TypeTreeNode',
    'TypeTree',
    'common_string',
    'read_type_tree',
    'read_legacy_type_tree',
    'read_blob_type_tree',
    'link_nodes',
]
