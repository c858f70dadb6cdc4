import pytest

from unitypack.errors import CorruptStreamError, TruncatedError
from unitypack.serialized_file import SerializedFile

from builders import BinaryWriter, Node, ObjectDef, TypeDef, build_serialized_file, string_node, vector_node


def thing_tree() -> Node:
    byte_vector = vector_node('m_Bytes', Node('UInt8', 'data', 1))
    byte_vector.meta_flag = 0x4000
    pair = Node('pair', 'data', children=[string_node('first'), Node('int', 'second', 4)])
    return Node(
        'Thing',
        'Base',
        children=[
            vector_node('m_Values', Node('int', 'data', 4)),
            Node('map', 'm_Map', children=[Node('Array', 'Array', type_flags=1, children=[Node('int', 'size', 4), pair])]),
            Node('TypelessData', 'm_Blob', children=[Node('int', 'size', 4), Node('UInt8', 'data', 1)]),
            byte_vector,
            Node('float', 'm_Scale', 4),
            Node('UInt64', 'm_Big', 8),
            Node('PPtr<GameObject>', 'm_GameObject', children=[Node('int', 'm_FileID', 4), Node('SInt64', 'm_PathID', 8)]),
        ],
    )


def thing_payload(values_size: int | None = None, big_endian: bool = False) -> bytes:
    w = BinaryWriter(big_endian)
    values = [1, 2, 3]
    w.i32(len(values) if values_size is None else values_size)
    for v in values:
        w.i32(v)
    w.i32(2)
    for key, value in (('a', 10), ('bc', 20)):
        w.i32(len(key)).raw(key.encode()).align(4).i32(value)
    w.i32(4).raw(b'\x01\x02\x03\x04')
    w.i32(3).raw(b'xyz').align(4)
    w.pack('f', 1.5)
    w.u64(1 << 40)
    w.i32(0).pack('q', -7)
    return w.getvalue()


def thing_asset(payload: bytes, big_endian: bool = False) -> SerializedFile:
    data = build_serialized_file(17, [TypeDef(114, thing_tree())], [ObjectDef(1, 0, payload)], big_endian=big_endian)
    return SerializedFile('a', data)


@pytest.mark.parametrize('big_endian', [False, True])
def test_read_object(big_endian):
    asset = thing_asset(thing_payload(big_endian=big_endian), big_endian)
    assert asset.type_name(asset.object_infos[0]) == 'Thing'
    assert asset.read_object(asset.object_infos[0]) == {
        'm_Values': [1, 2, 3],
        'm_Map': [('a', 10), ('bc', 20)],
        'm_Blob': b'\x01\x02\x03\x04',
        'm_Bytes': b'xyz',
        'm_Scale': 1.5,
        'm_Big': 1 << 40,
        'm_GameObject': {'m_FileID': 0, 'm_PathID': -7},
    }


def test_negative_array_size():
    asset = thing_asset(thing_payload(values_size=-1))
    with pytest.raises(CorruptStreamError):
        asset.read_object(asset.object_infos[0])


def test_array_larger_than_object():
    asset = thing_asset(thing_payload(values_size=100000))
    with pytest.raises(TruncatedError):
        asset.read_object(asset.object_infos[0])


def test_short_payload():
    asset = thing_asset(thing_payload()[:-6])
    with pytest.raises(TruncatedError):
        asset.read_object(asset.object_infos[0])


def test_struct_with_single_array_field():
    tree = Node(
        'Holder',
        'Base',
        children=[Node('Items', 'm_Items', children=[Node('Array', 'Array', type_flags=1, children=[Node('int', 'size', 4), Node('int', 'data', 4)])])],
    )
    w = BinaryWriter(False)
    w.i32(2).i32(5).i32(6)
    asset = SerializedFile('a', build_serialized_file(17, [TypeDef(114, tree)], [ObjectDef(1, 0, w.getvalue())]))
    assert asset.read_object(asset.object_infos[0]) == {'m_Items': {'Array': [5, 6]}}
