import logging

import pytest

from unitypack.binary_reader import BinaryReader
from unitypack.errors import CorruptStreamError
from unitypack.typetree import (
    COMMON_STRINGS,
    TypeTreeNode,
    common_string,
    link_nodes,
    read_blob_type_tree,
    read_legacy_type_tree,
    read_type_tree,
)

from builders import BinaryWriter, game_object_tree, write_blob_type_tree, write_legacy_type_tree


def blob(records: list[tuple[int, int, int]], strings: bytes, format_version: int = 17) -> BinaryReader:
    """``records`` are ``(level, type_offset, name_offset)`` triples."""
    w = BinaryWriter(False)
    w.i32(len(records)).i32(len(strings))
    for level, type_offset, name_offset in records:
        w.u16(1).u8(level).u8(0).u32(type_offset).u32(name_offset).i32(4).i32(0).i32(0)
        if format_version >= 19:
            w.u64(0)
    w.raw(strings)
    return BinaryReader(w.getvalue(), big_endian=False)


def test_common_strings_table():
    assert COMMON_STRINGS[0] == 'AABB'
    assert common_string(172) == 'GameObject'
    assert common_string(222) == 'int'


def test_unknown_common_string(caplog):
    with caplog.at_level(logging.WARNING):
        assert common_string(3) == '3'
    assert 'unknown common string offset 3' in caplog.text


def test_legacy_tree():
    w = BinaryWriter(True)
    write_legacy_type_tree(w, game_object_tree())
    tree = read_legacy_type_tree(BinaryReader(w.getvalue()))

    assert tree.type_name == 'GameObject'
    assert [child.name for child in tree.root.children] == ['m_Layer', 'm_Name', 'm_IsActive']
    name = tree.root.children[1]
    assert name.type_ == 'string'
    array = name.children[0]
    assert array.is_array and array.post_align
    assert [n.level for n in tree.root.walk()] == [0, 1, 1, 2, 3, 3, 1]
    assert len(tree) == 7


@pytest.mark.parametrize('format_version', [14, 17, 19, 22])
@pytest.mark.parametrize('use_common_strings', [False, True])
def test_blob_tree(format_version, use_common_strings):
    w = BinaryWriter(False)
    write_blob_type_tree(w, game_object_tree(), format_version, use_common_strings)
    reader = BinaryReader(w.getvalue() + b'\xaa', big_endian=False)
    tree = read_blob_type_tree(reader, format_version)

    assert reader.remaining == 1
    assert tree.type_name == 'GameObject'
    assert [n.name for n in tree.root.walk()] == ['Base', 'm_Layer', 'm_Name', 'Array', 'size', 'data', 'm_IsActive']
    assert [n.type_ for n in tree.root.walk()] == ['GameObject', 'int', 'string', 'Array', 'int', 'char', 'bool']


def test_format_selects_decoder():
    w = BinaryWriter(True)
    write_legacy_type_tree(w, game_object_tree())
    assert read_type_tree(BinaryReader(w.getvalue()), 11).type_name == 'GameObject'

    w = BinaryWriter(True)
    write_blob_type_tree(w, game_object_tree(), 15)
    assert read_type_tree(BinaryReader(w.getvalue()), 15).type_name == 'GameObject'


def test_depth_jump_is_corrupt():
    strings = b'Base\x00int\x00'
    with pytest.raises(CorruptStreamError):
        read_blob_type_tree(blob([(0, 0, 0), (2, 5, 5)], strings), 17)


def test_second_root_is_corrupt():
    strings = b'Base\x00int\x00'
    with pytest.raises(CorruptStreamError):
        read_blob_type_tree(blob([(0, 0, 0), (1, 5, 5), (0, 5, 5)], strings), 17)


def test_root_must_be_at_depth_zero():
    with pytest.raises(CorruptStreamError):
        read_blob_type_tree(blob([(1, 0, 0)], b'Base\x00'), 17)


def test_empty_tree_is_corrupt():
    with pytest.raises(CorruptStreamError):
        read_blob_type_tree(blob([], b''), 17)


def test_string_offset_outside_table():
    with pytest.raises(CorruptStreamError):
        read_blob_type_tree(blob([(0, 0, 40)], b'Base\x00'), 17)


def test_unterminated_local_string():
    with pytest.raises(CorruptStreamError):
        read_blob_type_tree(blob([(0, 0, 0)], b'Base'), 17)


def test_legacy_negative_child_count():
    w = BinaryWriter(True)
    w.cstr('Base').cstr('Base').i32(-1).i32(0).i32(0).i32(1).i32(0).i32(-3)
    with pytest.raises(CorruptStreamError):
        read_legacy_type_tree(BinaryReader(w.getvalue()))


def test_legacy_depth_limit():
    w = BinaryWriter(True)
    for _ in range(300):
        w.cstr('Base').cstr('x').i32(-1).i32(0).i32(0).i32(1).i32(0).i32(1)
    with pytest.raises(CorruptStreamError):
        read_legacy_type_tree(BinaryReader(w.getvalue()))


def test_link_nodes_siblings():
    nodes = [TypeTreeNode('Base', 'Base', level=0), TypeTreeNode('a', 'a', level=1), TypeTreeNode('b', 'b', level=2), TypeTreeNode('c', 'c', level=1)]
    link_nodes(nodes)
    assert [n.name for n in nodes[0].children] == ['a', 'c']
    assert [n.name for n in nodes[1].children] == ['b']
