"""Handle based entry points.

Bundles are referenced through tokens from a process-wide registry. Asset handles are views
into a loaded bundle and stop working once the bundle is destroyed.
"""

import os
from typing import Any

from rich.console import Console

from .bundle import Bundle
from .errors import BadHandleError, OutOfRangeError
from .registry import (
    AssetHandle,
    BundleHandle,
    HandleRegistry,
    ObjectArray,
    ObjectRecord,
    TransferredString,
)
from .serialized_file import ObjectInfo, SerializedFile

_registry = HandleRegistry()


def load(path: str | os.PathLike, console: Console | None = None) -> BundleHandle:
    return _registry.register(Bundle.from_file(path, console=console))


def destroy(bundle: BundleHandle):
    _registry.release(bundle)


def num_assets(bundle: BundleHandle) -> int:
    return len(_registry.bundle(bundle))


def get_asset(bundle: BundleHandle, index: int) -> AssetHandle:
    count = len(_registry.bundle(bundle))
    if not 0 <= index < count:
        raise OutOfRangeError(f'asset index {index} out of range, bundle has {count}')
    return AssetHandle(bundle, index)


def asset_name(asset: AssetHandle) -> TransferredString:
    return TransferredString(_registry.asset(asset).name)


def num_objects(asset: AssetHandle, bundle: BundleHandle | None = None) -> int:
    return len(_registry.asset(asset, bundle))


def list_objects(asset: AssetHandle, bundle: BundleHandle | None = None) -> ObjectArray:
    return ObjectArray([ObjectRecord.from_info(o) for o in _registry.asset(asset, bundle)])


def objects_with_type(asset: AssetHandle, bundle: BundleHandle | None, type_name: str) -> ObjectArray:
    serialized_file = _registry.asset(asset, bundle)
    return ObjectArray([ObjectRecord.from_info(o) for o in serialized_file.objects_with_type(type_name)])


def _resolve_object(serialized_file: SerializedFile, obj: ObjectRecord) -> ObjectInfo:
    if not isinstance(obj, ObjectRecord):
        raise BadHandleError(f'expected an object record, got {type(obj).__name__}')
    try:
        obj_info = serialized_file.object_by_path_id(obj.path_id)
    except KeyError:
        raise BadHandleError(f'object {obj.path_id} is not in asset {serialized_file.name!r}') from None
    if obj_info.type_id != obj.type_id or obj_info.byte_start != obj.byte_offset:
        raise BadHandleError(f'object record {obj.path_id} does not match asset {serialized_file.name!r}')
    return obj_info


def object_type(obj: ObjectRecord, asset: AssetHandle, bundle: BundleHandle | None = None) -> TransferredString:
    serialized_file = _registry.asset(asset, bundle)
    return TransferredString(serialized_file.type_name(_resolve_object(serialized_file, obj)))


def read_object(obj: ObjectRecord, asset: AssetHandle, bundle: BundleHandle | None = None) -> Any:
    serialized_file = _registry.asset(asset, bundle)
    return serialized_file.read_object(_resolve_object(serialized_file, obj))


def free_string(s: TransferredString | None):
    if s is None:
        return
    assert isinstance(s, TransferredString), 'free_string() called on a string the caller does not own'
    if s.released:
        raise BadHandleError('string was already freed')
    s.released = True


def free_object_array(arr: ObjectArray | None):
    if arr is None:
        return
    if not isinstance(arr, ObjectArray):
        raise BadHandleError(f'expected an object array, got {type(arr).__name__}')
    arr.free()


def live_bundles() -> int:
    return len(_registry)


__all__ = [
    'load',
    'destroy',
    'num_assets',
    'get_asset',
    'asset_name',
    'num_objects',
    'list_objects',
    'objects_with_type',
    'object_type',
    'read_object',
    'free_string',
    'free_object_array',
    'live_bundles',
]
