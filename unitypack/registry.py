import itertools
import logging
import threading
from dataclasses import dataclass
from typing import Iterator, Sequence

from .bundle import Bundle
from .errors import BadHandleError
from .serialized_file import ObjectInfo, SerializedFile

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class BundleHandle:
    token: int


@dataclass(frozen=True)
class AssetHandle:
    bundle: BundleHandle
    index: int


@dataclass(frozen=True)
class ObjectRecord:
    path_id: int
    class_id: int
    type_id: int
    byte_offset: int
    byte_length: int

    @classmethod
    def from_info(cls, obj_info: ObjectInfo) -> 'ObjectRecord':
        return cls(obj_info.path_id, obj_info.class_id, obj_info.type_id, obj_info.byte_start, obj_info.byte_size)


class TransferredString(str):
    """A string whose ownership was handed to the caller; give it back with ``free_string``."""

    released: bool

    def __new__(cls, value: str):
        s = super().__new__(cls, value)
        s.released = False
        return s


class ObjectArray(Sequence[ObjectRecord]):
    """Records returned by an object query. Freeing the array drops the records, never the objects."""

    def __init__(self, records: list[ObjectRecord]):
        self._records: list[ObjectRecord] | None = records

    def free(self):
        if self._records is None:
            raise BadHandleError('object array was already freed')
        self._records = None

    def _live(self) -> list[ObjectRecord]:
        if self._records is None:
            raise BadHandleError('object array was freed')
        return self._records

    def __getitem__(self, index):
        return self._live()[index]

    def __len__(self) -> int:
        return len(self._live())

    def __iter__(self) -> Iterator[ObjectRecord]:
        return iter(self._live())

    def __repr__(self) -> str:
        if self._records is None:
            return '<ObjectArray (freed)>'
        return f'<ObjectArray {len(self._records)} records>'


class HandleRegistry:
    """Maps integer tokens to loaded bundles.

    A bundle owns its assets and objects, so releasing its token invalidates every asset handle
    derived from it at once. Lookups never change state.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._tokens = itertools.count(1)
        self._bundles: dict[int, Bundle] = {}

    def register(self, bundle: Bundle) -> BundleHandle:
        with self._lock:
            token = next(self._tokens)
            self._bundles[token] = bundle
        log.debug('registered %s as bundle %d', bundle.path, token)
        return BundleHandle(token)

    def release(self, handle: BundleHandle):
        self._check_type(handle, BundleHandle, 'bundle')
        with self._lock:
            bundle = self._bundles.pop(handle.token, None)
        if bundle is None:
            raise BadHandleError(f'bundle {handle.token} is not loaded')
        log.debug('released bundle %d', handle.token)

    def bundle(self, handle: BundleHandle) -> Bundle:
        self._check_type(handle, BundleHandle, 'bundle')
        with self._lock:
            bundle = self._bundles.get(handle.token)
        if bundle is None:
            raise BadHandleError(f'bundle {handle.token} is not loaded')
        return bundle

    def asset(self, handle: AssetHandle, bundle: BundleHandle | None = None) -> SerializedFile:
        self._check_type(handle, AssetHandle, 'asset')
        if bundle is not None:
            self._check_type(bundle, BundleHandle, 'bundle')
        if bundle is not None and bundle != handle.bundle:
            raise BadHandleError(f'asset belongs to bundle {handle.bundle.token}, not {bundle.token}')
        assets = self.bundle(handle.bundle).assets
        if not 0 <= handle.index < len(assets):
            raise BadHandleError(f'asset {handle.index} is not in bundle {handle.bundle.token}')
        return assets[handle.index]

    @staticmethod
    def _check_type(handle, expected: type, what: str):
        if not isinstance(handle, expected):
            raise BadHandleError(f'expected a {what} handle, got {type(handle).__name__}')

    def __len__(self) -> int:
        with self._lock:
            return len(self._bundles)


__all__ = [
    'BundleHandle',
    'AssetHandle',
    'ObjectRecord',
    'TransferredString',
    'ObjectArray',
    'HandleRegistry',
]
