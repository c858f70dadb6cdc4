from .api import (
    asset_name,
    destroy,
    free_object_array,
    free_string,
    get_asset,
    list_objects,
    live_bundles,
    load,
    num_assets,
    num_objects,
    object_type,
    objects_with_type,
    read_object,
)
from .bundle import Bundle, BundleFile
from .compression import CompressionType
from .config import DEFAULT_CONFIG, ReaderConfig
from .errors import (
    BadHandleError,
    BundleIOError,
    CorruptStreamError,
    OutOfRangeError,
    TruncatedError,
    UnityPackError,
    UnsupportedFormatError,
)
from .registry import AssetHandle, BundleHandle, ObjectArray, ObjectRecord, TransferredString
from .serialized_file import ObjectInfo, SerializedFile

__version__ = '0.3.0'
