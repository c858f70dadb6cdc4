from dataclasses import dataclass

# formats 10, 12 and 13 already store blob type trees, everything we accept below 14 is legacy
SUPPORTED_SERIALIZED_FORMATS = frozenset(range(6, 23)) - {10, 12, 13}


@dataclass(frozen=True)
class ReaderConfig:
    unityfs_versions: range = range(6, 9)
    legacy_bundle_versions: range = range(1, 7)
    serialized_formats: frozenset[int] = SUPPORTED_SERIALIZED_FORMATS
    resource_suffixes: tuple[str, ...] = ('.resS', '.resource', '.ress')
    check_object_bounds: bool = True

    def is_resource_name(self, name: str) -> bool:
        return name.endswith(self.resource_suffixes)


DEFAULT_CONFIG = ReaderConfig()


__all__ = ['ReaderConfig', 'DEFAULT_CONFIG', 'SUPPORTED_SERIALIZED_FORMATS']
