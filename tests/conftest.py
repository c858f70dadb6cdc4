import pytest

from unitypack.compression import CompressionType

from builders import build_unityfs, game_objects_asset


@pytest.fixture
def write_file(tmp_path):
    def write(data: bytes, name: str = 'bundle.unity3d') -> str:
        path = tmp_path / name
        path.write_bytes(data)
        return str(path)

    return write


@pytest.fixture
def cab_bundle() -> bytes:
    """One UnityFS asset named CAB-abc with 42 GameObjects."""
    return build_unityfs([('CAB-abc', game_objects_asset(17, 42, text_asset=False))], compression=CompressionType.LZ4HC)
