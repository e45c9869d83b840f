# storage.py
from __future__ import annotations

import io
import shutil
from pathlib import Path
from typing import List, Union

import numpy as np
from PIL import Image
from pydantic import BaseModel, Field

from ht.model.tile import TileAddress


def encode_png(tile_data: np.ndarray, compress_level: int = 6) -> bytes:
    """
    Encode an RGBA (or RGB) tile array as PNG.

    PNG keeps the alpha channel, so no-data blocks stay transparent in the
    host map.
    """
    if tile_data.ndim != 3 or tile_data.shape[2] not in (3, 4):
        raise ValueError(f"expected (h, w, 3|4) tile array, got shape {tile_data.shape}")
    # (h, w, 4) uint8 -> RGBA, (h, w, 3) -> RGB
    img = Image.fromarray(np.ascontiguousarray(tile_data, dtype=np.uint8))
    buf = io.BytesIO()
    # compress_level=6 balances speed and size
    img.save(buf, "png", compress_level=compress_level)
    return buf.getvalue()


def decode_png(data: bytes) -> np.ndarray:
    with Image.open(io.BytesIO(data)) as img:
        return np.array(img.convert("RGBA"), dtype=np.uint8)


class StorageConfig(BaseModel):
    """
    Configuration used by create_storage().
    """
    container: str = Field(default="tiles")

    # Container create behavior
    create_container_if_missing: bool = True

    # PNG zlib level
    compress_level: int = Field(default=6, ge=0, le=9)


class FilesystemStorage:
    """
    Tile tree on the local filesystem.

    Layout:
      <container>/<layer>/<z>/<x>/<y>.png

    Key methods:
      - store_tile(...)
      - load_tile(...)
    """

    def __init__(self, cfg: StorageConfig):
        self._cfg = cfg
        self._root = Path(cfg.container)
        if cfg.create_container_if_missing:
            self._root.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

####################################################################################################################
#   Low-level primitives
####################################################################################################################

    def _path(self, blob_name: str) -> Path:
        path = (self._root / blob_name).resolve()
        if self._root.resolve() not in path.parents:
            raise ValueError(f"blob name '{blob_name}' escapes the storage root")
        return path

    def store_bytes(self, *, blob_name: str, data: bytes, overwrite: bool = True) -> None:
        path = self._path(blob_name)
        if path.exists() and not overwrite:
            raise FileExistsError(f"blob '{blob_name}' already exists")
        path.parent.mkdir(parents=True, exist_ok=True)
        # Write then rename so readers never see a half-written tile
        tmp = path.with_suffix(path.suffix + ".tmp")
        tmp.write_bytes(data)
        tmp.replace(path)

    def load_bytes(self, *, blob_name: str) -> bytes:
        return self._path(blob_name).read_bytes()

    def exists(self, *, blob_name: str) -> bool:
        return self._path(blob_name).is_file()

####################################################################################################################
#   High-level operations
####################################################################################################################

    def store_tile(self, addr: TileAddress, tile_data: np.ndarray, overwrite: bool = True) -> Path:
        """Encode a rendered tile as PNG and store it under its address."""
        self.store_bytes(
            blob_name=addr.blob_name(),
            data=encode_png(tile_data, compress_level=self._cfg.compress_level),
            overwrite=overwrite,
        )
        return self._path(addr.blob_name())

    def load_tile(self, addr: TileAddress) -> bytes:
        return self.load_bytes(blob_name=addr.blob_name())

    def has_tile_subtree(self, *, layer: str, z: int) -> bool:
        path = self._root / layer / str(z)
        return path.is_dir() and any(path.rglob("*.png"))

    def list_tiles(self, layer: str) -> List[TileAddress]:
        tiles = []
        for p in sorted((self._root / layer).glob("*/*/*.png")):
            z, x = p.parent.parent.name, p.parent.name
            tiles.append(TileAddress(layer=layer, z=int(z), x=int(x), y=int(p.stem)))
        return tiles

    def delete_container(self) -> bool:
        if not self._root.exists():
            return False
        shutil.rmtree(self._root)
        return True

    def recreate_container(self) -> bool:
        self.delete_container()
        self._root.mkdir(parents=True, exist_ok=True)
        return True

####################################################################################################################
# Factory
####################################################################################################################

def create_storage(
    *,
    container: Union[str, Path] = "tiles",
    create_container_if_missing: bool = True,
    compress_level: int = 6,
) -> FilesystemStorage:
    """
    Create a FilesystemStorage rooted at `container`.

    """
    cfg = StorageConfig(
        container=str(container),
        create_container_if_missing=create_container_if_missing,
        compress_level=compress_level,
    )
    return FilesystemStorage(cfg)
