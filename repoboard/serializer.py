"""
Compressed state serializer.

Encodes a JSON-serializable tree with LZ-String compression into one of
three text-safe formats:

  utf16  - densest, for storages that keep arbitrary unicode
  base64 - general purpose
  uri    - safe inside URLs

The format is not recorded in the payload: deserialize with the same
format used to serialize.

The backend module is imported lazily. Call `await init()` once; later
calls reuse the cached module. Using the codec before that raises
BackendNotLoadedError.

Dependencies:
    pip install lzstring
"""
import asyncio
import importlib
import logging
from typing import Any, Callable, Dict, Optional

from .errors import BackendNotLoadedError, BackendUnavailableError, SerializationError
from .transforms import Transform, decode, encode

logger = logging.getLogger(__name__)

DEFAULT_BACKEND = "lzstring"
DEFAULT_FORMAT = "utf16"

# format -> (compress method, decompress method) on the backend object
FORMAT_METHODS: Dict[str, tuple] = {
    "utf16": ("compressToUTF16", "decompressFromUTF16"),
    "base64": ("compressToBase64", "decompressFromBase64"),
    "uri": ("compressToEncodedURIComponent", "decompressFromEncodedURIComponent"),
}


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# ModuleLoader: lazy, cached backend import
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class ModuleLoader:
    """
    Imports an optional dependency on first use and caches it.

    `extract` turns the imported module into the object callers use
    (e.g. an instance of the module's main class).
    """

    def __init__(
        self,
        module_name: str,
        import_fn: Optional[Callable[[], Any]] = None,
        extract: Optional[Callable[[Any], Any]] = None,
    ):
        self.module_name = module_name
        self._import_fn = import_fn or (lambda: importlib.import_module(module_name))
        self._extract = extract or (lambda module: module)
        self._cached: Any = None

    async def load(self) -> Any:
        """Import (in a worker thread) unless already cached."""
        if self._cached is not None:
            return self._cached
        try:
            module = await asyncio.to_thread(self._import_fn)
        except ImportError as e:
            raise BackendUnavailableError(
                f"{self.module_name} is not installed. "
                f"Please install it with: pip install {self.module_name}"
            ) from e
        self._cached = self._extract(module)
        logger.info(f"Loaded compression backend {self.module_name}")
        return self._cached

    def get(self) -> Any:
        """The cached backend; raises BackendNotLoadedError before load()."""
        if self._cached is None:
            raise BackendNotLoadedError(
                f"{self.module_name} not loaded. Call init() first."
            )
        return self._cached

    def is_loaded(self) -> bool:
        return self._cached is not None

    def reset(self) -> None:
        self._cached = None


_LOADERS: Dict[str, ModuleLoader] = {
    DEFAULT_BACKEND: ModuleLoader(DEFAULT_BACKEND, extract=lambda module: module.LZString()),
}


def register_backend(
    name: str,
    import_fn: Optional[Callable[[], Any]] = None,
    extract: Optional[Callable[[Any], Any]] = None,
) -> ModuleLoader:
    """
    Make another compression backend available under `name`.

    The extracted object must provide the compress/decompress methods
    listed in FORMAT_METHODS for every format it will be used with.
    """
    loader = ModuleLoader(name, import_fn, extract)
    _LOADERS[name] = loader
    return loader


def get_loader(backend: str = DEFAULT_BACKEND) -> ModuleLoader:
    loader = _LOADERS.get(backend)
    if loader is None:
        loader = register_backend(backend)
    return loader


async def init(backend: str = DEFAULT_BACKEND) -> None:
    """Load and cache the compression backend. Idempotent."""
    await get_loader(backend).load()


def is_loaded(backend: str = DEFAULT_BACKEND) -> bool:
    loader = _LOADERS.get(backend)
    return loader is not None and loader.is_loaded()


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# UTF-16 code units
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

# LZ-String works on 16-bit code units. Characters outside the BMP go in
# as their surrogate pair and are rejoined on the way out.


def to_code_units(text: str) -> str:
    data = text.encode("utf-16-le", "surrogatepass")
    return "".join(
        chr(int.from_bytes(data[i:i + 2], "little")) for i in range(0, len(data), 2)
    )


def from_code_units(units: str) -> str:
    return units.encode("utf-16-le", "surrogatepass").decode("utf-16-le", "surrogatepass")


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# CompressedSerializer
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class CompressedSerializer:
    """serialize()/deserialize() pair bound to one format and transform set."""

    def __init__(
        self,
        format: str = DEFAULT_FORMAT,
        replacer: Optional[Transform] = None,
        reviver: Optional[Transform] = None,
        backend: str = DEFAULT_BACKEND,
    ):
        if format not in FORMAT_METHODS:
            raise ValueError(
                f"Unknown compression format {format!r}. "
                f"Allowed: {', '.join(FORMAT_METHODS)}"
            )
        self.format = format
        self.replacer = replacer
        self.reviver = reviver
        self.backend = backend

    def _method(self, index: int) -> Callable[[str], Any]:
        lz = get_loader(self.backend).get()
        return getattr(lz, FORMAT_METHODS[self.format][index])

    def serialize(self, value: Any) -> str:
        compress = self._method(0)
        try:
            return compress(to_code_units(encode(value, self.replacer)))
        except SerializationError as e:
            logger.error(f"Compress serialize error ({self.format}): {e}")
            raise
        except Exception as e:
            logger.error(f"Compress serialize error ({self.format}): {e}")
            raise SerializationError(f"Failed to compress state: {e}") from e

    def deserialize(self, compressed: str) -> Any:
        decompress = self._method(1)
        try:
            if not isinstance(compressed, str) or not compressed:
                raise SerializationError("Nothing to decompress")
            try:
                units = decompress(compressed)
            except Exception as e:
                raise SerializationError(f"Failed to decompress data: {e}") from e
            if not units:
                raise SerializationError(
                    f"Failed to decompress data (corrupt input or not {self.format})"
                )
            try:
                text = from_code_units(units)
            except UnicodeError as e:
                raise SerializationError(f"Decompressed data is not valid text: {e}") from e
            return decode(text, self.reviver)
        except SerializationError as e:
            logger.error(f"Compress deserialize error ({self.format}): {e}")
            raise


def create_compressed_serializer(
    format: str = DEFAULT_FORMAT,
    replacer: Optional[Transform] = None,
    reviver: Optional[Transform] = None,
    backend: str = DEFAULT_BACKEND,
) -> CompressedSerializer:
    """
    Build a serializer. The backend only has to be loaded by first use.

        await init()
        codec = create_compressed_serializer(format="base64")
        blob = codec.serialize({"a": 1})
    """
    return CompressedSerializer(format, replacer, reviver, backend)


def serialize(
    value: Any,
    format: str = DEFAULT_FORMAT,
    replacer: Optional[Transform] = None,
    backend: str = DEFAULT_BACKEND,
) -> str:
    return CompressedSerializer(format, replacer=replacer, backend=backend).serialize(value)


def deserialize(
    compressed: str,
    format: str = DEFAULT_FORMAT,
    reviver: Optional[Transform] = None,
    backend: str = DEFAULT_BACKEND,
) -> Any:
    return CompressedSerializer(format, reviver=reviver, backend=backend).deserialize(compressed)


def get_compression_ratio(original: str, compressed: str) -> float:
    """len(compressed) / len(original); 1 when compression did not shrink it."""
    if not original or len(compressed) >= len(original):
        return 1
    return len(compressed) / len(original)
