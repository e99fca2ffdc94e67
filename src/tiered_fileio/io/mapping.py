"""Read-through path mapping file IO.

Wraps a delegate file IO and redirects reads of canonical object store
locations to a cache tier that mirrors them under a different base URI.
Writes and deletes always go to the canonical location, and every location
handed back to callers is the canonical one, so metadata that records file
locations never sees cache tier paths.

Example configuration:
    cache.baseuri = "alluxio://localhost:19998/"
    canonical.baseuri = "gs://bucket1/,gs://bucket2/data/"
    read.through.cache = true

With it, a read of ``gs://bucket2/data/x`` opens
``alluxio://localhost:19998/x``, while the returned handle still reports
``gs://bucket2/data/x`` as its location.
"""

from dataclasses import dataclass, replace
from typing import Callable, Iterator, Mapping, Optional, Union

from tiered_fileio.config import Configuration, MappingConfig
from tiered_fileio.io.files import FileInfo
from tiered_fileio.io.s3 import S3FileIO
from tiered_fileio.logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class MappedLocation:
    """Outcome of mapping one requested location.

    Attributes:
        effective_path: Location to actually open
        original_path: Location callers asked for and must see
    """

    effective_path: str
    original_path: str

    @property
    def is_mapped(self) -> bool:
        return self.effective_path != self.original_path


class MappedInputFile:
    """Input file that reports its canonical location.

    Bytes, length and existence all come from the wrapped handle, which was
    opened against the cache tier; only ``location`` is overridden.
    """

    def __init__(self, input_file, location: str):
        self._input_file = input_file
        self._location = location

    @property
    def location(self) -> str:
        return self._location

    @property
    def wrapped(self):
        """The delegate's handle, opened at the cache tier location."""
        return self._input_file

    def get_length(self) -> int:
        return self._input_file.get_length()

    def exists(self) -> bool:
        return self._input_file.exists()

    def new_stream(self):
        return self._input_file.new_stream()

    def __repr__(self) -> str:
        return f"MappedInputFile({self._location!r} -> {self._input_file.location!r})"


@dataclass(frozen=True)
class _MappingState:
    config: MappingConfig
    delegate: S3FileIO


class PathMappingFileIO:
    """File IO that serves canonical reads from a cache tier.

    Can be initialized from a ``Configuration`` (at construction or via
    ``set_conf``) or from flat properties via ``initialize``. Only
    ``initialize`` validates that both ``cache.baseuri`` and
    ``canonical.baseuri`` are set; a ``Configuration`` lacking them yields
    an instance that never remaps.

    The mapping config and the delegate are held together and replaced in
    a single assignment on re-initialization. Initialize once before
    sharing an instance between threads.
    """

    def __init__(
        self,
        conf: Union[Configuration, Callable[[], Configuration], None] = None,
        delegate_factory: Callable[..., S3FileIO] = S3FileIO,
    ):
        """Initialize the file IO.

        Args:
            conf: Configuration, or a zero-argument supplier of one; leave
                unset and call ``initialize`` to use flat properties instead
            delegate_factory: Builds the delegate file IO, called with the
                Configuration or with no arguments for flat properties
        """
        self._delegate_factory = delegate_factory
        self._state: Optional[_MappingState] = None
        self._closed = False

        if conf is not None:
            self.set_conf(conf() if callable(conf) else conf)

    def initialize(self, properties: Mapping[str, str]) -> None:
        """Initialize from flat catalog properties.

        Raises:
            ConfigurationError: If ``cache.baseuri`` or ``canonical.baseuri``
                is missing or blank
        """
        config = MappingConfig.from_properties(properties)
        delegate = self._delegate_factory()
        delegate.initialize(properties)
        self._swap_state(_MappingState(config, delegate))

    def set_conf(self, conf: Configuration) -> None:
        config = MappingConfig.from_configuration(conf)
        delegate = self._delegate_factory(conf)
        self._swap_state(_MappingState(config, delegate))

    def get_conf(self) -> Configuration:
        return self._require_delegate().get_conf()

    def properties(self) -> dict[str, str]:
        return self._require_delegate().properties()

    def serialize_conf_with(
        self, conf_serializer: Callable[[Configuration], Callable[[], Configuration]]
    ) -> None:
        self._require_delegate().serialize_conf_with(conf_serializer)

    @property
    def mapping_config(self) -> MappingConfig:
        if self._state is None:
            return MappingConfig()
        return self._state.config

    def _swap_state(self, state: _MappingState) -> None:
        previous = self._state
        was_closed = self._closed
        self._state = state
        self._closed = False
        if previous is not None and not was_closed:
            previous.delegate.close()
        logger.debug(
            "Mapping %s -> %s (read through cache: %s)",
            ",".join(state.config.canonical_base_prefixes) or "<none>",
            state.config.cache_base_uri or "<none>",
            state.config.read_through_cache,
        )

    def _require_state(self) -> _MappingState:
        state = self._state
        if state is None:
            raise RuntimeError("PathMappingFileIO is not initialized")
        return state

    def _require_delegate(self) -> S3FileIO:
        return self._require_state().delegate

    @staticmethod
    def _resolve(config: MappingConfig, path: str) -> MappedLocation:
        if not config.read_through_cache or not config.cache_base_uri:
            return MappedLocation(path, path)

        if path.startswith(config.cache_base_uri):
            return MappedLocation(path, path)

        for prefix in config.canonical_base_prefixes:
            if path.startswith(prefix):
                return MappedLocation(config.cache_base_uri + path[len(prefix):], path)

        logger.warning("No cache mapping prefix matches %s, reading canonical location", path)
        return MappedLocation(path, path)

    def resolve_read_location(self, path: str) -> MappedLocation:
        """Work out which location a read of *path* should open.

        The first configured canonical prefix that *path* starts with is
        swapped for the cache base URI. Paths already under the cache base,
        or under no canonical prefix, are returned unchanged.

        Args:
            path: Canonical location requested by the caller

        Returns:
            MappedLocation with the location to open and the original path
        """
        return self._resolve(self.mapping_config, path)

    def new_input_file(self, path: str, length: Optional[int] = None):
        """Open *path* for reading, through the cache tier when mapped.

        Args:
            path: Canonical location
            length: Known file length, passed through to the delegate

        Returns:
            The delegate's input file, wrapped to report *path* when the
            read was redirected
        """
        state = self._require_state()
        mapped = self._resolve(state.config, path)

        if length is None:
            input_file = state.delegate.new_input_file(mapped.effective_path)
        else:
            input_file = state.delegate.new_input_file(mapped.effective_path, length)

        if not mapped.is_mapped:
            return input_file

        logger.debug("Reading %s from %s", path, mapped.effective_path)
        return MappedInputFile(input_file, mapped.original_path)

    def new_output_file(self, path: str):
        # Cache tier is read-only, writes land in the canonical store
        return self._require_delegate().new_output_file(path)

    def delete_file(self, path: str) -> None:
        self._require_delegate().delete_file(path)

    def delete_prefix(self, prefix: str) -> None:
        self._require_delegate().delete_prefix(prefix)

    def list_prefix(self, prefix: str) -> Iterator[FileInfo]:
        """List files under *prefix*, reading the listing from the cache tier.

        Listed locations under the cache base are reported under the
        canonical prefix that was mapped.
        """
        state = self._require_state()
        mapped = self._resolve(state.config, prefix)

        if not mapped.is_mapped:
            return state.delegate.list_prefix(prefix)
        return self._list_as_canonical(state, mapped)

    @staticmethod
    def _list_as_canonical(state: _MappingState, mapped: MappedLocation) -> Iterator[FileInfo]:
        cache_base_uri = state.config.cache_base_uri
        suffix_length = len(mapped.effective_path) - len(cache_base_uri)
        canonical_base = mapped.original_path[: len(mapped.original_path) - suffix_length]

        for info in state.delegate.list_prefix(mapped.effective_path):
            if info.location.startswith(cache_base_uri):
                info = replace(
                    info, location=canonical_base + info.location[len(cache_base_uri):]
                )
            yield info

    def close(self) -> None:
        state = self._state
        if state is None or self._closed:
            return
        self._closed = True
        state.delegate.close()
