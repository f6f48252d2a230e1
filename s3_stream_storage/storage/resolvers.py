"""
Field resolvers.

Every configurable upload attribute is produced the same way:
``await resolver.resolve(request, file)``. Options given to the storage
engine (literals, callables or resolver objects) are turned into resolvers
once, at construction time, and never re-checked per upload.
"""

import inspect
import logging
import secrets
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any, Callable, Optional, Sequence, Tuple

from s3_stream_storage.core.errors import ConfigurationError, ResolutionError
from s3_stream_storage.storage.models import TransformSpec
from s3_stream_storage.utils.content_type import (
    DEFAULT_MIME_TYPE,
    detect_content_type,
    guess_content_type,
)
from s3_stream_storage.utils.streaming import peek_first_chunk

logger = logging.getLogger(__name__)


class Resolver(ABC):
    """Asynchronously computes one upload attribute from (request, file)."""

    @abstractmethod
    async def resolve(self, request: Any, file: Any) -> Any:
        ...


class StaticValue(Resolver):
    """Always returns the same literal."""

    def __init__(self, value: Any):
        self.value = value

    async def resolve(self, request: Any, file: Any) -> Any:
        # Hand out copies so one upload cannot mutate another's metadata
        if isinstance(self.value, dict):
            return dict(self.value)
        return self.value

    def __repr__(self) -> str:
        return f"StaticValue({self.value!r})"


class Computed(Resolver):
    """Wraps a user callable; plain and coroutine functions are both accepted."""

    def __init__(self, func: Callable[[Any, Any], Any]):
        self.func = func

    async def resolve(self, request: Any, file: Any) -> Any:
        value = self.func(request, file)
        if inspect.isawaitable(value):
            value = await value
        return value

    def __repr__(self) -> str:
        return f"Computed({getattr(self.func, '__name__', self.func)!r})"


class RandomKey(Resolver):
    """Random 16-byte key rendered as 32 lowercase hex characters."""

    async def resolve(self, request: Any, file: Any) -> str:
        return secrets.token_hex(16)


# ============================================================================
# Content-Type Resolvers
# ============================================================================

class ContentTypeResolver(Resolver):
    """
    Resolves (mime, replacement_stream).

    replacement_stream is None unless the resolver had to read from the file
    stream, in which case the uploader must read the replacement instead.
    """

    @abstractmethod
    async def resolve(self, request: Any, file: Any) -> Tuple[str, Any]:
        ...


class StaticContentType(ContentTypeResolver):
    def __init__(self, mime: str):
        self.mime = mime

    async def resolve(self, request: Any, file: Any) -> Tuple[str, Any]:
        return self.mime, None

    def __repr__(self) -> str:
        return f"StaticContentType({self.mime!r})"


class ComputedContentType(ContentTypeResolver):
    """User callable returning either a mime string or a (mime, stream) pair."""

    def __init__(self, func: Callable[[Any, Any], Any]):
        self._computed = Computed(func)

    async def resolve(self, request: Any, file: Any) -> Tuple[str, Any]:
        value = await self._computed.resolve(request, file)
        if isinstance(value, str):
            return value, None
        if isinstance(value, tuple) and len(value) == 2 and isinstance(value[0], str):
            mime, stream = value
            if stream is not None and not hasattr(stream, "__aiter__"):
                raise ResolutionError(
                    "Content type resolver returned a replacement that is not an async byte stream"
                )
            return mime, stream
        raise ResolutionError(
            f"Content type resolver must return a str or (str, stream) pair, got {type(value).__name__}"
        )


class AutoContentType(ContentTypeResolver):
    """
    Sniff the content type from the first chunk of the file stream.

    The first chunk is consumed from file.stream, so the returned replacement
    stream (first chunk + the rest) is what must be uploaded. An empty stream
    is reported as application/octet-stream with an empty replacement.
    """

    async def resolve(self, request: Any, file: Any) -> Tuple[str, Any]:
        first_chunk, replacement = await peek_first_chunk(file.stream)
        mime = detect_content_type(first_chunk)
        logger.debug(f"[CONTENT TYPE] Sniffed {mime} for {getattr(file, 'originalname', '?')}")
        return mime, replacement


class FilenameContentType(ContentTypeResolver):
    """Guess the content type from the original filename, keeping specific client hints."""

    async def resolve(self, request: Any, file: Any) -> Tuple[str, Any]:
        return guess_content_type(file.originalname, file.mimetype), None


AUTO_CONTENT_TYPE = AutoContentType()
DEFAULT_CONTENT_TYPE = StaticContentType(DEFAULT_MIME_TYPE)
FILENAME_CONTENT_TYPE = FilenameContentType()

# Stateless defaults shared by every storage engine
DEFAULT_KEY = RandomKey()
DEFAULT_ACL = StaticValue("private")
DEFAULT_METADATA = StaticValue(None)
DEFAULT_CACHE_CONTROL = StaticValue(None)
DEFAULT_SHOULD_TRANSFORM = StaticValue(False)
DEFAULT_CONTENT_DISPOSITION = StaticValue(None)
DEFAULT_CONTENT_ENCODING = StaticValue(None)
DEFAULT_STORAGE_CLASS = StaticValue("STANDARD")
DEFAULT_SSE = StaticValue(None)
DEFAULT_SSE_KMS_KEY_ID = StaticValue(None)


# ============================================================================
# Option Shape Switches
# ============================================================================

def _shape_names(literal_types: Sequence[type]) -> str:
    names = ["None"] + [t.__name__ for t in literal_types] + ["callable"]
    return ", ".join(names[:-1]) + " or " + names[-1]


def as_resolver(
    name: str,
    option: Any,
    default: Optional[Resolver] = None,
    literal_types: Sequence[type] = (str,)
) -> Resolver:
    """
    Turn a configuration option into a resolver.

    Args:
        name: Option name, used in error messages
        option: None, a literal of one of literal_types, a callable or a Resolver
        default: Resolver used when option is None; None makes the option required
        literal_types: Accepted literal types

    Returns:
        Resolver for the option

    Raises:
        ConfigurationError: If the option is missing and required, or has an unsupported shape
    """
    if option is None:
        if default is None:
            raise ConfigurationError(f"{name} is required")
        return default

    if isinstance(option, Resolver):
        return option

    if isinstance(option, tuple(literal_types)):
        if isinstance(option, Mapping):
            return StaticValue(dict(option))
        return StaticValue(option)

    if callable(option):
        return Computed(option)

    raise ConfigurationError(f"Expected {name} to be {_shape_names(literal_types)}")


def as_content_type_resolver(option: Any) -> ContentTypeResolver:
    """Turn the content_type option into a content-type resolver."""
    if option is None:
        return DEFAULT_CONTENT_TYPE
    if isinstance(option, ContentTypeResolver):
        return option
    if isinstance(option, Resolver):
        return ComputedContentType(option.resolve)
    if isinstance(option, str):
        return StaticContentType(option)
    if callable(option):
        return ComputedContentType(option)
    raise ConfigurationError("Expected content_type to be None, str or callable")


def as_transforms(option: Any) -> Tuple[TransformSpec, ...]:
    """
    Validate the transforms option.

    Each entry is a TransformSpec or a mapping with optional "id", optional
    "key" (same shapes as the top-level key) and a callable "transform".
    """
    if option is None:
        return ()
    if not isinstance(option, (list, tuple)):
        raise ConfigurationError("Expected transforms to be None or a list")

    specs = []
    for index, entry in enumerate(option):
        if isinstance(entry, TransformSpec):
            spec_id, key, transform = entry.id, entry.key, entry.transform
        elif isinstance(entry, Mapping):
            spec_id, key, transform = entry.get("id"), entry.get("key"), entry.get("transform")
        else:
            raise ConfigurationError(f"Expected transforms[{index}] to be a mapping or TransformSpec")

        key_resolver = as_resolver(f"transforms[{index}].key", key, default=DEFAULT_KEY)
        if not callable(transform):
            raise ConfigurationError(f"Expected transforms[{index}].transform to be callable")

        specs.append(TransformSpec(
            id=index if spec_id in (None, "") else spec_id,
            key=key_resolver,
            transform=transform
        ))
    return tuple(specs)
