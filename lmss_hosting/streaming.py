"""
Stream adapter: lazy streams with eager failure detection.

Opening a stream is a distinct step from pulling it. open_stream() pulls
the first item immediately, so a stream that fails to start is detected
before anything reaches the caller and is replaced by a one-item
synthetic stream carrying the user-facing error message. Failures after
the first item are not masked; they propagate from the failing pull.

Known limitation: a synthetic error item has the same type as a real
item, so callers cannot tell a one-fragment reply from an error at the
type level. OpenedStream.synthetic exposes the difference to code that
holds the stream object.
"""

import logging
from typing import AsyncIterable, AsyncIterator, Callable, Generic, Optional, TypeVar

from lmss_hosting.adapters.schema import StreamingChatResponse
from lmss_hosting.errors import ErrorKind, classify_exception

logger = logging.getLogger(__name__)

T = TypeVar("T")


class OpenedStream(Generic[T]):
    """A finite, single-use async stream returned by open_stream()."""

    def __init__(
        self,
        items: AsyncIterator[T],
        synthetic: bool = False,
        error_kind: Optional[ErrorKind] = None,
    ):
        self._items = items
        self._consumed = False
        self.synthetic = synthetic
        self.error_kind = error_kind

    def __aiter__(self) -> AsyncIterator[T]:
        if self._consumed:
            raise RuntimeError("Stream has already been consumed")
        self._consumed = True
        return self._items

    async def aclose(self) -> None:
        aclose = getattr(self._items, "aclose", None)
        if aclose is not None:
            await aclose()


async def _from_items(items: list[T]) -> AsyncIterator[T]:
    for item in items:
        yield item


async def _resume(first: T, rest: AsyncIterator[T]) -> AsyncIterator[T]:
    try:
        yield first
        async for item in rest:
            yield item
    finally:
        aclose = getattr(rest, "aclose", None)
        if aclose is not None:
            await aclose()


async def open_stream(
    opener: Callable[[], AsyncIterable[T]],
    error_item: Callable[[ErrorKind], T],
    description: str = "stream",
    propagate: tuple[type[BaseException], ...] = (),
) -> OpenedStream[T]:
    """
    Open a stream eagerly, substituting a synthetic error stream on failure.

    Args:
        opener: Returns the underlying stream; may raise, or fail on first pull
        error_item: Builds the single item emitted when opening fails
        description: Used in the log line for a failed start
        propagate: Exception types re-raised instead of masked

    Returns:
        OpenedStream yielding the real items, or exactly one error item
    """
    try:
        iterator = opener().__aiter__()
        first = await iterator.__anext__()
    except StopAsyncIteration:
        return OpenedStream(_from_items([]))
    except propagate:
        raise
    except Exception as e:
        kind = classify_exception(e)
        logger.error(f"Failed to start {description}: {e}", exc_info=True)
        return OpenedStream(_from_items([error_item(kind)]), synthetic=True, error_kind=kind)
    return OpenedStream(_resume(first, iterator))


def error_text(kind: ErrorKind) -> str:
    """Synthetic text fragment for a failed text stream."""
    return kind.user_message


def error_chunk(kind: ErrorKind) -> StreamingChatResponse:
    """Synthetic chunk for a failed completion stream."""
    return StreamingChatResponse.from_text(kind.user_message)


def delta_content(chunk: StreamingChatResponse) -> Optional[str]:
    """Content of the first choice's delta, if any."""
    if not chunk.choices:
        return None
    return chunk.choices[0].delta.content
