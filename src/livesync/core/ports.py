from typing import Any, Callable, Iterable, Protocol

from .model import BlockId, VisibilityEntry


class ParserStrategy(Protocol):
    """
    Turn Markdown into a block-level token stream carrying 0-based
    ``[start, end)`` line maps, and render that stream to HTML.
    """

    def parse(self, text: str) -> list[Any]:
        pass

    def render(self, tokens: list[Any]) -> str:
        pass


class FrontmatterCodec(Protocol):
    """
    Split optional frontmatter from a document without enforcing schema.
    Returns (meta, body, number of source lines consumed by the frontmatter).
    """

    def decode(self, text: str) -> tuple[dict[str, Any], str, int]:
        pass


class TimerHandle(Protocol):
    def cancel(self) -> None:
        pass


class Scheduler(Protocol):
    """
    Clock and timer source for one side. ``now`` is in seconds on a
    monotonic clock; delays are in seconds.
    """

    def now(self) -> float:
        pass

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        pass


VisibilityCallback = Callable[[Iterable[VisibilityEntry], float, int | None], None]


class VisibilityObserver(Protocol):
    """
    Capability of the rendered surface to report block visibility.
    Any mechanism (intersection API, manual polling) can satisfy it.
    """

    def observe(self, block_id: BlockId) -> None:
        pass

    def on_visibility_changed(self, callback: VisibilityCallback) -> None:
        pass


class Transport(Protocol):
    """
    Ordered, asynchronous, structured message channel. ``send`` never
    blocks; delivery happens in send order.
    """

    def send(self, message: dict[str, Any]) -> None:
        pass

    async def receive(self) -> dict[str, Any]:
        pass

    def close(self) -> None:
        pass
