"""SourceClient around an injected async producer.

This is the hook for feeds without a bundled parser: supply a coroutine
function that returns either RawSignals, signal dicts, or a raw payload plus
a normalizer.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, List, Optional

from signalfusion.errors import MalformedPayload
from signalfusion.models.signals import Domain, RawSignal
from signalfusion.sources.base import SourceClient


class CallableSource(SourceClient):
    """Delegate fetch() to ``producer`` and normalize() to ``normalizer``.

    Args:
        domain: Domain of the produced signals.
        producer: Zero-argument coroutine function returning the payload.
        normalizer: Optional payload → RawSignal list converter. Without one
            the payload must be a list of RawSignal objects or signal dicts.
    """

    def __init__(
        self,
        domain: Domain,
        producer: Callable[[], Awaitable[Any]],
        normalizer: Optional[Callable[[Any], List[RawSignal]]] = None,
        name: str = "",
        **kwargs: Any,
    ) -> None:
        super().__init__(domain, name=name or f"{Domain.parse(domain).value}-callable", **kwargs)
        self.producer = producer
        self.normalizer = normalizer

    async def fetch(self) -> Any:
        return await self.producer()

    def normalize(self, payload: Any) -> List[RawSignal]:
        if self.normalizer is not None:
            return list(self.normalizer(payload))
        if not isinstance(payload, list):
            raise MalformedPayload(
                f"{self.name}: expected a list of signals, got {type(payload).__name__}",
                source=self.name,
            )
        return self._normalize_records(payload, self._coerce)

    def _coerce(self, item: Any) -> RawSignal:
        signal = item if isinstance(item, RawSignal) else RawSignal.from_dict(item)
        if signal.domain is not self.domain:
            raise ValueError(f"signal {signal.id} is {signal.domain.value}, not {self.domain.value}")
        return signal
