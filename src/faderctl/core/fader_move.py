"""Immutable multi-fader movement requests."""

from dataclasses import dataclass, field
from numbers import Real
from typing import Iterable, Sequence

from faderctl.constants import MAX_CHANNELS, MAX_PROGRESSION
from faderctl.exceptions import InvalidConfigError


def _broadcast(name: str, values: float | Sequence[float], length: int) -> tuple[float, ...]:
    if isinstance(values, Real):
        return (float(values),) * length
    values = tuple(float(v) for v in values)
    if len(values) != length:
        raise InvalidConfigError(
            f"FaderMove needs {length} {name}, got {len(values)}.",
            context={name: list(values)},
        )
    return values


@dataclass(frozen=True, init=False)
class FaderMove:
    """
    Targets and speeds for up to four faders, moved together.

    Scalars are broadcast: FaderMove([0, 1, 2], 50, 10) moves three faders
    to progression 50 at speed 10. A single int index is accepted too.

    Raises:
        InvalidConfigError: On bad indexes, targets, speeds or resolution
    """

    indexes: tuple[int, ...]
    targets: tuple[float, ...]
    speeds: tuple[float, ...]
    resolution: float = field(default=1.0)

    def __init__(
        self,
        indexes: int | Iterable[int],
        targets: float | Sequence[float],
        speeds: float | Sequence[float],
        resolution: float = 1.0,
    ):
        indexes = (indexes,) if isinstance(indexes, int) else tuple(indexes)
        if not 1 <= len(indexes) <= MAX_CHANNELS:
            raise InvalidConfigError(
                f"FaderMove takes 1 to {MAX_CHANNELS} faders, got {len(indexes)}.",
                context={"indexes": list(indexes)},
            )
        if len(set(indexes)) != len(indexes):
            raise InvalidConfigError(f"Duplicate fader indexes in {list(indexes)}.", context={"indexes": list(indexes)})
        for index in indexes:
            if not isinstance(index, int) or not 0 <= index < MAX_CHANNELS:
                raise InvalidConfigError(
                    f"Invalid fader index {index!r}.",
                    recovery_hint=f"Fader indexes range from 0 to {MAX_CHANNELS - 1}.",
                    context={"indexes": list(indexes)},
                )

        targets = _broadcast("targets", targets, len(indexes))
        speeds = _broadcast("speeds", speeds, len(indexes))
        if any(not 0 <= t <= MAX_PROGRESSION for t in targets):
            raise InvalidConfigError(f"Targets must be within 0-100, got {list(targets)}.")
        if any(s <= 0 for s in speeds):
            raise InvalidConfigError(f"Speeds must be positive, got {list(speeds)}.")
        if not 0 < resolution <= 1:
            raise InvalidConfigError(f"Resolution must be in (0, 1], got {resolution}.")

        object.__setattr__(self, "indexes", indexes)
        object.__setattr__(self, "targets", targets)
        object.__setattr__(self, "speeds", speeds)
        object.__setattr__(self, "resolution", float(resolution))

    def __iter__(self):
        """Yield (index, target, speed) triples."""
        return iter(zip(self.indexes, self.targets, self.speeds))

    def __len__(self) -> int:
        return len(self.indexes)

    @classmethod
    def combine(cls, moves: Iterable["FaderMove"]) -> "FaderMove":
        """
        Merge moves into one, in encounter order.

        A fader named twice keeps its first triple; anything past
        MAX_CHANNELS faders is dropped. The result uses the highest
        resolution of the inputs.
        """
        moves = [m for m in moves if isinstance(m, FaderMove)]
        if not moves:
            raise InvalidConfigError("No moves to combine.")

        triples: dict[int, tuple[float, float]] = {}
        for move in moves:
            for index, target, speed in move:
                if index not in triples:
                    triples[index] = (target, speed)

        kept = list(triples.items())[:MAX_CHANNELS]
        return cls(
            [index for index, _ in kept],
            [target for _, (target, _) in kept],
            [speed for _, (_, speed) in kept],
            max(m.resolution for m in moves),
        )
