"""
Simulated scan progress.

The face and document "scans" are pacing only: a percentage climbs from 0
to 100 at a fixed cadence, then a short settle delay follows before the
wizard advances. No biometric or document analysis takes place.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterator, Optional


@dataclass(frozen=True)
class ScanCadence:
    """
    Fixed-rate progress schedule.

    Iterating a cadence yields the percentages step, 2*step, ... up to 100.
    Each iteration starts over, so a cadence can be replayed for a retry.
    """

    step: int
    interval: float  # seconds between ticks
    settle: float = 0.0  # pause after reaching 100

    def __post_init__(self) -> None:
        if not 0 < self.step <= 100:
            raise ValueError(f"step must be in 1..100, got {self.step}")
        if self.interval < 0 or self.settle < 0:
            raise ValueError("interval and settle must be non-negative")

    def __iter__(self) -> Iterator[int]:
        percent = 0
        while percent < 100:
            percent = min(100, percent + self.step)
            yield percent

    @property
    def ticks(self) -> int:
        return -(-100 // self.step)

    @property
    def total_duration(self) -> float:
        """Seconds from start to the end of the settle delay."""
        return self.ticks * self.interval + self.settle


# ~4.5 s climb at 1% / 45 ms, then 1.2 s settle
FACE_SCAN = ScanCadence(step=1, interval=0.045, settle=1.2)
# ~1.6 s climb at 5% / 80 ms, then 1.0 s settle
DOCUMENT_SCAN = ScanCadence(step=5, interval=0.080, settle=1.0)


async def run_scan(
    cadence: ScanCadence,
    on_progress: Optional[Callable[[int], None]] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> None:
    """
    Drive `cadence` to completion, reporting each percentage.

    Cancelling the awaiting task stops the scan at the current tick.
    """
    for percent in cadence:
        await sleep(cadence.interval)
        if on_progress is not None:
            on_progress(percent)
    await sleep(cadence.settle)
