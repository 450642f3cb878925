from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence

TICKS_PER_BEAT = 480


@dataclass(frozen=True)
class TempoEvent:
    position: int
    bpm: float


class TimeAxis:
    """Tick/millisecond conversion over a piecewise-constant tempo map.

    Positions before the first tempo event (including negative ticks) are
    extrapolated with the first tempo.
    """

    def __init__(
        self,
        tempos: Optional[Sequence[TempoEvent]] = None,
        resolution: int = TICKS_PER_BEAT,
    ):
        if not tempos:
            tempos = [TempoEvent(position=0, bpm=120.0)]
        if any(t.bpm <= 0 for t in tempos):
            raise ValueError("Tempo events must have a positive bpm.")
        self.resolution = resolution
        self.tempos = sorted(tempos, key=lambda t: t.position)
        # Precompute ms offsets for each tempo change
        self.ms_offsets: List[float] = [self._ms_per_tick(0) * self.tempos[0].position]
        current_ms = self.ms_offsets[0]
        for i in range(len(self.tempos) - 1):
            ticks = self.tempos[i + 1].position - self.tempos[i].position
            current_ms += ticks * self._ms_per_tick(i)
            self.ms_offsets.append(current_ms)

    def _ms_per_tick(self, idx: int) -> float:
        return 60000.0 / (self.tempos[idx].bpm * self.resolution)

    def tick_pos_to_ms_pos(self, tick: float) -> float:
        # Since list is short, linear scan is fine
        idx = 0
        for i, t in enumerate(self.tempos):
            if tick >= t.position:
                idx = i
            else:
                break
        tempo = self.tempos[idx]
        return self.ms_offsets[idx] + (tick - tempo.position) * self._ms_per_tick(idx)

    def ms_pos_to_tick_pos(self, ms: float) -> int:
        idx = 0
        for i, offset in enumerate(self.ms_offsets):
            if ms >= offset:
                idx = i
            else:
                break
        tempo = self.tempos[idx]
        tick = tempo.position + (ms - self.ms_offsets[idx]) / self._ms_per_tick(idx)
        return int(round(tick))

    def ticks_between_ms_pos(self, ms_pos: float, ms_end: float) -> int:
        return self.ms_pos_to_tick_pos(ms_end) - self.ms_pos_to_tick_pos(ms_pos)
