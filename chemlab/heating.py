from __future__ import annotations
from typing import Callable, Dict, Iterable, List, Optional, Set
import numpy as np
import logging

from .vessel import Vessel
from .constants import (
    AMBIENT_TEMPERATURE,
    HEAT_SOURCE_POSITION,
    HEATING_RADIUS,
    HEATING_RATE,
    MAX_TEMPERATURE,
    COOLING_RATE_NEAR,
    COOLING_RATE_OFF,
    BOILING_POINT,
    BOILING_COOLDOWN_MS,
    ICE_MELT_TEMPERATURE,
    ICE_MELT_RATE,
    ICE_MELT_DONE,
    DISH_CRACK_SECONDS,
)

logger = logging.getLogger(__name__)

ICE_ID = "ice"


class HeatingReport:
    """Vessel ids that crossed a threshold during one HeatingSystem.step()."""

    __slots__ = ("boiling", "melted", "cracked", "tongs_heated")

    def __init__(self):
        self.boiling: List[str] = []
        self.melted: List[str] = []
        self.cracked: List[str] = []
        self.tongs_heated: List[str] = []


class HeatingSystem:
    """
    Heat source plus per-vessel thermal state.

    step() is pure bookkeeping: it updates temperatures and reports boiling,
    melted ice, cracked dishes and heated tongs. The caller turns those into
    effects, reaction checks and warnings.
    """

    def __init__(self, source_position=HEAT_SOURCE_POSITION, radius: float = HEATING_RADIUS):
        self.source_position: np.ndarray = np.array(source_position, dtype=float)
        self.radius = float(radius)
        self.burner_on: bool = False
        self.melt_progress: Dict[str, float] = {}
        self._melt_done: Set[str] = set()
        self._last_boil_ms: Dict[str, float] = {}
        self._dry_seconds: Dict[str, float] = {}
        self.cracked: Set[str] = set()
        self._tongs_reported: Set[str] = set()

    def reset(self) -> None:
        self.burner_on = False
        self.melt_progress = {}
        self._melt_done = set()
        self._last_boil_ms = {}
        self._dry_seconds = {}
        self.cracked = set()
        self._tongs_reported = set()

    # -----------------------
    # Burner
    # -----------------------
    def set_burner(self, on: bool) -> bool:
        on = bool(on)
        if on != self.burner_on:
            self.burner_on = on
            logger.info(f"Burner {'ON' if on else 'OFF'}")
        if not on:
            # a new heating session may check the tongs again
            self._tongs_reported.clear()
        return self.burner_on

    def toggle(self) -> bool:
        return self.set_burner(not self.burner_on)

    def horizontal_distance(self, vessel: Vessel) -> float:
        """Distance in the (x, z) plane between a vessel and the heat source."""
        delta = vessel.position[[0, 2]] - self.source_position[[0, 2]]
        return float(np.linalg.norm(delta))

    def in_range(self, vessel: Vessel) -> bool:
        return self.horizontal_distance(vessel) < self.radius

    # -----------------------
    # Tick
    # -----------------------
    def step(self, dt: float, vessels: Iterable[Vessel], now_ms: float,
             dish_is_dry: Optional[Callable[[Vessel], bool]] = None) -> HeatingReport:
        """
        Advance every vessel by dt seconds.

        Args:
            dt: elapsed seconds.
            vessels: vessels on the bench.
            now_ms: scheduler clock, used for the boiling cooldown.
            dish_is_dry: predicate telling whether a china dish has nothing left
                to evaporate. Defaults to "holds no salt solution".
        """
        report = HeatingReport()
        if dt <= 0:
            return report
        if dish_is_dry is None:
            dish_is_dry = lambda v: not v.has_chemical("salt-solution")

        for vessel in vessels:
            self._update_temperature(vessel, dt)

            has_ice = vessel.has_chemical(ICE_ID)
            if has_ice:
                if self._advance_melt(vessel, dt):
                    report.melted.append(vessel.id)
            elif self._check_boiling(vessel, now_ms):
                report.boiling.append(vessel.id)

            if vessel.kind == "china_dish" and self._advance_dry_heat(vessel, dt, dish_is_dry):
                report.cracked.append(vessel.id)

            if (vessel.kind == "tongs" and self.burner_on and not vessel.is_empty
                    and vessel.id not in self._tongs_reported and self.in_range(vessel)):
                self._tongs_reported.add(vessel.id)
                report.tongs_heated.append(vessel.id)

        if report.melted or report.cracked:
            self.set_burner(False)
        return report

    def _update_temperature(self, vessel: Vessel, dt: float) -> None:
        d = self.horizontal_distance(vessel)
        if self.burner_on and d < self.radius:
            rate = HEATING_RATE * (1.0 - d / self.radius)
            vessel.temperature = min(MAX_TEMPERATURE, vessel.temperature + rate * dt)
        elif vessel.temperature > AMBIENT_TEMPERATURE:
            rate = COOLING_RATE_NEAR if self.burner_on else COOLING_RATE_OFF
            vessel.temperature = max(AMBIENT_TEMPERATURE, vessel.temperature - rate * dt)

    def _advance_melt(self, vessel: Vessel, dt: float) -> bool:
        if vessel.temperature <= ICE_MELT_TEMPERATURE or vessel.id in self._melt_done:
            return False
        progress = min(1.0, self.melt_progress.get(vessel.id, 0.0) + ICE_MELT_RATE * dt)
        self.melt_progress[vessel.id] = progress
        if progress >= ICE_MELT_DONE:
            self._melt_done.add(vessel.id)
            logger.info(f"Ice in {vessel.id} melted")
            return True
        return False

    def _check_boiling(self, vessel: Vessel, now_ms: float) -> bool:
        if vessel.kind == "tongs" or vessel.is_empty or vessel.temperature < BOILING_POINT:
            return False
        last = self._last_boil_ms.get(vessel.id)
        if last is not None and now_ms - last < BOILING_COOLDOWN_MS:
            return False
        self._last_boil_ms[vessel.id] = now_ms
        return True

    def _advance_dry_heat(self, vessel: Vessel, dt: float, dish_is_dry: Callable[[Vessel], bool]) -> bool:
        if not self.burner_on or vessel.id in self.cracked:
            return False
        if not dish_is_dry(vessel):
            self._dry_seconds[vessel.id] = 0.0
            return False
        elapsed = self._dry_seconds.get(vessel.id, 0.0) + dt
        self._dry_seconds[vessel.id] = elapsed
        if elapsed > DISH_CRACK_SECONDS:
            self.cracked.add(vessel.id)
            logger.warning(f"China dish {vessel.id} cracked after {elapsed:.1f}s of dry heating")
            return True
        return False
