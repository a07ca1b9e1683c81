from __future__ import annotations
from typing import Dict, Optional
import logging

from .chemicals import Chemical
from .vessel import Vessel
from .constants import (
    COLLECTION_BEAKER_ID,
    FILTRATION_RATE_POURING,
    FILTRATION_RATE_IDLE,
    FILTRATION_EMPTY_LEVEL,
    FILTRATION_SOURCE_EMPTY,
)

logger = logging.getLogger(__name__)


class FiltrationBuffer:
    """
    Scalar volume sitting in the funnel between a pour and the collection beaker.

    Pours land here via receive(); step() releases clear water into the
    collection beaker at a rate that depends on whether a pour is active and
    reports the moment the funnel runs dry with the source beakers empty.
    """

    def __init__(self, filtrate: Optional[Chemical] = None):
        self.pending: float = 0.0
        self.pouring: bool = False
        self.filtrate = filtrate
        self._was_draining: bool = False

    def reset(self) -> None:
        self.pending = 0.0
        self.pouring = False
        self._was_draining = False

    def receive(self, amount: float) -> None:
        if amount > 0:
            self.pending += float(amount)

    @property
    def rate(self) -> float:
        return FILTRATION_RATE_POURING if self.pouring else FILTRATION_RATE_IDLE

    @staticmethod
    def source_volume(vessels: Dict[str, Vessel]) -> float:
        return float(sum(v.current_volume for v in vessels.values()
                         if v.kind == "beaker" and v.id != COLLECTION_BEAKER_ID))

    def step(self, dt: float, vessels: Dict[str, Vessel]) -> bool:
        """
        Release rate * dt of filtrate and return True on the completion edge:
        the buffer just fell to the empty level after draining and the source
        beakers together hold less than FILTRATION_SOURCE_EMPTY ml.
        """
        collection = vessels.get(COLLECTION_BEAKER_ID)
        if self.pending > FILTRATION_EMPTY_LEVEL:
            self._was_draining = True
            if collection is not None and self.filtrate is not None and dt > 0:
                amount = min(self.rate * dt, self.pending)
                added = collection.fill(self.filtrate, amount)
                if added < amount:
                    logger.debug(f"Collection beaker full; {amount - added:.2f} ml of filtrate spilled")
                self.pending -= amount
            return False

        if not self._was_draining:
            return False
        self._was_draining = False
        source = self.source_volume(vessels)
        if source < FILTRATION_SOURCE_EMPTY:
            logger.info(f"Filtration complete ({collection.current_volume if collection else 0.0:.1f} ml collected)")
            return True
        logger.debug(f"Funnel empty but {source:.1f} ml still in source beakers")
        return False
