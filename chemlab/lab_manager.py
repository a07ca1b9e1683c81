from __future__ import annotations
from typing import Any, Callable, Dict, List, Optional, Iterable
import threading
import time
import logging

from .chemicals import get_chemical, load_chemicals
from .constants import (
    AUTO_POUR_TILT,
    BOILING_EFFECT_MS,
    CHINA_DISH_CAPACITY,
    COLLECTION_BEAKER_CAPACITY,
    COLLECTION_BEAKER_ID,
    COLLECTION_BEAKER_POSITION,
    DEFAULT_EVENT_LOG_MAXLEN,
    DEFAULT_TICK_SECONDS,
    GUIDED_BEAKER_CAPACITY,
    GUIDED_CHECK_DELAY_MS,
    GUIDED_FILL_ML,
    GUIDED_FILL_OVERRIDES_ML,
    GUIDED_TEST_TUBE_CAPACITY,
    POUR_RATE_ML_S,
    POUR_THRESHOLD_ANGLE,
    REACTION_APPLY_DELAY_MS,
    SAFETY_WARNING_DELAY_MS,
    STAND_POSITION,
    TONGS_CAPACITY,
    TONGS_POSITION,
)
from .events import (
    ActiveEffect,
    EventBus,
    EFFECT_STARTED,
    REACTION_NOTIFICATION,
    SAFETY_WARNING,
    effect_duration_ms,
)
from .experiment_engine import ExperimentEngine
from .experiments import ExperimentDefinition, load_experiments
from .filtration import FiltrationBuffer
from .heating import HeatingSystem
from .phases import DropCountedTitration
from .progress import JsonCompletionStore
from .reactions import ReactionMatcher, load_reactions
from .scheduler import Scheduler
from .vessel import Vessel, drain_into_buffer, transfer

logger = logging.getLogger(__name__)

SANDBOX = "sandbox"
GUIDED = "guided"

# (id, kind, capacity, position)
DEFAULT_SANDBOX_VESSELS = (
    ("beaker_1", "beaker", 500.0, (-1.2, 0.0, 0.0)),
    ("beaker_2", "beaker", 500.0, (1.2, 0.0, 0.0)),
    ("tube_1", "test_tube", 50.0, (-2.5, 0.0, -1.0)),
    ("tube_2", "test_tube", 50.0, (-2.1, 0.0, -1.0)),
    ("tube_3", "test_tube", 50.0, (-1.7, 0.0, -1.0)),
    ("tube_4", "test_tube", 50.0, (-1.3, 0.0, -1.0)),
    ("flask_1", "flask", 250.0, (2.8, 0.0, 0.5)),
)

THERMAL_SHOCK_TITLE = "Oops! Thermal Shock!"
THERMAL_SHOCK_MESSAGE = ("The dish got too hot and CRACKED!\n\n"
                         "Always keep some liquid inside to keep it safe.")
FILTRATION_SOURCE_NAME = "Muddy Water Beaker"


class LabManager:
    """
    Single owner of the lab: vessels, heating, filtration, scheduler, event
    bus and the guided-mode engine.

    Usage:
        lab = LabManager(progress_path=None)
        lab.fill_vessel("beaker_1", "hydrochloric_acid", 50)
        lab.fill_vessel("beaker_1", "sodium_hydroxide", 50)
        lab.run_for(0.5)

    Commands are silent no-ops on unknown ids. Every public method takes the
    same re-entrant lock, so the background thread started by start() and
    callers on other threads never interleave.
    """

    def __init__(self,
                 progress_path: Optional[str] = None,
                 completion_store=None,
                 data_paths: Optional[Dict[str, str]] = None,
                 event_log_maxlen: int = DEFAULT_EVENT_LOG_MAXLEN):
        """
        progress_path: JSON file for the completed-experiment set; None keeps it in memory.
        completion_store: any object with contains/add/ids; overrides progress_path.
        data_paths: optional {"chemicals": ..., "reactions": ..., "experiments": ...} overrides.
        """
        data_paths = data_paths or {}
        load_chemicals(data_paths.get("chemicals"))
        load_reactions(data_paths.get("reactions"))
        load_experiments(data_paths.get("experiments"))

        self._lock = threading.RLock()
        self._running = False
        self._thread: Optional[threading.Thread] = None

        self.mode: str = SANDBOX
        self.vessels: Dict[str, Vessel] = {}
        self.scheduler = Scheduler()
        self.bus = EventBus(maxlen=event_log_maxlen)
        self.heating = HeatingSystem()
        self.filtration = FiltrationBuffer(filtrate=get_chemical("filtered-water"))
        self.matcher = ReactionMatcher()
        self.completion_store = completion_store if completion_store is not None else JsonCompletionStore(progress_path)
        self.engine = ExperimentEngine(self.scheduler, self.bus, self.completion_store,
                                       self.vessels, self.heating, self.filtration)

        self.active_effects: List[ActiveEffect] = []
        self.notification: Optional[Dict[str, Any]] = None
        self.safety_warning: Optional[Dict[str, Any]] = None
        self._pour_source: Optional[str] = None
        self._pour_target: Optional[str] = None

        self._install_default_vessels()
        logger.info(f"LabManager initialized: vessels={len(self.vessels)} "
                    f"completed={len(self.completion_store.ids())}")

    def _install_default_vessels(self) -> None:
        self.vessels.clear()
        for vid, kind, capacity, position in DEFAULT_SANDBOX_VESSELS:
            self.vessels[vid] = Vessel(vid, kind=kind, capacity=capacity, position=position)

    # -----------------------
    # Events
    # -----------------------
    def subscribe(self, callback: Callable[[Dict[str, Any]], None]) -> None:
        self.bus.subscribe(callback)

    def start_effect(self, effect_type: str, vessel_id: Optional[str], duration_ms: Optional[int] = None) -> ActiveEffect:
        duration = int(duration_ms) if duration_ms is not None else effect_duration_ms(effect_type)
        effect = ActiveEffect(effect_type, vessel_id, self.scheduler.now_ms, duration)
        self.active_effects.append(effect)
        self.bus.emit(EFFECT_STARTED, self.scheduler.now_ms,
                      effect=effect_type, vessel_id=vessel_id, duration_ms=duration)
        return effect

    def _raise_safety_warning(self, title: str, message: str) -> None:
        self.safety_warning = {"title": title, "message": message}
        self.bus.emit(SAFETY_WARNING, self.scheduler.now_ms, title=title, message=message)

    # -----------------------
    # Vessel commands
    # -----------------------
    def add_vessel(self, vessel_id: str, kind: str = "beaker", capacity: float = 500.0,
                   position: Optional[Iterable[float]] = None, name: Optional[str] = None) -> Optional[Vessel]:
        with self._lock:
            if vessel_id in self.vessels:
                logger.debug(f"add_vessel: {vessel_id} already exists")
                return None
            vessel = Vessel(vessel_id, kind=kind, capacity=capacity, position=position, name=name)
            self.vessels[vessel_id] = vessel
            return vessel

    def remove_vessel(self, vessel_id: str) -> bool:
        with self._lock:
            return self.vessels.pop(vessel_id, None) is not None

    def clear_vessel(self, vessel_id: str) -> bool:
        with self._lock:
            vessel = self.vessels.get(vessel_id)
            if vessel is None:
                return False
            vessel.clear()
            return True

    def set_tilt(self, vessel_id: str, angle: float) -> bool:
        with self._lock:
            vessel = self.vessels.get(vessel_id)
            if vessel is None:
                return False
            vessel.tilt_angle = float(angle)
            return True

    def set_position(self, vessel_id: str, position: Iterable[float]) -> bool:
        with self._lock:
            vessel = self.vessels.get(vessel_id)
            if vessel is None:
                return False
            vessel.position[:] = [float(x) for x in position]
            return True

    def fill_vessel(self, vessel_id: str, chemical_id: str, amount: float) -> float:
        with self._lock:
            vessel = self.vessels.get(vessel_id)
            chemical = get_chemical(chemical_id)
            if vessel is None or chemical is None:
                logger.debug(f"fill_vessel: unknown vessel '{vessel_id}' or chemical '{chemical_id}'")
                return 0.0
            added = vessel.fill(chemical, amount)
            if added > 0 and self.mode == SANDBOX:
                self._schedule_sandbox_reaction(vessel_id)
            return added

    def transfer_liquid(self, source_id: str, dest_id: str, amount: float) -> float:
        with self._lock:
            source = self.vessels.get(source_id)
            destination = self.vessels.get(dest_id)
            if source is None or destination is None:
                logger.debug(f"transfer_liquid: unknown vessel '{source_id}' or '{dest_id}'")
                return 0.0
            if dest_id == COLLECTION_BEAKER_ID:
                # the collection beaker only ever receives filtrate
                moved = drain_into_buffer(source, self.filtration, amount)
                if moved > 0:
                    self.engine.record_pour()
                return moved
            moved = transfer(source, destination, amount)
            if moved > 0 and self.mode == SANDBOX:
                self._schedule_sandbox_reaction(dest_id)
            return moved

    def set_pouring(self, active: bool, source_id: Optional[str] = None, dest_id: Optional[str] = None) -> None:
        """
        Start or stop a pour stream. While active, tick() moves liquid from the
        source to the destination at a rate set by the source's tilt; the
        filtration buffer drains slower while any pour is active.
        """
        with self._lock:
            source = self.vessels.get(source_id) if source_id else None
            if self._pour_source and self._pour_source in self.vessels and not active:
                self.vessels[self._pour_source].tilt_angle = 0.0
            if active and source is not None and dest_id in self.vessels:
                self._pour_source, self._pour_target = source_id, dest_id
                if source.tilt_angle < AUTO_POUR_TILT:
                    source.tilt_angle = AUTO_POUR_TILT
            else:
                self._pour_source, self._pour_target = None, None
            self.filtration.pouring = self._pour_source is not None

    def _pour_step(self, dt: float) -> None:
        if self._pour_source is None:
            return
        source = self.vessels.get(self._pour_source)
        if source is None or self._pour_target not in self.vessels:
            self.set_pouring(False)
            return
        tilt_factor = min((source.tilt_angle - POUR_THRESHOLD_ANGLE) / 45.0, 1.0)
        moved = 0.0
        if tilt_factor > 0:
            moved = self.transfer_liquid(self._pour_source, self._pour_target, POUR_RATE_ML_S * tilt_factor * dt)
        if moved <= 0:
            logger.debug(f"Pour from {self._pour_source} stopped")
            self.set_pouring(False)

    # -----------------------
    # Sandbox reactions
    # -----------------------
    def _schedule_sandbox_reaction(self, vessel_id: str) -> None:
        vessel = self.vessels.get(vessel_id)
        if vessel is None or not self.matcher.check(vessel).occurred:
            return
        self.scheduler.schedule(REACTION_APPLY_DELAY_MS, lambda: self._apply_sandbox_reaction(vessel_id),
                                label=f"apply_reaction:{vessel_id}")

    def _apply_sandbox_reaction(self, vessel_id: str) -> None:
        vessel = self.vessels.get(vessel_id)
        if vessel is None:
            return
        result, effects = self.matcher.react(vessel)
        if not result.occurred:
            return
        for effect in effects:
            self.start_effect(effect, vessel_id)
        self.notification = self.bus.emit(
            REACTION_NOTIFICATION, self.scheduler.now_ms,
            rule=result.rule.id, name=result.rule.name, message=result.message,
            products=[p.id for p in result.products], vessel_id=vessel_id,
        )

    def check_vessel_reaction(self, vessel_id: str):
        """Non-mutating matcher scan of one vessel; None for an unknown id."""
        with self._lock:
            vessel = self.vessels.get(vessel_id)
            return self.matcher.check(vessel) if vessel is not None else None

    # -----------------------
    # Heat source
    # -----------------------
    def toggle_heat_source(self) -> bool:
        with self._lock:
            state = self.engine.state
            if state is not None and state.dish_cracked:
                logger.debug("toggle_heat_source ignored: dish cracked")
                return self.heating.burner_on
            on = self.heating.toggle()
            if on and state is not None:
                self.engine.perform_action("heat")
            return on

    # -----------------------
    # Guided-mode commands
    # -----------------------
    def load_experiment(self, experiment_id: str) -> Optional[ExperimentDefinition]:
        with self._lock:
            experiment = self.engine.load_experiment(experiment_id)
            if experiment is None:
                return None
            self.mode = GUIDED
            self._clear_transients()
            return experiment

    def add_apparatus(self, apparatus_id: str) -> bool:
        """Place apparatus; vessel-like apparatus also puts a vessel on the bench."""
        with self._lock:
            state = self.engine.state
            if state is None or not self.engine.add_apparatus(apparatus_id):
                return False
            experiment = state.experiment
            on_stand = "tripod-stand" in state.placed_apparatus
            if apparatus_id == "beaker":
                beaker = self._new_guided_vessel("beaker", "beaker", GUIDED_BEAKER_CAPACITY,
                                                 STAND_POSITION if on_stand else None)
                if "funnel" in experiment.apparatus:
                    beaker.name = FILTRATION_SOURCE_NAME
                    if COLLECTION_BEAKER_ID not in self.vessels:
                        self.vessels[COLLECTION_BEAKER_ID] = Vessel(
                            COLLECTION_BEAKER_ID, kind="beaker", capacity=COLLECTION_BEAKER_CAPACITY,
                            name="Collection Beaker", position=COLLECTION_BEAKER_POSITION)
            elif apparatus_id == "tongs":
                self._new_guided_vessel("tongs", "tongs", TONGS_CAPACITY, TONGS_POSITION)
            elif apparatus_id == "china-dish":
                self._new_guided_vessel("china_dish", "china_dish", CHINA_DISH_CAPACITY, STAND_POSITION)
            elif apparatus_id == "test-tube":
                self._new_guided_vessel("test_tube", "test_tube", GUIDED_TEST_TUBE_CAPACITY, None)
            return True

    def _new_guided_vessel(self, prefix: str, kind: str, capacity: float, position) -> Vessel:
        index = 1
        while f"{prefix}_{index}" in self.vessels:
            index += 1
        vessel = Vessel(f"{prefix}_{index}", kind=kind, capacity=capacity, position=position)
        self.vessels[vessel.id] = vessel
        return vessel

    def add_chemical(self, chemical_id: str) -> bool:
        """
        Shelf behaviour: the titrant arms the dropper; anything else is poured
        into the receiving vessel, tracked, and re-checked shortly after.
        """
        with self._lock:
            state = self.engine.state
            if state is None:
                return False
            machine = state.machine
            if isinstance(machine, DropCountedTitration) and chemical_id == machine.titrant:
                return self.engine.start_titration()
            if chemical_id in state.added_chemicals:
                return False
            chemical = get_chemical(chemical_id)
            target = self.engine.target_vessel_for(chemical_id)
            if chemical is not None and target is not None:
                amount = GUIDED_FILL_OVERRIDES_ML.get(chemical_id, GUIDED_FILL_ML.get(target.kind, 100.0))
                target.fill(chemical, amount)
            added = self.engine.add_chemical(chemical_id)
            if added:
                self.scheduler.schedule(GUIDED_CHECK_DELAY_MS, self.engine.check_reaction, label="check_after_add")
            return added

    def perform_action(self, action_id: str) -> bool:
        with self._lock:
            performed = self.engine.perform_action(action_id)
            if performed and action_id != "stir":
                self.scheduler.schedule(GUIDED_CHECK_DELAY_MS, self.engine.check_reaction, label="check_after_action")
            return performed

    def check_reaction(self):
        with self._lock:
            return self.engine.check_reaction()

    def reset_experiment(self) -> None:
        with self._lock:
            if self.engine.state is None:
                return
            self.engine.reset_experiment()
            self._clear_transients()

    def mark_experiment_complete(self, experiment_id: str) -> bool:
        with self._lock:
            return self.engine.mark_experiment_complete(experiment_id)

    def start_titration(self) -> bool:
        with self._lock:
            return self.engine.start_titration()

    def add_drop(self) -> bool:
        with self._lock:
            return self.engine.add_drop()

    def go_to_home_screen(self) -> None:
        with self._lock:
            self.engine.close_experiment()
            self.mode = SANDBOX
            self.heating.reset()
            self.filtration.reset()
            self._clear_transients()
            self._install_default_vessels()

    def dismiss_notification(self) -> None:
        with self._lock:
            self.notification = None

    def dismiss_safety_warning(self) -> None:
        with self._lock:
            self.safety_warning = None

    def _clear_transients(self) -> None:
        self.active_effects = []
        self.notification = None
        self.safety_warning = None
        self._pour_source, self._pour_target = None, None

    # -----------------------
    # Tick
    # -----------------------
    def tick(self, dt: float = DEFAULT_TICK_SECONDS) -> None:
        """
        Advance the lab by dt seconds: due callbacks, heating, pouring and
        filtration, then effect expiry.
        """
        with self._lock:
            self.scheduler.advance(dt * 1000.0)

            report = self.heating.step(dt, list(self.vessels.values()), self.scheduler.now_ms,
                                       dish_is_dry=self.engine.dish_is_dry)
            for vessel_id in report.boiling:
                self.start_effect("boiling", vessel_id, BOILING_EFFECT_MS)
            if report.melted:
                self.engine.on_ice_melted()
            for vessel_id in report.tongs_heated:
                self.engine.on_tongs_heated()
            if report.cracked:
                self.engine.on_dish_cracked()
                self.scheduler.schedule(
                    SAFETY_WARNING_DELAY_MS,
                    lambda: self._raise_safety_warning(THERMAL_SHOCK_TITLE, THERMAL_SHOCK_MESSAGE),
                    label="thermal_shock_warning")

            self._pour_step(dt)
            if self.filtration.step(dt, self.vessels):
                self.engine.complete_filtration()

            now = self.scheduler.now_ms
            self.active_effects = [e for e in self.active_effects if e.expires_at_ms > now]

    def run_for(self, seconds: float, dt: float = DEFAULT_TICK_SECONDS) -> None:
        """Synchronous loop of ticks, for scripts and tests."""
        steps = int(round(seconds / dt))
        for _ in range(steps):
            self.tick(dt)

    # -----------------------
    # Background threaded run support
    # -----------------------
    def start(self, interval: float = DEFAULT_TICK_SECONDS) -> None:
        """
        Start a background thread calling tick(interval) every interval
        seconds. Safe to call multiple times.
        """
        if self._running:
            logger.debug("Lab already running; start() ignored.")
            return
        self._running = True

        def loop():
            while self._running:
                try:
                    self.tick(interval)
                except Exception:
                    logger.exception("Exception in lab loop.")
                time.sleep(interval)

        self._thread = threading.Thread(target=loop, daemon=True)
        self._thread.start()
        logger.info("Lab background thread started.")

    def stop(self) -> None:
        """Stop a background run and join the thread."""
        self._running = False
        if self._thread is not None:
            self._thread.join(timeout=1.0)
            self._thread = None
        logger.info("Lab background thread stopped.")

    # -----------------------
    # Queries
    # -----------------------
    @property
    def current_experiment(self) -> Optional[ExperimentDefinition]:
        return self.engine.current_experiment

    def vessel_snapshot(self, vessel_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            vessel = self.vessels.get(vessel_id)
            return vessel.snapshot() if vessel is not None else None

    def vessel_snapshots(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [v.snapshot() for v in self.vessels.values()]

    def run_flags(self) -> Dict[str, Any]:
        with self._lock:
            flags = self.engine.run_flags()
            flags.update({
                "mode": self.mode,
                "burner_on": self.heating.burner_on,
                "pending_filtration": self.filtration.pending,
                "pending_timers": self.scheduler.pending(),
                "pouring": self.filtration.pouring,
                "notification": self.notification,
                "safety_warning": self.safety_warning,
                "active_effects": [e.to_dict() for e in self.active_effects],
            })
            return flags

    def available_next_actions(self) -> List[str]:
        with self._lock:
            return self.engine.available_next_actions()

    def step_progress(self) -> int:
        with self._lock:
            return self.engine.step_progress()

    def can_add_apparatus(self, apparatus_id: str) -> bool:
        with self._lock:
            return self.engine.can_add_apparatus(apparatus_id)

    def can_add_chemical(self, chemical_id: str) -> bool:
        with self._lock:
            return self.engine.can_add_chemical(chemical_id)

    def completed_experiments(self) -> List[str]:
        return self.completion_store.ids()
