from __future__ import annotations
from typing import Any, Dict, List, Optional
import logging

from .chemicals import get_chemical
from .constants import (
    ACTION_VOCABULARY,
    AUTO_EVAPORATE_DELAY_MS,
    COLLECTION_BEAKER_ID,
    COMPLETION_POPUP_DELAY_MS,
    HEAT_LEVEL_MAX,
    HEAT_LEVEL_STEP,
    ICE_MELT_CHECK_DELAY_MS,
    ICE_MELT_WATER_RATIO,
    STIR_DURATION_MS,
    TITRATION_DROP_INTERVAL_MS,
    TONGS_BURN_CHECK_DELAY_MS,
    UNIQUE_APPARATUS,
    VESSEL_APPARATUS,
)
from .events import COMPLETION, EventBus
from .experiments import ExperimentDefinition, Outcome, get_experiment
from .heating import HeatingSystem
from .filtration import FiltrationBuffer
from .phases import DropCountedTitration, PhaseMachine, Transition, make_phase_machine
from .scheduler import Scheduler
from .vessel import Vessel

logger = logging.getLogger(__name__)

# apparatus id -> vessel kind it holds chemicals in
APPARATUS_VESSEL_KIND = {
    "beaker": "beaker",
    "tongs": "tongs",
    "china-dish": "china_dish",
    "test-tube": "test_tube",
}
GLASS_ROD_SOLIDS = ("salt", "sand")
MELT_WATER_ID = "melt-water"
MSG_EXPERIMENT_COMPLETE = "Experiment Complete!"
BURNT_RESIDUE = {"burn_paper": ("paper", "ash"), "burn_magnesium": ("magnesium", "magnesium-oxide")}
BURNT_RESIDUE_AMOUNT = 1.0


class ExperimentRunState:
    """Mutable state of one guided run. Destroyed by go_to_home_screen()."""

    def __init__(self, experiment: ExperimentDefinition, machine: PhaseMachine):
        self.experiment = experiment
        self.machine = machine
        self.placed_apparatus: List[str] = []
        self.added_chemicals: List[str] = []
        self.performed_actions: List[str] = []
        self.observation: str = experiment.aim
        self.explanation: str = ""
        self.show_explanation: bool = False
        self.show_reset_prompt: bool = False
        self.reset_prompt_message: str = ""
        self.heat_level: int = 0
        self.stir_count: int = 0
        self.is_stirring: bool = False
        self.completion_popup: bool = False
        self.dish_cracked: bool = False
        self.matched_key: Optional[str] = None

    def clear_session(self) -> None:
        self.placed_apparatus = []
        self.added_chemicals = []
        self.performed_actions = []
        self.explanation = ""
        self.show_explanation = False
        self.show_reset_prompt = False
        self.reset_prompt_message = ""
        self.heat_level = 0
        self.stir_count = 0
        self.is_stirring = False
        self.completion_popup = False
        self.dish_cracked = False
        self.matched_key = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "experiment_id": self.experiment.id,
            "family": self.experiment.family,
            "placed_apparatus": list(self.placed_apparatus),
            "added_chemicals": list(self.added_chemicals),
            "performed_actions": list(self.performed_actions),
            "observation": self.observation,
            "explanation": self.explanation,
            "show_explanation": self.show_explanation,
            "show_reset_prompt": self.show_reset_prompt,
            "reset_prompt_message": self.reset_prompt_message,
            "heat_level": self.heat_level,
            "stir_count": self.stir_count,
            "is_stirring": self.is_stirring,
            "completion_popup": self.completion_popup,
            "dish_cracked": self.dish_cracked,
            "matched_key": self.matched_key,
            "phases": self.machine.to_dict(),
        }


class ExperimentEngine:
    """
    Guided-mode state machine.

    The engine shares the bench (vessels dict, heating, filtration) with its
    owner and schedules its own timed follow-ups on the shared Scheduler.
    Every timed follow-up is generation-guarded, so reset and load make
    earlier timers inert. Phase machines are kept per experiment id so phase
    flags survive a reload of the same experiment.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        bus: EventBus,
        completion_store,
        vessels: Dict[str, Vessel],
        heating: HeatingSystem,
        filtration: FiltrationBuffer
    ):
        self.scheduler = scheduler
        self.bus = bus
        self.completion_store = completion_store
        self.vessels = vessels
        self.heating = heating
        self.filtration = filtration
        self.state: Optional[ExperimentRunState] = None
        self._machines: Dict[str, PhaseMachine] = {}

    # -----------------------
    # Lifecycle
    # -----------------------
    @property
    def current_experiment(self) -> Optional[ExperimentDefinition]:
        return self.state.experiment if self.state is not None else None

    def _clear_bench(self) -> None:
        self.vessels.clear()
        self.heating.reset()
        self.filtration.reset()

    def load_experiment(self, experiment_id: str) -> Optional[ExperimentDefinition]:
        experiment = get_experiment(experiment_id)
        if experiment is None:
            logger.debug(f"load_experiment: unknown id '{experiment_id}'")
            return None

        machine = self._machines.get(experiment.id)
        if machine is None:
            machine = make_phase_machine(experiment.family)
            self._machines[experiment.id] = machine
        machine.on_load()

        self.scheduler.bump_generation()
        self._clear_bench()
        self.state = ExperimentRunState(experiment, machine)
        logger.info(f"Loaded experiment {experiment.id} ({experiment.family}); "
                    f"completed phases: {machine.completed_phases()}")
        return experiment

    def close_experiment(self) -> None:
        if self.state is not None:
            logger.info(f"Leaving experiment {self.state.experiment.id}")
        self.scheduler.bump_generation()
        self.state = None

    def reset_experiment(self) -> None:
        state = self.state
        if state is None:
            logger.debug("reset_experiment ignored: no experiment loaded")
            return
        self.scheduler.bump_generation()
        state.clear_session()
        self._clear_bench()
        guidance = state.machine.on_reset()
        state.observation = guidance if guidance is not None else state.experiment.aim
        logger.info(f"Reset {state.experiment.id}; resumed after: {state.machine.resumed_after}")

    # -----------------------
    # Inserts
    # -----------------------
    def add_apparatus(self, apparatus_id: str) -> bool:
        state = self.state
        if state is None or apparatus_id in state.placed_apparatus:
            return False
        state.placed_apparatus.append(apparatus_id)
        state.observation = f"Added {apparatus_id.replace('-', ' ')} to the lab bench."
        return True

    def add_chemical(self, chemical_id: str) -> bool:
        state = self.state
        if state is None or chemical_id in state.added_chemicals:
            return False
        state.added_chemicals.append(chemical_id)
        name = state.experiment.chemical_name(chemical_id)
        if name == chemical_id:
            name = chemical_id.replace("-", " ")
        state.observation = f"Added {name} to the apparatus."
        return True

    def perform_action(self, action_id: str) -> bool:
        state = self.state
        if state is None:
            return False
        if action_id not in ACTION_VOCABULARY:
            logger.debug(f"perform_action: unknown action '{action_id}'")
            return False
        if action_id in state.performed_actions:
            return False
        state.performed_actions.append(action_id)

        if action_id == "heat":
            state.heat_level = min(HEAT_LEVEL_MAX, state.heat_level + HEAT_LEVEL_STEP)
            if self._evaporates_after_heat(state.experiment):
                self.scheduler.schedule(AUTO_EVAPORATE_DELAY_MS, self._finish_evaporation, label="auto_evaporate")
        elif action_id == "stir":
            state.stir_count += 1
            state.is_stirring = True
            self.scheduler.schedule(STIR_DURATION_MS, self._finish_stir, label="finish_stir")
        return True

    @staticmethod
    def _evaporates_after_heat(experiment: ExperimentDefinition) -> bool:
        return any({"heat", "evaporate"} <= key.action_set for key in experiment.outcomes.keys())

    def _finish_stir(self) -> None:
        if self.state is None:
            return
        self.state.is_stirring = False
        self.check_reaction()

    def _finish_evaporation(self) -> None:
        if self.state is None:
            return
        self.perform_action("evaporate")
        # an empty dish keeps heating, which is how it ends up cracking
        if any(v.has_chemical("salt-solution") for v in self.vessels.values()):
            self.heating.set_burner(False)
        self.check_reaction()

    # -----------------------
    # Outcome lookup
    # -----------------------
    def check_reaction(self) -> Optional[Outcome]:
        state = self.state
        if state is None:
            return None
        hit = state.experiment.outcomes.lookup(state.added_chemicals, state.performed_actions)
        if hit is None:
            logger.debug(f"No outcome for chemicals={state.added_chemicals} actions={state.performed_actions}")
            return None
        key, outcome, match_pass = hit
        state.matched_key = key.text()
        state.observation = outcome.observation
        state.explanation = outcome.explanation
        state.show_explanation = outcome.success or bool(outcome.explanation)
        if outcome.success and state.experiment.family == "single":
            state.observation = outcome.observation or MSG_EXPERIMENT_COMPLETE
            state.explanation = outcome.explanation or state.experiment.conclusion
        logger.debug(f"Matched outcome {key.text()} ({match_pass})")

        transition = state.machine.on_outcome(key, outcome)
        self._apply_transition(state, transition)
        return outcome

    def _apply_transition(self, state: ExperimentRunState, transition: Transition) -> None:
        if transition.side_effect is not None:
            self._run_side_effect(transition.side_effect)
        if transition.prompt:
            state.show_reset_prompt = True
            state.reset_prompt_message = transition.prompt
        if transition.observation is not None:
            state.observation = transition.observation
        if transition.use_conclusion:
            state.explanation = state.experiment.conclusion
            state.show_explanation = True
        if transition.finished:
            state.show_reset_prompt = False
            state.reset_prompt_message = ""
            self._record_completion(state.experiment.id)

    def _run_side_effect(self, side_effect: str) -> None:
        if side_effect == "melt_ice":
            water = get_chemical(MELT_WATER_ID) or get_chemical("water")
            for vessel in self.vessels.values():
                ice = vessel.amount_of("ice")
                if ice > 0:
                    vessel.replace_with(water, ice * ICE_MELT_WATER_RATIO)
            return
        if side_effect in BURNT_RESIDUE:
            source_id, residue_id = BURNT_RESIDUE[side_effect]
            residue = get_chemical(residue_id)
            for vessel in self.vessels.values():
                if vessel.kind == "tongs" and vessel.has_chemical(source_id):
                    vessel.replace_with(residue, BURNT_RESIDUE_AMOUNT)
            self.heating.set_burner(False)
            return
        raise ValueError(f"Unknown side effect: {side_effect}")

    # -----------------------
    # Completion
    # -----------------------
    def _record_completion(self, experiment_id: str) -> bool:
        if not self.mark_experiment_complete(experiment_id):
            return False
        self.scheduler.schedule(COMPLETION_POPUP_DELAY_MS, self._show_completion_popup, label="completion_popup")
        return True

    def _show_completion_popup(self) -> None:
        if self.state is not None:
            self.state.completion_popup = True

    def mark_experiment_complete(self, experiment_id: str) -> bool:
        """Idempotent insert into the completion store; emits ``completion`` once."""
        if not self.completion_store.add(experiment_id):
            return False
        logger.info(f"Experiment {experiment_id} completed")
        self.bus.emit(COMPLETION, self.scheduler.now_ms, experiment_id=experiment_id)
        return True

    def is_completed(self, experiment_id: str) -> bool:
        return self.completion_store.contains(experiment_id)

    # -----------------------
    # Titration
    # -----------------------
    def _titration(self) -> Optional[DropCountedTitration]:
        if self.state is None or not isinstance(self.state.machine, DropCountedTitration):
            return None
        return self.state.machine

    def start_titration(self) -> bool:
        machine = self._titration()
        if machine is None or not machine.start():
            return False
        self.state.show_reset_prompt = False
        self.state.reset_prompt_message = ""
        self.scheduler.schedule(TITRATION_DROP_INTERVAL_MS, self._release_drop, label="titration_drop")
        return True

    def _release_drop(self) -> None:
        machine = self._titration()
        if machine is None or not machine.dropping:
            return
        self.add_drop()
        if machine.dropping:
            self.scheduler.schedule(TITRATION_DROP_INTERVAL_MS, self._release_drop, label="titration_drop")

    def add_drop(self) -> bool:
        """Release one drop; returns True when it completed the titration."""
        machine = self._titration()
        if machine is None or not machine.add_drop():
            return False
        state = self.state
        if machine.titrant in state.added_chemicals:
            state.added_chemicals.remove(machine.titrant)
        state.added_chemicals.append(machine.titrant)
        self._record_completion(state.experiment.id)
        if self.check_reaction() is None:
            self._apply_transition(state, Transition(phase=machine.phases[0], observation=MSG_EXPERIMENT_COMPLETE,
                                                     use_conclusion=True))
        return True

    # -----------------------
    # Hooks from the bench
    # -----------------------
    def record_pour(self) -> None:
        if self.state is not None and self.perform_action("pour"):
            self.check_reaction()

    def complete_filtration(self) -> None:
        if self.state is None:
            return
        self.perform_action("filter")
        self.check_reaction()

    def on_ice_melted(self) -> None:
        if self.state is not None:
            self.scheduler.schedule(ICE_MELT_CHECK_DELAY_MS, self.check_reaction, label="ice_melt_check")

    def on_tongs_heated(self) -> None:
        if self.state is not None:
            self.scheduler.schedule(TONGS_BURN_CHECK_DELAY_MS, self.check_reaction, label="tongs_burn_check")

    def on_dish_cracked(self) -> None:
        if self.state is not None:
            self.state.dish_cracked = True

    def dish_is_dry(self, vessel: Vessel) -> bool:
        """A china dish is dry once it holds no salt solution or the solution has evaporated."""
        if not vessel.has_chemical("salt-solution"):
            return True
        return self.state is not None and "evaporate" in self.state.performed_actions

    # -----------------------
    # Advisory predicates
    # -----------------------
    def vessel_apparatus(self) -> str:
        """Apparatus that receives chemicals by default in the current experiment."""
        if self.state is None:
            return "beaker"
        for apparatus_id in VESSEL_APPARATUS:
            if apparatus_id in self.state.experiment.apparatus:
                return apparatus_id
        return "beaker"

    def target_vessel_for(self, chemical_id: str) -> Optional[Vessel]:
        """Vessel a shelf chemical would be poured into, or None when none is placed."""
        if self.state is None:
            return None
        apparatus_id = self.state.machine.vessel_apparatus_for(chemical_id, self.state, self.vessel_apparatus())
        kind = APPARATUS_VESSEL_KIND.get(apparatus_id)
        for vessel in self.vessels.values():
            if vessel.kind != kind or vessel.id == COLLECTION_BEAKER_ID:
                continue
            if kind == "tongs" and not vessel.is_empty:
                continue
            return vessel
        return None

    def can_add_apparatus(self, apparatus_id: str) -> bool:
        state = self.state
        if state is None:
            return False
        placed = state.placed_apparatus
        if apparatus_id in UNIQUE_APPARATUS and apparatus_id in placed:
            return False
        if apparatus_id == "funnel" and "beaker" not in placed:
            return False
        if apparatus_id == "filter-paper" and "funnel" not in placed:
            return False
        if apparatus_id == "glass-rod" and not (
                "beaker" in placed and any(c in state.added_chemicals for c in GLASS_ROD_SOLIDS)):
            return False
        if apparatus_id == "burner" and state.machine.burner_needs_tripod(state) and "tripod-stand" not in placed:
            return False
        if apparatus_id == "china-dish" and "burner" not in placed:
            return False
        return not state.machine.apparatus_blocked(apparatus_id, state)

    def can_add_chemical(self, chemical_id: str) -> bool:
        state = self.state
        if state is None or state.dish_cracked:
            return False
        if chemical_id not in [c.id for c in state.experiment.chemicals]:
            return False
        if chemical_id in state.added_chemicals:
            return False
        apparatus_id = state.machine.vessel_apparatus_for(chemical_id, state, self.vessel_apparatus())
        if apparatus_id not in state.placed_apparatus:
            return False
        if isinstance(state.machine, DropCountedTitration) and chemical_id == state.machine.titrant:
            # the titrant goes through the dropper, not into a vessel directly
            return not state.machine.chemical_blocked(chemical_id, state)
        target = self.target_vessel_for(chemical_id)
        if target is None or target.free_space <= 0:
            return False
        return not state.machine.chemical_blocked(chemical_id, state)

    def needs_heating(self) -> bool:
        return self.state is not None and "burner" in self.state.experiment.apparatus

    def available_next_actions(self) -> List[str]:
        """
        Actions the learner can take right now, a pure function of the run state.
        Values: stir, filter, evaporate, toggle_heat, pour, reset.
        """
        state = self.state
        if state is None:
            return []
        out: List[str] = []
        burner_ready = self.needs_heating() and "burner" in state.placed_apparatus
        if state.added_chemicals or burner_ready:
            keys = state.experiment.outcomes.keys()
            defined = set()
            for key in keys:
                defined.update(key.actions)
            glass_rod_ok = state.experiment.family != "two_phase" or "glass-rod" in state.placed_apparatus
            if "stir" in defined and "stir" not in state.performed_actions and glass_rod_ok:
                out.append("stir")
            # filter and evaporate are automatic in experiments built around them
            if "filter" in defined and "filter" not in state.performed_actions and "funnel" not in state.experiment.apparatus:
                out.append("filter")
            if ("evaporate" in defined and "evaporate" not in state.performed_actions
                    and not self._evaporates_after_heat(state.experiment)):
                out.append("evaporate")
            if burner_ready and not state.dish_cracked:
                out.append("toggle_heat")
            if ("funnel" in state.experiment.apparatus
                    and all(a in state.placed_apparatus for a in ("beaker", "funnel", "filter-paper"))
                    and "pour" in defined
                    and state.added_chemicals):
                out.append("pour")
        if state.show_reset_prompt or state.dish_cracked:
            out.append("reset")
        return out

    def step_progress(self) -> int:
        if self.state is None:
            return 0
        return self.state.machine.step_progress(self.state, self.state.experiment.total_steps)

    def current_step_text(self) -> Optional[str]:
        if self.state is None:
            return None
        steps = self.state.experiment.procedure_steps
        done = self.step_progress()
        return steps[done] if done < len(steps) else None

    def run_flags(self) -> Dict[str, Any]:
        if self.state is None:
            return {}
        out = self.state.to_dict()
        out["completed"] = self.is_completed(self.state.experiment.id)
        out["step_progress"] = self.step_progress()
        out["total_steps"] = self.state.experiment.total_steps
        out["current_step"] = self.current_step_text()
        machine = self._titration()
        if machine is not None:
            out["titration_color"] = machine.display_color()
        return out
