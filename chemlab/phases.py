from __future__ import annotations
from typing import Any, Dict, FrozenSet, List, Optional, Tuple
import logging

from .colors import titration_color
from .constants import TITRATION_DROP_THRESHOLD
from .signatures import SignatureKey

logger = logging.getLogger(__name__)


class Transition:
    """
    What a matched outcome did to the phase machine.

    The engine applies it: shows ``observation``/``explanation`` overrides,
    raises ``prompt`` as the reset prompt, runs ``side_effect`` against the
    vessels and records completion when ``finished`` is set.
    """

    __slots__ = ("phase", "prompt", "finished", "observation", "use_conclusion", "side_effect")

    def __init__(self, phase: Optional[str] = None, prompt: Optional[str] = None, finished: bool = False,
                 observation: Optional[str] = None, use_conclusion: bool = False,
                 side_effect: Optional[str] = None):
        self.phase = phase
        self.prompt = prompt
        self.finished = finished
        self.observation = observation
        self.use_conclusion = use_conclusion
        self.side_effect = side_effect

    def __repr__(self) -> str:
        return f"<Transition phase={self.phase} finished={self.finished} side_effect={self.side_effect}>"


# -----------------------
# Base machine
# -----------------------
class PhaseMachine:
    """
    Per-family phase flags with reset/load semantics shared by every family.

    Subclasses declare ``phases`` and override on_outcome() plus the gating
    hooks. ``state`` arguments are the engine's ExperimentRunState; hooks only
    read its placed_apparatus, added_chemicals and performed_actions lists.
    """

    family = "single"
    phases: Tuple[str, ...] = ("main",)
    reset_guidance: Dict[str, str] = {}

    def __init__(self):
        self.flags: Dict[str, bool] = {p: False for p in self.phases}
        self.resumed_after: Optional[str] = None

    # -----------------------
    # Flags
    # -----------------------
    def is_tested(self, phase: str) -> bool:
        return self.flags.get(phase, False)

    def mark(self, phase: str) -> None:
        if phase not in self.flags:
            raise ValueError(f"Unknown phase '{phase}' for {self.family}")
        self.flags[phase] = True
        logger.info(f"Phase '{phase}' complete ({self.family})")

    @property
    def all_complete(self) -> bool:
        return all(self.flags.values())

    def completed_phases(self) -> List[str]:
        return [p for p in self.phases if self.flags[p]]

    def last_completed(self) -> Optional[str]:
        done = self.completed_phases()
        return done[-1] if done else None

    def restart(self) -> None:
        self.flags = {p: False for p in self.phases}
        self.resumed_after = None

    # -----------------------
    # Lifecycle
    # -----------------------
    def on_load(self) -> None:
        """Flags survive a reload unless the whole procedure was finished."""
        if self.all_complete:
            self.restart()

    def on_reset(self) -> Optional[str]:
        """
        Apply reset semantics and return the guidance text for the next phase,
        or None when the aim should be shown again.
        """
        if self.all_complete:
            self.restart()
            return None
        last = self.last_completed()
        if last is None:
            return None
        self.resumed_after = last
        return self.reset_guidance.get(last)

    def on_outcome(self, key: SignatureKey, outcome: Any) -> Transition:
        if outcome.success:
            self.mark(self.phases[0])
            return Transition(phase=self.phases[0], finished=True)
        return Transition()

    # -----------------------
    # Gating hooks (advisory)
    # -----------------------
    def chemical_blocked(self, chemical_id: str, state) -> bool:
        return False

    def apparatus_blocked(self, apparatus_id: str, state) -> bool:
        return False

    def burner_needs_tripod(self, state) -> bool:
        return True

    def vessel_apparatus_for(self, chemical_id: str, state, default: str) -> str:
        return default

    # -----------------------
    # Progress
    # -----------------------
    def step_offset(self, state) -> int:
        return 0

    def step_progress(self, state, total_steps: int) -> int:
        base = len(state.placed_apparatus) + len(state.added_chemicals) + len(state.performed_actions)
        return min(self.step_offset(state) + base, total_steps)

    def to_dict(self) -> Dict[str, Any]:
        return {"family": self.family, "flags": dict(self.flags), "resumed_after": self.resumed_after}


class SinglePhase(PhaseMachine):
    """One pass: the first successful outcome finishes the experiment."""


# -----------------------
# Two-phase comparison
# -----------------------
class TwoPhaseComparison(PhaseMachine):
    """
    Salt first, then sand, in the same solvent. Only successful outcomes
    advance; finishing the second material completes the run without another
    reset.
    """

    family = "two_phase"
    phases = ("salt", "sand")
    solvent = "water"
    # phase -> (required chemicals, required actions, reset prompt)
    transitions: Dict[str, Tuple[FrozenSet[str], FrozenSet[str], Optional[str]]] = {
        "salt": (frozenset({"salt"}), frozenset({"stir"}), "Salt test complete! Click RESET to test with Sand."),
        "sand": (frozenset({"sand"}), frozenset({"stir"}), None),
    }
    reset_guidance = {"salt": "Now test with SAND. Add water, then add sand, and stir."}
    finish_message = "Experiment Complete! You tested both salt and sand."

    def on_outcome(self, key: SignatureKey, outcome: Any) -> Transition:
        if not outcome.success:
            return Transition()
        transition = Transition()
        for phase in self.phases:
            chems, actions, prompt = self.transitions[phase]
            if chems <= key.chemical_set and actions <= key.action_set and not self.flags[phase]:
                self.mark(phase)
                transition.phase = phase
                transition.prompt = prompt
                break
        if self.all_complete:
            transition.prompt = None
            transition.finished = True
            transition.observation = self.finish_message
            transition.use_conclusion = True
        return transition

    def chemical_blocked(self, chemical_id: str, state) -> bool:
        added = state.added_chemicals
        if chemical_id == self.solvent:
            return False
        if chemical_id not in self.phases:
            return False
        if self.solvent not in added:
            return True
        if any(p in added for p in self.phases):
            return True
        if self.flags[chemical_id]:
            return True
        index = self.phases.index(chemical_id)
        if index > 0:
            previous = self.phases[index - 1]
            if not self.flags[previous] or self.resumed_after != previous:
                return True
        return False


# -----------------------
# Three-phase material study
# -----------------------
class ThreePhaseStudy(PhaseMachine):
    """
    Ice in a beaker, then paper and magnesium held in tongs, each heated in
    its own round. Every round ends with a reset except the last.
    """

    family = "three_phase"
    phases = ("ice", "paper", "magnesium")
    round_vessel = {"ice": "beaker", "paper": "tongs", "magnesium": "tongs"}
    # matched key -> (phase, reset prompt, side effect, finishes)
    transitions: Dict[SignatureKey, Tuple[str, Optional[str], str, bool]] = {
        SignatureKey(["ice"], ["heat"]): ("ice", "Ice melted! Click RESET to test with Paper.", "melt_ice", False),
        SignatureKey(["paper"], ["heat"]): ("paper", "Paper burnt! Click RESET to test with Magnesium.", "burn_paper", False),
        SignatureKey(["magnesium"], ["heat"]): ("magnesium", None, "burn_magnesium", True),
    }
    reset_guidance = {
        "ice": "Round 2: Now test with PAPER. Place burner and tongs, then add paper strip and heat.",
        "paper": "Round 3: Now test with MAGNESIUM. Place burner and tongs, then add magnesium ribbon and heat.",
    }

    def in_first_round(self, state) -> bool:
        return not self.flags["ice"] or "ice" in state.added_chemicals

    def on_outcome(self, key: SignatureKey, outcome: Any) -> Transition:
        entry = self.transitions.get(key)
        if entry is None:
            return Transition()
        phase, prompt, side_effect, finishes = entry
        self.mark(phase)
        return Transition(phase=phase, prompt=prompt, finished=finishes, side_effect=side_effect)

    def chemical_blocked(self, chemical_id: str, state) -> bool:
        if chemical_id not in self.phases:
            return False
        index = self.phases.index(chemical_id)
        if self.flags[chemical_id]:
            return True
        if index > 0:
            if not all(self.flags[p] for p in self.phases[:index]):
                return True
            if self.phases[index - 1] in state.added_chemicals:
                return True
        if self.round_vessel[chemical_id] not in state.placed_apparatus:
            return True
        return False

    def apparatus_blocked(self, apparatus_id: str, state) -> bool:
        placed = state.placed_apparatus
        if self.in_first_round(state):
            if apparatus_id == "tongs":
                return True
            if apparatus_id == "beaker":
                return "tripod-stand" not in placed or "burner" not in placed
            return False
        if apparatus_id in ("tripod-stand", "beaker"):
            return True
        if apparatus_id == "tongs":
            return "burner" not in placed
        return False

    def burner_needs_tripod(self, state) -> bool:
        return self.in_first_round(state)

    def vessel_apparatus_for(self, chemical_id: str, state, default: str) -> str:
        return self.round_vessel.get(chemical_id, default)

    def step_offset(self, state) -> int:
        if self.flags["paper"]:
            return 6 if state.show_reset_prompt else 11
        if self.flags["ice"]:
            return 0 if state.show_reset_prompt else 6
        return 0


# -----------------------
# Drop-counted titration
# -----------------------
class DropCountedTitration(PhaseMachine):
    """
    Titrant is released drop by drop; the indicator color barely moves until
    the threshold drop, which flips ``complete``. That boolean, not the
    outcome's success flag, decides completion.
    """

    family = "drop_counted"
    phases = ("neutralization",)
    base = "naoh"
    indicator = "phenolphthalein"
    titrant = "hcl"
    dropper = "dropper"

    def __init__(self, threshold: int = TITRATION_DROP_THRESHOLD):
        super().__init__()
        self.threshold = int(threshold)
        self.dropping = False
        self.drop_count = 0
        self.complete = False

    def restart(self) -> None:
        super().restart()
        self.dropping = False
        self.drop_count = 0
        self.complete = False

    def on_reset(self) -> Optional[str]:
        self.dropping = False
        self.drop_count = 0
        return super().on_reset()

    def start(self) -> bool:
        if self.dropping or self.complete:
            return False
        self.dropping = True
        self.drop_count = 0
        logger.info("Titration started")
        return True

    def add_drop(self) -> bool:
        """
        Release one drop. Returns True only for the drop that reaches the
        threshold; drops outside an armed titration are ignored.
        """
        if not self.dropping:
            logger.debug("add_drop ignored: dropper not armed")
            return False
        self.drop_count += 1
        if self.drop_count >= self.threshold:
            self.dropping = False
            self.complete = True
            self.mark(self.phases[0])
            return True
        return False

    def display_color(self) -> str:
        return titration_color(self.drop_count, self.threshold)

    def on_outcome(self, key: SignatureKey, outcome: Any) -> Transition:
        if self.complete:
            return Transition(phase=self.phases[0], finished=True)
        return Transition()

    def chemical_blocked(self, chemical_id: str, state) -> bool:
        if self.dropping or self.complete:
            return True
        added = state.added_chemicals
        if chemical_id == self.indicator and self.base not in added:
            return True
        if chemical_id == self.titrant and (self.indicator not in added or self.dropper not in state.placed_apparatus):
            return True
        return False

    def apparatus_blocked(self, apparatus_id: str, state) -> bool:
        return apparatus_id == self.dropper and self.indicator not in state.added_chemicals

    def step_progress(self, state, total_steps: int) -> int:
        ladder = [
            lambda: "beaker" in state.placed_apparatus,
            lambda: self.base in state.added_chemicals,
            lambda: self.indicator in state.added_chemicals,
            lambda: self.dropper in state.placed_apparatus,
            lambda: self.drop_count >= self.threshold or self.complete,
        ]
        count = 0
        for reached in ladder:
            if not reached():
                break
            count += 1
        return min(count, total_steps)

    def to_dict(self) -> Dict[str, Any]:
        out = super().to_dict()
        out.update({"dropping": self.dropping, "drop_count": self.drop_count, "complete": self.complete})
        return out


PHASE_MACHINES = {
    "single": SinglePhase,
    "two_phase": TwoPhaseComparison,
    "three_phase": ThreePhaseStudy,
    "drop_counted": DropCountedTitration,
}


def make_phase_machine(family: str) -> PhaseMachine:
    try:
        return PHASE_MACHINES[family]()
    except KeyError:
        raise ValueError(f"Unknown experiment family: {family}")
