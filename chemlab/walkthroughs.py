"""
Scripted guided-mode runs, one per curriculum experiment.

Each step is a tuple (verb, *args):
    ("apparatus", id)          place apparatus
    ("chemical", id)           take a chemical from the shelf
    ("action", id)             perform stir / filter / evaporate / pour / heat
    ("burner",)                switch the heat source on
    ("pour", source, dest)     start a pour stream (stops by itself when the source is empty)
    ("wait", seconds)          tick the lab forward
    ("reset",)                 reset the experiment
"""
from __future__ import annotations
from typing import Any, Dict, List, Tuple
import logging

from .constants import DEFAULT_TICK_SECONDS

logger = logging.getLogger(__name__)

SETTLE = 0.2  # seconds, enough for the delayed reaction check after a shelf pick

WALKTHROUGHS: Dict[str, List[Tuple[Any, ...]]] = {
    "salt-dissolution": [
        ("apparatus", "beaker"), ("chemical", "water"), ("chemical", "salt"), ("wait", SETTLE),
        ("apparatus", "glass-rod"), ("action", "stir"), ("wait", 4.5),
        ("reset",),
        ("apparatus", "beaker"), ("chemical", "water"), ("chemical", "sand"), ("wait", SETTLE),
        ("apparatus", "glass-rod"), ("action", "stir"), ("wait", 4.5),
    ],
    "filtration": [
        ("apparatus", "beaker"), ("apparatus", "funnel"), ("apparatus", "filter-paper"),
        ("chemical", "muddy-water"), ("wait", SETTLE),
        ("pour", "beaker_1", "collection_beaker"), ("wait", 10.0),
    ],
    "evaporation": [
        ("apparatus", "tripod-stand"), ("apparatus", "burner"), ("apparatus", "china-dish"),
        ("chemical", "salt-solution"), ("wait", SETTLE),
        ("burner",), ("wait", 5.5),
    ],
    "physical-chemical": [
        ("apparatus", "tripod-stand"), ("apparatus", "burner"), ("apparatus", "beaker"),
        ("chemical", "ice"), ("wait", SETTLE), ("burner",), ("wait", 10.5),
        ("reset",),
        ("apparatus", "burner"), ("apparatus", "tongs"), ("chemical", "paper"), ("wait", SETTLE),
        ("burner",), ("wait", 3.5),
        ("reset",),
        ("apparatus", "burner"), ("apparatus", "tongs"), ("chemical", "magnesium"), ("wait", SETTLE),
        ("burner",), ("wait", 3.5),
    ],
    "acids-bases": [
        ("apparatus", "test-tube-stand"), ("apparatus", "test-tube"), ("apparatus", "dropper"),
        ("chemical", "vinegar"), ("wait", SETTLE), ("chemical", "blue-litmus"), ("wait", SETTLE),
    ],
    "neutralization": [
        ("apparatus", "beaker"), ("chemical", "naoh"), ("wait", SETTLE),
        ("chemical", "phenolphthalein"), ("wait", SETTLE),
        ("apparatus", "dropper"), ("chemical", "hcl"), ("wait", 6.5),
    ],
}


def run_walkthrough(lab, experiment_id: str, dt: float = DEFAULT_TICK_SECONDS) -> Dict[str, Any]:
    """
    Load an experiment on the given LabManager and play its script.

    Steps the shelf would grey out are still attempted, with a warning, so a
    broken gating rule shows up in the log instead of silently skipping.

    Returns:
        Dict[str, Any]: the lab's run_flags() after the last step.
    """
    steps = WALKTHROUGHS.get(experiment_id)
    if steps is None:
        raise ValueError(f"No walkthrough for experiment '{experiment_id}'")
    if lab.load_experiment(experiment_id) is None:
        raise ValueError(f"Unknown experiment '{experiment_id}'")

    for step in steps:
        verb, args = step[0], step[1:]
        if verb == "apparatus":
            if not lab.can_add_apparatus(args[0]):
                logger.warning(f"{experiment_id}: apparatus '{args[0]}' not available at this point")
            lab.add_apparatus(args[0])
        elif verb == "chemical":
            if not lab.can_add_chemical(args[0]):
                logger.warning(f"{experiment_id}: chemical '{args[0]}' not available at this point")
            lab.add_chemical(args[0])
        elif verb == "action":
            lab.perform_action(args[0])
        elif verb == "burner":
            if not lab.heating.burner_on:
                lab.toggle_heat_source()
        elif verb == "pour":
            lab.set_pouring(True, args[0], args[1])
        elif verb == "wait":
            lab.run_for(args[0], dt)
        elif verb == "reset":
            lab.reset_experiment()
        else:
            raise ValueError(f"Unknown walkthrough verb '{verb}'")
        logger.debug(f"{experiment_id}: {step} -> {lab.engine.state.observation if lab.engine.state else None}")
    return lab.run_flags()
