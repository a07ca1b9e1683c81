import json

import pytest

from chemlab.events import COMPLETION
from chemlab.experiments import get_experiment
from chemlab.lab_manager import LabManager


def _salt_round(lab):
    lab.add_apparatus("beaker")
    lab.add_chemical("water")
    lab.add_chemical("salt")
    lab.run_for(0.2)
    lab.add_apparatus("glass-rod")
    lab.perform_action("stir")


def test_unknown_experiment_is_ignored(lab):
    assert lab.load_experiment("does-not-exist") is None
    assert lab.current_experiment is None
    assert lab.add_apparatus("beaker") is False
    assert lab.run_flags()["mode"] == "sandbox"


def test_inserts_are_idempotent(lab):
    lab.load_experiment("salt-dissolution")
    assert lab.add_apparatus("beaker") is True
    assert lab.add_apparatus("beaker") is False
    lab.add_chemical("water")
    assert lab.add_chemical("water") is False
    flags = lab.run_flags()
    assert flags["placed_apparatus"] == ["beaker"]
    assert flags["added_chemicals"] == ["water"]


def test_salt_then_sand_gating(lab):
    lab.load_experiment("salt-dissolution")
    assert not lab.can_add_chemical("water")
    lab.add_apparatus("beaker")
    assert lab.can_add_chemical("water")
    assert not lab.can_add_chemical("salt")
    lab.add_chemical("water")
    assert lab.can_add_chemical("salt")
    assert not lab.can_add_chemical("sand")
    assert not lab.can_add_apparatus("glass-rod")
    lab.add_chemical("salt")
    lab.run_for(0.2)
    assert lab.run_flags()["observation"].startswith("Salt crystals are sitting")
    assert lab.can_add_apparatus("glass-rod")


def test_salt_phase_prompts_reset_then_sand_finishes(lab):
    lab.load_experiment("salt-dissolution")
    _salt_round(lab)
    assert "stir" not in lab.available_next_actions()
    lab.run_for(4.1)
    flags = lab.run_flags()
    assert flags["show_reset_prompt"]
    assert flags["reset_prompt_message"] == "Salt test complete! Click RESET to test with Sand."
    assert "reset" in lab.available_next_actions()
    assert not flags["completed"]

    lab.reset_experiment()
    assert lab.vessels == {}
    assert lab.run_flags()["observation"] == "Now test with SAND. Add water, then add sand, and stir."
    lab.add_apparatus("beaker")
    lab.add_chemical("water")
    assert not lab.can_add_chemical("salt")
    assert lab.can_add_chemical("sand")
    lab.add_chemical("sand")
    lab.add_apparatus("glass-rod")
    lab.perform_action("stir")
    lab.run_for(4.1)
    flags = lab.run_flags()
    assert flags["completed"]
    assert flags["observation"] == "Experiment Complete! You tested both salt and sand."
    assert flags["explanation"] == get_experiment("salt-dissolution").conclusion
    assert not flags["show_reset_prompt"]


def test_reset_makes_pending_stir_inert(lab):
    lab.load_experiment("salt-dissolution")
    _salt_round(lab)
    lab.reset_experiment()
    lab.run_for(5.0)
    flags = lab.run_flags()
    assert flags["phases"]["flags"] == {"salt": False, "sand": False}
    assert flags["observation"] == get_experiment("salt-dissolution").aim


def test_phase_flags_survive_reload(lab):
    lab.load_experiment("salt-dissolution")
    _salt_round(lab)
    lab.run_for(4.1)
    lab.go_to_home_screen()
    lab.load_experiment("salt-dissolution")
    assert lab.run_flags()["phases"]["flags"]["salt"] is True


def test_completion_is_recorded_once(lab):
    assert lab.mark_experiment_complete("filtration") is True
    assert lab.mark_experiment_complete("filtration") is False
    assert len(lab.bus.events_of(COMPLETION)) == 1
    assert lab.completed_experiments() == ["filtration"]


def test_completion_popup_is_delayed(lab):
    lab.load_experiment("acids-bases")
    lab.add_apparatus("test-tube")
    lab.add_chemical("vinegar")
    lab.add_chemical("blue-litmus")
    lab.run_for(0.2)
    flags = lab.run_flags()
    assert flags["completed"] and not flags["completion_popup"]
    assert flags["observation"].startswith("The BLUE litmus turned RED")
    lab.run_for(3.0)
    assert lab.run_flags()["completion_popup"]


def test_three_phase_round_one_gating(lab):
    lab.load_experiment("physical-chemical")
    assert not lab.can_add_apparatus("tongs")
    assert not lab.can_add_apparatus("beaker")
    assert not lab.can_add_apparatus("burner")
    lab.add_apparatus("tripod-stand")
    assert lab.can_add_apparatus("burner")
    lab.add_apparatus("burner")
    assert lab.can_add_apparatus("beaker")
    assert not lab.can_add_chemical("ice")
    lab.add_apparatus("beaker")
    assert lab.can_add_chemical("ice")
    assert not lab.can_add_chemical("paper")
    assert not lab.can_add_apparatus("tongs")


def test_ice_round_then_second_round(lab):
    lab.load_experiment("physical-chemical")
    for apparatus in ("tripod-stand", "burner", "beaker"):
        lab.add_apparatus(apparatus)
    lab.add_chemical("ice")
    lab.run_for(0.2)
    lab.toggle_heat_source()
    lab.run_for(10.5)
    flags = lab.run_flags()
    assert flags["reset_prompt_message"] == "Ice melted! Click RESET to test with Paper."
    assert not flags["burner_on"]
    assert lab.vessels["beaker_1"].amount_of("melt-water") == pytest.approx(40.0)
    assert not lab.vessels["beaker_1"].has_chemical("ice")
    assert lab.step_progress() == 5

    lab.reset_experiment()
    assert lab.step_progress() == 6
    assert lab.run_flags()["observation"].startswith("Round 2")
    assert not lab.can_add_apparatus("tripod-stand")
    assert not lab.can_add_apparatus("tongs")
    assert lab.can_add_apparatus("burner")
    lab.add_apparatus("burner")
    lab.add_apparatus("tongs")
    assert lab.can_add_chemical("paper")
    assert not lab.can_add_chemical("magnesium")


def test_titration_through_the_lab(lab):
    lab.load_experiment("neutralization")
    lab.add_apparatus("beaker")
    lab.add_chemical("naoh")
    assert not lab.can_add_apparatus("dropper")
    lab.add_chemical("phenolphthalein")
    assert not lab.can_add_chemical("hcl")
    lab.add_apparatus("dropper")
    assert lab.can_add_chemical("hcl")
    assert lab.add_chemical("hcl") is True
    assert "hcl" not in lab.run_flags()["added_chemicals"]
    lab.run_for(1.3)
    flags = lab.run_flags()
    assert flags["phases"]["drop_count"] == 1
    assert not flags["completed"]
    lab.run_for(5.0)
    flags = lab.run_flags()
    assert flags["phases"]["complete"]
    assert flags["completed"]
    assert flags["titration_color"] == "#f5f5f5"
    assert flags["added_chemicals"][-1] == "hcl"
    assert lab.step_progress() == 5
    assert lab.add_drop() is False


def test_dry_dish_cracks_and_locks_the_bench(lab):
    lab.load_experiment("evaporation")
    for apparatus in ("tripod-stand", "burner", "china-dish"):
        lab.add_apparatus(apparatus)
    lab.toggle_heat_source()
    lab.run_for(5.5)
    flags = lab.run_flags()
    assert flags["dish_cracked"]
    assert flags["safety_warning"] is None
    assert not lab.can_add_chemical("salt-solution")
    assert lab.toggle_heat_source() is False
    assert "reset" in lab.available_next_actions()
    lab.run_for(2.6)
    assert lab.run_flags()["safety_warning"]["title"] == "Oops! Thermal Shock!"


def test_repeated_chemical_does_not_refill(lab):
    lab.load_experiment("salt-dissolution")
    lab.add_apparatus("beaker")
    lab.add_chemical("water")
    once = lab.vessel_snapshot("beaker_1")
    assert lab.add_chemical("water") is False
    assert lab.vessel_snapshot("beaker_1") == once
    assert once["current_volume"] == pytest.approx(100)


def test_repeated_action_is_recorded_once(lab):
    lab.load_experiment("salt-dissolution")
    before = lab.run_flags()["pending_timers"]
    assert lab.perform_action("stir") is True
    assert lab.perform_action("stir") is False
    flags = lab.run_flags()
    assert flags["performed_actions"] == ["stir"]
    assert flags["stir_count"] == 1
    assert flags["pending_timers"] == before + 1


def test_titration_completes_without_indicator(lab):
    lab.load_experiment("neutralization")
    lab.add_apparatus("beaker")
    lab.add_apparatus("dropper")
    assert lab.add_chemical("hcl") is True
    lab.run_for(6.5)
    flags = lab.run_flags()
    assert flags["phases"]["complete"]
    assert flags["completed"]
    assert flags["observation"] == "Experiment Complete!"
    assert flags["explanation"] == get_experiment("neutralization").conclusion


def test_single_outcome_without_text_uses_conclusion(tmp_path):
    path = tmp_path / "experiments.json"
    path.write_text(json.dumps({"experiments": [{
        "id": "wet-beaker",
        "title": "Wet Beaker",
        "aim": "Pour water.",
        "apparatus": ["beaker"],
        "chemicals": [{"id": "water", "name": "Water"}],
        "procedure_steps": ["Place the beaker", "Add water"],
        "reactions": {"water": {"observation": "", "success": True}},
        "conclusion": "Water fills the beaker.",
    }]}), encoding="utf-8")
    lab = LabManager(progress_path=None, data_paths={"experiments": str(path)})
    lab.load_experiment("wet-beaker")
    lab.add_apparatus("beaker")
    lab.add_chemical("water")
    lab.run_for(0.2)
    flags = lab.run_flags()
    assert flags["completed"]
    assert flags["observation"] == "Experiment Complete!"
    assert flags["explanation"] == "Water fills the beaker."
    assert flags["show_explanation"]
