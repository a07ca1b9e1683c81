import time

import pytest

from chemlab.constants import COLLECTION_BEAKER_ID
from chemlab.events import EFFECT_STARTED, REACTION_NOTIFICATION
from chemlab.lab_manager import LabManager, DEFAULT_SANDBOX_VESSELS


def test_sandbox_reaction_is_deferred(lab):
    lab.fill_vessel("beaker_1", "hydrochloric_acid", 100)
    lab.fill_vessel("beaker_1", "sodium_hydroxide", 100)
    assert lab.vessels["beaker_1"].has_chemical("hydrochloric_acid")
    lab.run_for(0.2)
    beaker = lab.vessels["beaker_1"]
    assert beaker.amount_of("water") == pytest.approx(100)
    assert beaker.amount_of("sodium_chloride") == pytest.approx(100)
    note = lab.run_flags()["notification"]
    assert note["rule"] == "acid_base_neutralization"
    assert note["vessel_id"] == "beaker_1"
    assert {e["effect"] for e in lab.bus.events_of(EFFECT_STARTED)} == {"color_change", "heat"}
    assert len(lab.bus.events_of(REACTION_NOTIFICATION)) == 1


def test_effects_expire(lab):
    lab.fill_vessel("beaker_2", "sulfuric_acid", 50)
    lab.fill_vessel("beaker_2", "zinc", 10)
    lab.run_for(0.2)
    assert {e.effect_type for e in lab.active_effects} == {"bubbles", "heat"}
    lab.run_for(3.5)
    assert [e.effect_type for e in lab.active_effects] == ["bubbles"]
    lab.run_for(1.0)
    assert lab.active_effects == []


def test_transfer_triggers_reaction_in_destination(lab):
    lab.fill_vessel("beaker_1", "hydrochloric_acid", 50)
    lab.fill_vessel("beaker_2", "zinc", 10)
    assert lab.transfer_liquid("beaker_1", "beaker_2", 20) == pytest.approx(20)
    lab.run_for(0.2)
    assert lab.vessels["beaker_2"].has_chemical("hydrogen_gas")
    assert lab.vessels["beaker_1"].amount_of("hydrochloric_acid") == pytest.approx(30)


def test_unknown_ids_are_noops(lab):
    assert lab.fill_vessel("nope", "water", 10) == 0.0
    assert lab.fill_vessel("beaker_1", "unobtainium", 10) == 0.0
    assert lab.transfer_liquid("beaker_1", "nope", 10) == 0.0
    assert lab.vessel_snapshot("nope") is None
    assert lab.check_vessel_reaction("nope") is None


def test_failing_subscriber_does_not_block_others(lab):
    seen = []

    def bad(event):
        raise RuntimeError("subscriber bug")

    lab.subscribe(bad)
    lab.subscribe(seen.append)
    lab.fill_vessel("beaker_1", "hydrochloric_acid", 10)
    lab.fill_vessel("beaker_1", "sodium_hydroxide", 10)
    lab.run_for(0.2)
    assert any(e["type"] == REACTION_NOTIFICATION for e in seen)


def test_filtration_pour_to_completion(lab):
    lab.load_experiment("filtration")
    for apparatus in ("beaker", "funnel", "filter-paper"):
        lab.add_apparatus(apparatus)
    assert lab.vessels["beaker_1"].name == "Muddy Water Beaker"
    assert COLLECTION_BEAKER_ID in lab.vessels
    lab.add_chemical("muddy-water")
    lab.run_for(0.2)
    assert "pour" in lab.available_next_actions()
    lab.set_pouring(True, "beaker_1", COLLECTION_BEAKER_ID)
    lab.run_for(1.0)
    flags = lab.run_flags()
    assert flags["pouring"]
    assert "pour" in flags["performed_actions"]
    assert not flags["completed"]
    lab.run_for(9.0)
    flags = lab.run_flags()
    assert flags["completed"]
    assert "filter" in flags["performed_actions"]
    assert lab.vessels["beaker_1"].is_empty
    assert lab.vessels[COLLECTION_BEAKER_ID].amount_of("filtered-water") == pytest.approx(112.5, abs=0.2)


def test_home_screen_restores_sandbox(lab):
    lab.load_experiment("salt-dissolution")
    lab.add_apparatus("beaker")
    lab.add_chemical("water")
    lab.go_to_home_screen()
    assert lab.current_experiment is None
    assert lab.mode == "sandbox"
    assert sorted(lab.vessels) == sorted(v[0] for v in DEFAULT_SANDBOX_VESSELS)
    lab.run_for(1.0)
    assert lab.run_flags()["notification"] is None


def test_progress_file_shared_between_sessions(tmp_path):
    path = str(tmp_path / "completed.json")
    first = LabManager(progress_path=path)
    first.mark_experiment_complete("evaporation")
    second = LabManager(progress_path=path)
    assert second.completed_experiments() == ["evaporation"]


def test_background_thread_ticks():
    lab = LabManager(progress_path=None)
    lab.fill_vessel("beaker_1", "hydrochloric_acid", 10)
    lab.fill_vessel("beaker_1", "sodium_hydroxide", 10)
    lab.start(interval=0.01)
    try:
        deadline = time.time() + 2.0
        while lab.run_flags()["notification"] is None and time.time() < deadline:
            time.sleep(0.02)
    finally:
        lab.stop()
    assert lab.run_flags()["notification"] is not None


def test_clear_vessel_empties_and_levels(lab):
    lab.fill_vessel("beaker_1", "water", 120)
    lab.set_tilt("beaker_1", 45)
    assert lab.clear_vessel("beaker_1") is True
    snap = lab.vessel_snapshot("beaker_1")
    assert snap["contents"] == []
    assert snap["current_volume"] == 0.0
    assert snap["tilt_angle"] == 0.0
    assert lab.clear_vessel("nope") is False


def test_pouring_with_unknown_vessel_does_not_start(lab):
    lab.fill_vessel("beaker_1", "water", 50)
    lab.set_pouring(True, "beaker_1", "nope")
    assert lab.run_flags()["pouring"] is False
    lab.set_pouring(True, "nope", "beaker_2")
    assert lab.run_flags()["pouring"] is False
    lab.set_pouring(True, "beaker_1", "beaker_2")
    assert lab.run_flags()["pouring"] is True
