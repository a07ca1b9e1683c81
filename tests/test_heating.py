import pytest

from chemlab.chemicals import get_chemical
from chemlab.constants import AMBIENT_TEMPERATURE, STAND_POSITION
from chemlab.heating import HeatingSystem
from chemlab.vessel import Vessel


def _on_stand(vid="beaker_1", kind="beaker", capacity=250):
    return Vessel(vid, kind=kind, capacity=capacity, position=STAND_POSITION)


def test_heats_at_source_and_cools_when_off():
    h = HeatingSystem()
    v = _on_stand()
    far = Vessel("far", position=(5.0, 0.0, 0.0))
    h.set_burner(True)
    h.step(1.0, [v, far], 1000)
    assert v.temperature == pytest.approx(AMBIENT_TEMPERATURE + 15.0)
    assert far.temperature == AMBIENT_TEMPERATURE
    h.set_burner(False)
    h.step(1.0, [v], 2000)
    assert v.temperature == pytest.approx(AMBIENT_TEMPERATURE + 10.0)


def test_rate_falls_off_with_distance():
    h = HeatingSystem()
    v = Vessel("v", position=(0.35, 0.0, 2.0))
    h.set_burner(True)
    h.step(1.0, [v], 1000)
    assert v.temperature == pytest.approx(AMBIENT_TEMPERATURE + 7.5)


def test_boiling_reported_once_per_cooldown():
    h = HeatingSystem()
    v = _on_stand()
    v.fill(get_chemical("water"), 100)
    v.temperature = 105.0
    h.set_burner(True)
    assert h.step(0.1, [v], 0).boiling == ["beaker_1"]
    assert h.step(0.1, [v], 1000).boiling == []
    assert h.step(0.1, [v], 5100).boiling == ["beaker_1"]


def test_ice_melts_and_turns_burner_off():
    h = HeatingSystem()
    v = _on_stand()
    v.fill(get_chemical("ice"), 100)
    h.set_burner(True)
    melted = False
    for i in range(600):
        report = h.step(0.02, [v], i * 20)
        assert report.boiling == []
        if report.melted:
            melted = True
            break
    assert melted
    assert h.burner_on is False


def test_dry_china_dish_cracks():
    h = HeatingSystem()
    dish = _on_stand("china_dish_1", "china_dish", 100)
    h.set_burner(True)
    cracked = []
    for i in range(300):
        cracked += h.step(0.02, [dish], i * 20).cracked
    assert cracked == ["china_dish_1"]
    assert h.burner_on is False


def test_wet_china_dish_does_not_crack():
    h = HeatingSystem()
    dish = _on_stand("china_dish_1", "china_dish", 100)
    dish.fill(get_chemical("salt-solution"), 60)
    h.set_burner(True)
    for i in range(400):
        assert h.step(0.02, [dish], i * 20).cracked == []


def test_tongs_reported_once_per_burner_session():
    h = HeatingSystem()
    tongs = Vessel("tongs_1", kind="tongs", capacity=10, position=(0.0, 1.8, 2.0))
    tongs.fill(get_chemical("paper"), 10)
    h.set_burner(True)
    assert h.step(0.02, [tongs], 0).tongs_heated == ["tongs_1"]
    assert h.step(0.02, [tongs], 20).tongs_heated == []
    h.set_burner(False)
    h.set_burner(True)
    assert h.step(0.02, [tongs], 40).tongs_heated == ["tongs_1"]
