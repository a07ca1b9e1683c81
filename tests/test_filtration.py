from chemlab.chemicals import get_chemical
from chemlab.constants import COLLECTION_BEAKER_ID
from chemlab.filtration import FiltrationBuffer
from chemlab.vessel import Vessel


def _bench(source_ml):
    source = Vessel("beaker_1", capacity=250)
    if source_ml:
        source.fill(get_chemical("muddy-water"), source_ml)
    collection = Vessel(COLLECTION_BEAKER_ID, capacity=250)
    return {"beaker_1": source, COLLECTION_BEAKER_ID: collection}


def test_completes_after_buffer_drains_with_source_empty():
    vessels = _bench(0)
    buf = FiltrationBuffer(filtrate=get_chemical("filtered-water"))
    buf.receive(40)
    done = [buf.step(0.1, vessels) for _ in range(30)]
    assert done.count(True) == 1
    assert vessels[COLLECTION_BEAKER_ID].current_volume > 39.8
    assert vessels[COLLECTION_BEAKER_ID].has_chemical("filtered-water")


def test_no_completion_while_source_still_full():
    vessels = _bench(100)
    buf = FiltrationBuffer(filtrate=get_chemical("filtered-water"))
    buf.receive(10)
    assert not any(buf.step(0.1, vessels) for _ in range(30))


def test_slower_while_pouring():
    vessels = _bench(0)
    buf = FiltrationBuffer(filtrate=get_chemical("filtered-water"))
    buf.receive(100)
    buf.pouring = True
    buf.step(1.0, vessels)
    assert vessels[COLLECTION_BEAKER_ID].current_volume == 12.0
    buf.pouring = False
    buf.step(1.0, vessels)
    assert vessels[COLLECTION_BEAKER_ID].current_volume == 32.0


def test_idle_buffer_never_completes():
    buf = FiltrationBuffer(filtrate=get_chemical("filtered-water"))
    assert buf.step(0.1, _bench(0)) is False
