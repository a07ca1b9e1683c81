from chemlab.scheduler import Scheduler


def test_calls_fire_in_due_order():
    s = Scheduler()
    fired = []
    s.schedule(200, lambda: fired.append("b"))
    s.schedule(100, lambda: fired.append("a"))
    s.schedule(200, lambda: fired.append("c"))
    assert s.advance(150) == 1
    assert s.advance(100) == 2
    assert fired == ["a", "b", "c"]


def test_stale_calls_are_dropped_after_generation_bump():
    s = Scheduler()
    fired = []
    s.schedule(100, lambda: fired.append("guarded"))
    s.schedule(100, lambda: fired.append("unguarded"), guarded=False)
    s.bump_generation()
    s.advance(500)
    assert fired == ["unguarded"]


def test_failing_callback_does_not_stop_the_queue():
    s = Scheduler()
    fired = []

    def boom():
        raise RuntimeError("boom")

    s.schedule(10, boom)
    s.schedule(20, lambda: fired.append("after"))
    s.advance(50)
    assert fired == ["after"]
    assert s.pending() == 0


def test_chained_call_fires_in_same_advance():
    s = Scheduler()
    fired = []
    s.schedule(10, lambda: s.schedule(0, lambda: fired.append("chained")))
    s.advance(10)
    assert fired == ["chained"]
