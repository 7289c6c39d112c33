
from core.observable import Observable

def test_observable_notifies_and_unsubscribes():
    obs = Observable(0)
    seen = []
    unsubscribe = obs.subscribe(seen.append)
    obs.set(1)
    obs.set(2)
    unsubscribe()
    obs.set(3)
    assert seen == [1, 2]
    assert obs.value == 3
    # second unsubscribe is harmless
    unsubscribe()

def test_broken_listener_does_not_block_others():
    obs = Observable()
    seen = []

    def boom(_):
        raise RuntimeError("renderer crashed")

    obs.subscribe(boom)
    obs.subscribe(seen.append)
    obs.set("happy")
    assert seen == ["happy"]
