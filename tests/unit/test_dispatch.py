import pytest

from src.matchmaking.dispatch import SubscriptionHub


class StateSource:
    """Loader over an in-memory list that counts how often it was read."""

    def __init__(self, state=None):
        self.state = list(state or [])
        self.loads = 0
        self.fail_next = False

    async def load(self, scope_id):
        self.loads += 1
        if self.fail_next:
            self.fail_next = False
            raise RuntimeError("storage unavailable")
        return list(self.state)


@pytest.fixture
def source():
    return StateSource(["hello"])


@pytest.fixture
async def hub(source):
    hub = SubscriptionHub()
    hub.register_topic("messages", source.load)
    yield hub
    await hub.close()


@pytest.mark.push
async def test_subscriber_receives_current_state(hub):
    received = []
    hub.subscribe("messages", "m1", received.append)
    await hub.drain()
    assert received == [["hello"]]


@pytest.mark.push
async def test_every_push_is_the_full_state(hub, source):
    received = []
    hub.subscribe("messages", "m1", received.append)
    await hub.drain()

    source.state.append("how are you?")
    hub.publish("messages", "m1")
    await hub.drain()

    assert received[-1] == ["hello", "how are you?"]


@pytest.mark.push
async def test_bursts_of_publishes_coalesce(hub, source):
    received = []
    hub.subscribe("messages", "m1", received.append)
    await hub.drain()
    loads_before = source.loads

    for i in range(5):
        source.state.append(f"msg {i}")
        hub.publish("messages", "m1")
    await hub.drain()

    # One more load round serves all five changes
    assert source.loads == loads_before + 1
    assert received[-1] == source.state


@pytest.mark.push
async def test_publish_without_subscribers_is_a_no_op(hub, source):
    hub.publish("messages", "nobody-listens")
    await hub.drain()
    assert source.loads == 0


@pytest.mark.push
async def test_scopes_are_independent(hub):
    first, second = [], []
    hub.subscribe("messages", "m1", first.append)
    hub.subscribe("messages", "m2", second.append)
    await hub.drain()

    hub.publish("messages", "m1")
    await hub.drain()

    assert len(first) == 2
    assert len(second) == 1


@pytest.mark.push
async def test_async_observers_are_awaited(hub):
    received = []

    async def observer(state):
        received.append(state)

    hub.subscribe("messages", "m1", observer)
    await hub.drain()
    assert received == [["hello"]]


@pytest.mark.push
async def test_no_delivery_after_cancel(hub):
    received = []
    subscription = hub.subscribe("messages", "m1", received.append)
    await hub.drain()

    subscription.cancel()
    hub.publish("messages", "m1")
    await hub.drain()

    assert received == [["hello"]]
    assert not subscription.active
    assert hub.subscriber_count() == 0


@pytest.mark.push
async def test_cancel_before_first_delivery(hub):
    received = []
    subscription = hub.subscribe("messages", "m1", received.append)
    subscription.cancel()
    await hub.drain()
    assert received == []


@pytest.mark.push
async def test_cancel_is_idempotent(hub):
    subscription = hub.subscribe("messages", "m1", lambda state: None)
    subscription.cancel()
    subscription.cancel()
    assert hub.subscriber_count("messages") == 0


@pytest.mark.push
async def test_cancel_during_a_delivery_round_skips_the_cancelled_observer(hub):
    """An observer cancelled mid-round does not get the state of that round."""
    late = []
    late_subscription = None

    def first_observer(state):
        late_subscription.cancel()

    hub.subscribe("messages", "m1", first_observer)
    late_subscription = hub.subscribe("messages", "m1", late.append)
    await hub.drain()

    assert late == []


@pytest.mark.push
async def test_retire_delivers_final_state_then_detaches(hub, source):
    received = []
    subscription = hub.subscribe("messages", "m1", received.append)
    await hub.drain()

    source.state = []
    hub.retire("messages", "m1")
    await hub.drain()

    assert received[-1] == []
    assert not subscription.active

    source.state = ["resurrected"]
    hub.publish("messages", "m1")
    await hub.drain()
    assert received[-1] == []


@pytest.mark.push
async def test_failing_observer_does_not_starve_others(hub):
    received = []

    def broken(state):
        raise RuntimeError("observer bug")

    hub.subscribe("messages", "m1", broken)
    hub.subscribe("messages", "m1", received.append)
    await hub.drain()

    assert received == [["hello"]]


@pytest.mark.push
async def test_failed_load_is_retried_on_next_publish(hub, source):
    received = []
    source.fail_next = True
    subscription = hub.subscribe("messages", "m1", received.append)
    await hub.drain()
    assert received == []
    assert subscription.active

    hub.publish("messages", "m1")
    await hub.drain()
    assert received == [["hello"]]


@pytest.mark.push
async def test_close_cancels_everything(hub):
    first = hub.subscribe("messages", "m1", lambda state: None)
    second = hub.subscribe("messages", "m2", lambda state: None)
    await hub.close()

    assert not first.active
    assert not second.active
    assert hub.subscriber_count() == 0


async def test_unknown_topic_is_rejected(hub):
    with pytest.raises(KeyError):
        hub.subscribe("unknown", "m1", lambda state: None)


async def test_topic_cannot_be_registered_twice(hub, source):
    with pytest.raises(ValueError):
        hub.register_topic("messages", source.load)
