from __future__ import annotations

import pytest
from conftest import HC08, Link

from curtaincall.core import events as ev
from curtaincall.core.dispatcher import SignalDispatcher
from curtaincall.core.status import Condition


@pytest.fixture
def dispatcher(link: Link) -> SignalDispatcher:
    return SignalDispatcher(link.session, link.radio, link.timers, link.status)


def _write_times(link: Link) -> list[float]:
    return [round(when, 3) for when, *_ in link.radio.writes]


def test_dispatch_when_not_ready_is_a_status_only_no_op(link: Link, dispatcher: SignalDispatcher) -> None:
    assert dispatcher.dispatch() is False
    assert dispatcher.dispatch() is False
    link.timers.advance(5)

    assert link.radio.writes == []
    assert link.radio.probes == []
    assert link.conditions() == [Condition.NOT_READY, Condition.NOT_READY]


def test_burst_prefers_write_without_response(link: Link, dispatcher: SignalDispatcher) -> None:
    link.make_ready("write-without-response", "write")
    start = link.timers.now

    assert dispatcher.dispatch() is True
    assert len(link.radio.probes) == 1
    assert link.radio.writes == []

    link.timers.advance(2)

    assert _write_times(link) == [round(start + t, 3) for t in (0.5, 0.8, 1.1)]
    assert all(identity == HC08.identity for _, identity, _, _ in link.radio.writes)
    assert all(payload == b"1" for _, _, payload, _ in link.radio.writes)
    assert all(response is False for *_, response in link.radio.writes)


def test_burst_falls_back_to_write_with_response(link: Link, dispatcher: SignalDispatcher) -> None:
    link.make_ready("write")

    dispatcher.dispatch()
    link.timers.advance(2)

    assert len(link.radio.writes) == 3
    assert all(response is True for *_, response in link.radio.writes)
    assert "with response" in link.status.message("link")


def test_no_write_before_the_wake_delay(link: Link, dispatcher: SignalDispatcher) -> None:
    link.make_ready()
    dispatcher.dispatch()

    link.timers.advance(0.49)
    assert link.radio.writes == []
    link.timers.advance(0.01)
    assert len(link.radio.writes) == 1


def test_disconnect_during_wake_cancels_the_burst(link: Link, dispatcher: SignalDispatcher) -> None:
    link.make_ready()
    dispatcher.dispatch()

    link.timers.advance(0.2)
    link.radio.emit(ev.Disconnected(HC08.identity))
    link.timers.advance(2)

    assert link.radio.writes == []
    assert Condition.NOT_READY in link.conditions()


def test_disconnect_mid_burst_stops_remaining_writes(link: Link, dispatcher: SignalDispatcher) -> None:
    link.make_ready()
    dispatcher.dispatch()

    link.timers.advance(0.6)
    assert len(link.radio.writes) == 1
    link.radio.emit(ev.Disconnected(HC08.identity))
    link.timers.advance(2)

    assert len(link.radio.writes) == 1


def test_reconnected_link_does_not_receive_a_stale_burst(link: Link, dispatcher: SignalDispatcher) -> None:
    link.make_ready()
    dispatcher.dispatch()
    link.timers.advance(0.1)
    link.radio.emit(ev.Disconnected(HC08.identity))
    link.make_ready()

    link.timers.advance(2)

    assert link.radio.writes == []


def test_failed_write_does_not_abort_the_burst(link: Link, dispatcher: SignalDispatcher) -> None:
    link.make_ready()
    dispatcher.dispatch()

    link.timers.advance(0.5)
    link.radio.emit(ev.WriteCompleted(HC08.identity, error="GATT error"))
    link.timers.advance(1)

    assert len(link.radio.writes) == 3
    assert Condition.WRITE_FAILED in link.conditions()
    assert link.session.is_ready()


def test_overlapping_dispatches_interleave(link: Link, dispatcher: SignalDispatcher) -> None:
    link.make_ready()
    start = link.timers.now

    dispatcher.dispatch()
    link.timers.advance(0.2)
    dispatcher.dispatch()
    link.timers.advance(3)

    assert len(link.radio.writes) == 6
    assert len(link.radio.probes) == 2
    assert _write_times(link) == [
        round(start + t, 3) for t in (0.5, 0.7, 0.8, 1.0, 1.1, 1.3)
    ]


def test_burst_parameters_come_from_the_constructor(link: Link) -> None:
    dispatcher = SignalDispatcher(
        link.session,
        link.radio,
        link.timers,
        link.status,
        payload=b"O",
        wake_delay_s=0.1,
        burst_spacing_s=0.5,
        burst_count=2,
    )
    link.make_ready()

    dispatcher.dispatch()
    link.timers.advance(1)

    assert [payload for _, _, payload, _ in link.radio.writes] == [b"O", b"O"]
    assert dispatcher.burst_duration == pytest.approx(0.6)
