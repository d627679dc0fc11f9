"""Front-end orchestrator: tick order, persistence round-trip, alarms and events."""

import asyncio

import pytest

from conftest import run
from groundstation_rf.core.bus.event_bus import EventBus, Topic
from groundstation_rf.core.bus.models import AlarmSeverity, AlarmsRaised, ModuleChanged
from groundstation_rf.core.orchestrator.orchestrator import RfFrontEnd, classify_alarm
from groundstation_rf.core.rf_math import db_to_linear, linear_to_db


def test_sync_round_trip(front_end):
    run(front_end, 2.0)
    snapshot = front_end.to_dict()

    restored = RfFrontEnd(state=snapshot)
    assert restored.to_dict() == snapshot

    other = RfFrontEnd()
    other.sync(snapshot)
    a, b = other.to_dict(), snapshot
    for key in ("omt", "buc", "hpa", "filter", "lnb", "coupler", "gpsdo"):
        assert a[key] == b[key]


def test_sync_round_trip_without_antenna():
    fe = RfFrontEnd()
    fe.update(0.1)
    snapshot = fe.to_dict()
    assert snapshot["omt"]["effective_tx_pol"] is None

    other = RfFrontEnd()
    other.sync(snapshot)
    assert other.omt.state.effective_tx_pol is None
    assert other.omt.state.effective_rx_pol is None
    assert other.to_dict()["omt"] == snapshot["omt"]


def test_sync_rebuilds_nested_records(front_end):
    run(front_end, 0.5)
    other = RfFrontEnd()
    other.sync(front_end.to_dict())
    spurs = other.state.buc.spurious_outputs
    assert spurs == front_end.state.buc.spurious_outputs
    assert type(spurs[0]) is type(front_end.state.buc.spurious_outputs[0])


def test_sync_rejects_values_outside_the_declared_type(front_end):
    front_end.omt.state.effective_tx_pol = None
    spurs = list(front_end.buc.state.spurious_outputs)
    front_end.sync({
        "omt": {"effective_tx_pol": "bogus", "rx_polarization": "H"},
        "buc": {"spurious_outputs": [{"frequency": 1.0}]},
    })
    assert front_end.omt.state.effective_tx_pol is None
    assert front_end.omt.state.rx_polarization.value == "H"
    assert front_end.buc.state.spurious_outputs == spurs


def test_snapshot_is_primitive(front_end):
    run(front_end, 0.5)
    snap = front_end.to_dict()
    assert snap["omt"]["tx_polarization"] == "H"
    assert snap["coupler"]["tap_point_a"] == "TX IF"
    assert isinstance(snap["buc"]["spurious_outputs"][0], dict)


def test_sync_ignores_bad_values(front_end):
    front_end.sync({"lnb": {"gain": float("nan"), "bogus": 1}, "filter": {"bandwidth_index": "wide"}})
    assert front_end.lnb.state.gain == 55.0
    assert front_end.filter.state.bandwidth_index == 8


def test_state_exposes_live_module_state(front_end):
    assert front_end.state.lnb is front_end.lnb.state
    assert front_end.state.gpsdo is front_end.gpsdo.state


def test_system_noise_figure_is_filter_then_lna_cascade(front_end):
    run(front_end, 0.1)
    loss, nf, gain = 2.0, 0.6, 55.0
    # passive loss L ahead of the LNA: F = L + (F_lna - 1) * L
    expected = linear_to_db(db_to_linear(loss) + (db_to_linear(nf) - 1.0) / db_to_linear(-loss))
    assert front_end.system_noise_figure == pytest.approx(expected)


@pytest.mark.parametrize("message, severity", [
    ("BUC over-temperature (75.0 °C)", AlarmSeverity.ERROR),
    ("BUC high current draw (4.80 A)", AlarmSeverity.ERROR),
    ("Transmitter not operational", AlarmSeverity.ERROR),
    ("GNSS signal lost", AlarmSeverity.WARNING),
])
def test_classify_alarm(message, severity):
    assert classify_alarm(message) == severity


def test_status_alarms_per_case(front_end):
    front_end.hpa.handle_hpa_toggle()
    run(front_end, 0.2)
    case1 = front_end.get_status_alarms(1)
    assert any(a.severity == AlarmSeverity.ERROR and a.message.startswith("HPA over-temperature") for a in case1)
    assert front_end.get_status_alarms(3) == []


def test_case_reports_off_when_everything_is_unpowered(front_end):
    front_end.filter.sync({"is_powered": False})
    front_end.lnb.handle_power_toggle(False)
    front_end.gpsdo.handle_power_toggle(False)
    alarms = front_end.get_status_alarms(2)
    assert [a.severity for a in alarms] == [AlarmSeverity.OFF]


def test_alarm_event_only_on_change(front_end):
    seen = []
    front_end.bus.on(Topic.ALARM, seen.append)
    run(front_end, 0.3)
    assert len(seen) == 1
    assert isinstance(seen[0], AlarmsRaised)
    assert seen[0].ts == pytest.approx(0.1)

    front_end.gpsdo.handle_gnss_toggle(False)
    run(front_end, 0.1)
    assert len(seen) == 2
    assert seen[1].ts == pytest.approx(0.4)
    assert any("holdover" in a.message for a in seen[-1].alarms)


def test_module_changed_published_from_handlers(front_end):
    run(front_end, 0.1)
    changes = []
    front_end.bus.on(Topic.MODULE_CHANGED, changes.append)
    front_end.lnb.handle_gain_change(40.0)
    assert [c.module for c in changes] == ["lnb"]
    assert isinstance(changes[0], ModuleChanged)


def test_handler_callback_receives_state(front_end):
    got = []
    front_end.buc.handle_gain_change(30.0, got.append)
    assert got == [front_end.buc.state]


def test_update_publishes_tick(front_end):
    ticks = []
    front_end.bus.on(Topic.UPDATE, ticks.append)
    run(front_end, 1.0)
    assert len(ticks) == 10
    assert front_end.sim_time_s == pytest.approx(1.0)


def test_antenna_receives_omt_tx_output(front_end, antenna):
    front_end.hpa.handle_hpa_toggle()
    run(front_end, 0.2)
    assert len(antenna.radiated) == 1
    assert antenna.radiated[0].polarization == front_end.omt.state.tx_polarization


# -------------------------------------------------
# Event bus
# -------------------------------------------------
def test_bus_isolates_failing_subscriber():
    bus = EventBus()
    got = []

    def boom(_):
        raise RuntimeError("listener bug")

    bus.on(Topic.UPDATE, boom)
    bus.on(Topic.UPDATE, got.append)
    bus.publish_nowait(Topic.UPDATE, 1)
    assert got == [1]

    bus.off(Topic.UPDATE, boom)
    assert bus.subscriber_count(Topic.UPDATE) == 1


def test_bus_queue_drops_oldest():
    async def main():
        bus = EventBus()
        q = await bus.subscribe(Topic.SYNC, maxsize=2)
        for i in range(5):
            bus.publish_nowait(Topic.SYNC, i)
        items = [q.get_nowait(), q.get_nowait()]
        await bus.unsubscribe(Topic.SYNC, q)
        return items, bus.subscriber_count(Topic.SYNC)

    items, count = asyncio.run(main())
    assert items == [3, 4]
    assert count == 0


def test_bus_rejects_unknown_topic():
    bus = EventBus()
    with pytest.raises(ValueError):
        bus.publish_nowait("nonsense", None)
