import threading

import numpy as np
import pytest

from analysis.settings import CalibrationSettingsStore
from core import CalibrationController
from shared.models import ChannelInfo
from test.fixtures.signal_generators import make_pulse_transit_recording


def _loaded_controller(**kwargs):
    ecg, pleth, abp, _, _ = make_pulse_transit_recording()
    controller = CalibrationController(**kwargs)
    controller.configure(
        [
            ChannelInfo(id=0, name="Pleth", sample_rate=250.0),
            ChannelInfo(id=1, name="ECG", sample_rate=250.0, units="mV"),
            ChannelInfo(id=2, name="ABP", sample_rate=250.0, units="mmHg"),
        ]
    )
    assert controller.set_data(0, pleth)
    assert controller.set_data(1, ecg)
    assert controller.set_data(2, abp)
    return controller


def test_calibrate_uses_default_channel_roles():
    controller = _loaded_controller()
    assert controller.last_result is None

    result = controller.calibrate()

    assert result.valid
    assert result.low.b == pytest.approx(80.0, abs=1e-6)
    assert result.high.b == pytest.approx(120.0, abs=1e-6)
    assert controller.last_result is result
    assert controller.channel(2).maxima_predicted.any()


def test_window_change_reruns_with_new_bounds():
    controller = _loaded_controller()
    first = controller.calibrate()
    controller.update_settings(begin_percent=50, end_percent=100)
    second = controller.calibrate()

    assert first.low.n == 6
    assert second.low.n == 5
    assert second.window.begin_percent == 50
    begin, _ = second.window.bounds(controller.channel(2).n_samples)
    assert np.all(np.flatnonzero(second.predicted.maxima) < begin)


def test_swapped_channel_roles_give_empty_fit():
    controller = _loaded_controller()
    controller.update_settings(ecg_channel=2, abp_channel=1)
    result = controller.calibrate()
    assert not result.valid
    assert result.predicted.n_maxima == 0


def test_missing_channel_gives_empty_result():
    controller = _loaded_controller()
    controller.update_settings(abp_channel=5)
    result = controller.calibrate()
    assert not result.valid
    assert result.samples == ()


def test_invalid_settings_update_is_rejected():
    controller = _loaded_controller()
    with pytest.raises(ValueError):
        controller.update_settings(begin_percent=80, end_percent=20)
    assert controller.settings.window().bounds(100) == (0, 50)


def test_shared_settings_store():
    store = CalibrationSettingsStore()
    controller = _loaded_controller(settings_store=store)
    store.update(end_percent=60)
    assert controller.calibrate().window.end_percent == 60


def test_subscribers_receive_results():
    controller = _loaded_controller()
    seen = []
    unsubscribe = controller.subscribe(seen.append)

    result = controller.calibrate()
    assert seen == [result]

    unsubscribe()
    controller.calibrate()
    assert len(seen) == 1


def test_failing_subscriber_does_not_block_others():
    controller = _loaded_controller()
    seen = []

    def broken(_result):
        raise RuntimeError("boom")

    controller.subscribe(broken)
    controller.subscribe(seen.append)
    result = controller.calibrate()
    assert seen == [result]


def test_set_data_out_of_range_is_ignored():
    controller = _loaded_controller()
    assert controller.set_data(3, np.ones(10)) is False
    assert controller.channel(3) is None


def test_concurrent_assignment_and_calibration():
    controller = _loaded_controller()
    abp = controller.channel(2).samples.copy()
    errors = []

    def writer():
        try:
            for _ in range(20):
                controller.set_data(2, abp)
        except Exception as exc:  # pragma: no cover - reported below
            errors.append(exc)

    thread = threading.Thread(target=writer)
    thread.start()
    for _ in range(5):
        result = controller.calibrate()
        assert result.valid
    thread.join(timeout=10.0)

    assert not errors


def test_channel_results_are_readonly():
    controller = _loaded_controller()
    controller.calibrate()

    ecg = controller.channel(1)
    pleth = controller.channel(0)
    assert not ecg.peaks.flags.writeable
    assert not pleth.delays.flags.writeable
    before = int(ecg.peaks[np.flatnonzero(ecg.peaks)[0]])
    with pytest.raises(ValueError):
        ecg.peaks[np.flatnonzero(ecg.peaks)[0]] = 999
    assert controller.channel(1).peaks[np.flatnonzero(ecg.peaks)[0]] == before


def test_channel_snapshot_survives_later_passes():
    controller = _loaded_controller()
    controller.calibrate()
    snapshot = controller.channel(2)
    predicted = snapshot.maxima_predicted.copy()

    controller.update_settings(begin_percent=50, end_percent=100)
    controller.calibrate()

    np.testing.assert_array_equal(snapshot.maxima_predicted, predicted)
    assert not np.array_equal(controller.channel(2).maxima_predicted, predicted)
