import numpy as np
import pytest

from core.recording import Recording
from shared.models import CalibrationWindow, ChannelInfo, EnvelopePair
from test.fixtures.signal_generators import make_pulse_transit_recording


def _infos(n=3, rate=250.0):
    names = ("Pleth", "ECG", "ABP", "Resp")
    return [ChannelInfo(id=i, name=names[i], sample_rate=rate) for i in range(n)]


def test_set_data_before_header_is_ignored():
    recording = Recording()
    assert recording.set_data(0, np.ones(10)) is False
    assert recording.channel(0) is None
    assert recording.n_channels == 0


def test_set_data_out_of_range_is_noop():
    recording = Recording(_infos(2))
    assert recording.set_data(2, np.ones(10)) is False
    assert recording.set_data(-1, np.ones(10)) is False
    assert recording.channel(2) is None
    assert recording.sample_rate(5) == 0.0


def test_set_data_uses_header_sample_rate():
    recording = Recording(_infos(2, rate=500.0))
    assert recording.set_data(1, np.arange(20.0))
    state = recording.channel(1)
    assert state.sample_rate == 500.0
    assert state.n_samples == 20
    assert state.peaks.shape == (20,)


def test_reassignment_replaces_buffer_and_derived_arrays():
    recording = Recording(_infos(1))
    recording.set_data(0, np.ones(10))
    recording.channel(0).set_peaks(np.eye(1, 10, 3, dtype=np.int64)[0] * 60)
    recording.set_data(0, np.zeros(30))
    state = recording.channel(0)
    assert state.n_samples == 30
    assert not state.peaks.any()


def test_configure_keeps_existing_buffers():
    recording = Recording(_infos(2))
    recording.set_data(0, np.ones(10))
    recording.configure(_infos(3))
    assert recording.n_channels == 3
    assert recording.channel(0).n_samples == 10
    assert recording.channel(2) is None

    recording.configure(_infos(1))
    assert recording.channel(1) is None


def test_calibrate_with_missing_channel_returns_empty_result():
    recording = Recording(_infos(3))
    recording.set_data(2, np.full(100, 90.0))
    result = recording.calibrate(1, 0, 2, CalibrationWindow(0, 50))
    assert not result.valid
    assert len(result.measured) == 100
    assert result.samples == ()


def test_calibrate_with_out_of_range_index_returns_empty_result():
    recording = Recording(_infos(3))
    for index in range(3):
        recording.set_data(index, np.ones(100))
    result = recording.calibrate(1, 0, 7, CalibrationWindow(0, 50))
    assert not result.valid
    assert len(result.measured) == 0


def test_calibrate_clears_stale_results_on_all_channels():
    ecg, pleth, abp, _, _ = make_pulse_transit_recording()
    recording = Recording(_infos(4))
    recording.set_data(0, pleth)
    recording.set_data(1, ecg)
    recording.set_data(2, abp)
    recording.set_data(3, np.ones(abp.size))
    stale = np.zeros(abp.size)
    stale[7] = 1.0
    recording.channel(3).set_peaks(stale.astype(np.int64) * 80)
    recording.channel(3).set_measured(EnvelopePair(np.zeros(abp.size), stale))

    result = recording.calibrate(1, 0, 2, CalibrationWindow(0, 50))

    assert result.valid
    assert not recording.channel(3).peaks.any()
    assert not recording.channel(3).maxima.any()
    # the ABP peak train is only an intermediate result
    assert not recording.channel(2).peaks.any()
    assert recording.channel(1).peaks.any()
    assert recording.channel(0).delays.any()
