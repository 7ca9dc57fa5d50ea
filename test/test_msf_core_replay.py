################################################################################
#
#  Copyright (C) 2026 Garrett Brown
#  This file is part of OASIS - https://github.com/eigendude/OASIS
#
#  SPDX-License-Identifier: Apache-2.0
#  See DOCS/LICENSING.md for more information.
#
################################################################################

from __future__ import annotations

import numpy as np

from oasis_msf.localization.msf.core import MsfCore
from oasis_msf.localization.msf.msf_clock import ManualMsfClock
from oasis_msf.localization.msf.msf_config import MsfConfig
from oasis_msf.localization.msf.msf_measurement import MsfCoreProtocol
from oasis_msf.localization.msf.msf_measurement import MsfMeasurementBase
from oasis_msf.localization.msf.msf_state import MsfState
from oasis_msf.localization.msf.msf_types import ImuReading
from oasis_msf.localization.msf.msf_types import PositionReading
from oasis_msf.localization.msf.sensors import PositionMeasurement


_IMU_TIMES: list[float] = [0.1 * step for step in range(1, 11)]


class _RecordingMeasurement(MsfMeasurementBase):
    def __init__(self, timestamp: float, applied: list[tuple[float, float]]) -> None:
        super().__init__()
        self._set_time(timestamp)
        self._applied: list[tuple[float, float]] = applied

    def apply(self, state: MsfState, core: MsfCoreProtocol) -> None:
        self._applied.append((self.time, state.time))


def _build_core() -> MsfCore:
    return MsfCore(MsfConfig(t_buffer_sec=5.0), clock=ManualMsfClock(0.0))


def _build_imu_reading() -> ImuReading:
    return ImuReading(
        frame_id="imu",
        angular_velocity_rps=[0.0, 0.0, 0.1],
        linear_acceleration_mps2=[0.2, 0.0, 9.81],
    )


def _build_position(
    timestamp: float, position_m: tuple[float, float, float] = (0.5, -0.2, 0.1)
) -> MsfMeasurementBase:
    return PositionMeasurement.make_from(
        PositionReading(frame_id="gps", position_m=list(position_m)), timestamp
    )


def test_measurements_applied_in_time_order() -> None:
    core: MsfCore = _build_core()
    applied: list[tuple[float, float]] = []

    for t_meas in (0.5, 0.2, 0.8):
        assert core.add_measurement(_RecordingMeasurement(t_meas, applied))
    assert core.pending_count == 3

    core.start()
    assert applied == []

    core.propagate(_build_imu_reading(), 1.0)

    assert applied == [(0.2, 0.2), (0.5, 0.5), (0.8, 0.8)]
    assert core.pending_count == 0


def test_measurement_waits_for_propagation() -> None:
    core: MsfCore = _build_core()
    core.start()
    applied: list[tuple[float, float]] = []

    core.add_measurement(_RecordingMeasurement(0.35, applied))
    core.propagate(_build_imu_reading(), 0.2)
    assert applied == []

    core.propagate(_build_imu_reading(), 0.4)
    assert applied == [(0.35, 0.35)]


def test_out_of_order_correction_matches_in_order() -> None:
    t_meas: float = 0.55

    in_order: MsfCore = _build_core()
    in_order.start()
    for t_imu in _IMU_TIMES:
        in_order.propagate(_build_imu_reading(), t_imu)
        if t_imu == _IMU_TIMES[4]:
            assert in_order.add_measurement(_build_position(t_meas))

    delayed: MsfCore = _build_core()
    delayed.start()
    for t_imu in _IMU_TIMES:
        delayed.propagate(_build_imu_reading(), t_imu)
    assert delayed.add_measurement(_build_position(t_meas))

    expected: MsfState = in_order.current_state()
    actual: MsfState = delayed.current_state()

    assert actual.time == expected.time
    np.testing.assert_allclose(
        actual.pack_nominal(), expected.pack_nominal(), rtol=0.0, atol=1e-12
    )
    np.testing.assert_allclose(
        actual.covariance, expected.covariance, rtol=0.0, atol=1e-12
    )

    # The correction moved the estimate toward the measurement
    undisturbed: MsfCore = _build_core()
    undisturbed.start()
    for t_imu in _IMU_TIMES:
        undisturbed.propagate(_build_imu_reading(), t_imu)
    assert not np.allclose(
        undisturbed.current_state().pack_nominal(), actual.pack_nominal()
    )


def test_delayed_correction_keeps_later_corrections() -> None:
    early: tuple[float, float, float] = (0.5, -0.2, 0.1)
    late: tuple[float, float, float] = (3.0, 3.0, 3.0)

    in_order: MsfCore = _build_core()
    in_order.start()
    for t_imu in _IMU_TIMES:
        in_order.propagate(_build_imu_reading(), t_imu)
        if t_imu == _IMU_TIMES[3]:
            assert in_order.add_measurement(_build_position(0.35, early))
        if t_imu == _IMU_TIMES[7]:
            assert in_order.add_measurement(_build_position(0.75, late))

    delayed: MsfCore = _build_core()
    delayed.start()
    for t_imu in _IMU_TIMES:
        delayed.propagate(_build_imu_reading(), t_imu)
        if t_imu == _IMU_TIMES[7]:
            assert delayed.add_measurement(_build_position(0.75, late))
    assert delayed.add_measurement(_build_position(0.35, early))

    assert [state.time for state in delayed.state_history()] == [
        state.time for state in in_order.state_history()
    ]
    expected: MsfState
    actual: MsfState
    for expected, actual in zip(in_order.state_history(), delayed.state_history()):
        np.testing.assert_allclose(
            actual.pack_nominal(), expected.pack_nominal(), rtol=0.0, atol=1e-9
        )
        np.testing.assert_allclose(
            actual.covariance, expected.covariance, rtol=0.0, atol=1e-9
        )

    # Both corrections survive in the replayed history
    only_early: MsfCore = _build_core()
    only_early.start()
    for t_imu in _IMU_TIMES:
        only_early.propagate(_build_imu_reading(), t_imu)
    only_early.add_measurement(_build_position(0.35, early))
    assert not np.allclose(
        only_early.current_state().pack_nominal(),
        delayed.current_state().pack_nominal(),
    )


def test_measurement_older_than_history_is_dropped() -> None:
    core: MsfCore = _build_core()
    core.start()
    core.propagate(_build_imu_reading(), 0.1)

    assert not core.add_measurement(_build_position(-1.0))

    assert core.diagnostics["reject_too_old"] == 1
    assert core.pending_count == 0
    assert core.process_pending() == []


def test_imu_rejections() -> None:
    core: MsfCore = _build_core()

    assert not core.propagate(_build_imu_reading(), 0.1)
    assert core.diagnostics["imu_before_start"] == 1

    core.start()
    assert core.propagate(_build_imu_reading(), 0.1)
    assert not core.propagate(_build_imu_reading(), 0.1)
    assert core.diagnostics["imu_out_of_order"] == 1

    bad_reading: ImuReading = ImuReading(
        frame_id="imu",
        angular_velocity_rps=[0.0, float("nan"), 0.0],
        linear_acceleration_mps2=[0.0, 0.0, 9.81],
    )
    assert not core.propagate(bad_reading, 0.2)
    assert core.diagnostics["imu_invalid"] == 1
    assert len(core.state_history()) == 2


def test_long_imu_gap_holds_state() -> None:
    core: MsfCore = _build_core()
    core.start()
    before: MsfState = core.current_state().copy()

    assert core.propagate(_build_imu_reading(), 2.0)

    assert core.diagnostics["imu_gap"] == 1
    np.testing.assert_allclose(
        core.current_state().pack_nominal(), before.pack_nominal()
    )
    np.testing.assert_allclose(core.current_state().covariance, before.covariance)


def test_reset_returns_to_staging() -> None:
    core: MsfCore = _build_core()
    core.start()
    core.propagate(_build_imu_reading(), 0.1)

    core.reset()

    assert not core.is_running
    assert core.state_history() == []
    assert core.pending_count == 0
