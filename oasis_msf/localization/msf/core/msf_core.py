################################################################################
#
#  Copyright (C) 2026 Garrett Brown
#  This file is part of OASIS - https://github.com/eigendude/OASIS
#
#  SPDX-License-Identifier: Apache-2.0
#  See DOCS/LICENSING.md for more information.
#
################################################################################

"""
Filter core that owns the state history and schedules measurements
"""

from __future__ import annotations

import logging
from typing import Optional

import numpy as np

from oasis_msf.localization.msf.core.msf_core_correction import (
    MsfCoreCorrectionMixin,
)
from oasis_msf.localization.msf.models.imu_process_model import ImuProcessModel
from oasis_msf.localization.msf.msf_clock import MsfClock
from oasis_msf.localization.msf.msf_clock import SystemMsfClock
from oasis_msf.localization.msf.msf_config import MsfConfig
from oasis_msf.localization.msf.msf_measurement import MsfInitMeasurement
from oasis_msf.localization.msf.msf_measurement import MsfInvalidMeasurement
from oasis_msf.localization.msf.msf_measurement import MsfMeasurementBase
from oasis_msf.localization.msf.msf_measurement_queue import MsfMeasurementQueue
from oasis_msf.localization.msf.msf_state import MsfState
from oasis_msf.localization.msf.msf_state_buffer import MsfStateBuffer
from oasis_msf.localization.msf.msf_state_definition import MsfStateSchema
from oasis_msf.localization.msf.msf_state_definition import core_state_schema
from oasis_msf.localization.msf.msf_types import ImuReading
from oasis_msf.localization.msf.msf_types import MsfProtocolError
from oasis_msf.localization.msf.msf_types import MsfUpdateData


_LOG: logging.Logger = logging.getLogger(__name__)


class MsfCore(MsfCoreCorrectionMixin):
    """
    Multi-sensor EKF core

    Lifecycle:
        1) Staging: init measurements fill in the initial state
        2) start(): the staged state becomes the first state in the history
        3) Steady state: IMU readings append states, sensor measurements are
           applied at their capture time and later states are re-propagated
           with their own corrections applied again
    """

    def __init__(
        self,
        config: MsfConfig,
        *,
        schema: Optional[MsfStateSchema] = None,
        clock: Optional[MsfClock] = None,
    ) -> None:
        self._config: MsfConfig = config
        self._schema: MsfStateSchema = (
            schema if schema is not None else core_state_schema()
        )
        self._clock: MsfClock = clock if clock is not None else SystemMsfClock()
        self._process_model: ImuProcessModel = ImuProcessModel(config)
        self._state_buffer: MsfStateBuffer = MsfStateBuffer(config)
        self._queue: MsfMeasurementQueue = MsfMeasurementQueue(config)
        self._applied: MsfMeasurementQueue = MsfMeasurementQueue(config)
        self._running: bool = False
        self._init_count: int = 0
        self._initial_state: MsfState = self._default_state()
        self._update_reports: list[MsfUpdateData] = []
        self._diagnostics: dict[str, int] = {
            "reject_invalid": 0,
            "reject_too_old": 0,
            "reject_non_finite": 0,
            "reject_singular_s": 0,
            "reject_gated": 0,
            "imu_before_start": 0,
            "imu_out_of_order": 0,
            "imu_invalid": 0,
            "imu_gap": 0,
        }

    @property
    def config(self) -> MsfConfig:
        return self._config

    @property
    def schema(self) -> MsfStateSchema:
        return self._schema

    @property
    def clock(self) -> MsfClock:
        return self._clock

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def diagnostics(self) -> dict[str, int]:
        return dict(self._diagnostics)

    @property
    def pending_count(self) -> int:
        return len(self._queue)

    def create_init_measurement(
        self, contains_initial_sensor_readings: bool = False
    ) -> MsfInitMeasurement:
        """
        Create an init measurement stamped with this core's clock
        """

        return MsfInitMeasurement(
            contains_initial_sensor_readings, schema=self._schema, clock=self._clock
        )

    def initial_state(self) -> MsfState:
        """
        Copy of the state staged so far by init measurements
        """

        return self._initial_state.copy()

    def apply_init_measurement(self, measurement: MsfInitMeasurement) -> None:
        measurement.apply(self._initial_state, self)
        if self._init_count == 0:
            self._initial_state.time = measurement.time
        else:
            self._initial_state.time = max(self._initial_state.time, measurement.time)
        self._init_count += 1
        _LOG.info(
            "Applied init measurement %d from t=%f", self._init_count, measurement.time
        )

    def start(self) -> None:
        """
        Leave staging and begin steady-state filtering
        """

        if self._running:
            _LOG.error("start() called on a running filter")
            raise MsfProtocolError("MSF core is already running")

        if self._init_count == 0:
            _LOG.warning("Starting without init measurements, using default state")
            self._initial_state.time = self._clock.now_seconds()

        self._state_buffer.reset()
        self._state_buffer.insert(self._initial_state.copy())
        self._running = True
        _LOG.info("MSF core running from t=%f", self._initial_state.time)

        self._apply_ready_measurements()

    def reset(self) -> None:
        """
        Drop all history and return to staging
        """

        self._running = False
        self._init_count = 0
        self._initial_state = self._default_state()
        self._state_buffer.reset()
        self._queue.reset()
        self._applied.reset()
        self._update_reports = []

    def propagate(self, imu_reading: ImuReading, timestamp: float) -> bool:
        """
        Append the state at timestamp by integrating the newest state

        Returns False when the reading was not used.
        """

        if not self._running:
            self._diagnostics["imu_before_start"] += 1
            _LOG.debug("Ignoring IMU reading at t=%f before start", timestamp)
            return False

        w_m: np.ndarray = np.asarray(imu_reading.angular_velocity_rps, dtype=float)
        a_m: np.ndarray = np.asarray(imu_reading.linear_acceleration_mps2, dtype=float)
        if (
            w_m.size != 3
            or a_m.size != 3
            or not np.all(np.isfinite(w_m))
            or not np.all(np.isfinite(a_m))
            or not np.isfinite(timestamp)
        ):
            self._diagnostics["imu_invalid"] += 1
            _LOG.warning("Ignoring malformed IMU reading at t=%s", timestamp)
            return False

        latest: MsfState = self.current_state()
        if timestamp <= latest.time:
            self._diagnostics["imu_out_of_order"] += 1
            _LOG.warning(
                "Ignoring IMU reading at t=%f, not after the newest state at t=%f",
                timestamp,
                latest.time,
            )
            return False

        next_state: MsfState = latest.copy()
        next_state.time = timestamp
        next_state.w_m = w_m
        next_state.a_m = a_m
        self._propagate_between(latest, next_state)

        self._state_buffer.insert(next_state)
        self._state_buffer.evict(timestamp)
        earliest_time: Optional[float] = self._state_buffer.earliest_time()
        if earliest_time is not None:
            self._applied.drop_before(earliest_time)

        self._apply_ready_measurements()
        return True

    def add_measurement(self, measurement: MsfMeasurementBase) -> bool:
        """
        Hand a measurement to the scheduler

        Returns False when the measurement was rejected on arrival.
        """

        if isinstance(measurement, MsfInvalidMeasurement):
            self._diagnostics["reject_invalid"] += 1
            _LOG.warning("Dropping invalid measurement: %s", measurement.reason)
            return False

        if isinstance(measurement, MsfInitMeasurement):
            self.apply_init_measurement(measurement)
            return True

        earliest_time: Optional[float] = self._state_buffer.earliest_time()
        if earliest_time is not None and measurement.time < earliest_time:
            self._diagnostics["reject_too_old"] += 1
            _LOG.warning("Dropping %r, older than the state history", measurement)
            return False

        if not self._queue.insert(measurement):
            self._diagnostics["reject_too_old"] += 1
            return False

        if self._running:
            self._apply_ready_measurements()
        return True

    def process_pending(self) -> list[MsfUpdateData]:
        """
        Apply every queued measurement covered by the state history

        Measurements newer than the newest state wait for propagation to
        catch up. Returns the update reports produced since the last call.
        """

        self._apply_ready_measurements()
        return self.take_update_reports()

    def state_at(self, timestamp: float) -> MsfState:
        """
        Return the state at timestamp, constructing it by propagation from
        the closest earlier state when none exists yet
        """

        exact: Optional[MsfState] = self._state_buffer.get_exact(timestamp)
        if exact is not None:
            return exact

        prev_state: Optional[MsfState] = self._state_buffer.closest_at_or_before(
            timestamp
        )
        if prev_state is None:
            _LOG.error("No state at or before t=%f in the history", timestamp)
            raise MsfProtocolError(f"No state at or before t={timestamp}")

        state: MsfState = prev_state.copy()
        state.time = timestamp
        self._propagate_between(prev_state, state)
        self._state_buffer.insert(state)
        return state

    def current_state(self) -> MsfState:
        latest: Optional[MsfState] = self._state_buffer.latest()
        if latest is None:
            raise MsfProtocolError("MSF core has no state, call start() first")
        return latest

    def state_history(self) -> list[MsfState]:
        return list(self._state_buffer.iter_states())

    def _apply_ready_measurements(self) -> None:
        if not self._running:
            return

        latest_time: Optional[float] = self._state_buffer.latest_time()
        if latest_time is None:
            return

        measurement: MsfMeasurementBase
        for measurement in self._queue.pop_ready(latest_time):
            self._apply_measurement(measurement)

    def _apply_measurement(self, measurement: MsfMeasurementBase) -> None:
        t_meas: float = measurement.time
        earliest_time: Optional[float] = self._state_buffer.earliest_time()
        if earliest_time is None or t_meas < earliest_time:
            self._diagnostics["reject_too_old"] += 1
            _LOG.warning("Dropping %r, older than the state history", measurement)
            return

        state: MsfState = self.state_at(t_meas)
        measurement.apply(state, self)
        self._applied.record(measurement)
        self._repropagate_after(state)

    def _repropagate_after(self, state: MsfState) -> None:
        prev_state: MsfState = state
        later_state: MsfState
        for later_state in list(self._state_buffer.iter_states_after(state.time)):
            self._propagate_between(prev_state, later_state)
            # Corrections already applied at this time are lost by propagation
            replayed: MsfMeasurementBase
            for replayed in self._applied.measurements_at(later_state.time):
                replayed.apply(later_state, self)
            prev_state = later_state

    def _propagate_between(self, prev_state: MsfState, next_state: MsfState) -> None:
        dt_s: float = next_state.time - prev_state.time
        if dt_s > self._config.dt_imu_max:
            # Too long to integrate, carry the estimate over unchanged
            self._diagnostics["imu_gap"] += 1
            _LOG.warning(
                "Skipping propagation over a %.3f s gap ending at t=%f",
                dt_s,
                next_state.time,
            )
            self._process_model.hold(prev_state, next_state)
            return
        self._process_model.propagate(prev_state, next_state)

    def _default_state(self) -> MsfState:
        state: MsfState = MsfState(self._schema)
        priors: dict[str, float] = {
            "p": self._config.pos_var,
            "v": self._config.vel_var,
            "q": self._config.ang_var,
            "b_w": self._config.gyro_bias_var,
            "b_a": self._config.accel_bias_var,
        }
        p: np.ndarray = np.zeros((state.error_state_dim, state.error_state_dim))
        for index, block in enumerate(self._schema.blocks):
            variance: float = priors.get(block.name, self._config.extra_state_var)
            block_slice: slice = self._schema.error_slice(index)
            p[block_slice, block_slice] = variance * np.eye(block.error_size)
        state.covariance = p
        return state
