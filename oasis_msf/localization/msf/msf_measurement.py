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
Measurement objects applied by the MSF core in time order

Every sensor reading becomes an object with a capture timestamp and an
apply(state, core) method. The scheduler orders measurements by capture
time and applies each one to the historical state at that time.
"""

from __future__ import annotations

import abc
import logging
import math
from typing import Any
from typing import Generic
from typing import Iterable
from typing import Optional
from typing import Protocol
from typing import TypeVar

import numpy as np

from oasis_msf.localization.msf.msf_clock import MsfClock
from oasis_msf.localization.msf.msf_state import MsfState
from oasis_msf.localization.msf.msf_state import StateVar
from oasis_msf.localization.msf.msf_state_definition import MsfStateSchema
from oasis_msf.localization.msf.msf_state_definition import StateIndex
from oasis_msf.localization.msf.msf_types import MsfProtocolError
from oasis_msf.localization.msf.msf_types import MsfReadingError
from oasis_msf.localization.msf.msf_types import MsfUpdateData


_LOG: logging.Logger = logging.getLogger(__name__)

ReadingT = TypeVar("ReadingT")


class MsfCoreProtocol(Protocol):
    """Services a measurement needs from the filter core during apply()."""

    @property
    def is_running(self) -> bool: ...

    def apply_correction(
        self,
        state: MsfState,
        h: np.ndarray,
        residual: np.ndarray,
        r: np.ndarray,
        *,
        sensor: str,
        frame_id: str,
        t_meas: float,
    ) -> MsfUpdateData: ...


class MsfMeasurementBase(abc.ABC):
    """
    Base class for all objects the core applies to a state
    """

    def __init__(self) -> None:
        self._time: Optional[float] = None

    @property
    def time(self) -> float:
        """Capture time of the measurement in seconds."""
        if self._time is None:
            _LOG.error("Read the timestamp of a %s before it was set", self._kind())
            raise MsfProtocolError(f"{self._kind()} has no timestamp")
        return self._time

    @property
    def has_time(self) -> bool:
        return self._time is not None

    @abc.abstractmethod
    def apply(self, state: MsfState, core: MsfCoreProtocol) -> None:
        """
        Apply this measurement to the state, which is owned by the core
        """

    def _set_time(self, timestamp: float) -> None:
        if self._time is not None:
            _LOG.error(
                "Attempted to re-stamp %s from %f to %f",
                self._kind(),
                self._time,
                timestamp,
            )
            raise MsfProtocolError(f"{self._kind()} timestamp is already set")
        if not math.isfinite(timestamp):
            raise MsfReadingError(f"timestamp must be finite, got {timestamp}")
        self._time = float(timestamp)

    def _kind(self) -> str:
        return type(self).__name__

    def __repr__(self) -> str:
        stamp: str = "unset" if self._time is None else f"{self._time:.9f}"
        return f"{self._kind()}(time={stamp})"


class MsfInvalidMeasurement(MsfMeasurementBase):
    """
    Placeholder for a measurement that could not be constructed

    Lets construction failures flow through the same pipeline as valid
    measurements. The scheduler must drop it; applying it is a bug.

    A missing or non-finite timestamp becomes -inf so the placeholder still
    sorts, ahead of every real measurement.
    """

    def __init__(self, timestamp: Optional[float] = None, reason: str = "") -> None:
        super().__init__()
        self._reason: str = reason
        if timestamp is not None and math.isfinite(timestamp):
            self._time = float(timestamp)
        else:
            self._time = -math.inf

    @property
    def reason(self) -> str:
        return self._reason

    def apply(self, state: MsfState, core: MsfCoreProtocol) -> None:
        _LOG.error(
            "Called apply() on an MsfInvalidMeasurement (reason: %s). Invalid "
            "measurements must be filtered out before they reach the filter",
            self._reason or "unknown",
        )
        raise MsfProtocolError(
            "apply() called on an MsfInvalidMeasurement: "
            f"{self._reason or 'unknown reason'}"
        )


class MsfMeasurement(MsfMeasurementBase, Generic[ReadingT]):
    """
    Sensor measurement of fixed residual dimension built from one reading

    Subclasses set MEASUREMENT_SIZE and SENSOR_NAME, implement
    _make_from_sensor_reading_impl() to precompute their model inputs, and
    implement apply() by linearizing at the given state and calling
    calculate_and_apply_correction().
    """

    MEASUREMENT_SIZE: int = 0
    SENSOR_NAME: str = "unknown"

    def __init__(self, r: np.ndarray) -> None:
        super().__init__()
        size: int = type(self).MEASUREMENT_SIZE
        if size <= 0:
            raise TypeError(f"{self._kind()} must define a positive MEASUREMENT_SIZE")

        r_matrix: np.ndarray = np.array(r, dtype=float)
        if r_matrix.shape != (size, size):
            raise ValueError(f"R must be {size}x{size}, got {r_matrix.shape}")
        if not np.all(np.isfinite(r_matrix)):
            raise ValueError("R must be finite")
        if not np.allclose(r_matrix, r_matrix.T):
            raise ValueError("R must be symmetric")
        if float(np.min(np.linalg.eigvalsh(r_matrix))) < -1.0e-12:
            raise ValueError("R must be positive semi-definite")
        r_matrix.setflags(write=False)

        self._r: np.ndarray = r_matrix
        self._reading: Optional[ReadingT] = None
        self._frame_id: str = ""

    @property
    def r(self) -> np.ndarray:
        """Measurement noise covariance, read-only."""
        return self._r

    @property
    def reading(self) -> ReadingT:
        if self._reading is None:
            raise MsfProtocolError(f"{self._kind()} was never built from a reading")
        return self._reading

    @property
    def frame_id(self) -> str:
        return self._frame_id

    @classmethod
    def make_from(
        cls, reading: ReadingT, timestamp: float, **kwargs: Any
    ) -> MsfMeasurementBase:
        """
        Build a measurement from a sensor reading

        Returns an MsfInvalidMeasurement instead of raising when the reading
        or timestamp is rejected.
        """

        measurement: MsfMeasurement[ReadingT] = cls(**kwargs)
        try:
            measurement.make_from_sensor_reading(reading, timestamp)
        except MsfReadingError as err:
            _LOG.warning(
                "Rejected %s reading at t=%s: %s", cls.SENSOR_NAME, timestamp, err
            )
            return MsfInvalidMeasurement(timestamp, reason=f"{cls.SENSOR_NAME}: {err}")
        return measurement

    def make_from_sensor_reading(self, reading: ReadingT, timestamp: float) -> None:
        self._set_time(timestamp)
        self._reading = reading
        self._frame_id = str(getattr(reading, "frame_id", ""))
        self._make_from_sensor_reading_impl(reading)

    @abc.abstractmethod
    def _make_from_sensor_reading_impl(self, reading: ReadingT) -> None:
        """
        Validate the reading and precompute sensor-specific model inputs

        Raise MsfReadingError when the reading cannot be used.
        """

    def calculate_and_apply_correction(
        self,
        state: MsfState,
        core: MsfCoreProtocol,
        h: np.ndarray,
        residual: np.ndarray,
        r: Optional[np.ndarray] = None,
    ) -> MsfUpdateData:
        """
        Hand the linearized model, evaluated at this measurement's time, to
        the core's correction routine
        """

        size: int = type(self).MEASUREMENT_SIZE
        h_matrix: np.ndarray = np.asarray(h, dtype=float)
        res_vector: np.ndarray = np.asarray(residual, dtype=float).reshape(-1)
        if res_vector.shape[0] != size:
            _LOG.error(
                "%s produced a residual of size %d, expected %d",
                self._kind(),
                res_vector.shape[0],
                size,
            )
            raise MsfProtocolError(f"{self._kind()} residual must have size {size}")
        if h_matrix.shape != (size, state.error_state_dim):
            _LOG.error(
                "%s produced H of shape %s, expected %s",
                self._kind(),
                h_matrix.shape,
                (size, state.error_state_dim),
            )
            raise MsfProtocolError(f"{self._kind()} Jacobian has the wrong shape")

        return core.apply_correction(
            state,
            h_matrix,
            res_vector,
            self._r if r is None else np.asarray(r, dtype=float),
            sensor=type(self).SENSOR_NAME,
            frame_id=self._frame_id,
            t_meas=self.time,
        )


class MsfInitMeasurement(MsfMeasurementBase):
    """
    Staged values used to initialize all or part of the state

    Several sensors can each contribute the blocks they observe, for
    example one sensor the position and another the biases. Only flagged
    blocks are copied when the measurement is applied.
    """

    def __init__(
        self,
        contains_initial_sensor_readings: bool,
        *,
        schema: MsfStateSchema,
        clock: MsfClock,
    ) -> None:
        super().__init__()
        self._contains_initial_sensor_readings: bool = contains_initial_sensor_readings
        self._init_state: MsfState = MsfState(schema)
        self._set_time(clock.now_seconds())
        self._init_state.time = self.time

    @property
    def contains_initial_sensor_readings(self) -> bool:
        return self._contains_initial_sensor_readings

    @property
    def schema(self) -> MsfStateSchema:
        return self._init_state.schema

    def get_covariance(self) -> np.ndarray:
        """Staged error-state covariance, modified in place by callers."""
        return self._init_state.covariance

    def get_w_m(self) -> np.ndarray:
        """Staged gyro reading in rad/s."""
        return self._init_state.w_m

    def set_w_m(self, w_m: np.ndarray) -> None:
        self._init_state.w_m = w_m

    def get_a_m(self) -> np.ndarray:
        """Staged accelerometer reading in m/s^2."""
        return self._init_state.a_m

    def set_a_m(self, a_m: np.ndarray) -> None:
        self._init_state.a_m = a_m

    def set_state_init_value(self, index: StateIndex, value: np.ndarray) -> None:
        self._init_state.set(index, value)
        self._init_state.get_state_var(index).has_reset_value = True

    def reset_state_init_value(self, index: StateIndex) -> None:
        # The stored value is kept but no longer used
        self._init_state.get_state_var(index).has_reset_value = False

    def get_state_init_value(self, index: StateIndex) -> np.ndarray:
        return np.array(self._init_state.get(index), dtype=float)

    def has_state_init_value(self, index: StateIndex) -> bool:
        return self._init_state.get_state_var(index).has_reset_value

    def apply(self, state: MsfState, core: MsfCoreProtocol) -> None:
        if core.is_running:
            _LOG.error(
                "Init measurement from t=%f applied after the filter entered "
                "steady state",
                self.time,
            )
            raise MsfProtocolError(
                "MsfInitMeasurement cannot be applied once the filter is running"
            )
        if state.schema != self.schema:
            raise MsfProtocolError("Init measurement schema does not match the state")

        staged_p: np.ndarray = self._init_state.covariance
        index: int
        for index in range(len(self.schema)):
            staged: StateVar = self._init_state.get_state_var(index)
            if not staged.has_reset_value:
                continue

            target: StateVar = state.get_state_var(index)
            target.value = np.array(staged.value, dtype=float)
            target.has_reset_value = True

            block_slice: slice = self.schema.error_slice(index)
            block_p: np.ndarray = staged_p[block_slice, block_slice]
            if np.any(block_p != 0.0):
                # Replace the prior of this block and drop its correlations
                state.covariance[block_slice, :] = 0.0
                state.covariance[:, block_slice] = 0.0
                state.covariance[block_slice, block_slice] = block_p

        if self._contains_initial_sensor_readings:
            state.w_m = self._init_state.w_m
            state.a_m = self._init_state.a_m


def measurement_before(lhs: MsfMeasurementBase, rhs: MsfMeasurementBase) -> bool:
    """
    True when lhs was captured strictly before rhs
    """

    return lhs.time < rhs.time


def measurement_sort_key(measurement: MsfMeasurementBase) -> float:
    return measurement.time


def sort_measurements(
    measurements: Iterable[MsfMeasurementBase],
) -> list[MsfMeasurementBase]:
    """
    Sort measurements by capture time

    The sort is stable, so measurements with equal timestamps keep the
    order in which they were received.
    """

    return sorted(measurements, key=measurement_sort_key)
