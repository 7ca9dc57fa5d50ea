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
World-frame pose measurement, such as a visual localizer
"""

from __future__ import annotations

import numpy as np

from oasis_msf.localization.msf.msf_measurement import MsfCoreProtocol
from oasis_msf.localization.msf.msf_measurement import MsfInitMeasurement
from oasis_msf.localization.msf.msf_measurement import MsfMeasurement
from oasis_msf.localization.msf.msf_quat import quat_local_error
from oasis_msf.localization.msf.msf_quat import quat_norm
from oasis_msf.localization.msf.msf_quat import quat_normalize
from oasis_msf.localization.msf.msf_state import MsfState
from oasis_msf.localization.msf.msf_state_definition import CoreStateIndex
from oasis_msf.localization.msf.msf_types import MsfReadingError
from oasis_msf.localization.msf.msf_types import PoseReading
from oasis_msf.localization.msf.sensors.position_measurement import parse_position


# Max deviation from unit norm accepted for a reported quaternion
_QUAT_NORM_TOLERANCE: float = 0.1


class PoseMeasurement(MsfMeasurement[PoseReading]):
    """
    6-D pose measurement, residual ordered as [position, attitude]

    The attitude residual is the local rotation error from the estimate to
    the measured orientation, so its Jacobian is identity near the estimate.
    """

    MEASUREMENT_SIZE: int = 6
    SENSOR_NAME: str = "pose"

    def __init__(
        self, position_var_m2: float = 0.01, attitude_var_rad2: float = 0.01
    ) -> None:
        r: np.ndarray = np.diag(
            [position_var_m2] * 3 + [attitude_var_rad2] * 3
        ).astype(float)
        super().__init__(r)
        self._z_p: np.ndarray = np.zeros(3, dtype=float)
        self._z_q: np.ndarray = np.array([1.0, 0.0, 0.0, 0.0], dtype=float)

    def _make_from_sensor_reading_impl(self, reading: PoseReading) -> None:
        self._z_p = parse_position(reading.position_m)
        self._z_q = parse_orientation(reading.orientation_wxyz)

    def apply(self, state: MsfState, core: MsfCoreProtocol) -> None:
        h: np.ndarray = np.zeros((6, state.error_state_dim), dtype=float)
        h[0:3, state.error_slice(CoreStateIndex.P)] = np.eye(3, dtype=float)
        h[3:6, state.error_slice(CoreStateIndex.Q)] = np.eye(3, dtype=float)

        residual: np.ndarray = np.concatenate(
            [
                self._z_p - state.get(CoreStateIndex.P),
                quat_local_error(state.get(CoreStateIndex.Q), self._z_q),
            ]
        )
        self.calculate_and_apply_correction(state, core, h, residual)

    @staticmethod
    def stage_initial_values(
        init_measurement: MsfInitMeasurement, reading: PoseReading
    ) -> None:
        """
        Contribute the initial position and attitude from a reading
        """

        init_measurement.set_state_init_value(
            CoreStateIndex.P, parse_position(reading.position_m)
        )
        init_measurement.set_state_init_value(
            CoreStateIndex.Q, parse_orientation(reading.orientation_wxyz)
        )


def parse_orientation(orientation_wxyz: list[float]) -> np.ndarray:
    quat: np.ndarray = np.asarray(orientation_wxyz, dtype=float)
    if quat.size != 4:
        raise MsfReadingError("orientation must have 4 elements")
    if not np.all(np.isfinite(quat)):
        raise MsfReadingError("orientation must be finite")
    norm: float = quat_norm(quat)
    if abs(norm - 1.0) > _QUAT_NORM_TOLERANCE:
        raise MsfReadingError(f"orientation is not a unit quaternion, norm={norm}")
    return quat_normalize(quat)
