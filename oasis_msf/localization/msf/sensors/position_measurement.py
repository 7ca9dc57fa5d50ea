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
World-frame position measurement, such as GPS or motion capture
"""

from __future__ import annotations

from typing import Optional

import numpy as np

from oasis_msf.localization.msf.msf_measurement import MsfCoreProtocol
from oasis_msf.localization.msf.msf_measurement import MsfInitMeasurement
from oasis_msf.localization.msf.msf_measurement import MsfMeasurement
from oasis_msf.localization.msf.msf_state import MsfState
from oasis_msf.localization.msf.msf_state_definition import CoreStateIndex
from oasis_msf.localization.msf.msf_types import MsfReadingError
from oasis_msf.localization.msf.msf_types import PositionReading


class PositionMeasurement(MsfMeasurement[PositionReading]):
    """
    3-D position measurement with model z = p
    """

    MEASUREMENT_SIZE: int = 3
    SENSOR_NAME: str = "position"

    def __init__(self, position_var_m2: float = 0.01) -> None:
        super().__init__(position_var_m2 * np.eye(3, dtype=float))
        self._z_p: np.ndarray = np.zeros(3, dtype=float)

    def _make_from_sensor_reading_impl(self, reading: PositionReading) -> None:
        self._z_p = parse_position(reading.position_m)

    def apply(self, state: MsfState, core: MsfCoreProtocol) -> None:
        h: np.ndarray = np.zeros((3, state.error_state_dim), dtype=float)
        h[:, state.error_slice(CoreStateIndex.P)] = np.eye(3, dtype=float)
        residual: np.ndarray = self._z_p - state.get(CoreStateIndex.P)
        self.calculate_and_apply_correction(state, core, h, residual)

    @staticmethod
    def stage_initial_values(
        init_measurement: MsfInitMeasurement,
        reading: PositionReading,
        position_var_m2: Optional[float] = None,
    ) -> None:
        """
        Contribute the initial position from a reading
        """

        init_measurement.set_state_init_value(
            CoreStateIndex.P, parse_position(reading.position_m)
        )
        if position_var_m2 is not None:
            block: slice = init_measurement.schema.error_slice(CoreStateIndex.P)
            init_measurement.get_covariance()[block, block] = position_var_m2 * np.eye(
                3, dtype=float
            )


def parse_position(position_m: list[float]) -> np.ndarray:
    position: np.ndarray = np.asarray(position_m, dtype=float)
    if position.size != 3:
        raise MsfReadingError("position must have 3 elements")
    if not np.all(np.isfinite(position)):
        raise MsfReadingError("position must be finite")
    return position.reshape(3)
