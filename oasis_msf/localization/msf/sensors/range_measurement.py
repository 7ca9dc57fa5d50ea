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
Height range measurement, such as a downward-facing rangefinder
"""

from __future__ import annotations

import math
from typing import Optional

import numpy as np

from oasis_msf.localization.msf.msf_measurement import MsfCoreProtocol
from oasis_msf.localization.msf.msf_measurement import MsfMeasurement
from oasis_msf.localization.msf.msf_state import MsfState
from oasis_msf.localization.msf.msf_state_definition import CoreStateIndex
from oasis_msf.localization.msf.msf_state_definition import StateBlock
from oasis_msf.localization.msf.msf_state_definition import vector_block
from oasis_msf.localization.msf.msf_types import MsfReadingError
from oasis_msf.localization.msf.msf_types import RangeReading


# Optional state block holding an additive range offset in meters
RANGE_BIAS_BLOCK: StateBlock = vector_block("range_bias", 1)


class RangeMeasurement(MsfMeasurement[RangeReading]):
    """
    1-D measurement of the body height above the world origin

    Model: z = p_z + range_bias, where range_bias is only used when the
    state schema carries RANGE_BIAS_BLOCK.
    """

    MEASUREMENT_SIZE: int = 1
    SENSOR_NAME: str = "range"

    def __init__(
        self, range_var_m2: float = 0.01, max_range_m: Optional[float] = None
    ) -> None:
        super().__init__(np.array([[range_var_m2]], dtype=float))
        self._max_range_m: Optional[float] = max_range_m
        self._range_m: float = math.nan

    @property
    def range_m(self) -> float:
        return self._range_m

    def _make_from_sensor_reading_impl(self, reading: RangeReading) -> None:
        range_m: float = float(reading.range_m)
        if not math.isfinite(range_m):
            raise MsfReadingError("range must be finite")
        if range_m < 0.0:
            raise MsfReadingError(f"range must be non-negative, got {range_m}")
        if self._max_range_m is not None and range_m > self._max_range_m:
            raise MsfReadingError(
                f"range {range_m} exceeds the sensor limit {self._max_range_m}"
            )
        self._range_m = range_m

    def apply(self, state: MsfState, core: MsfCoreProtocol) -> None:
        h: np.ndarray = np.zeros((1, state.error_state_dim), dtype=float)
        p_slice: slice = state.error_slice(CoreStateIndex.P)
        h[0, p_slice.start + 2] = 1.0
        z_hat: float = float(state.get(CoreStateIndex.P)[2])

        if state.schema.has_block(RANGE_BIAS_BLOCK.name):
            bias_index: int = state.schema.index_of(RANGE_BIAS_BLOCK.name)
            h[0, state.error_slice(bias_index).start] = 1.0
            z_hat += float(state.get(bias_index)[0])

        residual: np.ndarray = np.array([self._range_m - z_hat], dtype=float)
        self.calculate_and_apply_correction(state, core, h, residual)
