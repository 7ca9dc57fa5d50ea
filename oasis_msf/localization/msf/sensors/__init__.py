################################################################################
#
#  Copyright (C) 2026 Garrett Brown
#  This file is part of OASIS - https://github.com/eigendude/OASIS
#
#  SPDX-License-Identifier: Apache-2.0
#  See DOCS/LICENSING.md for more information.
#
################################################################################

"""Measurement types for the sensors fused by the MSF core."""

from __future__ import annotations

from oasis_msf.localization.msf.sensors.pose_measurement import PoseMeasurement
from oasis_msf.localization.msf.sensors.position_measurement import (
    PositionMeasurement,
)
from oasis_msf.localization.msf.sensors.range_measurement import RANGE_BIAS_BLOCK
from oasis_msf.localization.msf.sensors.range_measurement import RangeMeasurement


__all__ = [
    "PoseMeasurement",
    "PositionMeasurement",
    "RANGE_BIAS_BLOCK",
    "RangeMeasurement",
]
