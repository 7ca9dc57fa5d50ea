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
Types and helpers for multi-sensor EKF measurements
"""

from dataclasses import dataclass


# Nanoseconds per second for converting split timestamps
_NS_PER_S: int = 1_000_000_000


class MsfProtocolError(Exception):
    """Raised when a caller breaks an invariant of the measurement protocol."""


class MsfReadingError(Exception):
    """Raised when a sensor reading cannot be turned into a measurement."""


def stamp_to_seconds(sec: int, nanosec: int) -> float:
    if nanosec < 0 or nanosec >= _NS_PER_S:
        raise ValueError("nanosec must be in [0, 1e9)")
    return float(sec) + float(nanosec) / _NS_PER_S


@dataclass(frozen=True)
class ImuReading:
    """
    Raw inertial sample used to drive propagation

    Fields:
        frame_id: IMU frame identifier for this sample
        angular_velocity_rps: Angular velocity in rad/s, XYZ order
        linear_acceleration_mps2: Specific force in m/s^2, XYZ order
    """

    frame_id: str
    angular_velocity_rps: list[float]
    linear_acceleration_mps2: list[float]


@dataclass(frozen=True)
class RangeReading:
    """
    Height range reading along the world z axis

    Fields:
        frame_id: Range sensor frame identifier
        range_m: Measured range in meters
    """

    frame_id: str
    range_m: float


@dataclass(frozen=True)
class PositionReading:
    """
    Position fix in the world frame

    Fields:
        frame_id: Position sensor frame identifier
        position_m: Position in meters, XYZ order
    """

    frame_id: str
    position_m: list[float]


@dataclass(frozen=True)
class PoseReading:
    """
    Full pose fix in the world frame

    Fields:
        frame_id: Pose sensor frame identifier
        position_m: Position in meters, XYZ order
        orientation_wxyz: Unit quaternion in [w, x, y, z] order
    """

    frame_id: str
    position_m: list[float]
    orientation_wxyz: list[float]


@dataclass(frozen=True)
class MsfMatrix:
    """
    Row-major matrix data used by update reporting

    Fields:
        rows: Number of rows in the matrix
        cols: Number of columns in the matrix
        data: Row-major matrix entries
    """

    rows: int
    cols: int
    data: list[float]


@dataclass(frozen=True)
class MsfUpdateData:
    """
    Update report produced by one correction

    Fields:
        sensor: Sensor name such as range or pose
        frame_id: Measurement frame identifier
        t_meas: Measurement timestamp in seconds
        accepted: True when the correction changed the state
        reject_reason: Reason for rejection when not accepted
        z_dim: Dimension of the residual vector
        nu: Residual vector values
        r: Measurement noise covariance used for the update
        s: Innovation covariance including measurement noise
        maha_d2: Squared Mahalanobis distance of the residual
        gate_d2_threshold: Squared gating threshold, 0 when gating is off
    """

    sensor: str
    frame_id: str
    t_meas: float
    accepted: bool
    reject_reason: str
    z_dim: int
    nu: list[float]
    r: MsfMatrix
    s: MsfMatrix
    maha_d2: float
    gate_d2_threshold: float
