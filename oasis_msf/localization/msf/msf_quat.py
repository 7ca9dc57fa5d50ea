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
Quaternion and rotation helpers for the MSF state

Quaternions are stored in [w, x, y, z] order and rotate body vectors into
the world frame. Attitude errors are local: q_true = q_est * exp(dtheta).
"""

from __future__ import annotations

import math

import numpy as np


_EPS: float = 1.0e-12

_IDENTITY_WXYZ: tuple[float, float, float, float] = (1.0, 0.0, 0.0, 0.0)


def quat_identity() -> np.ndarray:
    return np.array(_IDENTITY_WXYZ, dtype=float)


def quat_norm(q_wxyz: np.ndarray) -> float:
    return float(np.linalg.norm(np.asarray(q_wxyz, dtype=float)))


def quat_normalize(q_wxyz: np.ndarray) -> np.ndarray:
    """
    Normalize a quaternion, falling back to identity for a zero quaternion
    """

    q: np.ndarray = np.asarray(q_wxyz, dtype=float).reshape(4)
    norm: float = float(np.linalg.norm(q))
    if norm < _EPS:
        return quat_identity()
    return q / norm


def quat_multiply(q1_wxyz: np.ndarray, q2_wxyz: np.ndarray) -> np.ndarray:
    """
    Hamilton product q1 * q2
    """

    w1, x1, y1, z1 = (float(value) for value in q1_wxyz)
    w2, x2, y2, z2 = (float(value) for value in q2_wxyz)

    return np.array(
        [
            w1 * w2 - x1 * x2 - y1 * y2 - z1 * z2,
            w1 * x2 + x1 * w2 + y1 * z2 - z1 * y2,
            w1 * y2 - x1 * z2 + y1 * w2 + z1 * x2,
            w1 * z2 + x1 * y2 - y1 * x2 + z1 * w2,
        ],
        dtype=float,
    )


def quat_conjugate(q_wxyz: np.ndarray) -> np.ndarray:
    q: np.ndarray = np.asarray(q_wxyz, dtype=float).reshape(4)
    return np.array([q[0], -q[1], -q[2], -q[3]], dtype=float)


def so3_exp(phi_rad: np.ndarray) -> np.ndarray:
    """
    Exponential map from a rotation vector to a unit quaternion
    """

    phi: np.ndarray = np.asarray(phi_rad, dtype=float).reshape(3)
    angle_rad: float = float(np.linalg.norm(phi))
    if angle_rad < _EPS:
        # First-order expansion near identity
        return quat_normalize(np.concatenate([[1.0], 0.5 * phi]))

    half_angle: float = 0.5 * angle_rad
    axis: np.ndarray = phi / angle_rad
    return np.concatenate([[math.cos(half_angle)], math.sin(half_angle) * axis])


def so3_log(q_wxyz: np.ndarray) -> np.ndarray:
    """
    Log map from a unit quaternion to a rotation vector on the short arc
    """

    q_unit: np.ndarray = quat_normalize(q_wxyz)
    if q_unit[0] < 0.0:
        q_unit = -q_unit

    vector: np.ndarray = q_unit[1:4]
    sin_half: float = float(np.linalg.norm(vector))
    if sin_half < _EPS:
        return 2.0 * vector

    half_angle: float = math.atan2(sin_half, float(q_unit[0]))
    return vector * (2.0 * half_angle / sin_half)


def quat_local_error(q_est_wxyz: np.ndarray, q_meas_wxyz: np.ndarray) -> np.ndarray:
    """
    Rotation vector dtheta such that q_meas = q_est * exp(dtheta)
    """

    return so3_log(quat_multiply(quat_conjugate(q_est_wxyz), q_meas_wxyz))


def quat_to_rotation_matrix(q_wxyz: np.ndarray) -> np.ndarray:
    """
    Convert a quaternion to the 3x3 world-from-body rotation matrix
    """

    w, x, y, z = (float(value) for value in quat_normalize(q_wxyz))

    return np.array(
        [
            [1.0 - 2.0 * (y * y + z * z), 2.0 * (x * y - w * z), 2.0 * (x * z + w * y)],
            [2.0 * (x * y + w * z), 1.0 - 2.0 * (x * x + z * z), 2.0 * (y * z - w * x)],
            [2.0 * (x * z - w * y), 2.0 * (y * z + w * x), 1.0 - 2.0 * (x * x + y * y)],
        ],
        dtype=float,
    )


def skew(vector: np.ndarray) -> np.ndarray:
    """
    Cross-product matrix such that skew(a) @ b == cross(a, b)
    """

    vx, vy, vz = (float(value) for value in np.asarray(vector, dtype=float).reshape(3))
    return np.array(
        [
            [0.0, -vz, vy],
            [vz, 0.0, -vx],
            [-vy, vx, 0.0],
        ],
        dtype=float,
    )
