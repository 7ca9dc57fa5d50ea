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

import math

import numpy as np

from oasis_msf.localization.msf.msf_quat import quat_conjugate
from oasis_msf.localization.msf.msf_quat import quat_identity
from oasis_msf.localization.msf.msf_quat import quat_local_error
from oasis_msf.localization.msf.msf_quat import quat_multiply
from oasis_msf.localization.msf.msf_quat import quat_normalize
from oasis_msf.localization.msf.msf_quat import quat_to_rotation_matrix
from oasis_msf.localization.msf.msf_quat import skew
from oasis_msf.localization.msf.msf_quat import so3_exp
from oasis_msf.localization.msf.msf_quat import so3_log


def test_multiply_by_conjugate_is_identity() -> None:
    q: np.ndarray = quat_normalize(np.array([0.9, 0.1, -0.3, 0.2]))

    np.testing.assert_allclose(
        quat_multiply(q, quat_conjugate(q)), quat_identity(), atol=1e-12
    )


def test_zero_quaternion_normalizes_to_identity() -> None:
    np.testing.assert_allclose(quat_normalize(np.zeros(4)), quat_identity())


def test_log_inverts_exp() -> None:
    phi: np.ndarray = np.array([0.3, -0.2, 0.5])

    np.testing.assert_allclose(so3_log(so3_exp(phi)), phi, atol=1e-12)
    np.testing.assert_allclose(so3_log(-so3_exp(phi)), phi, atol=1e-12)


def test_local_error_composes() -> None:
    q_est: np.ndarray = so3_exp(np.array([0.0, 0.4, 0.0]))
    delta: np.ndarray = np.array([0.05, 0.0, -0.1])
    q_meas: np.ndarray = quat_multiply(q_est, so3_exp(delta))

    np.testing.assert_allclose(quat_local_error(q_est, q_meas), delta, atol=1e-12)


def test_rotation_matrix_yaw() -> None:
    q: np.ndarray = so3_exp(np.array([0.0, 0.0, 0.5 * math.pi]))
    rot: np.ndarray = quat_to_rotation_matrix(q)

    np.testing.assert_allclose(
        rot @ np.array([1.0, 0.0, 0.0]), [0.0, 1.0, 0.0], atol=1e-12
    )


def test_skew_matches_cross_product() -> None:
    a: np.ndarray = np.array([1.0, 2.0, 3.0])
    b: np.ndarray = np.array([-0.5, 0.4, 2.0])

    np.testing.assert_allclose(skew(a) @ b, np.cross(a, b))
