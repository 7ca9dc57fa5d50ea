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
IMU-driven process model for MSF propagation
"""

from __future__ import annotations

import math

import numpy as np

from oasis_msf.localization.msf.msf_config import MsfConfig
from oasis_msf.localization.msf.msf_quat import quat_multiply
from oasis_msf.localization.msf.msf_quat import quat_normalize
from oasis_msf.localization.msf.msf_quat import quat_to_rotation_matrix
from oasis_msf.localization.msf.msf_quat import skew
from oasis_msf.localization.msf.msf_quat import so3_exp
from oasis_msf.localization.msf.msf_state import MsfState
from oasis_msf.localization.msf.msf_state import StateVar
from oasis_msf.localization.msf.msf_state_definition import CoreStateIndex


class ImuProcessModel:
    """
    Strapdown propagation of the nominal state and error-state covariance
    """

    def __init__(self, config: MsfConfig) -> None:
        self._config: MsfConfig = config

    def propagate(self, prev_state: MsfState, next_state: MsfState) -> None:
        """
        Overwrite next_state's blocks and covariance by integrating prev_state

        Uses the inertial readings held by prev_state over the whole
        interval. next_state keeps its own time and inertial readings.

        Args:
            prev_state: Earlier state, left unmodified
            next_state: Later state to recompute in-place
        """

        dt_s: float = next_state.time - prev_state.time
        if not math.isfinite(dt_s) or dt_s < 0.0:
            raise ValueError("next_state must not precede prev_state")

        self.hold(prev_state, next_state)
        if dt_s == 0.0:
            return

        pos: np.ndarray = prev_state.get(CoreStateIndex.P)
        vel: np.ndarray = prev_state.get(CoreStateIndex.V)
        quat: np.ndarray = prev_state.get(CoreStateIndex.Q)
        gyro_bias: np.ndarray = prev_state.get(CoreStateIndex.B_W)
        accel_bias: np.ndarray = prev_state.get(CoreStateIndex.B_A)

        omega_corr: np.ndarray = prev_state.w_m - gyro_bias
        accel_corr: np.ndarray = prev_state.a_m - accel_bias
        rot_world_from_body: np.ndarray = quat_to_rotation_matrix(quat)

        gravity_w: np.ndarray = np.array(
            [0.0, 0.0, self._config.gravity_mps2], dtype=float
        )
        accel_world: np.ndarray = rot_world_from_body @ accel_corr - gravity_w

        next_state.set(CoreStateIndex.P, pos + vel * dt_s + 0.5 * accel_world * dt_s**2)
        next_state.set(CoreStateIndex.V, vel + accel_world * dt_s)
        next_state.set(
            CoreStateIndex.Q,
            quat_normalize(quat_multiply(quat, so3_exp(omega_corr * dt_s))),
        )

        phi: np.ndarray = self.state_transition(
            prev_state, omega_corr, accel_corr, rot_world_from_body, dt_s
        )
        q_d: np.ndarray = self.discrete_process_noise(prev_state, phi, dt_s)
        p: np.ndarray = phi @ prev_state.covariance @ phi.T + q_d
        next_state.covariance = 0.5 * (p + p.T)

    def hold(self, prev_state: MsfState, next_state: MsfState) -> None:
        """
        Carry prev_state's blocks and covariance over to next_state unchanged
        """

        index: int
        for index in range(len(prev_state.schema)):
            source: StateVar = prev_state.get_state_var(index)
            target: StateVar = next_state.get_state_var(index)
            target.value = np.array(source.value, dtype=float)
            target.has_reset_value = source.has_reset_value
        next_state.covariance = np.array(prev_state.covariance, dtype=float)

    def state_transition(
        self,
        state: MsfState,
        omega_corr: np.ndarray,
        accel_corr: np.ndarray,
        rot_world_from_body: np.ndarray,
        dt_s: float,
    ) -> np.ndarray:
        """
        Second-order discretization of the error-state dynamics
        """

        dim: int = state.error_state_dim
        p_slice: slice = state.error_slice(CoreStateIndex.P)
        v_slice: slice = state.error_slice(CoreStateIndex.V)
        q_slice: slice = state.error_slice(CoreStateIndex.Q)
        bw_slice: slice = state.error_slice(CoreStateIndex.B_W)
        ba_slice: slice = state.error_slice(CoreStateIndex.B_A)

        f_mat: np.ndarray = np.zeros((dim, dim), dtype=float)
        f_mat[p_slice, v_slice] = np.eye(3, dtype=float)
        f_mat[v_slice, q_slice] = -rot_world_from_body @ skew(accel_corr)
        f_mat[v_slice, ba_slice] = -rot_world_from_body
        f_mat[q_slice, q_slice] = -skew(omega_corr)
        f_mat[q_slice, bw_slice] = -np.eye(3, dtype=float)

        f_dt: np.ndarray = f_mat * dt_s
        return np.eye(dim, dtype=float) + f_dt + 0.5 * (f_dt @ f_dt)

    def discrete_process_noise(
        self, state: MsfState, phi: np.ndarray, dt_s: float
    ) -> np.ndarray:
        """
        Trapezoidal discretization of the continuous white-noise densities

        Sensor-specific blocks are modeled as constants with no process noise.
        """

        dim: int = state.error_state_dim
        q_c: np.ndarray = np.zeros((dim, dim), dtype=float)

        densities: tuple[tuple[CoreStateIndex, float], ...] = (
            (CoreStateIndex.V, self._config.accel_noise_var),
            (CoreStateIndex.Q, self._config.gyro_noise_var),
            (CoreStateIndex.B_W, self._config.gyro_bias_walk_var),
            (CoreStateIndex.B_A, self._config.accel_bias_walk_var),
        )
        for state_index, density in densities:
            block: slice = state.error_slice(state_index)
            q_c[block, block] = density * np.eye(3, dtype=float)

        q_d: np.ndarray = 0.5 * (phi @ q_c @ phi.T + q_c) * dt_s
        return 0.5 * (q_d + q_d.T)
