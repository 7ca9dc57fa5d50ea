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
Kalman correction shared by every measurement type
"""

from __future__ import annotations

import logging
from typing import Optional

import numpy as np

from oasis_msf.localization.msf.msf_config import MsfConfig
from oasis_msf.localization.msf.msf_state import MsfState
from oasis_msf.localization.msf.msf_types import MsfMatrix
from oasis_msf.localization.msf.msf_types import MsfProtocolError
from oasis_msf.localization.msf.msf_types import MsfUpdateData


_LOG: logging.Logger = logging.getLogger(__name__)

# Max mismatch in seconds between the state time and the measurement time
_TIME_TOLERANCE_SEC: float = 1.0e-9

# Relative jitter factors tried when S is not numerically SPD
_JITTER_LADDER: tuple[float, ...] = (1e-10, 1e-8, 1e-6, 1e-4)


class MsfCoreCorrectionMixin:
    _config: MsfConfig
    _diagnostics: dict[str, int]
    _update_reports: list[MsfUpdateData]

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
    ) -> MsfUpdateData:
        """
        Apply a linearized measurement to a state, possibly in the past

        The state must be the one at the measurement time. Numerically
        degenerate models leave the state untouched and produce a rejected
        report instead of raising.
        """

        if abs(state.time - t_meas) > _TIME_TOLERANCE_SEC:
            _LOG.error(
                "%s correction for t=%f applied to the state at t=%f",
                sensor,
                t_meas,
                state.time,
            )
            raise MsfProtocolError(
                "Corrections must be applied to the state at the measurement time"
            )

        nu: np.ndarray = np.asarray(residual, dtype=float).reshape(-1)
        z_dim: int = int(nu.shape[0])
        h_mat: np.ndarray = np.asarray(h, dtype=float)
        r_mat: np.ndarray = np.asarray(r, dtype=float)
        dim: int = state.error_state_dim
        if h_mat.shape != (z_dim, dim) or r_mat.shape != (z_dim, z_dim):
            _LOG.error(
                "%s correction has H %s and R %s for a residual of size %d",
                sensor,
                h_mat.shape,
                r_mat.shape,
                z_dim,
            )
            raise MsfProtocolError("Correction matrices do not match the residual")

        if not (
            np.all(np.isfinite(nu))
            and np.all(np.isfinite(h_mat))
            and np.all(np.isfinite(r_mat))
        ):
            self._diagnostics["reject_non_finite"] += 1
            return self._record_rejected(
                sensor, frame_id, t_meas, nu, r_mat, None, "non-finite model"
            )

        p: np.ndarray = state.covariance
        s: np.ndarray = h_mat @ p @ h_mat.T + r_mat
        s = 0.5 * (s + s.T)
        scale: float = max(1.0, float(np.max(np.abs(np.diag(s)))))
        s = s + (1e-12 * scale) * np.eye(z_dim, dtype=float)

        l_factor: Optional[np.ndarray] = self._cholesky_with_jitter(s, scale)
        if l_factor is None:
            self._diagnostics["reject_singular_s"] += 1
            _LOG.debug("%s update at t=%f skipped, singular S", sensor, t_meas)
            return self._record_rejected(
                sensor, frame_id, t_meas, nu, r_mat, s, "singular S"
            )
        s = l_factor @ l_factor.T

        y: np.ndarray = np.linalg.solve(l_factor, nu)
        maha_d2: float = float(y @ y)
        gate_d2: float = self._config.gate_d2
        if gate_d2 > 0.0 and maha_d2 > gate_d2:
            self._diagnostics["reject_gated"] += 1
            _LOG.debug(
                "%s update at t=%f gated, d2=%.3f > %.3f",
                sensor,
                t_meas,
                maha_d2,
                gate_d2,
            )
            return self._record_rejected(
                sensor, frame_id, t_meas, nu, r_mat, s, "gated", maha_d2=maha_d2
            )

        ph_t: np.ndarray = p @ h_mat.T
        tmp: np.ndarray = np.linalg.solve(l_factor, ph_t.T)
        k_gain: np.ndarray = np.linalg.solve(l_factor.T, tmp).T

        state.apply_error_state(k_gain @ nu)

        # Joseph form keeps P symmetric positive semi-definite
        temp: np.ndarray = np.eye(dim, dtype=float) - k_gain @ h_mat
        p_new: np.ndarray = temp @ p @ temp.T + k_gain @ r_mat @ k_gain.T
        state.covariance = 0.5 * (p_new + p_new.T)

        report: MsfUpdateData = MsfUpdateData(
            sensor=sensor,
            frame_id=frame_id,
            t_meas=t_meas,
            accepted=True,
            reject_reason="",
            z_dim=z_dim,
            nu=nu.tolist(),
            r=_matrix(r_mat),
            s=_matrix(s),
            maha_d2=maha_d2,
            gate_d2_threshold=gate_d2,
        )
        self._update_reports.append(report)
        return report

    def take_update_reports(self) -> list[MsfUpdateData]:
        """
        Return and clear the reports produced since the last call
        """

        reports: list[MsfUpdateData] = self._update_reports
        self._update_reports = []
        return reports

    def _cholesky_with_jitter(
        self, s: np.ndarray, scale: float
    ) -> Optional[np.ndarray]:
        try:
            return np.linalg.cholesky(s)
        except np.linalg.LinAlgError:
            pass

        for factor in _JITTER_LADDER:
            s_try: np.ndarray = s + (factor * scale) * np.eye(s.shape[0], dtype=float)
            try:
                return np.linalg.cholesky(s_try)
            except np.linalg.LinAlgError:
                continue
        return None

    def _record_rejected(
        self,
        sensor: str,
        frame_id: str,
        t_meas: float,
        nu: np.ndarray,
        r: np.ndarray,
        s: Optional[np.ndarray],
        reject_reason: str,
        *,
        maha_d2: float = 0.0,
    ) -> MsfUpdateData:
        z_dim: int = int(nu.shape[0])
        s_matrix: MsfMatrix = (
            MsfMatrix(rows=z_dim, cols=z_dim, data=[0.0] * (z_dim * z_dim))
            if s is None
            else _matrix(s)
        )
        report: MsfUpdateData = MsfUpdateData(
            sensor=sensor,
            frame_id=frame_id,
            t_meas=t_meas,
            accepted=False,
            reject_reason=reject_reason,
            z_dim=z_dim,
            nu=nu.tolist(),
            r=_matrix(r),
            s=s_matrix,
            maha_d2=maha_d2,
            gate_d2_threshold=self._config.gate_d2,
        )
        self._update_reports.append(report)
        return report


def _matrix(matrix: np.ndarray) -> MsfMatrix:
    rows: int = int(matrix.shape[0])
    cols: int = int(matrix.shape[1])
    return MsfMatrix(rows=rows, cols=cols, data=matrix.flatten().tolist())
