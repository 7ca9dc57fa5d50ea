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
Configuration data for the multi-sensor EKF core
"""

from __future__ import annotations

import math
from dataclasses import asdict
from dataclasses import dataclass
from dataclasses import fields
from typing import Any
from typing import Mapping


class MsfConfigError(Exception):
    """Raised when MSF configuration validation fails."""


@dataclass(frozen=True)
class MsfConfig:
    """
    Shared MSF configuration values

    Fields:
        t_buffer_sec: History span in seconds kept for delayed corrections
        dt_imu_max: Max IMU delta in seconds before skipping propagation
        gravity_mps2: Gravity magnitude in m/s^2
        pos_var: Initial position variance in m^2
        vel_var: Initial velocity variance in (m/s)^2
        ang_var: Initial angle variance in rad^2
        gyro_bias_var: Initial gyro bias variance in (rad/s)^2
        accel_bias_var: Initial accel bias variance in (m/s^2)^2
        extra_state_var: Initial variance for sensor-specific state blocks
        accel_noise_var: Process accel variance density in (m/s^2)^2/Hz
        gyro_noise_var: Process gyro variance density in (rad/s)^2/Hz
        accel_bias_walk_var: Accel bias random walk density in (m/s^3)^2/Hz
        gyro_bias_walk_var: Gyro bias random walk density in (rad/s^2)^2/Hz
        gate_d2: Mahalanobis gate threshold d^2, 0 disables gating
    """

    t_buffer_sec: float = 2.0
    dt_imu_max: float = 0.5
    gravity_mps2: float = 9.81

    pos_var: float = 1.0
    vel_var: float = 1.0
    ang_var: float = 0.1
    gyro_bias_var: float = 0.01
    accel_bias_var: float = 0.1
    extra_state_var: float = 1.0

    accel_noise_var: float = 0.01
    gyro_noise_var: float = 0.001
    accel_bias_walk_var: float = 1.0e-6
    gyro_bias_walk_var: float = 1.0e-8

    gate_d2: float = 0.0

    def __post_init__(self) -> None:
        """Validate configuration invariants."""
        for config_field in fields(self):
            value: Any = getattr(self, config_field.name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise MsfConfigError(f"{config_field.name} must be a number")
            if not math.isfinite(value):
                raise MsfConfigError(f"{config_field.name} must be finite")

        if self.t_buffer_sec <= 0.0:
            raise MsfConfigError("t_buffer_sec must be positive")
        if self.dt_imu_max <= 0.0:
            raise MsfConfigError("dt_imu_max must be positive")
        if self.gravity_mps2 < 0.0:
            raise MsfConfigError("gravity_mps2 must be non-negative")

        # Prior variances must be positive so the initial covariance is SPD
        for name in (
            "pos_var",
            "vel_var",
            "ang_var",
            "gyro_bias_var",
            "accel_bias_var",
            "extra_state_var",
        ):
            _require_positive(getattr(self, name), name)

        for name in (
            "accel_noise_var",
            "gyro_noise_var",
            "accel_bias_walk_var",
            "gyro_bias_walk_var",
            "gate_d2",
        ):
            _require_non_negative(getattr(self, name), name)

    @classmethod
    def from_dict(cls, values: Mapping[str, Any]) -> MsfConfig:
        """Build a configuration from a flat mapping of overrides."""
        known: set[str] = {config_field.name for config_field in fields(cls)}
        unknown: list[str] = sorted(set(values) - known)
        if unknown:
            raise MsfConfigError(f"Unknown MSF config keys: {', '.join(unknown)}")
        return cls(**dict(values))

    def as_dict(self) -> dict[str, Any]:
        """Return the configuration as a flat dictionary."""
        return asdict(self)


def _require_positive(value: float, name: str) -> None:
    if value <= 0.0:
        raise MsfConfigError(f"{name} must be positive")


def _require_non_negative(value: float, name: str) -> None:
    if value < 0.0:
        raise MsfConfigError(f"{name} must be non-negative")
