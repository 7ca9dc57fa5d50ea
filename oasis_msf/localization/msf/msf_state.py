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
MSF state snapshot with typed blocks and error-state covariance
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

from oasis_msf.localization.msf.msf_quat import quat_multiply
from oasis_msf.localization.msf.msf_quat import quat_normalize
from oasis_msf.localization.msf.msf_quat import so3_exp
from oasis_msf.localization.msf.msf_state_definition import MsfStateSchema
from oasis_msf.localization.msf.msf_state_definition import StateBlock
from oasis_msf.localization.msf.msf_state_definition import StateIndex


@dataclass
class StateVar:
    """
    Value of one state block plus its initialization flag

    Fields:
        value: Block values, shape (size,)
        has_reset_value: True when the value was supplied by an initializer
    """

    value: np.ndarray
    has_reset_value: bool = False

    def copy(self) -> StateVar:
        return StateVar(
            value=np.array(self.value, dtype=float),
            has_reset_value=self.has_reset_value,
        )


class MsfState:
    """
    State at one point in time: block values, covariance and IMU inputs
    """

    def __init__(self, schema: MsfStateSchema, time: float = 0.0) -> None:
        self._schema: MsfStateSchema = schema
        self.time = time
        self._state_vars: list[StateVar] = [
            StateVar(value=np.array(block.default, dtype=float))
            for block in schema.blocks
        ]
        dim: int = schema.error_dim
        self._p: np.ndarray = np.zeros((dim, dim), dtype=float)
        self._w_m: np.ndarray = np.zeros(3, dtype=float)
        self._a_m: np.ndarray = np.zeros(3, dtype=float)

    @property
    def schema(self) -> MsfStateSchema:
        return self._schema

    @property
    def time(self) -> float:
        return self._time

    @time.setter
    def time(self, value: float) -> None:
        if not math.isfinite(value):
            raise ValueError("state time must be finite")
        self._time = float(value)

    @property
    def error_state_dim(self) -> int:
        return self._schema.error_dim

    @property
    def covariance(self) -> np.ndarray:
        return self._p

    @covariance.setter
    def covariance(self, value: np.ndarray) -> None:
        p: np.ndarray = np.asarray(value, dtype=float)
        dim: int = self._schema.error_dim
        if p.shape != (dim, dim):
            raise ValueError(f"covariance must be {dim}x{dim}, got {p.shape}")
        self._p = p

    @property
    def w_m(self) -> np.ndarray:
        return self._w_m

    @w_m.setter
    def w_m(self, value: np.ndarray) -> None:
        self._w_m = _as_vector3(value, "w_m")

    @property
    def a_m(self) -> np.ndarray:
        return self._a_m

    @a_m.setter
    def a_m(self, value: np.ndarray) -> None:
        self._a_m = _as_vector3(value, "a_m")

    def get_state_var(self, index: StateIndex) -> StateVar:
        return self._state_vars[self._schema.validate_index(index)]

    def get(self, index: StateIndex) -> np.ndarray:
        return self.get_state_var(index).value

    def set(self, index: StateIndex, value: np.ndarray) -> None:
        """
        Overwrite a block value without touching its initialization flag
        """

        checked: int = self._schema.validate_index(index)
        block: StateBlock = self._schema.blocks[checked]
        self._state_vars[checked].value = _as_block_value(block, value)

    def error_slice(self, index: StateIndex) -> slice:
        return self._schema.error_slice(index)

    def copy(self) -> MsfState:
        clone: MsfState = MsfState(self._schema, self._time)
        clone._state_vars = [state_var.copy() for state_var in self._state_vars]
        clone._p = np.array(self._p, dtype=float)
        clone._w_m = np.array(self._w_m, dtype=float)
        clone._a_m = np.array(self._a_m, dtype=float)
        return clone

    def pack_nominal(self) -> np.ndarray:
        return np.concatenate(
            [state_var.value for state_var in self._state_vars]
        ).astype(float)

    def apply_error_state(self, delta_x: np.ndarray) -> None:
        """
        Inject an error-state correction into the nominal block values
        """

        delta: np.ndarray = np.asarray(delta_x, dtype=float).reshape(-1)
        if delta.shape[0] != self.error_state_dim:
            raise ValueError("delta_x size does not match error state")

        index: int
        block: StateBlock
        for index, block in enumerate(self._schema.blocks):
            block_delta: np.ndarray = delta[self._schema.error_slice(index)]
            state_var: StateVar = self._state_vars[index]
            if block.quaternion:
                state_var.value = quat_normalize(
                    quat_multiply(state_var.value, so3_exp(block_delta))
                )
            else:
                state_var.value = state_var.value + block_delta


def _as_vector3(value: np.ndarray, name: str) -> np.ndarray:
    vector: np.ndarray = np.asarray(value, dtype=float)
    if vector.size != 3:
        raise ValueError(f"{name} must have 3 elements")
    return np.array(vector.reshape(3), dtype=float)


def _as_block_value(block: StateBlock, value: np.ndarray) -> np.ndarray:
    array: np.ndarray = np.asarray(value, dtype=float)
    if array.size != block.size:
        raise ValueError(f"{block.name} expects {block.size} values, got {array.size}")
    array = np.array(array.reshape(block.size), dtype=float)
    if not np.all(np.isfinite(array)):
        raise ValueError(f"{block.name} values must be finite")
    if block.quaternion:
        return quat_normalize(array)
    return array
