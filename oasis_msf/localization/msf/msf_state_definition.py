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
Schema describing the blocks of the MSF state vector
"""

from __future__ import annotations

import enum
import logging
import math
from dataclasses import dataclass
from typing import Sequence
from typing import Union

from oasis_msf.localization.msf.msf_types import MsfProtocolError


_LOG: logging.Logger = logging.getLogger(__name__)


class CoreStateIndex(enum.IntEnum):
    """
    Indices of the blocks every MSF state carries

    Attributes:
        P: Position of the body in the world frame, meters
        V: Velocity of the body in the world frame, m/s
        Q: Attitude quaternion, world from body, wxyz order
        B_W: Gyroscope bias, rad/s
        B_A: Accelerometer bias, m/s^2
    """

    P = 0
    V = 1
    Q = 2
    B_W = 3
    B_A = 4


StateIndex = Union[int, CoreStateIndex]


@dataclass(frozen=True)
class StateBlock:
    """
    One typed block of the state vector

    Fields:
        name: Unique block name
        size: Number of values stored for the block
        error_size: Tangent-space dimension used by the covariance
        default: Value the block holds until initialized or corrected
        quaternion: True when the block is a unit quaternion in wxyz order
    """

    name: str
    size: int
    error_size: int
    default: tuple[float, ...]
    quaternion: bool = False

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("name must be set")
        if self.size <= 0 or self.error_size <= 0:
            raise ValueError(f"{self.name}: sizes must be positive")
        if len(self.default) != self.size:
            raise ValueError(f"{self.name}: default must have {self.size} values")
        if not all(math.isfinite(value) for value in self.default):
            raise ValueError(f"{self.name}: default must be finite")
        if self.quaternion and (self.size != 4 or self.error_size != 3):
            raise ValueError(f"{self.name}: quaternion blocks are 4 values, 3 errors")
        if not self.quaternion and self.size != self.error_size:
            raise ValueError(f"{self.name}: vector blocks need size == error_size")


def vector_block(name: str, size: int, default: Sequence[float] = ()) -> StateBlock:
    values: tuple[float, ...] = tuple(float(value) for value in default)
    if not values:
        values = (0.0,) * size
    return StateBlock(name=name, size=size, error_size=size, default=values)


def quaternion_block(name: str) -> StateBlock:
    return StateBlock(
        name=name,
        size=4,
        error_size=3,
        default=(1.0, 0.0, 0.0, 0.0),
        quaternion=True,
    )


CORE_STATE_BLOCKS: tuple[StateBlock, ...] = (
    vector_block("p", 3),
    vector_block("v", 3),
    quaternion_block("q"),
    vector_block("b_w", 3),
    vector_block("b_a", 3),
)


class MsfStateSchema:
    """
    Ordered set of state blocks with error-state offsets
    """

    def __init__(self, blocks: Sequence[StateBlock]) -> None:
        if not blocks:
            raise ValueError("schema needs at least one block")

        names: list[str] = [block.name for block in blocks]
        if len(set(names)) != len(names):
            raise ValueError("block names must be unique")

        self._blocks: tuple[StateBlock, ...] = tuple(blocks)
        self._name_index: dict[str, int] = {
            name: index for index, name in enumerate(names)
        }

        offsets: list[int] = []
        offset: int = 0
        for block in self._blocks:
            offsets.append(offset)
            offset += block.error_size
        self._error_offsets: tuple[int, ...] = tuple(offsets)
        self._error_dim: int = offset

    def __len__(self) -> int:
        return len(self._blocks)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MsfStateSchema):
            return NotImplemented
        return self._blocks == other._blocks

    def __hash__(self) -> int:
        return hash(self._blocks)

    @property
    def blocks(self) -> tuple[StateBlock, ...]:
        return self._blocks

    @property
    def error_dim(self) -> int:
        return self._error_dim

    def validate_index(self, index: StateIndex) -> int:
        if isinstance(index, bool) or not isinstance(index, int):
            _LOG.error("State index %r is not an integer", index)
            raise MsfProtocolError(f"State index must be an int, got {index!r}")
        if index < 0 or index >= len(self._blocks):
            _LOG.error(
                "State index %d is outside the schema of %d blocks",
                index,
                len(self._blocks),
            )
            raise MsfProtocolError(
                f"State index {index} out of range [0, {len(self._blocks)})"
            )
        return int(index)

    def block(self, index: StateIndex) -> StateBlock:
        return self._blocks[self.validate_index(index)]

    def index_of(self, name: str) -> int:
        if name not in self._name_index:
            raise MsfProtocolError(f"State has no block named '{name}'")
        return self._name_index[name]

    def has_block(self, name: str) -> bool:
        return name in self._name_index

    def error_slice(self, index: StateIndex) -> slice:
        checked: int = self.validate_index(index)
        start: int = self._error_offsets[checked]
        return slice(start, start + self._blocks[checked].error_size)

    def extended(self, *blocks: StateBlock) -> MsfStateSchema:
        """
        Return a new schema with sensor-specific blocks appended
        """

        return MsfStateSchema(self._blocks + tuple(blocks))


def core_state_schema(*extra_blocks: StateBlock) -> MsfStateSchema:
    """
    Build the default schema, optionally with extra calibration blocks
    """

    return MsfStateSchema(CORE_STATE_BLOCKS + tuple(extra_blocks))
