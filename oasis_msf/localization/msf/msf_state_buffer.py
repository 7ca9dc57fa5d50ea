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
Time-indexed history of filter states
"""

from __future__ import annotations

from bisect import bisect_left
from bisect import bisect_right
from typing import Iterator
from typing import Optional

from oasis_msf.localization.msf.msf_config import MsfConfig
from oasis_msf.localization.msf.msf_state import MsfState


class MsfStateBuffer:
    """
    Fixed-lag buffer of states kept in time order
    """

    def __init__(self, config: MsfConfig) -> None:
        self._config: MsfConfig = config
        self._states: list[MsfState] = []
        self._timestamps: list[float] = []

    def __len__(self) -> int:
        return len(self._states)

    def insert(self, state: MsfState) -> None:
        """
        Insert a state, replacing any state with the same timestamp
        """

        index: int = bisect_left(self._timestamps, state.time)
        if index < len(self._timestamps) and self._timestamps[index] == state.time:
            self._states[index] = state
            return
        self._timestamps.insert(index, state.time)
        self._states.insert(index, state)

    def reset(self) -> None:
        self._states = []
        self._timestamps = []

    def closest_at_or_before(self, t_query: float) -> Optional[MsfState]:
        index: int = bisect_right(self._timestamps, t_query)
        if index == 0:
            return None
        return self._states[index - 1]

    def get_exact(self, t_query: float) -> Optional[MsfState]:
        index: int = bisect_left(self._timestamps, t_query)
        if index < len(self._timestamps) and self._timestamps[index] == t_query:
            return self._states[index]
        return None

    def iter_states_after(self, t_start: float) -> Iterator[MsfState]:
        start_index: int = bisect_right(self._timestamps, t_start)
        yield from self._states[start_index:]

    def iter_states(self) -> Iterator[MsfState]:
        yield from self._states

    def latest(self) -> Optional[MsfState]:
        if not self._states:
            return None
        return self._states[-1]

    def earliest_time(self) -> Optional[float]:
        if not self._timestamps:
            return None
        return self._timestamps[0]

    def latest_time(self) -> Optional[float]:
        if not self._timestamps:
            return None
        return self._timestamps[-1]

    def evict(self, t_filter: float) -> None:
        cutoff: float = t_filter - self._config.t_buffer_sec
        index: int = 0
        # Always keep the newest state so propagation can continue
        while index < len(self._states) - 1 and self._timestamps[index] < cutoff:
            index += 1
        if index > 0:
            del self._states[:index]
            del self._timestamps[:index]
