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
Fixed-lag, time-ordered storage of measurements
"""

from __future__ import annotations

import logging
from bisect import bisect_left
from bisect import bisect_right
from typing import Iterator
from typing import Optional

from oasis_msf.localization.msf.msf_config import MsfConfig
from oasis_msf.localization.msf.msf_measurement import MsfMeasurementBase


_LOG: logging.Logger = logging.getLogger(__name__)


class MsfMeasurementQueue:
    """
    Measurements ordered by capture time, then by arrival

    The core keeps one queue for measurements waiting to be applied and one
    for applied measurements that are replayed after a delayed correction.
    """

    def __init__(self, config: MsfConfig) -> None:
        self._config: MsfConfig = config
        self._measurements: list[MsfMeasurementBase] = []
        self._keys: list[tuple[float, int]] = []
        self._next_seq: int = 0
        # _latest_time is the max ever inserted, not the max currently queued
        self._latest_time: Optional[float] = None

    def __len__(self) -> int:
        return len(self._measurements)

    def insert(self, measurement: MsfMeasurementBase) -> bool:
        """
        Queue a measurement, returning False when it is outside the lag window
        """

        t_meas: float = measurement.time
        if self.too_old(t_meas):
            _LOG.warning(
                "Dropping %r, older than the %.3f s buffer",
                measurement,
                self._config.t_buffer_sec,
            )
            return False

        self.record(measurement)
        return True

    def record(self, measurement: MsfMeasurementBase) -> None:
        """
        Store a measurement without the lag window check
        """

        t_meas: float = measurement.time
        key: tuple[float, int] = (t_meas, self._next_seq)
        self._next_seq += 1

        insert_index: int = bisect_right(self._keys, key)
        self._keys.insert(insert_index, key)
        self._measurements.insert(insert_index, measurement)
        if self._latest_time is None:
            self._latest_time = t_meas
        else:
            self._latest_time = max(self._latest_time, t_meas)

    def too_old(self, t_meas: float) -> bool:
        if self._latest_time is None:
            return False
        return t_meas < (self._latest_time - self._config.t_buffer_sec)

    def pop_ready(self, t_available: float) -> Iterator[MsfMeasurementBase]:
        """
        Remove and yield, in order, measurements taken at or before t_available
        """

        while self._measurements and self._keys[0][0] <= t_available:
            del self._keys[0]
            yield self._measurements.pop(0)

    def measurements_at(self, t_meas: float) -> list[MsfMeasurementBase]:
        """
        Measurements stored with exactly the given time, in insertion order
        """

        start_index: int = bisect_left(self._keys, (t_meas, -1))
        end_index: int = bisect_left(self._keys, (t_meas, self._next_seq))
        return self._measurements[start_index:end_index]

    def drop_before(self, t_cutoff: float) -> int:
        """
        Remove measurements taken before t_cutoff, returning how many
        """

        index: int = bisect_left(self._keys, (t_cutoff, -1))
        if index > 0:
            del self._measurements[:index]
            del self._keys[:index]
        return index

    def reset(self) -> None:
        self._measurements = []
        self._keys = []
        self._next_seq = 0
        self._latest_time = None

    def iter_measurements(self) -> Iterator[MsfMeasurementBase]:
        yield from self._measurements

    def earliest_time(self) -> Optional[float]:
        if not self._keys:
            return None
        return self._keys[0][0]

    def latest_time(self) -> Optional[float]:
        return self._latest_time
