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
Clock abstraction for MSF localization
"""

from __future__ import annotations

import math
import time


class MsfClock:
    """
    Clock abstraction for retrieving the current time in seconds
    """

    def now_seconds(self) -> float:
        """
        Return the current time in seconds
        """

        raise NotImplementedError


class SystemMsfClock(MsfClock):
    """
    Wall clock implementation backed by the system time
    """

    def now_seconds(self) -> float:
        return time.time()


class ManualMsfClock(MsfClock):
    """
    Clock that only moves when told to, used for replay and tests
    """

    def __init__(self, t_now: float = 0.0) -> None:
        self._t_now: float = 0.0
        self.set_time(t_now)

    def now_seconds(self) -> float:
        return self._t_now

    def set_time(self, t_now: float) -> None:
        if not math.isfinite(t_now):
            raise ValueError("t_now must be finite")
        self._t_now = float(t_now)

    def advance(self, dt_sec: float) -> None:
        if not math.isfinite(dt_sec) or dt_sec < 0.0:
            raise ValueError("dt_sec must be finite and non-negative")
        self._t_now += float(dt_sec)
