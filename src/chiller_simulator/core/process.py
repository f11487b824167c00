"""
Chiller Process Model
=====================

Simulated physical quantities of a water chiller and the rule that
advances them by one tick.

MODEL
=====

1. Entering chilled water temperature (return water):
   T_in(t) = T_center + A * sin(t_ms / τ)

   Where:
   - T_center: 12.0 °C
   - A: 2.0 °C amplitude
   - τ: 10000 ms, so the period is 2π·10 s ≈ 62.8 s
   - t_ms: wall-clock time in milliseconds

2. Leaving chilled water temperature (supply water), first-order
   approach toward the setting:
   T_out[k+1] = T_out[k] + α * (T_set - T_out[k])

   Where α = 0.1, i.e. 10% of the remaining gap per tick.

Pure model - no registers, coils or timers.

Author: Guilherme F. G. Santos
Date: January 2026
License: MIT
"""

import math
from dataclasses import dataclass, replace
from typing import Optional


@dataclass
class ChillerConfiguration:
    """
    Constants of the chiller model.

    Attributes:
        default_setting_temp: Setting restored on reset [°C]
        default_entering_temp: Entering temperature restored on reset [°C]
        default_leaving_temp: Leaving temperature restored on reset [°C]
        setting_min: Exclusive lower bound for client settings [°C]
        setting_max: Exclusive upper bound for client settings [°C]
        approach_rate: Fraction of the setting gap closed per tick
        entering_center: Centre of the entering temperature sinusoid [°C]
        entering_amplitude: Amplitude of the entering temperature sinusoid [°C]
        time_constant_ms: Divisor applied to wall-clock milliseconds
    """

    default_setting_temp: float = 7.0
    default_entering_temp: float = 12.0
    default_leaving_temp: float = 7.5

    setting_min: float = 0.0
    setting_max: float = 30.0

    approach_rate: float = 0.1

    entering_center: float = 12.0
    entering_amplitude: float = 2.0
    time_constant_ms: float = 10000.0

    def validate(self) -> None:
        """Validate configuration consistency."""
        if self.setting_min >= self.setting_max:
            raise ValueError(
                f"Empty setting window: ({self.setting_min}, {self.setting_max})"
            )
        if not self.setting_min < self.default_setting_temp < self.setting_max:
            raise ValueError(
                f"Default setting {self.default_setting_temp} outside "
                f"({self.setting_min}, {self.setting_max})"
            )
        if not 0.0 < self.approach_rate <= 1.0:
            raise ValueError(f"Approach rate must be in (0, 1]: {self.approach_rate}")
        if self.time_constant_ms <= 0:
            raise ValueError(
                f"Time constant must be positive: {self.time_constant_ms}"
            )
        if self.entering_amplitude < 0:
            raise ValueError(
                f"Amplitude must be non-negative: {self.entering_amplitude}"
            )


@dataclass
class ChillerState:
    """The three simulated quantities [°C]."""

    setting_temp: float = 7.0
    entering_temp: float = 12.0
    leaving_temp: float = 7.5


class ChillerProcessModel:
    """
    Holds the chiller state and applies resets, setting changes and
    simulation steps to it.
    """

    def __init__(self, config: Optional[ChillerConfiguration] = None):
        self.config = config or ChillerConfiguration()
        self.config.validate()

        self.state = self.default_state()

    def default_state(self) -> ChillerState:
        return ChillerState(
            setting_temp=self.config.default_setting_temp,
            entering_temp=self.config.default_entering_temp,
            leaving_temp=self.config.default_leaving_temp,
        )

    def reset(self) -> ChillerState:
        """Restore all quantities to their defaults."""
        self.state = self.default_state()
        return self.state

    def is_valid_setting(self, value: float) -> bool:
        # NaN fails both comparisons
        return self.config.setting_min < value < self.config.setting_max

    def apply_setting(self, value: float) -> bool:
        """
        Adopt a client-provided setting if it lies in the open window.

        Returns:
            True if the setting was adopted
        """
        if not self.is_valid_setting(value):
            return False

        self.state.setting_temp = float(value)
        return True

    def entering_temp_at(self, now_ms: float) -> float:
        cfg = self.config
        return cfg.entering_center + (
            math.sin(now_ms / cfg.time_constant_ms) * cfg.entering_amplitude
        )

    def next_state(self, state: ChillerState, now_ms: float) -> ChillerState:
        """Pure one-tick update; the setting is carried over unchanged."""
        gap = state.setting_temp - state.leaving_temp
        return replace(
            state,
            entering_temp=self.entering_temp_at(now_ms),
            leaving_temp=state.leaving_temp + gap * self.config.approach_rate,
        )

    def step(self, now_ms: float) -> ChillerState:
        """Advance the held state by one tick."""
        self.state = self.next_state(self.state, now_ms)
        return self.state
