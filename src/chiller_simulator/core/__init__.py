"""
Chiller Core Package
====================

Simulated chiller process and the periodic loop that publishes it.

- process.py: Setting / entering / leaving temperatures and their update rule
- simulation.py: Reset, setting ingestion, simulation and publish per tick

USAGE EXAMPLE
============

```python
from chiller_simulator.modbus import RegisterStore
from chiller_simulator.core import SimulationLoop

store = RegisterStore()
loop = SimulationLoop(store)
loop.initialize_registers()

result = loop.tick()
print(result.state.leaving_temp)  # 7.45
```

Author: Guilherme F. G. Santos
Date: January 2026
License: MIT
"""

from .process import ChillerConfiguration, ChillerState, ChillerProcessModel

from .simulation import SimulationLoop, TickResult, DEFAULT_PERIOD_SEC

__all__ = [
    "ChillerConfiguration",
    "ChillerState",
    "ChillerProcessModel",
    "SimulationLoop",
    "TickResult",
    "DEFAULT_PERIOD_SEC",
]
