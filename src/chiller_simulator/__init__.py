"""
Chiller Modbus Simulator
========================

Simulated chilled water controller exposing its temperatures over
Modbus/TCP, for integration testing of supervisory control software.

Author: Guilherme F. G. Santos
Date: January 2026
License: MIT
"""

__version__ = "1.0.0"
__author__ = "Guilherme F. G. Santos"
