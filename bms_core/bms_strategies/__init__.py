"""
Charge current strategies.

Strategies implement the per-cycle current decision:
- SocBandStrategy: SOC bands with temperature and voltage derating
"""

from .soc_band import SocBandStrategy

STRATEGIES = {
    "soc_band": SocBandStrategy,
}

__all__ = ['SocBandStrategy', 'STRATEGIES']
