"""
PulseChain on-chain price history reconstruction.
"""

__version__ = "0.1.0"
