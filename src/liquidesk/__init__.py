"""Custodial liquidity desk: positions, withdrawals and business settlements."""

__version__ = "0.1.0"
