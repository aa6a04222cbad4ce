"""
Crypto ledger API: token claims, trades, P/L and expenses
"""
__version__ = "1.0.0"
