"""
Ledger services
"""
