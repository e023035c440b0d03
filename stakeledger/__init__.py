"""
StakeLedger node: custody ledger of time-locked stakes with linear reward accrual.
"""
