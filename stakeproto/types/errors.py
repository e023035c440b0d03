"""
Ledger rejection kinds.

Every failed precondition is raised as a subclass of LedgerError carrying a
stable ``code`` so integrators can branch on the kind of rejection. All of
them leave ledger state unchanged.
"""


class LedgerError(ValueError):
    code = "LedgerError"

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)

    def to_dict(self) -> dict:
        return {"error": self.code, "detail": str(self)}


class InvalidAmount(LedgerError):
    code = "InvalidAmount"

class NoIdsProvided(LedgerError):
    code = "NoIdsProvided"

class BatchTooLarge(LedgerError):
    code = "BatchTooLarge"

class DuplicateId(LedgerError):
    code = "DuplicateId"

class InvalidId(LedgerError):
    code = "InvalidId"

class AlreadyWithdrawn(LedgerError):
    code = "AlreadyWithdrawn"

class LockNotEnded(LedgerError):
    code = "LockNotEnded"

class InsufficientStakedBalance(LedgerError):
    code = "InsufficientStakedBalance"

class ZeroWithdrawal(LedgerError):
    code = "ZeroWithdrawal"

class NoRewardsToClaim(LedgerError):
    code = "NoRewardsToClaim"

class InsufficientRewardReserve(LedgerError):
    code = "InsufficientRewardReserve"

class InvalidRate(LedgerError):
    code = "InvalidRate"

class InvalidLockDuration(LedgerError):
    code = "InvalidLockDuration"

class Unauthorized(LedgerError):
    code = "Unauthorized"

class AlreadyPaused(LedgerError):
    code = "AlreadyPaused"

class NotPaused(LedgerError):
    code = "NotPaused"

class ContractPaused(LedgerError):
    code = "ContractPaused"

class TransferFailed(LedgerError):
    code = "TransferFailed"

class ReentrantCall(LedgerError):
    code = "ReentrantCall"
