from flowsync.scheduling.verification import VerificationCodeStore

__all__ = ["VerificationCodeStore"]
