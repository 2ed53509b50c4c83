"""Referral domain exports."""
from .entity import ReferralCredit, compute_reward, MAX_REFERRAL_LEVEL
from .repository import ReferralCreditRepository

__all__ = ["ReferralCredit", "ReferralCreditRepository", "compute_reward", "MAX_REFERRAL_LEVEL"]
