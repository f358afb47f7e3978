"""circlestats: community referral statistics from the Circle Admin API."""

__version__ = "0.1.0"
