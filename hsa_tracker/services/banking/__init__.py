"""Bank linking package."""

from hsa_tracker.services.banking.plaid_service import BankLinkError, PlaidBankService

__all__ = ["BankLinkError", "PlaidBankService"]
