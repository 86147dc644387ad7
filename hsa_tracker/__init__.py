"""
HSA Tracker - Source Package

Tracks out-of-pocket medical expenses paid while an HSA stays invested,
keeps the paperwork the IRS asks for, and projects how much the account
can grow if reimbursement is deferred.

DESIGN PRINCIPLES:
1. Engines are pure: same inputs, same numbers
2. Fail early, fail visibly
3. No silent corrections
4. Every mutation must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "HSA Tracker Team"
