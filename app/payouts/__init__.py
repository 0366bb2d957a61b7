"""
Operator payout subsystem.

Routes completed-booking funds to tour operators over one of several
settlement channels (ACH, direct wallet transfer, bank wire), tracks the
payout lifecycle, computes fees and handles bounded retries.
"""
