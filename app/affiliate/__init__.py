"""
Affiliate application.

Referral tree and the commissions paid out on completed orders.

Usage:
    from affiliate.services import CommissionCalculator
    from affiliate.queue import CommissionQueue
"""
