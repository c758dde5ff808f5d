"""
Memoir Billing - Source Package

Subscription allowance tracking for the Memoir life-story app: a local,
per-tier credit meter for paid generation actions, layered on top of the
billing platform's entitlement signal.

DESIGN PRINCIPLES:
1. The billing platform is the source of truth for entitlement
2. Credits reset once per billing period, never per refresh
3. Spend only after the paid action has happened
4. Persistence is best-effort; public operations never raise
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Memoir Team"
