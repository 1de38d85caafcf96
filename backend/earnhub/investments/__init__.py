"""Investment plans."""

from .service import DEFAULT_PLANS, claim_return, invest, list_investments, list_plans

__all__ = ["DEFAULT_PLANS", "claim_return", "invest", "list_investments", "list_plans"]
