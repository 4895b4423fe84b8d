"""Development plan document management."""

from devflow.plans.manager import PlanFileInfo, PlanManager

__all__ = ["PlanFileInfo", "PlanManager"]
