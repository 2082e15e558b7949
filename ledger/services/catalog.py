"""
Plan catalog - subscription plans and credit packages on offer.

Defaults are static configuration; admins replace entries by id.
"""

from decimal import Decimal

from structlog import get_logger

from ledger.exceptions import CatalogEntryNotFoundError
from ledger.models.domain import CreditPackage, SubscriptionPlan

logger = get_logger(__name__)


DEFAULT_SUBSCRIPTION_PLANS: tuple[SubscriptionPlan, ...] = (
    SubscriptionPlan(
        plan_id="basic",
        name="Basic",
        price=Decimal("9.99"),
        credits=Decimal("200"),
        features=("200 credits every month", "Standard support"),
    ),
    SubscriptionPlan(
        plan_id="pro",
        name="Pro",
        price=Decimal("19.99"),
        credits=Decimal("500"),
        features=("500 credits every month", "Priority support", "Early access content"),
    ),
    SubscriptionPlan(
        plan_id="premium",
        name="Premium",
        price=Decimal("39.99"),
        credits=Decimal("1200"),
        features=("1200 credits every month", "Priority support", "Exclusive creator drops"),
    ),
)

DEFAULT_CREDIT_PACKAGES: tuple[CreditPackage, ...] = (
    CreditPackage(
        package_id="credits_100",
        name="100 Credits",
        credits=Decimal("100"),
        price_usd=Decimal("1.00"),
    ),
    CreditPackage(
        package_id="credits_500",
        name="500 Credits",
        credits=Decimal("500"),
        price_usd=Decimal("5.00"),
        bonus_credits=Decimal("25"),
    ),
    CreditPackage(
        package_id="credits_1000",
        name="1000 Credits",
        credits=Decimal("1000"),
        price_usd=Decimal("10.00"),
        bonus_credits=Decimal("100"),
    ),
)


class PlanCatalog:
    """Ordered, id-addressable plans and credit packages."""

    def __init__(
        self,
        plans: tuple[SubscriptionPlan, ...] = DEFAULT_SUBSCRIPTION_PLANS,
        packages: tuple[CreditPackage, ...] = DEFAULT_CREDIT_PACKAGES,
    ) -> None:
        self._plans: dict[str, SubscriptionPlan] = {p.plan_id: p for p in plans}
        self._packages: dict[str, CreditPackage] = {p.package_id: p for p in packages}

    @property
    def plans(self) -> list[SubscriptionPlan]:
        return list(self._plans.values())

    @property
    def credit_packages(self) -> list[CreditPackage]:
        return list(self._packages.values())

    def get_plan(self, plan_id: str) -> SubscriptionPlan:
        """
        Get plan by ID.

        Raises:
            CatalogEntryNotFoundError: If plan ID not found
        """
        plan = self._plans.get(plan_id)
        if plan is None:
            raise CatalogEntryNotFoundError("Subscription plan", plan_id)
        return plan

    def get_credit_package(self, package_id: str) -> CreditPackage:
        package = self._packages.get(package_id)
        if package is None:
            raise CatalogEntryNotFoundError("Credit package", package_id)
        return package

    def update_plan(self, plan: SubscriptionPlan) -> SubscriptionPlan:
        """Replace an existing plan in place, keeping catalog order."""
        if plan.plan_id not in self._plans:
            raise CatalogEntryNotFoundError("Subscription plan", plan.plan_id)
        self._plans[plan.plan_id] = plan
        logger.info("subscription_plan_updated", plan_id=plan.plan_id, credits=str(plan.credits))
        return plan

    def update_credit_package(self, package: CreditPackage) -> CreditPackage:
        """Replace an existing credit package in place, keeping catalog order."""
        if package.package_id not in self._packages:
            raise CatalogEntryNotFoundError("Credit package", package.package_id)
        self._packages[package.package_id] = package
        logger.info(
            "credit_package_updated",
            package_id=package.package_id,
            credits=str(package.credits),
        )
        return package
