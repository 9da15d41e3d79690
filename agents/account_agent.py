"""
Account Agent
Mock sign-in flow and subscription tier paywall
"""

import logging
from typing import Dict, Any, Optional

from models.schemas import AuthStatus, ProFeature, Store, SubscriptionTier, User
from config import settings

logger = logging.getLogger(__name__)

MOCK_USER = User(
    name="Jane Doe",
    email="jane.doe@example.com",
    avatar_url="https://i.pravatar.cc/150?u=jane_doe",
)

MOCK_STORE = Store(
    name="Momentum Wear",
    domain="momentum-wear.myshopify.com",
)

class FeatureLockedError(Exception):
    """Raised when a Pro feature is used on the Starter tier"""

    def __init__(self, feature: ProFeature):
        self.feature = ProFeature(feature)
        super().__init__(f"'{self.feature.value}' requires the Pro plan. Upgrade to unlock it.")

class AccountAgent:
    """Holds the signed-in user and the store's subscription tier"""

    def __init__(self, tier: Optional[SubscriptionTier] = None):
        self.status = AuthStatus.LOGGED_OUT
        self.user: Optional[User] = None
        self.store: Optional[Store] = None
        self.tier = SubscriptionTier(tier or settings.default_tier)
        self.is_previewing_upgrade = False

    def login(self) -> Dict[str, Any]:
        """Start the mock sign-in; the user must confirm their email next"""
        if self.status == AuthStatus.LOGGED_IN:
            return {"success": False, "error": "Already logged in"}

        self.user = MOCK_USER.model_copy()
        self.store = MOCK_STORE.model_copy()
        self.status = AuthStatus.AWAITING_CONFIRMATION
        logger.info(f"Login started for {self.user.email}; awaiting email confirmation")
        return {"success": True, **self.session()}

    def confirm_email(self) -> Dict[str, Any]:
        if self.status != AuthStatus.AWAITING_CONFIRMATION:
            return {"success": False, "error": "No login is awaiting confirmation"}

        self.status = AuthStatus.LOGGED_IN
        logger.info(f"Email confirmed for {self.user.email}")
        return {"success": True, **self.session()}

    def logout(self) -> Dict[str, Any]:
        self.user = None
        self.store = None
        self.status = AuthStatus.LOGGED_OUT
        logger.info("Logged out")
        return {"success": True, **self.session()}

    def session(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "user": self.user.model_dump() if self.user else None,
            "store": self.store.model_dump() if self.store else None,
            "tier": self.tier.value,
            "is_previewing_upgrade": self.is_previewing_upgrade,
        }

    def select_tier(self, tier: SubscriptionTier) -> Dict[str, Any]:
        """
        Apply a plan selection

        Only Starter to Pro changes anything; the upgrade starts in preview
        mode until finalize_upgrade is called. Downgrades are not offered.

        Args:
            tier: Plan chosen by the merchant

        Returns:
            Whether the tier changed, plus the current session
        """
        tier = SubscriptionTier(tier)
        changed = self.tier == SubscriptionTier.STARTER and tier == SubscriptionTier.PRO
        if changed:
            self.tier = SubscriptionTier.PRO
            self.is_previewing_upgrade = True
            logger.info("Upgraded to Pro tier (preview)")
        return {"success": True, "changed": changed, **self.session()}

    def finalize_upgrade(self) -> Dict[str, Any]:
        if not self.is_previewing_upgrade:
            return {"success": False, "error": "No upgrade in progress"}
        self.is_previewing_upgrade = False
        logger.info("Pro upgrade finalized")
        return {"success": True, **self.session()}

    def has_feature(self, feature: ProFeature) -> bool:
        # every gated feature is Pro-only
        ProFeature(feature)
        return self.tier == SubscriptionTier.PRO

    def require_feature(self, feature: ProFeature):
        if not self.has_feature(feature):
            raise FeatureLockedError(feature)

    def features(self) -> Dict[str, bool]:
        return {feature.value: self.has_feature(feature) for feature in ProFeature}
