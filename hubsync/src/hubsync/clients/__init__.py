"""Outbound HTTP clients: OAuth provider, hub, and the subscriptions API."""

from .hub_client import HubClient, HubMode  # noqa: F401
from .oauth_client import OAuthClient  # noqa: F401
from .youtube_client import SubscriptionListing, SubscriptionsApiClient  # noqa: F401
