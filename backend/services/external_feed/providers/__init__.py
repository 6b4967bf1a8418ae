from services.external_feed.providers.resales_online import ResalesOnlineProvider

__all__ = ["ResalesOnlineProvider"]
