from gps_dashboard.errors import ConfigurationError
from gps_dashboard.store.api import StoreAPI

_client = None

def get_store_client():
    '''
    Returns a singleton instance of the StoreAPI class.

    Raises ConfigurationError when the store credentials are missing.
    '''
    global _client
    if _client is None:
        from gps_dashboard.config import Config as cfg, is_store_configured
        if not is_store_configured(cfg.SUPABASE_URL, cfg.SUPABASE_ANON_KEY):
            raise ConfigurationError()
        _client = StoreAPI(
            cfg.SUPABASE_URL,
            cfg.SUPABASE_ANON_KEY,
            timeout=cfg.STORE_TIMEOUT_SECONDS,
            client_info=cfg.CLIENT_INFO,
            retry_delay=cfg.FETCH_RETRY_DELAY,
        )
    return _client
