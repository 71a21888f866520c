# tac_broker/dependencies/gunbroker.py
from functools import lru_cache

from tac_broker.gunbroker.auth import GunbrokerAuthEndpoint
from tac_broker.gunbroker.config import MarketplaceSettings
from tac_broker.gunbroker.executor import RequestExecutor
from tac_broker.gunbroker.token_manager import TokenManager
from tac_broker.infrastructure.marketplace_client import MarketplaceHttpClient
from tac_broker.infrastructure.vault import CredentialVault


# one instance per process: refresh deduplication lives on the token manager
@lru_cache()
def get_marketplace_settings() -> MarketplaceSettings:
    return MarketplaceSettings.from_env()


@lru_cache()
def get_http_client() -> MarketplaceHttpClient:
    return MarketplaceHttpClient(timeout=get_marketplace_settings().timeout)


@lru_cache()
def get_token_manager() -> TokenManager:
    return TokenManager(
        settings=get_marketplace_settings(),
        vault=CredentialVault.from_env(),
        auth=GunbrokerAuthEndpoint(get_http_client()),
    )


@lru_cache()
def get_request_executor() -> RequestExecutor:
    return RequestExecutor(get_token_manager(), get_http_client(), get_marketplace_settings())
