"""Connectors module - pazaryeri adapter'ları"""
from typing import Dict, Type

from app.core.enums import Marketplace

from .amazon_client import AmazonSPAPIClient
from .base import MarketplaceAdapter, TokenCache, get_token_cache
from .ciceksepeti_client import CiceksepetiAPIClient
from .etsy_client import EtsyAPIClient
from .hepsiburada_client import HepsiburadaAPIClient
from .ikas_client import IkasAPIClient
from .n11_client import N11APIClient
from .shopify_client import ShopifyAPIClient
from .trendyol_client import TrendyolAPIClient

ADAPTERS: Dict[Marketplace, Type[MarketplaceAdapter]] = {
    Marketplace.TRENDYOL: TrendyolAPIClient,
    Marketplace.HEPSIBURADA: HepsiburadaAPIClient,
    Marketplace.AMAZON: AmazonSPAPIClient,
    Marketplace.IKAS: IkasAPIClient,
    Marketplace.N11: N11APIClient,
    Marketplace.CICEKSEPETI: CiceksepetiAPIClient,
    Marketplace.ETSY: EtsyAPIClient,
    Marketplace.SHOPIFY: ShopifyAPIClient,
}


__all__ = [
    "ADAPTERS",
    "AmazonSPAPIClient",
    "CiceksepetiAPIClient",
    "EtsyAPIClient",
    "HepsiburadaAPIClient",
    "IkasAPIClient",
    "MarketplaceAdapter",
    "N11APIClient",
    "ShopifyAPIClient",
    "TokenCache",
    "TrendyolAPIClient",
    "get_token_cache",
]
