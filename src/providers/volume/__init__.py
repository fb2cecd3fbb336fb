"""Keyword volume providers.

DataForSeoProxyProvider is the only production adapter; it reaches
DataForSEO through the forwarding proxy so API credentials stay off the
worker's outbound path.
"""

from src.providers.volume.dataforseo_proxy_provider import DataForSeoProxyProvider

__all__ = ["DataForSeoProxyProvider"]
