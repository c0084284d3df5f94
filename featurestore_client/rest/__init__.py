"""
REST access to the remote feature store service.
"""
from .gateway import GatewayResponse, HttpGateway, RemoteGateway
from .client import FeaturestoreRestClient

__all__ = ["GatewayResponse", "HttpGateway", "RemoteGateway", "FeaturestoreRestClient"]
