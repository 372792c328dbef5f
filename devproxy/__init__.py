"""
A development reverse proxy: local files first, remote server for the rest.
"""

from .server import ProxyServer
from .handler import RequestHandler
from .router import Route, Router
from .forwarder import Forwarder
from .static import StaticFileResolver
from .models import (HTTPRequest, HTTPResponse, InvalidAddressFormat,
                     LocalProxyTarget, LocalStaticConfig, RouteConfig, ServerAddress)
from .config import ProxyConfig, build_route_config

__all__ = ['ProxyServer', 'RequestHandler', 'Route', 'Router', 'Forwarder',
           'StaticFileResolver', 'HTTPRequest', 'HTTPResponse', 'InvalidAddressFormat',
           'LocalProxyTarget', 'LocalStaticConfig', 'RouteConfig', 'ServerAddress',
           'ProxyConfig', 'build_route_config']
