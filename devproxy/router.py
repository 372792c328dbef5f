from enum import Enum

from .models import HTTPRequest, LocalMode, RouteConfig


class Route(Enum):
    """Where a request goes."""
    REMOTE = "remote"
    LOCAL_PROXY = "local_proxy"
    STATIC = "static"


class Router:
    """Chooses a destination for each request of one proxy instance."""

    def __init__(self, config: RouteConfig):
        self._config = config

    def route(self, request: HTTPRequest) -> Route:
        """
        Decide where a request is served from.

        Rules are applied in order: POST requests and URLs matching the
        configured rule go to the remote server; with a custom static prefix,
        any URL other than '/' that does not contain the prefix also goes to
        the remote server; what remains is handled by the local tier.
        A STATIC decision still falls back to the remote server when no
        file answers the request.
        """
        config = self._config
        local = config.local

        if request.method == 'POST':
            return Route.REMOTE

        if config.rule is not None and config.rule.search(request.path):
            return Route.REMOTE

        if (local.mode is LocalMode.STATIC and local.has_custom_prefix
                and request.path != '/' and local.prefix not in request.path):
            return Route.REMOTE

        if local.mode is LocalMode.PROXY:
            return Route.LOCAL_PROXY

        return Route.STATIC
