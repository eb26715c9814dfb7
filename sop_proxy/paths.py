"""
Parsing of proxied request paths:

    /<context-path>/<mount-path>/<destination-name>/<relative-path-to-service>[?query]
"""

import logging

from .errors import ConfigurationError

log = logging.getLogger(__name__)


def split_destination(servlet_path: str) -> str:
    """
    Returns the destination name, i.e. the last segment of the servlet path
    ("/proxy/<destination-name>").
    """
    index = servlet_path.rfind("/")
    destination_name = servlet_path[index + 1 :] if index != -1 else ""
    if not destination_name:
        raise ConfigurationError("No destination specified")
    log.debug("destination read from URL path: %s", destination_name)
    return destination_name


def path_info(request_path: str, mount_path: str, destination_name: str) -> str:
    """
    Returns the part of the request path that follows the mount path,
    "<destination-name>/<relative-path-to-service>".
    The result is empty when the request path ends at the destination name.
    """
    prefix = mount_path.rstrip("/") + "/"
    if not request_path.startswith(prefix):
        raise ConfigurationError(f"Request path {request_path} is not below {mount_path}")
    info = request_path[len(prefix) :]
    if info == destination_name:
        return ""
    return info


def relative_path(path_info: str, query_string: str | None) -> str:
    """
    Strips the first segment (the destination name) from
    "<destination-name>/<relative-path-to-service>" and returns
    "<relative-path-to-service>?<query-string>".
    Only spaces are escaped, any other encoding is left to the caller.
    """
    index = path_info.find("/")
    relative = path_info[index + 1 :] if index != -1 else ""
    relative = relative.replace(" ", "%20")
    if query_string:
        relative += "?" + query_string
    log.debug("relative path to service, incl. query string: %s", relative)
    return relative


def join_url(base_url: str, relative: str) -> str:
    """Resolve the relative path to the service against the destination base URL."""
    if not relative:
        return base_url
    if relative.startswith("?"):
        return base_url + relative
    return base_url.rstrip("/") + "/" + relative
