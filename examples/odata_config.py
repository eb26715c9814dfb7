"""
# OData Proxy Configuration Example

Makes two OData services reachable below /proxy/<destination>/ for a browser
application served from the same origin. Destinations are looked up in a
dictionary built from environment variables and the session ticket headers of
the application server are never forwarded.

Steps to run:
1. Create a `.env` file with NORTHWIND_URL (and optionally ERP_URL).
2. Run the proxy with this configuration:
```bash
sop-proxy --config examples/odata_config.py
```
"""

import logging
import os

from dotenv import load_dotenv

from sop_proxy import Config, SecurityPolicy, StaticDestinationResolver

load_dotenv(".env")


class AppServerSessionPolicy(SecurityPolicy):
    def response_header_blacklist(self) -> list[str]:
        return ["x-app-session", "x-csrf-token"]


destinations = {
    "northwind": os.getenv(
        "NORTHWIND_URL", "https://services.odata.org/V2/Northwind/Northwind.svc/"
    ),
}
if os.getenv("ERP_URL"):
    destinations["erp"] = {"url": os.getenv("ERP_URL"), "timeout": 60, "verify": False}
logging.info("Configured destinations: %s", ", ".join(destinations))

config = Config(
    port=8080,
    destination_resolver=StaticDestinationResolver(destinations),
    security_policy=AppServerSessionPolicy(),
)
