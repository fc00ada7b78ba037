"""
HTTP Yield Oracle

Reads pool APYs from a JSON endpoint:
    GET {base_url}/pools/{address}/apy  ->  {"apy_bps": 1230}

Any transport, HTTP or payload problem raises; the engine's yield reader
turns that into a skipped read for that pool only.
"""

import logging
from typing import Optional

import requests

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class OracleResponseError(Exception):
    pass


class HttpYieldOracle:
    """
    Usage:
        oracle = HttpYieldOracle("https://oracle.example/api")
        apy_bps = oracle.current_yield("0xpool")
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def current_yield(self, address: str) -> int:
        url = f"{self.base_url}/pools/{address}/apy"
        response = self.session.get(url, timeout=self.timeout)
        response.raise_for_status()
        data = response.json()

        if "apy_bps" not in data:
            raise OracleResponseError(f"Missing apy_bps for {address}: {data}")

        value = data["apy_bps"]
        if isinstance(value, bool) or not isinstance(value, int):
            raise OracleResponseError(f"Non-integer apy_bps for {address}: {value!r}")
        return value
