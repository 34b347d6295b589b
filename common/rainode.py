import logging
from typing import Any, Dict
import requests
from common.error_handling import NodeCallError
from common.settings import settings
from common.tracing import get_trace_headers

logger = logging.getLogger(__name__)

class RaiNodeClient:
    """Request/response client for the node's JSON RPC port"""

    def __init__(self, url: str = None, timeout: float = None, session: requests.Session = None):
        self.url = url or settings.rainode_url
        self.timeout = settings.rainode_timeout if timeout is None else timeout
        self.session = session or requests.Session()

    def call(self, payload: Dict[str, Any]) -> Any:
        headers = {"content-type": "application/json", **get_trace_headers()}
        try:
            response = self.session.post(self.url, json=payload, headers=headers, timeout=self.timeout)
        except requests.Timeout as e:
            logger.debug(f"Node call timed out after {self.timeout}s")
            raise NodeCallError("node call timed out", e, timeout=True) from e
        except requests.RequestException as e:
            logger.debug(f"Node call failed: {e}")
            raise NodeCallError("node unreachable", e) from e

        try:
            answer = response.json()
        except ValueError as e:
            raise NodeCallError("node returned invalid JSON", e) from e
        logger.debug(f"Node answer: {answer}")
        return answer

    def close(self):
        self.session.close()
