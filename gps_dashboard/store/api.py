import time
import requests
from typing import Any, Dict, Iterable, List, Optional, Sequence
from requests.exceptions import ConnectionError, Timeout, RequestException
from urllib3.exceptions import ProtocolError

from gps_dashboard.errors import handle_store_error
from gps_dashboard.logging_config import get_logger
from gps_dashboard.store.filters import Filter

logger = get_logger(__name__)


class StoreAPI:
    """Data store connection layer over the PostgREST interface, using a requests session."""
    REST_PATH = "/rest/v1"

    def __init__(self, base_url, api_key, timeout: float = 30, client_info: Optional[str] = None,
                 retry_delay: float = 1.0):
        if not all([base_url, api_key]):
            raise ValueError("Missing data store configuration")

        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.retry_delay = retry_delay

        # Reusable HTTP session
        self.session = requests.Session()
        self.session.headers.update({
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        })
        if client_info:
            self.session.headers["x-client-info"] = client_info

    def _request(self, method: str, table: str, max_retries: int = 1, **kwargs):
        """
        Make a request, retrying connection errors with exponential backoff.

        Args:
            method: HTTP method
            table: Table name
            max_retries: Total attempts for connection errors (1 = no retry)
            **kwargs: Additional arguments for requests

        Raises:
            PersistenceError / NetworkError naming the failed operation
        """
        url = f"{self.base_url}{self.REST_PATH}/{table}"
        operation = f"{method} {table}"
        attempts = max(1, max_retries)

        for attempt in range(attempts):
            try:
                r = self.session.request(method, url, timeout=self.timeout, **kwargs)
                r.raise_for_status()
                return r.json() if r.text else None

            except (ConnectionError, ProtocolError, Timeout) as e:
                if attempt < attempts - 1:
                    wait_time = self.retry_delay * (2 ** attempt)  # Exponential backoff
                    logger.warning(
                        f"Store connection error on {operation}, retrying",
                        attempt=attempt + 1,
                        max_retries=attempts,
                        wait_seconds=wait_time,
                        error=str(e),
                    )
                    time.sleep(wait_time)
                    continue
                if isinstance(e, ProtocolError):
                    e = requests.ConnectionError(str(e))
                raise handle_store_error(e, operation) from e
            except RequestException as e:
                # HTTP errors (4xx, 5xx) and other request failures - don't retry
                raise handle_store_error(e, operation) from e

    @staticmethod
    def _filter_params(filters: Iterable[Filter]) -> List:
        return [f.to_param() for f in filters]

    @staticmethod
    def _require_filters(filters: Sequence[Filter], action: str, table: str):
        if not filters:
            raise ValueError(
                f"Refusing unfiltered {action} on '{table}'; pass match_all() to target every row"
            )

    # -------------------------
    # Rows
    # -------------------------
    def select(self, table: str, columns: str = "*", filters: Sequence[Filter] = (),
               order: Optional[str] = None, descending: bool = False,
               limit: Optional[int] = None, max_retries: int = 1) -> List[Dict[str, Any]]:
        params = [("select", columns)]
        params.extend(self._filter_params(filters))
        if order:
            params.append(("order", f"{order}.{'desc' if descending else 'asc'}"))
        if limit is not None:
            params.append(("limit", str(limit)))
        return self._request("GET", table, max_retries=max_retries, params=params) or []

    def insert(self, table: str, rows) -> List[Dict[str, Any]]:
        if isinstance(rows, dict):
            rows = [rows]
        return self._request(
            "POST", table, json=list(rows),
            headers={"Prefer": "return=representation"},
        ) or []

    def update(self, table: str, values: Dict[str, Any], filters: Sequence[Filter]) -> List[Dict[str, Any]]:
        self._require_filters(filters, "update", table)
        return self._request(
            "PATCH", table, json=values,
            params=self._filter_params(filters),
            headers={"Prefer": "return=representation"},
        ) or []

    def delete(self, table: str, filters: Sequence[Filter]) -> List[Dict[str, Any]]:
        self._require_filters(filters, "delete", table)
        return self._request(
            "DELETE", table,
            params=self._filter_params(filters),
            headers={"Prefer": "return=representation"},
        ) or []

    def check_connection(self) -> bool:
        """Probe the store with a one-row read. Never raises."""
        try:
            self.select("vehicles", columns="id", limit=1)
        except Exception as e:
            logger.warning("Data store connection test failed", error=str(e))
            return False
        logger.info("Data store connection successful")
        return True
