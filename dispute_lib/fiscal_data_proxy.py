"""
Fiscal Data Proxy

Forwards queries to the U.S. Treasury Fiscal Data API
(https://fiscaldata.treasury.gov/api-documentation/).

Currently wraps one dataset: Daily Treasury Statement "debt subject to limit".
"""

import logging
from typing import Any, Dict

import requests

from .errors import FiscalDataError

logger = logging.getLogger(__name__)


class FiscalDataProxy:
    """
    Thin HTTP client for the Fiscal Data API.

    Retries on timeouts and connection errors; HTTP error statuses are not retried.
    """

    DEBT_SUBJECT_TO_LIMIT_PATH = "v1/accounting/dts/debt_subject_to_limit"

    def __init__(self, fiscal_data_service_config: Dict[str, Any], session: requests.Session = None):
        """
        Initialize fiscal data proxy.

        Args:
            fiscal_data_service_config: Proxy configuration dict:
                    - enabled: Whether the proxy may make network calls
                    - base_url: Fiscal Data API base URL
                    - timeout_ms: Request timeout in milliseconds
                    - retry_attempts: Total attempts for transient failures
            session: Optional requests.Session (a new one is created otherwise)
        """
        self.config = fiscal_data_service_config
        self.enabled = self.config.get("enabled", False)
        self.base_url = self.config.get("base_url", "")
        self.timeout_ms = self.config.get("timeout_ms", 10000)
        self.retry_attempts = max(1, self.config.get("retry_attempts", 3))
        self.session = session or requests.Session()

        if self.enabled:
            logger.info(
                "Fiscal data proxy initialized",
                extra={
                    "base_url": self.base_url,
                    "timeout_ms": self.timeout_ms,
                    "retry_attempts": self.retry_attempts,
                },
            )
        else:
            logger.info("Fiscal data proxy disabled")

    def get_debt_subject_to_limit(self, fields: str) -> Dict[str, Any]:
        """
        Fetch the debt-subject-to-limit dataset.

        Args:
            fields: Comma-separated field list, e.g. "record_date,debt_catg"

        Returns:
            Decoded JSON response body

        Raises:
            FiscalDataError: If the proxy is disabled or the request fails
        """
        if not self.enabled:
            raise FiscalDataError("Fiscal data proxy is disabled")
        if not fields:
            raise FiscalDataError("fields must be a non-empty string")

        base = self.base_url if self.base_url.endswith("/") else self.base_url + "/"
        url = f"{base}{self.DEBT_SUBJECT_TO_LIMIT_PATH}"
        params = {"fields": fields, "format": "json"}

        last_error = None
        for attempt in range(1, self.retry_attempts + 1):
            try:
                response = self.session.get(
                    url,
                    params=params,
                    headers={"Accept": "application/json"},
                    timeout=self.timeout_ms / 1000.0,
                )
                response.raise_for_status()
                return response.json()

            except requests.exceptions.JSONDecodeError as e:
                raise FiscalDataError(f"Fiscal data response from {url} is not JSON: {e}") from e
            except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as e:
                last_error = e
                logger.warning(
                    "Fiscal data request failed, retrying",
                    extra={"url": url, "attempt": attempt, "error": str(e)},
                )
            except requests.exceptions.RequestException as e:
                logger.error("Fiscal data request error", extra={"url": url, "error": str(e)})
                raise FiscalDataError(f"Fiscal data request to {url} failed: {e}") from e

        logger.error(
            "Fiscal data request gave up",
            extra={"url": url, "attempts": self.retry_attempts, "error": str(last_error)},
        )
        raise FiscalDataError(
            f"Fiscal data request to {url} failed after {self.retry_attempts} attempt(s): {last_error}"
        ) from last_error

    def close(self) -> None:
        self.session.close()
