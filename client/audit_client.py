"""
HTTP client for the audit API, including the polling loop.

    client = AuditClient("http://localhost:8000", token)
    job_id = client.request_analysis("https://example.com")
    result = client.wait_for_result(job_id)      # {"report": ..., "insights": [...]}

wait_for_result polls GET /result/{job_id} until the answer is no longer
202. A 200 with {"error"} is a terminal failure and raises AuditFailedError.
If the deadline passes first, ResultTimeoutError tells the caller to try
again later; the audit itself may still finish, but its cached result
expires unread.
"""

import time
from typing import Optional

import httpx


class AuditClientError(Exception):
    """Base class for client-side failures."""


class AuditFailedError(AuditClientError):
    """The worker gave up on the audit; the message is the worker's error."""


class ResultTimeoutError(AuditClientError):
    """No result within the client's deadline."""


class AuditClient:

    def __init__(self, base_url: str, token: str, timeout: float = 30.0,
                 transport: Optional[httpx.BaseTransport] = None):
        self.client = httpx.Client(
            base_url=base_url,
            timeout=timeout,
            headers={"Authorization": f"Bearer {token}"},
            transport=transport,
        )

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "AuditClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def request_analysis(self, url: str, categories: Optional[list[str]] = None,
                         form_factor: str = "desktop") -> str:
        """Queue an on-demand audit and return its job id."""
        body = {"url": url, "form_factor": form_factor}
        if categories:
            body["categories"] = categories
        resp = self.client.post("/analyze", json=body)
        resp.raise_for_status()
        return resp.json()["jobId"]

    def get_result(self, job_id: str) -> Optional[dict]:
        """
        One poll. None while pending; the result dict once finished.

        The server deletes the result when it hands it out, so a finished
        result is returned by exactly one call.
        """
        resp = self.client.get(f"/result/{job_id}")
        resp.raise_for_status()
        if resp.status_code == 202:
            return None
        data = resp.json()
        if "error" in data:
            raise AuditFailedError(data["error"])
        return data

    def wait_for_result(self, job_id: str, timeout: float = 180.0,
                        interval: float = 2.0) -> dict:
        """Poll until the result is ready, the audit fails, or `timeout` passes."""
        deadline = time.monotonic() + timeout
        while True:
            result = self.get_result(job_id)
            if result is not None:
                return result
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise ResultTimeoutError(
                    f"Analysis {job_id} did not finish within {timeout:.0f}s. Try again later."
                )
            time.sleep(min(interval, remaining))

    def analyze(self, url: str, timeout: float = 180.0, interval: float = 2.0, **kwargs) -> dict:
        """request_analysis + wait_for_result."""
        return self.wait_for_result(self.request_analysis(url, **kwargs), timeout, interval)
