# src/tools/jenkins_adapter.py
import base64
import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from engine.errors import RunnerUnavailableError
from .base import IN_PROGRESS, BuildInfo, RunnerAdapter, TriggeredBuild, normalize_build_status


def encode_parameters(parameters: Dict[str, Any]) -> str:
    """
    Flatten scan parameters into the ``key=value&...`` form buildWithParameters expects.

    ``None`` values are left out so Jenkins applies the parameter default.
    """
    pairs = []
    for key, value in parameters.items():
        if value is None:
            continue
        if isinstance(value, bool):
            value = "true" if value else "false"
        pairs.append(f"{key}={quote(str(value), safe='')}")
    return "&".join(pairs)


class JenkinsAdapter(RunnerAdapter):
    def __init__(
        self,
        base_url: str,
        username: str,
        token: str,
        job_name: str,
        timeout: float = 10.0,
        trigger_attempts: int = 1,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.job_name = job_name
        self.trigger_attempts = max(1, trigger_attempts)
        credentials = base64.b64encode(f"{username}:{token}".encode()).decode()
        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={
                "Authorization": f"Basic {credentials}",
                "Accept": "application/json",
            },
        )

    @classmethod
    def from_settings(cls, settings) -> "JenkinsAdapter":
        return cls(
            base_url=settings.jenkins_url,
            username=settings.jenkins_user,
            token=settings.jenkins_token,
            job_name=settings.jenkins_job_name,
            timeout=settings.jenkins_timeout_seconds,
            trigger_attempts=settings.jenkins_trigger_attempts,
        )

    def close(self):
        self._client.close()

    def _send(self, path: str, method: str = "GET", attempts: int = 1) -> httpx.Response:
        logging.debug(f"Jenkins request: {method} {path}")
        try:
            for attempt in Retrying(
                stop=stop_after_attempt(attempts),
                wait=wait_exponential(multiplier=0.5, max=5),
                retry=retry_if_exception_type(httpx.TransportError),
                before_sleep=self._log_retry,
                reraise=True,
            ):
                with attempt:
                    response = self._client.request(method, path)
            response.raise_for_status()
            return response
        except httpx.HTTPStatusError as e:
            logging.error(f"Jenkins request failed: {method} {path} status={e.response.status_code}")
            raise RunnerUnavailableError(f"Jenkins API request failed: HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logging.error(f"Jenkins request failed: {method} {path} error={e}")
            raise RunnerUnavailableError(f"Jenkins API request failed: {e}") from e

    def _request(self, path: str, method: str = "GET", expect_json: bool = True):
        response = self._send(path, method)
        if not expect_json:
            return response.text
        try:
            return response.json()
        except ValueError as e:
            logging.error(f"Jenkins returned malformed JSON: {method} {path} error={e}")
            raise RunnerUnavailableError("Jenkins API returned a malformed payload") from e

    @staticmethod
    def _log_retry(retry_state):
        logging.warning(
            f"Retrying Jenkins request (attempt {retry_state.attempt_number} failed: "
            f"{retry_state.outcome.exception()}); a build may already have been queued"
        )

    def _next_build_number(self) -> str:
        job_info = self._request(f"/job/{self.job_name}/api/json?tree=nextBuildNumber")
        try:
            return str(job_info["nextBuildNumber"])
        except (KeyError, TypeError) as e:
            raise RunnerUnavailableError("Jenkins job info is missing nextBuildNumber") from e

    def _build_number_from_queue(self, location: str) -> Optional[str]:
        """
        Look up the build a queue item turned into.

        Returns None while the item is still waiting in the queue, or when the
        queue API cannot be read.
        """
        try:
            item = self._request(f"{location.rstrip('/')}/api/json?tree=executable[number]")
        except RunnerUnavailableError as e:
            logging.warning(f"Could not read Jenkins queue item {location}: {e}")
            return None
        executable = item.get("executable") if isinstance(item, dict) else None
        if isinstance(executable, dict) and executable.get("number") is not None:
            return str(executable["number"])
        return None

    def trigger(self, parameters: Dict[str, Any]) -> TriggeredBuild:
        path = f"/job/{self.job_name}/buildWithParameters"
        query = encode_parameters(parameters)
        if query:
            path = f"{path}?{query}"
        # Read before queueing: once the POST lands the counter may already have moved on.
        build_number = self._next_build_number()
        logging.info(f"Triggering Jenkins job {self.job_name} parameters={parameters}")
        response = self._send(path, method="POST", attempts=self.trigger_attempts)

        location = response.headers.get("Location")
        if location:
            queued_number = self._build_number_from_queue(location)
            if queued_number is not None:
                build_number = queued_number
            else:
                logging.info(f"Queue item {location} has no build yet, using build number {build_number}")
        return TriggeredBuild(
            external_id=build_number,
            status=IN_PROGRESS,
            url=f"{self.base_url}/job/{self.job_name}/{build_number}",
            name=self.job_name,
        )

    def get_status(self, external_id: str) -> BuildInfo:
        data = self._request(
            f"/job/{self.job_name}/{external_id}/api/json?tree=id,result,building,timestamp,url"
        )
        if not isinstance(data, dict):
            raise RunnerUnavailableError("Jenkins build info is not an object")
        result = data.get("result")
        return BuildInfo(
            external_id=str(data.get("id") or external_id),
            status=normalize_build_status(bool(data.get("building")), result),
            result=result or None,
            url=data.get("url"),
            timestamp=data.get("timestamp"),
        )

    def get_log(self, external_id: str) -> str:
        return self._request(f"/job/{self.job_name}/{external_id}/consoleText", expect_json=False)

    def is_running(self, external_id: str) -> bool:
        try:
            return self.get_status(external_id).status == IN_PROGRESS
        except RunnerUnavailableError as e:
            logging.error(f"[external_id={external_id}] Failed to check build status: {e}")
            return False
