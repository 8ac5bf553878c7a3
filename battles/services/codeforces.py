import logging
import threading
import time
from datetime import datetime, timezone

import requests
from django.conf import settings

from battles.errors import UpstreamError, UpstreamUnavailable

logger = logging.getLogger(__name__)

RATE_LIMIT_COMMENT = "call limit exceeded"


class CodeforcesClient:
    """
    Cliente da API do Codeforces com throttle global: no maximo uma chamada a cada
    `min_interval` segundos. Chamadores esperam a vez em vez de serem rejeitados.
    """

    def __init__(self, base_url=None, min_interval=None, rate_limit_backoff=None, timeout=None, sleep=time.sleep):
        self.base_url = (base_url or getattr(settings, "CODEFORCES_API_URL", "https://codeforces.com/api")).rstrip("/")
        if min_interval is None:
            min_interval = getattr(settings, "CODEFORCES_MIN_REQUEST_INTERVAL_SECONDS", 2.0)
        if rate_limit_backoff is None:
            rate_limit_backoff = getattr(settings, "CODEFORCES_RATE_LIMIT_BACKOFF_SECONDS", 5.0)
        self.min_interval = float(min_interval)
        self.rate_limit_backoff = float(rate_limit_backoff)
        self.timeout = timeout or getattr(settings, "CODEFORCES_TIMEOUT_SECONDS", 10)
        self._sleep = sleep
        self._lock = threading.Lock()
        self._last_request_at = None

    def _wait_for_slot(self):
        # Holding the lock while sleeping queues concurrent callers behind each other.
        with self._lock:
            if self._last_request_at is not None:
                elapsed = time.monotonic() - self._last_request_at
                if elapsed < self.min_interval:
                    self._sleep(self.min_interval - elapsed)
            self._last_request_at = time.monotonic()

    def _request(self, method, params=None):
        self._wait_for_slot()

        url = f"{self.base_url}/{method}"
        query = {key: value for key, value in (params or {}).items() if value not in (None, "")}
        try:
            response = requests.get(url, params=query, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.warning("Codeforces request failed method=%s: %s", method, exc)
            raise UpstreamUnavailable(f"Codeforces unreachable: {exc}") from exc
        finally:
            self._last_request_at = time.monotonic()

        try:
            data = response.json()
        except ValueError:
            data = None

        if not isinstance(data, dict) or "status" not in data:
            if response.status_code == 429 or response.status_code >= 500:
                raise UpstreamUnavailable(f"Codeforces returned HTTP {response.status_code}")
            raise UpstreamError(f"Unexpected Codeforces response (HTTP {response.status_code})")

        if data.get("status") != "OK":
            comment = data.get("comment") or ""
            if RATE_LIMIT_COMMENT in comment.lower():
                logger.warning("Codeforces rate limit exceeded despite throttling method=%s", method)
                self._sleep(self.rate_limit_backoff)
                raise UpstreamUnavailable("Rate limit exceeded - consider reducing request frequency")
            raise UpstreamError(f"Codeforces API error: {comment}")

        return data.get("result")

    def list_submissions(self, handle, count=None):
        """
        Historico de submissoes do usuario, do mais recente para o mais antigo.
        Submissoes ainda em julgamento voltam com verdict None.
        """
        result = self._request("user.status", {"handle": handle, "from": 1 if count else None, "count": count})

        submissions = []
        for sub in result or []:
            problem = sub.get("problem", {})
            if "contestId" not in problem or "index" not in problem:
                continue
            submissions.append({
                "external_id": str(sub["id"]),
                "contest_id": str(problem["contestId"]),
                "problem_index": problem["index"],
                "verdict": sub.get("verdict"),
                "passed_test_count": int(sub.get("passedTestCount") or 0),
                "submission_time": datetime.fromtimestamp(sub["creationTimeSeconds"], tz=timezone.utc),
            })
        return submissions

    def list_problems(self, tags=None):
        result = self._request("problemset.problems", {"tags": ";".join(tags or [])})

        problems = []
        for problem in (result or {}).get("problems", []):
            if "contestId" not in problem:
                continue
            problems.append({
                "contest_id": str(problem["contestId"]),
                "index": problem["index"],
                "name": problem.get("name", ""),
                "type": problem.get("type"),
                "rating": problem.get("rating"),
                "tags": list(problem.get("tags") or []),
            })
        return problems


_client = None


def get_codeforces_client():
    global _client
    if _client is None:
        _client = CodeforcesClient()
    return _client
