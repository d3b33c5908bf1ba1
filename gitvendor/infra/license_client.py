"""
License lookup for git-vendor.

Asks the hosting platform (GitHub or GitLab) which license a repository
carries and returns its SPDX identifier. Lookups are best-effort metadata:
any failure yields None and a log line, never an exception.
"""

import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import quote

import requests

logger = logging.getLogger(__name__)

_SCP_URL = re.compile(r"^(?:[\w.-]+@)?(?P<host>[\w.-]+):(?P<path>[^/].*)$")
_HTTP_URL = re.compile(r"^(?:https?|ssh|git)://(?:[^@/]+@)?(?P<host>[^/:]+)(?::\d+)?/(?P<path>.+)$")

# GitLab reports lowercase license keys
_GITLAB_SPDX = {
    'mit': 'MIT',
    'apache-2.0': 'Apache-2.0',
    'bsd-2-clause': 'BSD-2-Clause',
    'bsd-3-clause': 'BSD-3-Clause',
    'isc': 'ISC',
    'mpl-2.0': 'MPL-2.0',
    'gpl-2.0': 'GPL-2.0',
    'gpl-3.0': 'GPL-3.0',
    'lgpl-2.1': 'LGPL-2.1',
    'lgpl-3.0': 'LGPL-3.0',
    'agpl-3.0': 'AGPL-3.0',
    'unlicense': 'Unlicense',
}


@dataclass
class RepoLocation:
    """Host and project path parsed from a git remote URL."""
    host: str
    path: str  # "owner/repo" or "group/subgroup/repo"

    @property
    def platform(self) -> Optional[str]:
        if self.host == 'github.com' or self.host.endswith('.github.com'):
            return 'github'
        if 'gitlab' in self.host:
            return 'gitlab'
        return None


def parse_repo_url(url: str) -> Optional[RepoLocation]:
    """Parse https, ssh:// and scp-style (git@host:path) URLs."""
    url = url.strip()
    match = _HTTP_URL.match(url) or _SCP_URL.match(url)
    if not match:
        return None
    path = match.group('path').strip('/')
    if path.endswith('.git'):
        path = path[:-4]
    if path.count('/') < 1:
        return None
    return RepoLocation(host=match.group('host').lower(), path=path)


class LicenseClient:
    """
    SPDX license detection over the GitHub and GitLab REST APIs.

    Example:
        client = LicenseClient(github_token=os.environ.get("GITHUB_TOKEN"))
        client.detect("https://github.com/owner/repo")   # "MIT" or None
    """

    def __init__(
        self,
        github_token: str = "",
        gitlab_token: str = "",
        github_api: str = "https://api.github.com",
        gitlab_api: str = "https://gitlab.com/api/v4",
        timeout: int = 10,
        max_retries: int = 3,
        base_delay: float = 1.0,
    ):
        self.github_token = github_token
        self.gitlab_token = gitlab_token
        self.github_api = github_api.rstrip('/')
        self.gitlab_api = gitlab_api.rstrip('/')
        self.timeout = timeout
        self.max_retries = max_retries
        self.base_delay = base_delay

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'LicenseClient':
        return cls(
            github_token=config.get('github', {}).get('token', ''),
            gitlab_token=config.get('gitlab', {}).get('token', ''),
            github_api=config.get('github', {}).get('api_url', 'https://api.github.com'),
            gitlab_api=config.get('gitlab', {}).get('api_url', 'https://gitlab.com/api/v4'),
            timeout=config.get('license', {}).get('timeout_seconds', 10),
            max_retries=config.get('license', {}).get('max_retries', 3),
        )

    def _get_json(self, url: str, headers: Dict[str, str]) -> Optional[Dict[str, Any]]:
        """GET with exponential backoff on rate limiting and transient errors."""
        for attempt in range(self.max_retries + 1):
            delay = self.base_delay * (2 ** attempt)
            try:
                response = requests.get(url, headers=headers, timeout=self.timeout)
            except requests.RequestException as e:
                if attempt < self.max_retries:
                    logger.debug(f"License lookup failed ({e}), retrying in {delay}s")
                    time.sleep(delay)
                    continue
                logger.warning(f"License lookup failed for {url}: {e}")
                return None

            if response.status_code == 200:
                return response.json()
            if response.status_code == 404:
                return None
            if response.status_code in (403, 429) or response.status_code >= 500:
                if attempt < self.max_retries:
                    logger.debug(f"License lookup got HTTP {response.status_code}, retrying in {delay}s")
                    time.sleep(delay)
                    continue
            logger.warning(f"License lookup for {url} returned HTTP {response.status_code}")
            return None
        return None

    def _github_license(self, location: RepoLocation) -> Optional[str]:
        headers = {'Accept': 'application/vnd.github+json', 'User-Agent': 'git-vendor'}
        if self.github_token:
            headers['Authorization'] = f'token {self.github_token}'
        data = self._get_json(f"{self.github_api}/repos/{location.path}/license", headers)
        if not data:
            return None
        spdx = (data.get('license') or {}).get('spdx_id')
        if not spdx or spdx == 'NOASSERTION':
            return None
        return spdx

    def _gitlab_license(self, location: RepoLocation) -> Optional[str]:
        headers = {'User-Agent': 'git-vendor'}
        if self.gitlab_token:
            headers['PRIVATE-TOKEN'] = self.gitlab_token
        project = quote(location.path, safe='')
        data = self._get_json(f"{self.gitlab_api}/projects/{project}?license=true", headers)
        if not data:
            return None
        key = (data.get('license') or {}).get('key')
        if not key:
            return None
        return _GITLAB_SPDX.get(key.lower(), key)

    def detect(self, url: str) -> Optional[str]:
        """SPDX identifier for the repository at ``url``, or None if unknown."""
        location = parse_repo_url(url)
        if location is None or location.platform is None:
            logger.debug(f"No license API for {url}")
            return None
        try:
            if location.platform == 'github':
                return self._github_license(location)
            return self._gitlab_license(location)
        except ValueError as e:
            logger.warning(f"License lookup for {url} returned invalid JSON: {e}")
            return None
