"""
VirusTotal v3 reputation client.
"""

import base64
import logging
from typing import Any, Dict, Optional

import httpx

from ..exceptions import ReputationError, ReputationNotConfigured
from .base import ReputationClient
from .models import ReputationVerdict

logger = logging.getLogger(__name__)

WEB_BASE = "https://www.virustotal.com/gui"


def url_identifier(url: str) -> str:
    """VirusTotal URL id: unpadded URL-safe base64 of the URL."""
    return base64.urlsafe_b64encode(url.encode('utf-8')).decode('ascii').rstrip('=')


class VirusTotalClient(ReputationClient):
    """
    Looks up URLs, domains and file hashes.

    Without an API key every lookup raises :class:`ReputationNotConfigured`.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = "https://www.virustotal.com/api/v3",
        timeout: float = 10.0,
        config: Optional[Dict[str, Any]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            api_key: VirusTotal API key
            base_url: API base URL
            timeout: Request timeout in seconds
            config: Analyzer configuration
            transport: Custom httpx transport
        """
        super().__init__(config)
        self.api_key = api_key
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self._transport = transport

    @property
    def name(self) -> str:
        return "reputation"

    @property
    def description(self) -> str:
        return "URL and domain reputation from VirusTotal"

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def scan_url(self, url: str) -> ReputationVerdict:
        self._require_key()
        logger.debug(f"Scanning URL: {url}")

        url_id = url_identifier(url)
        async with self._client() as client:
            response = await self._send(client, 'GET', f"/urls/{url_id}")

            if response.status_code == 200:
                return self._parse_report(url, response.json(), 'url')
            if response.status_code == 404:
                logger.debug("URL not in database, submitting for scan")
                return await self._submit_url(client, url)
            raise ReputationError(f"VirusTotal API error: {response.status_code}")

    async def scan_domain(self, domain: str) -> ReputationVerdict:
        self._require_key()
        logger.debug(f"Scanning domain: {domain}")

        async with self._client() as client:
            response = await self._send(client, 'GET', f"/domains/{domain}")

        if response.status_code != 200:
            raise ReputationError(f"VirusTotal API error: {response.status_code}")
        return self._parse_report(domain, response.json(), 'domain')

    async def check_file_hash(self, file_hash: str) -> ReputationVerdict:
        """Reputation of an attachment by its hash; unknown hashes are clean."""
        self._require_key()
        logger.debug(f"Checking file hash: {file_hash}")

        async with self._client() as client:
            response = await self._send(client, 'GET', f"/files/{file_hash}")

        if response.status_code == 404:
            return ReputationVerdict(
                resource=file_hash,
                permalink=f"{WEB_BASE}/file/{file_hash}",
                category="unknown",
            )
        if response.status_code != 200:
            raise ReputationError(f"VirusTotal API error: {response.status_code}")
        return self._parse_report(file_hash, response.json(), 'file')

    @staticmethod
    def severity_assessment(verdict: ReputationVerdict) -> str:
        """Detection-rate bucket: clean, low_risk, suspicious, malicious or critical."""
        if verdict.positives == 0:
            return "clean"
        rate = verdict.positives / verdict.total if verdict.total > 0 else 0
        if rate >= 0.5:
            return "critical"
        if rate >= 0.25:
            return "malicious"
        if rate >= 0.1:
            return "suspicious"
        return "low_risk"

    def _require_key(self) -> None:
        if not self.configured:
            logger.warning("VirusTotal API key not configured")
            raise ReputationNotConfigured("VirusTotal API key not configured")

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={'x-apikey': self.api_key},
            timeout=self.timeout,
            transport=self._transport,
        )

    async def _send(self, client: httpx.AsyncClient, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return await client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"VirusTotal request {method} {path} failed: {e}")
            raise ReputationError(f"VirusTotal request failed: {e}") from e

    async def _submit_url(self, client: httpx.AsyncClient, url: str) -> ReputationVerdict:
        response = await self._send(client, 'POST', "/urls", data={'url': url})
        if response.status_code != 200:
            raise ReputationError(f"Failed to submit URL: {response.status_code}")

        data = response.json().get('data') or {}
        return ReputationVerdict(
            resource=url,
            permalink=(data.get('links') or {}).get('self') or f"{WEB_BASE}/url/{url_identifier(url)}",
            category="pending",
        )

    @staticmethod
    def _parse_report(resource: str, payload: Dict[str, Any], kind: str) -> ReputationVerdict:
        data = payload.get('data') or {}
        attributes = data.get('attributes') or {}
        stats = attributes.get('last_analysis_stats') or {}
        results = attributes.get('last_analysis_results') or {}

        positives = int(stats.get('malicious', 0) or 0)
        category = "clean"
        if positives > 0:
            category = "malware"
        if stats.get('phishing'):
            category = "phishing"

        return ReputationVerdict(
            resource=resource,
            malicious=positives > 0,
            positives=positives,
            total=len(results),
            permalink=f"{WEB_BASE}/{kind}/{data.get('id', '')}",
            category=category,
        )
