from __future__ import annotations

import logging

import requests
from bs4 import BeautifulSoup

from applytrack.errors import GatewayError

logger = logging.getLogger(__name__)


USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)


def fetch_job_text(url: str, timeout_sec: int = 30) -> str:
    try:
        response = requests.get(url, timeout=timeout_sec, headers={"User-Agent": USER_AGENT})
        response.raise_for_status()
    except requests.RequestException as exc:
        logger.warning("Failed to fetch job URL %s: %s", url, exc)
        raise GatewayError(f"could not fetch {url}: {exc}") from exc

    return html_to_text(response.text)


def html_to_text(html: str) -> str:
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "noscript", "nav", "footer"]):
        tag.extract()

    text = soup.get_text("\n")
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    return "\n".join(lines)
