import re
import logging
from dataclasses import dataclass
from typing import Callable, Mapping, Optional, Sequence, Tuple
from urllib.parse import parse_qs, urlparse

import requests
from bs4 import BeautifulSoup

from data_models import (
    DEFAULT_ARTIST,
    DEFAULT_TRACK_TITLE,
    DEFAULT_VIDEO_TITLE,
    ItemKind,
    QueueItem,
)
from queue_controller import InvalidReferenceError

logger = logging.getLogger(__name__)

YOUTUBE_REGEX = re.compile(
    r"(https?://)?(www\.|m\.|music\.)?"
    r"(youtube|youtu|youtube-nocookie)\.(com|be)/"
    r"(watch\?v=|embed/|v/|shorts/|.+\?v=)?([^&=%\?/]{11})"
)
OEMBED_URL = "https://www.youtube.com/oembed"
USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)


class UnavailableVideoError(InvalidReferenceError):
    """oEmbed says the video is private, deleted or cannot be embedded."""


@dataclass
class EnrichmentResult:
    title: str
    enriched: bool


TitleStrategy = Callable[[str, float], Optional[str]]


def is_valid_youtube_url(url):
    return bool(url) and YOUTUBE_REGEX.match(url.strip()) is not None


def extract_video_id(url):
    """Extracts the video ID from a YouTube URL."""
    if not url:
        return None
    match = YOUTUBE_REGEX.match(url.strip())
    if match:
        return match.group(6)
    return None


def fallback_title(url: str) -> str:
    """Title derived from the link alone: the video ID, or a placeholder."""
    video_id = extract_video_id(url)
    if video_id:
        return video_id
    try:
        query_id = parse_qs(urlparse(url).query).get("v", [""])[0]
    except ValueError:
        query_id = ""
    return query_id or DEFAULT_VIDEO_TITLE


def fetch_oembed_title(url: str, timeout: float) -> Optional[str]:
    try:
        response = requests.get(
            OEMBED_URL, params={"url": url, "format": "json"}, timeout=timeout
        )
    except requests.exceptions.RequestException as e:
        logger.warning(f"oEmbed fetch failed: {e}")
        return None

    if response.status_code in (401, 404):
        logger.warning(
            f"Video not embeddable or unavailable: {url} (status {response.status_code})"
        )
        raise UnavailableVideoError(
            "Video is private, deleted, or embedding is disabled by the owner"
        )
    if not response.ok:
        logger.warning(f"oEmbed returned {response.status_code}, trying fallback")
        return None

    try:
        title = response.json().get("title")
    except (ValueError, AttributeError) as e:
        logger.warning(f"oEmbed returned malformed JSON: {e}")
        return None
    return title.strip() if isinstance(title, str) and title.strip() else None


def fetch_page_title(url: str, timeout: float) -> Optional[str]:
    try:
        response = requests.get(url, headers={"User-Agent": USER_AGENT}, timeout=timeout)
    except requests.exceptions.RequestException as e:
        logger.warning(f"Error fetching page title: {e}")
        return None
    if response.status_code != 200:
        return None

    soup = BeautifulSoup(response.text, "html.parser")
    meta_title = soup.find("meta", property="og:title")
    if meta_title and meta_title.get("content"):
        return str(meta_title["content"]).strip()
    if soup.title and soup.title.string:
        title = str(soup.title.string).replace(" - YouTube", "").strip()
        # bare "YouTube" is what consent/error pages carry
        if title and title != "YouTube":
            return title
    return None


DEFAULT_TITLE_STRATEGIES: Tuple[TitleStrategy, ...] = (fetch_oembed_title, fetch_page_title)


def enrich_video_title(
    url: str,
    timeout: float = 5.0,
    strategies: Sequence[TitleStrategy] = DEFAULT_TITLE_STRATEGIES,
) -> EnrichmentResult:
    """Try each strategy in order; the first title wins.

    Only UnavailableVideoError escapes. Anything else a strategy could not
    handle degrades to ``fallback_title``.
    """
    for strategy in strategies:
        try:
            title = strategy(url, timeout)
        except UnavailableVideoError:
            raise
        except Exception as e:
            logger.warning(f"Title lookup {strategy.__name__} failed: {e}")
            continue
        if title:
            return EnrichmentResult(title=title, enriched=True)

    title = fallback_title(url)
    logger.warning(f"Could not fetch a title for {url}, using '{title}'")
    return EnrichmentResult(title=title, enriched=False)


def _clean(value) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def build_queue_item(
    data: Mapping,
    requested_by: str,
    timeout: float = 5.0,
    strategies: Sequence[TitleStrategy] = DEFAULT_TITLE_STRATEGIES,
) -> Tuple[QueueItem, bool]:
    """Turn a submitted form/JSON body into a QueueItem.

    Returns the item and whether its title was verified. Raises
    InvalidReferenceError for anything that cannot be queued.
    """
    kind = _clean(data.get("kind")) or ItemKind.VIDEO_LINK.value
    username = _clean(data.get("username"))

    if kind == ItemKind.LIBRARY_TRACK.value:
        external_id = _clean(data.get("externalId"))
        if not external_id:
            raise InvalidReferenceError("Library track needs an externalId")
        title = _clean(data.get("title"))
        return (
            QueueItem(
                kind=ItemKind.LIBRARY_TRACK,
                external_id=external_id,
                title=title or DEFAULT_TRACK_TITLE,
                artist=_clean(data.get("artist")) or DEFAULT_ARTIST,
                cover_reference=_clean(data.get("coverReference")) or external_id,
                requested_by=requested_by,
                username=username,
            ),
            title is not None,
        )

    if kind != ItemKind.VIDEO_LINK.value:
        raise InvalidReferenceError(f"Unsupported item kind: {kind}")

    url = _clean(data.get("videoUrl")) or _clean(data.get("sourceUrl"))
    if not url or not is_valid_youtube_url(url):
        raise InvalidReferenceError("Invalid URL - must be a YouTube link")

    result = enrich_video_title(url, timeout=timeout, strategies=strategies)
    return (
        QueueItem(
            kind=ItemKind.VIDEO_LINK,
            external_id=extract_video_id(url),
            source_url=url,
            title=result.title,
            requested_by=requested_by,
            username=username,
        ),
        result.enriched,
    )
