from __future__ import annotations

import json
import logging
from typing import Any, Protocol
from urllib.parse import parse_qs, urlparse

from talentscout.llm.prompts import VIDEO_CATEGORIZATION_PROMPT, VIDEO_CATEGORIZATION_SYSTEM_PROMPT
from talentscout.types import PageVideo, YouTubeVideo

logger = logging.getLogger(__name__)

FALLBACK_VERTICAL = "General"
CONFIDENCE_LEVELS = ("high", "medium", "low")


class VideoCategorizer(Protocol):
    def categorize_json(self, messages: list[dict[str, str]]) -> dict[str, Any]: ...


def _host(url: str) -> str:
    return urlparse(url).netloc.lower().removeprefix("www.").removeprefix("m.")


def unwrap_embed(url: str) -> str:
    """Return the target of an iframe.ly embed, or the url unchanged."""
    parsed = urlparse(url)
    if _host(url).endswith("iframe.ly"):
        wrapped = parse_qs(parsed.query).get("url")
        if wrapped:
            return wrapped[0]
    return url


def youtube_video_id(url: str) -> str | None:
    url = unwrap_embed(url)
    parsed = urlparse(url)
    host = _host(url)
    segments = [segment for segment in parsed.path.split("/") if segment]

    if host == "youtu.be":
        return segments[0] if segments else None
    if host != "youtube.com" and not host.endswith(".youtube.com") and host != "youtube-nocookie.com":
        return None

    if parsed.path.startswith("/watch"):
        values = parse_qs(parsed.query).get("v")
        return values[0] if values else None
    if len(segments) >= 2 and segments[0] in {"embed", "shorts", "live", "v"}:
        return segments[1]
    return None


def youtube_watch_url(url: str) -> str | None:
    video_id = youtube_video_id(url)
    return f"https://www.youtube.com/watch?v={video_id}" if video_id else None


def find_youtube_videos(videos: list[PageVideo]) -> list[YouTubeVideo]:
    found: list[YouTubeVideo] = []
    seen: set[str] = set()
    for video in videos:
        video_id = youtube_video_id(video.url)
        if not video_id or video_id in seen:
            continue
        seen.add(video_id)
        found.append(
            YouTubeVideo(
                original_url=video.url,
                youtube_url=f"https://www.youtube.com/watch?v={video_id}",
                video_id=video_id,
                type=video.type,
                title=video.title,
            )
        )
    return found


class YouTubeAnalyzer:
    """Picks YouTube videos out of a scraped page and guesses a content vertical for each."""

    def __init__(self, llm: VideoCategorizer, *, enabled: bool = True, max_videos: int = 20):
        self.llm = llm
        self.enabled = enabled
        self.max_videos = max_videos

    def analyze(self, videos: list[PageVideo]) -> list[YouTubeVideo]:
        found = find_youtube_videos(videos)[: self.max_videos]
        if not found or not self.enabled:
            return found

        try:
            data = self.llm.categorize_json(self._messages(found))
        except Exception as exc:
            logger.warning("YouTube categorization failed for %s videos: %s", len(found), exc)
            return [self._fallback(video) for video in found]
        return self._merge(found, data)

    @staticmethod
    def _messages(videos: list[YouTubeVideo]) -> list[dict[str, str]]:
        listing = "\n".join(
            json.dumps({"video_id": video.video_id, "url": video.youtube_url, "title": video.title})
            for video in videos
        )
        return [
            {"role": "system", "content": VIDEO_CATEGORIZATION_SYSTEM_PROMPT},
            {"role": "user", "content": VIDEO_CATEGORIZATION_PROMPT.format(videos=listing)},
        ]

    def _merge(self, videos: list[YouTubeVideo], data: dict[str, Any]) -> list[YouTubeVideo]:
        rows = data.get("videos") if isinstance(data, dict) else None
        if not isinstance(rows, list):
            logger.warning("YouTube categorization reply has no 'videos' list; using fallback vertical")
            return [self._fallback(video) for video in videos]

        by_id = {str(row.get("video_id")): row for row in rows if isinstance(row, dict)}
        merged: list[YouTubeVideo] = []
        for video in videos:
            row = by_id.get(video.video_id)
            if row is None:
                merged.append(self._fallback(video))
                continue
            confidence = str(row.get("confidence") or "").lower()
            merged.append(
                video.model_copy(
                    update={
                        "content_vertical": str(row.get("content_vertical") or "").strip() or FALLBACK_VERTICAL,
                        "confidence": confidence if confidence in CONFIDENCE_LEVELS else "low",
                        "reasoning": str(row.get("reasoning") or ""),
                    }
                )
            )
        return merged

    @staticmethod
    def _fallback(video: YouTubeVideo) -> YouTubeVideo:
        return video.model_copy(
            update={
                "content_vertical": FALLBACK_VERTICAL,
                "confidence": "low",
                "reasoning": "Unable to analyze, using fallback category",
            }
        )
