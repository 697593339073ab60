"""Video URL collaborator: validates links and fetches their audio bytes.

The engine never calls this module itself; callers resolve a URL to bytes
here and hand the bytes to the pipeline.
"""

import logging
import re
import tempfile
from pathlib import Path
from typing import Optional

from ..errors import FetchError, StageTimeoutError

logger = logging.getLogger(__name__)

AUDIO_SUFFIXES = {".wav", ".mp3", ".m4a", ".webm", ".ogg", ".opus", ".aac", ".flac"}


class VideoAudioFetcher:
    """Downloads the audio track of a video-hosting URL with yt-dlp."""

    # Regex pattern for YouTube URLs
    VIDEO_URL_PATTERN = re.compile(
        r"^(?:https?://)?(?:www\.|m\.)?"
        r"(?:youtube\.com/(?:watch\?(?:.*&)?v=|shorts/|embed/)|youtu\.be/)"
        r"([a-zA-Z0-9_-]{11})"
    )

    def __init__(self, timeout: float = 30.0, retries: int = 2):
        """
        Initialize VideoAudioFetcher.

        Args:
            timeout: Socket timeout in seconds for every network operation
            retries: Download retries before giving up
        """
        self.timeout = timeout
        self.retries = retries

    @classmethod
    def is_video_url(cls, text: str) -> bool:
        """
        Check if a string has the shape of a recognized video URL.

        Args:
            text: String to check

        Returns:
            True if it's a video URL
        """
        return bool(cls.VIDEO_URL_PATTERN.match(text.strip()))

    @classmethod
    def video_id(cls, url: str) -> Optional[str]:
        match = cls.VIDEO_URL_PATTERN.match(url.strip())
        return match.group(1) if match else None

    def fetch(self, url: str, timeout: Optional[float] = None) -> bytes:
        """
        Download the best audio stream of a video URL.

        Args:
            url: Video URL
            timeout: Override the socket timeout for this call

        Returns:
            Encoded audio bytes, ready for WaveformLoader.load_bytes

        Raises:
            FetchError: If the URL is invalid or the download fails
            StageTimeoutError: If the network stalls past the timeout
        """
        if not self.is_video_url(url):
            raise FetchError(f"Invalid video URL: {url}", stage="fetch")

        import yt_dlp

        timeout = self.timeout if timeout is None else timeout

        with tempfile.TemporaryDirectory(prefix="score_engine_dl_") as tmp_dir:
            ydl_opts = {
                "format": "bestaudio[ext=m4a]/bestaudio[ext=webm]/bestaudio/best",
                "outtmpl": str(Path(tmp_dir) / "%(id)s.%(ext)s"),
                "socket_timeout": timeout,
                "retries": self.retries,
                "quiet": True,
                "no_warnings": True,
                "noplaylist": True,
            }

            logger.info("Fetching audio for video %s", self.video_id(url))
            try:
                with yt_dlp.YoutubeDL(ydl_opts) as ydl:
                    ydl.download([url])
            except yt_dlp.utils.DownloadError as e:
                if "timed out" in str(e).lower():
                    raise StageTimeoutError(f"Fetching {url} exceeded {timeout:.1f}s", stage="fetch") from e
                raise FetchError(f"Failed to download audio: {e}", stage="fetch") from e

            audio_files = sorted(
                f for f in Path(tmp_dir).iterdir() if f.suffix.lower() in AUDIO_SUFFIXES
            )
            if not audio_files:
                raise FetchError("Download succeeded but no audio file was produced", stage="fetch")

            return audio_files[0].read_bytes()
