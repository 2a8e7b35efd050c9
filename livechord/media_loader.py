"""MediaLoader: fetches and decodes the song's media track for analysis."""

import logging
import os
import shutil
import tempfile
from typing import Any

import librosa
import numpy as np
import yt_dlp

logger = logging.getLogger(__name__)


def is_remote(media: str) -> bool:
    """True for http(s) URLs that must be downloaded before decoding."""
    return media.startswith(("http://", "https://"))


def _download_options(stem: str) -> dict[str, Any]:
    """yt-dlp settings that leave exactly ``<stem>.wav`` behind."""
    return {
        "format": "bestaudio/best",
        "outtmpl": f"{stem}.%(ext)s",
        "noplaylist": True,
        "postprocessors": [{"key": "FFmpegExtractAudio", "preferredcodec": "wav"}],
        "logger": logger,
        "quiet": True,
        "no_warnings": True,
    }


class MediaLoader:
    """
    Decodes a local audio file, or downloads one with yt-dlp first.

    Remote media is written to a temporary directory; use the loader as a
    context manager (or call ``cleanup()``) to remove it:

        with MediaLoader() as loader:
            samples, sample_rate = loader.load("https://youtu.be/...")
    """

    def __init__(self) -> None:
        self._temp_dirs: list[str] = []

    def download_audio(self, url: str) -> str:
        """
        Fetch the audio track behind ``url`` as a WAV file in a private temp dir.

        Raises:
            FileNotFoundError: If yt-dlp finished without leaving a WAV (no ffmpeg).
            yt_dlp.utils.DownloadError: If yt-dlp cannot retrieve the media.
        """
        workdir = tempfile.mkdtemp(prefix="livechord_")
        self._temp_dirs.append(workdir)
        stem = os.path.join(workdir, "track")

        logger.info("Downloading media track from %s", url)
        with yt_dlp.YoutubeDL(_download_options(stem)) as ydl:
            info = ydl.extract_info(url, download=True)
        title = info.get("title", url) if isinstance(info, dict) else url

        wav_path = f"{stem}.wav"
        if not os.path.isfile(wav_path):
            raise FileNotFoundError(f"No WAV was produced for '{title}'; is ffmpeg on PATH?")
        logger.info("Fetched '%s' to %s", title, wav_path)
        return wav_path

    def load(self, media: str) -> tuple[np.ndarray, float]:
        """
        Decode ``media`` (path or URL) to mono float samples at its native rate.

        Returns:
            (samples, sample_rate)
        """
        path = self.download_audio(media) if is_remote(media) else media
        samples, sample_rate = librosa.load(path, sr=None, mono=True)
        logger.debug("Decoded %s: %d samples at %s Hz", path, len(samples), sample_rate)
        return samples, float(sample_rate)

    def cleanup(self) -> None:
        """Remove all temporary directories created by downloads."""
        for temp_dir in self._temp_dirs:
            shutil.rmtree(temp_dir, ignore_errors=True)
        self._temp_dirs.clear()

    def __enter__(self) -> "MediaLoader":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.cleanup()
