"""
Export service for the supported playlist file formats.

Turns the accumulated playlist records into a single downloadable file.
Text formats travel over the channel as UTF-8 strings, binary formats as
base64.
"""
import base64
import csv
import io
import json
import re
import zipfile
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from playlist_export.core.exceptions import ExportGenerationError
from playlist_export.core.logging import get_logger

logger = get_logger(__name__)


class ExportFormat(str, Enum):
    """Supported export formats."""
    TXT = "txt"
    JSON = "json"
    CSV = "csv"
    ZIP = "zip"


@dataclass(frozen=True)
class ExportFile:
    """Generated export ready for delivery."""
    content: str
    file_type: ExportFormat
    encoding: str
    filename: str

    @property
    def is_binary(self) -> bool:
        return self.encoding == "base64"


def _track_of(item: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    # Playlist items wrap the track; local files and removed tracks may be null
    track = item.get("track") if isinstance(item, dict) else None
    return track if isinstance(track, dict) else None


def _artists(track: Dict[str, Any]) -> str:
    return ", ".join(a.get("name", "") for a in track.get("artists") or [] if a)


def _records(playlists: List[Any]) -> List[Dict[str, Any]]:
    # The playlists listing may contain null entries
    return [p for p in playlists if isinstance(p, dict)]


def _safe_filename(name: str, fallback: str) -> str:
    cleaned = re.sub(r"[^\w\- ]+", "_", name or "").strip()
    return cleaned or fallback


class ExportService:
    """
    Service for exporting playlists in various formats.
    """

    def __init__(self):
        self.logger = get_logger(self.__class__.__name__)
        self._generators: Dict[ExportFormat, Callable[[List[Dict[str, Any]]], bytes]] = {
            ExportFormat.TXT: self._to_txt,
            ExportFormat.JSON: self._to_json,
            ExportFormat.CSV: self._to_csv,
            ExportFormat.ZIP: self._to_zip,
        }

    @property
    def supported_formats(self) -> List[ExportFormat]:
        return list(self._generators)

    def generate(
        self,
        playlists: List[Dict[str, Any]],
        export_format: ExportFormat,
    ) -> ExportFile:
        """
        Export playlists in the specified format.

        Args:
            playlists: Playlist records in upstream order
            export_format: Target export format

        Returns:
            The generated file

        Raises:
            ExportGenerationError: If the format is unsupported or generation fails
        """
        export_format = ExportFormat(export_format)
        generator = self._generators.get(export_format)
        if generator is None:
            raise ExportGenerationError(
                f"Export format {export_format.value} not supported",
                export_format=export_format.value,
            )

        try:
            raw = generator(playlists)
        except Exception as e:
            self.logger.error("export_generation_failed", export_format=export_format.value, error=str(e))
            raise ExportGenerationError(str(e), export_format=export_format.value) from e

        stamp = datetime.now(timezone.utc).strftime("%Y%m%d")
        filename = f"spotify-playlists-{stamp}.{export_format.value}"

        if export_format == ExportFormat.ZIP:
            content, encoding = base64.b64encode(raw).decode("ascii"), "base64"
        else:
            content, encoding = raw.decode("utf-8"), "utf-8"

        self.logger.info(
            "export_generated",
            export_format=export_format.value,
            playlists=len(playlists),
            size=len(raw),
        )
        return ExportFile(
            content=content,
            file_type=export_format,
            encoding=encoding,
            filename=filename,
        )

    def _to_json(self, playlists: List[Dict[str, Any]]) -> bytes:
        return json.dumps(playlists, indent=2, ensure_ascii=False).encode("utf-8")

    def _playlist_lines(self, playlist: Dict[str, Any]) -> List[str]:
        lines = [playlist.get("name") or "Untitled playlist"]
        owner = (playlist.get("owner") or {}).get("display_name")
        if owner:
            lines.append(f"by {owner}")
        lines.append("")
        for index, item in enumerate(playlist.get("tracks") or [], start=1):
            if not isinstance(item, dict):
                continue
            track = _track_of(item)
            if track is None:
                continue
            lines.append(f"{index}. {_artists(track)} - {track.get('name', '')}")
        return lines

    def _to_txt(self, playlists: List[Dict[str, Any]]) -> bytes:
        blocks = ["\n".join(self._playlist_lines(p)) for p in _records(playlists)]
        return ("\n\n".join(blocks) + "\n").encode("utf-8")

    def _to_csv(self, playlists: List[Dict[str, Any]]) -> bytes:
        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(["playlist", "position", "track", "artists", "album", "added_at", "spotify_uri"])
        for playlist in _records(playlists):
            name = playlist.get("name", "")
            items = playlist.get("tracks")
            if not isinstance(items, list) or not items:
                writer.writerow([name, "", "", "", "", "", ""])
                continue
            for position, item in enumerate(items, start=1):
                track = _track_of(item)
                if track is None:
                    continue
                writer.writerow([
                    name,
                    position,
                    track.get("name", ""),
                    _artists(track),
                    (track.get("album") or {}).get("name", ""),
                    item.get("added_at", ""),
                    track.get("uri", ""),
                ])
        return buffer.getvalue().encode("utf-8")

    def _to_zip(self, playlists: List[Dict[str, Any]]) -> bytes:
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            used = set()
            for index, playlist in enumerate(_records(playlists), start=1):
                base = _safe_filename(playlist.get("name", ""), f"playlist-{index}")
                name = base
                suffix = 2
                # Playlist names are not unique
                while name in used:
                    name = f"{base}-{suffix}"
                    suffix += 1
                used.add(name)
                archive.writestr(f"{name}.txt", "\n".join(self._playlist_lines(playlist)) + "\n")
            archive.writestr("playlists.json", self._to_json(playlists))
        return buffer.getvalue()
