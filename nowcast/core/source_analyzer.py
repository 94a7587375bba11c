"""Heuristic guess of where a track's metadata came from (local file vs Spotify)."""
import re
import time
from typing import Any, Optional

from nowcast.models.track import UNKNOWN_ARTIST, UNKNOWN_TRACK

# Each hit adds 20 points towards "VLC"
_LOCAL_PATTERNS = [
    (re.compile(r"\.(mp3|flac|wav|m4a|aac|ogg|wma|opus)$", re.IGNORECASE), "File extension detected"),
    (re.compile(r"[\\/]"), "File path detected"),
    (re.compile(r"Unknown (Track|Artist)", re.IGNORECASE), "Unknown track metadata"),
    (re.compile(r"^\d+$"), "Numeric-only track name"),
    (
        re.compile(
            r"[\u3040-\u309F\u30A0-\u30FF\u4E00-\u9FAF].*\.(mp3|flac|wav|m4a|aac|ogg)",
            re.IGNORECASE,
        ),
        "Japanese file name",
    ),
]

_FEATURING = re.compile(r"(feat\.|featuring|ft\.)", re.IGNORECASE)
_REMIX = re.compile(r"(remix|version|mix|edit)", re.IGNORECASE)


def _is_valid(value: str, unknown: str) -> bool:
    return bool(value and value.strip() and value != unknown)


def analyze_source(
    track_name: str,
    artist_name: str,
    source: Optional[str] = None,
    duration_ms: Optional[int] = None,
    album_name: Optional[str] = None,
) -> dict[str, Any]:
    """Score the pair; the higher of the two scores wins."""
    reasons: list[str] = []
    valid_track = _is_valid(track_name, UNKNOWN_TRACK)
    valid_artist = _is_valid(artist_name, UNKNOWN_ARTIST)

    if not valid_track and not valid_artist:
        quality = "Poor"
        reasons.append("Track and artist name unknown")
    elif not valid_track or not valid_artist:
        quality = "Fair"
        reasons.append("Track or artist name unknown")
    else:
        quality = "Good"

    local_score = 0
    primary_score = 0
    for pattern, reason in _LOCAL_PATTERNS:
        if pattern.search(track_name or "") or pattern.search(artist_name or ""):
            local_score += 20
            reasons.append(reason)

    # Clean-metadata signals only count when nothing file-like was seen
    if local_score == 0:
        if valid_track and valid_artist:
            primary_score += 30
            reasons.append("Clean track metadata")
        if _FEATURING.search(track_name or ""):
            primary_score += 10
            reasons.append("Featuring credit")
        if _REMIX.search(track_name or ""):
            primary_score += 10
            reasons.append("Remix/version credit")
        if 3 < len(track_name or "") < 100 and 2 < len(artist_name or "") < 50:
            primary_score += 15
            reasons.append("Reasonable name lengths")

    if source:
        if "VLC" in source:
            local_score += 40
            reasons.append("Reported by VLC")
        elif "Spotify" in source:
            primary_score += 40
            reasons.append("Reported by Spotify")
    if duration_ms and duration_ms > 0:
        primary_score += 5
        reasons.append("Exact duration available")
    if album_name and album_name != "Unknown Album":
        primary_score += 10
        reasons.append("Album information available")

    if local_score > primary_score:
        detected, confidence = "VLC", min(95, 50 + local_score)
    elif primary_score > local_score:
        detected, confidence = "Spotify", min(95, 50 + primary_score)
    else:
        detected, confidence = "Unknown", 30
        reasons.append("Inconclusive")

    if quality == "Poor":
        confidence = max(30, confidence - 20)
    elif quality == "Fair":
        confidence = max(40, confidence - 10)

    return {
        "detectedSource": detected,
        "confidence": round(confidence),
        "reasons": reasons,
        "metadataQuality": quality,
        "rawData": {
            "vlcScore": local_score,
            "spotifyScore": primary_score,
            "trackName": track_name,
            "artistName": artist_name,
            "hasValidTrackName": valid_track,
            "hasValidArtistName": valid_artist,
        },
    }


def compare_results(results: list[dict[str, Any]]) -> dict[str, Any]:
    """Most confident result, +10 when another result agrees on the source."""
    if not results:
        return {
            "detectedSource": "Unknown",
            "confidence": 0,
            "reasons": ["No analysis data"],
            "metadataQuality": "Poor",
        }
    if len(results) == 1:
        return results[0]
    best = max(results, key=lambda r: r["confidence"])
    agreeing = [r for r in results if r["detectedSource"] == best["detectedSource"]]
    merged = dict(best)
    merged["reasons"] = list(best["reasons"])
    if len(agreeing) > 1:
        merged["confidence"] = min(99, best["confidence"] + 10)
        merged["reasons"].append(f"Multiple analyses agree ({len(agreeing)}/{len(results)})")
    return merged


def analysis_response(track_name: str, artist_name: str, analysis: dict[str, Any]) -> dict[str, Any]:
    """Websocket reply to a {"type": "sourceAnalysis"} request."""
    return {
        "type": "sourceAnalysisResult",
        "trackName": track_name,
        "artistName": artist_name,
        "analysis": analysis,
        "timestamp": int(time.time() * 1000),
    }
