"""Serialization of resolution results for the HTTP and CLI surfaces."""

from typing import Any, Dict, List, Optional

from tunebridge.domain.entities import CatalogEntity, CollectionResult, MatchResult, ParsedLink, Platform

_PLATFORM_LABELS = {
    Platform.SPOTIFY: 'Spotify',
    Platform.APPLE_MUSIC: 'Apple Music',
}


def direction_for(platform: Platform) -> str:
    """Direction label of a resolution starting on ``platform``."""
    if platform == Platform.SPOTIFY:
        return f"{Platform.SPOTIFY.value}→{Platform.APPLE_MUSIC.value}"
    if platform == Platform.APPLE_MUSIC:
        return f"{Platform.APPLE_MUSIC.value}→{Platform.SPOTIFY.value}"
    return platform.value


def entity_to_json(entity: Optional[CatalogEntity]) -> Optional[Dict[str, Any]]:
    if entity is None:
        return None
    return {
        "id": entity.source_id,
        "platform": entity.platform.value,
        "kind": entity.kind.value,
        "name": entity.name,
        "artist": entity.primary_artist,
        "artists": list(entity.artists),
        "album": entity.album,
        "externalCode": entity.external_code,
        "url": entity.canonical_url,
    }


def match_to_json(result: MatchResult) -> Optional[Dict[str, Any]]:
    """Matched target with its tier, or None when nothing matched."""
    if not result.matched:
        return None
    payload = entity_to_json(result.target_entity)
    payload["matchTier"] = result.match_tier.value
    return payload


def link_to_json(link: ParsedLink) -> Dict[str, Any]:
    return {
        "platform": link.platform.value,
        "kind": link.kind.value,
        "id": link.id,
        "url": link.raw,
    }


def create_match_payload(link: ParsedLink, result: MatchResult) -> Dict[str, Any]:
    return {
        "ok": True,
        "direction": direction_for(link.platform),
        "input": entity_to_json(result.source_entity),
        "match": match_to_json(result),
    }


def create_playlist_payload(link: ParsedLink, result: CollectionResult) -> Dict[str, Any]:
    matches: List[Dict[str, Any]] = []
    for item in result.matches:
        matches.append({
            "input": entity_to_json(item.source_entity),
            "match": match_to_json(item),
        })
    return {
        "ok": True,
        "direction": direction_for(link.platform),
        "playlistInfo": {
            "name": result.info.name,
            "description": result.info.description,
            "owner": result.info.owner,
        },
        "matches": matches,
        "trackCount": result.total_count,
        "matchedCount": result.matched_count,
    }


def create_error_payload(message: str) -> Dict[str, Any]:
    return {"ok": False, "error": message}


def _describe(entity: Optional[CatalogEntity]) -> str:
    if entity is None:
        return "-"
    return f"{entity.name} - {entity.primary_artist}" if entity.primary_artist else entity.name


def format_match_report(link: ParsedLink, result: MatchResult) -> str:
    """Human readable summary of a single resolution."""
    source_label = _PLATFORM_LABELS.get(link.platform, link.platform.value)
    lines = [
        f"Direction: {direction_for(link.platform)}",
        f"Input ({source_label}): {_describe(result.source_entity)}",
    ]
    if result.matched:
        lines.append(f"Match [{result.match_tier.value}]: {_describe(result.target_entity)}")
        lines.append(f"URL: {result.target_entity.canonical_url}")
    else:
        lines.append("Match: none")
    return "\n".join(lines)


def format_playlist_report(link: ParsedLink, result: CollectionResult) -> str:
    """Human readable summary of a playlist resolution, one line per track."""
    lines = [
        f"Playlist: {result.info.name} (by {result.info.owner or 'unknown'})",
        f"Direction: {direction_for(link.platform)}",
        f"Matched: {result.matched_count}/{result.total_count}",
        "",
    ]
    for index, item in enumerate(result.items, 1):
        if item.matched:
            lines.append(f"{index:>4}. [{item.match_tier.value}] {_describe(item.source_entity)} -> "
                         f"{item.target_entity.canonical_url}")
        else:
            lines.append(f"{index:>4}. [none] {_describe(item.source_entity)}")
    return "\n".join(lines)
