import pytest

from tunebridge.domain.entities import (
    CatalogEntity, CollectionResult, LinkKind, MatchResult, MatchTier, ParsedLink, PlaylistInfo, Platform
)


def _entity(source_id: str) -> CatalogEntity:
    return CatalogEntity(name="Song", primary_artist="Artist", source_id=source_id)


class TestMatchResult:
    """Tests for the target/tier invariant."""

    def test_unmatched_result_has_no_target(self):
        result = MatchResult(source_entity=_entity("a"))
        assert result.match_tier is MatchTier.NONE
        assert result.target_entity is None
        assert not result.matched

    def test_target_without_tier_is_rejected(self):
        with pytest.raises(ValueError):
            MatchResult(source_entity=_entity("a"), target_entity=_entity("b"), match_tier=MatchTier.NONE)

    def test_tier_without_target_is_rejected(self):
        with pytest.raises(ValueError):
            MatchResult(source_entity=_entity("a"), target_entity=None, match_tier=MatchTier.TEXT)


class TestCollectionResult:
    """Tests for derived collection counters."""

    def test_matched_count_counts_only_matched_items(self):
        items = [
            MatchResult(_entity("1"), _entity("x1"), MatchTier.EXTERNAL_CODE),
            MatchResult(_entity("2")),
            MatchResult(_entity("3"), _entity("x3"), MatchTier.TEXT),
        ]
        result = CollectionResult(info=PlaylistInfo(name="P"), items=items, total_count=3)

        assert result.total_count == 3
        assert result.matched_count == 2
        assert [m.source_entity.source_id for m in result.matches] == ["1", "3"]


class TestParsedLink:
    """Tests for ParsedLink.is_resolvable."""

    @pytest.mark.parametrize("link,expected", [
        (ParsedLink(Platform.SPOTIFY, LinkKind.SONG, "abc"), True),
        (ParsedLink(Platform.APPLE_MUSIC, LinkKind.ALBUM, "123"), True),
        (ParsedLink(Platform.SPOTIFY, LinkKind.PLAYLIST, "p1"), True),
        (ParsedLink(Platform.SPOTIFY, LinkKind.UNKNOWN, None), False),
        (ParsedLink(Platform.SPOTIFY, LinkKind.SONG, None), False),
        (ParsedLink(Platform.UNKNOWN, LinkKind.UNKNOWN, None), False),
        (ParsedLink(Platform.INVALID, LinkKind.INVALID, None), False),
    ])
    def test_is_resolvable(self, link, expected):
        assert link.is_resolvable is expected
