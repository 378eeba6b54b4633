"""Stateless match rules deciding whether a live stream interests a subscriber.

Rules are conjunctive and evaluated in a fixed order, stopping at the first
failure: minimum viewers, required tags, required language.
"""

from dataclasses import dataclass

from twitch_notifier.catalog.schemas import LiveItem
from twitch_notifier.subscriptions.schemas import MatchFilter


@dataclass(frozen=True)
class MatchResult:
    """Outcome of evaluating one filter against one live item.

    ``reason`` names the first failing rule, or is empty on a match.
    """

    matched: bool
    reason: str = ""

    def __bool__(self) -> bool:
        return self.matched


_MATCHED = MatchResult(matched=True)


def evaluate(item: LiveItem, match_filter: MatchFilter) -> MatchResult:
    """Evaluate ``match_filter`` against ``item``.

    An unset (or zero) minimum viewers threshold still requires one viewer.
    Tag and language comparisons ignore case.
    """
    threshold = match_filter.minimum_viewers or 1
    if item.viewer_count < threshold:
        return MatchResult(
            False,
            f"below minimum viewers ({item.viewer_count} < {threshold})",
        )

    if match_filter.required_tags:
        item_tags = {tag.casefold() for tag in item.tags}
        missing = [
            tag for tag in match_filter.required_tags
            if tag.casefold() not in item_tags
        ]
        if missing:
            return MatchResult(False, f"missing required tags: {', '.join(missing)}")

    if match_filter.required_language:
        if item.language.casefold() != match_filter.required_language.casefold():
            return MatchResult(
                False,
                f"language {item.language or '?'} != {match_filter.required_language}",
            )

    return _MATCHED


def matches(item: LiveItem, match_filter: MatchFilter) -> bool:
    """True if ``item`` satisfies every rule in ``match_filter``."""
    return evaluate(item, match_filter).matched
