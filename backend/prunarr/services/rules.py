"""Retention rule evaluation.

Pure functions: given an item's facts, the active rule set and whether the
watch-history integration produced data this cycle, compute when (if ever)
the item becomes due for deletion and which rule decided it.

Precedence: exclusion, then advanced rules in configured order (first
enabled match wins), then the global movie/TV retention.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from prunarr.config import DURATION_PATTERN, NEVER, AdvancedRule, Settings
from prunarr.models.media import MediaItem, MediaType

logger = logging.getLogger(__name__)

_UNITS = {
    "d": timedelta(days=1),
    "h": timedelta(hours=1),
    "m": timedelta(minutes=1),
    "s": timedelta(seconds=1),
}


def parse_duration(value: str) -> Optional[timedelta]:
    """``"30d"`` -> 30 days, ``"never"`` -> None, ``"0d"`` -> zero (due immediately)."""
    value = value.strip().lower()
    if value == NEVER:
        return None
    m = DURATION_PATTERN.match(value)
    if not m:
        raise ValueError(f"invalid duration {value!r}")
    return int(m.group(1)) * _UNITS[m.group(2)]


@dataclass
class Evaluation:
    deletion_date: Optional[datetime]
    reason: str
    rule_name: Optional[str] = None
    rule_kind: str = "global"          # exclusion | user | tag | watched | global
    retention: Optional[str] = None
    reference_event: str = "added"


@dataclass
class _Match:
    """What a matched advanced rule contributes."""
    retention: str
    require_watched: bool
    detail: str


# ── Variant matchers ─────────────────────────────────────────────

def _match_user(rule: AdvancedRule, item: MediaItem) -> Optional[_Match]:
    if not item.is_requested:
        return None
    username = (item.requested_by_username or "").lower()
    email = (item.requested_by_email or "").lower()
    if item.requested_by_user_id is None and not username and not email:
        return None

    for user in rule.users:
        hit = (
            (user.user_id is not None and user.user_id == item.requested_by_user_id)
            or (user.username and username and user.username.lower() == username)
            or (user.email and email and user.email.lower() == email)
        )
        if not hit:
            continue
        who = user.username or user.email or f"user {user.user_id}"
        return _Match(
            retention=user.retention or rule.retention,
            require_watched=(
                user.require_watched if user.require_watched is not None else rule.require_watched
            ),
            detail=f"requested by {who}",
        )
    return None


def _match_tag(rule: AdvancedRule, item: MediaItem) -> Optional[_Match]:
    wanted = rule.tag.lower()
    if any(t.lower() == wanted for t in item.tags):
        return _Match(rule.retention, rule.require_watched, f"tag: {rule.tag}")
    return None


def _match_watched(rule: AdvancedRule, item: MediaItem) -> Optional[_Match]:
    if item.has_watch_history:
        return _Match(rule.retention, rule.require_watched, "watched")
    return None


_MATCHERS: dict[str, Callable[[AdvancedRule, MediaItem], Optional[_Match]]] = {
    "user": _match_user,
    "tag": _match_tag,
    "watched": _match_watched,
}


# ── Evaluation ───────────────────────────────────────────────────

def global_retention(settings: Settings, media_type: MediaType) -> str:
    if media_type == MediaType.MOVIE:
        return settings.rules.movie_retention
    return settings.rules.tv_retention


def _deletion_date(reference: Optional[datetime], retention: str) -> Optional[datetime]:
    duration = parse_duration(retention)
    if duration is None or reference is None:
        return None
    return reference + duration


def evaluate(item: MediaItem, settings: Settings, history_available: bool) -> Evaluation:
    """Decide the deletion date for one item. Exactly one rule decides."""
    if item.excluded:
        return Evaluation(None, f"excluded: {item.exclusion_reason or 'no reason given'}", rule_kind="exclusion")

    for rule in settings.advanced_rules:
        if not rule.enabled:
            continue
        match = _MATCHERS[rule.type](rule, item)
        if match is None:
            continue

        if match.require_watched and not (history_available and item.has_watch_history):
            return Evaluation(
                None,
                f"not watched yet ({rule.type} rule '{rule.name}' requires watched)",
                rule_name=rule.name,
                rule_kind=rule.type,
                retention=match.retention,
            )

        if rule.type == "watched" or match.require_watched:
            reference, event = item.last_watched, "last watched"
        else:
            reference, event = item.added_at, "added"

        date = _deletion_date(reference, match.retention)
        return Evaluation(
            date,
            f"{rule.type} rule '{rule.name}' ({match.detail}) retention {match.retention}",
            rule_name=rule.name,
            rule_kind=rule.type,
            retention=match.retention,
            reference_event=event,
        )

    retention = global_retention(settings, item.media_type)
    kind = "movie" if item.media_type == MediaType.MOVIE else "tv"
    if item.added_at is None:
        logger.debug(f"{item.id}: no added timestamp, cannot schedule")
    return Evaluation(
        _deletion_date(item.added_at, retention),
        f"global {kind} retention {retention}",
        rule_kind="global",
        retention=retention,
    )


def apply_evaluation(item: MediaItem, evaluation: Evaluation) -> None:
    item.deletion_date = evaluation.deletion_date
    item.deletion_reason = evaluation.reason
    item.rule_name = evaluation.rule_name
    item.rule_kind = evaluation.rule_kind
    item.rule_retention = evaluation.retention
    item.reference_event = evaluation.reference_event


def stamp(item: MediaItem, settings: Settings, history_available: bool) -> Evaluation:
    evaluation = evaluate(item, settings, history_available)
    apply_evaluation(item, evaluation)
    return evaluation


# ── Windows ──────────────────────────────────────────────────────

def is_overdue(item: MediaItem, now: datetime) -> bool:
    return not item.excluded and item.deletion_date is not None and item.deletion_date <= now


def is_leaving_soon(item: MediaItem, now: datetime, leaving_soon_days: int) -> bool:
    """Due within the preview window but not yet overdue."""
    if item.excluded or item.deletion_date is None:
        return False
    return now < item.deletion_date <= now + timedelta(days=leaving_soon_days)


# ── Human-readable explanation ───────────────────────────────────

def explain_deletion(item: MediaItem, now: datetime) -> str:
    """One-sentence explanation shown next to scheduled items."""
    noun = "movie" if item.media_type == MediaType.MOVIE else "TV show"
    base = item.last_watched if item.reference_event == "last watched" else item.added_at
    age = f"{(now - base).days} days ago" if base else "at an unknown time"
    opening = f"This {noun} was {item.reference_event} {age}."

    if item.deletion_date is None:
        return f"{opening} It is not scheduled for deletion ({item.deletion_reason})."

    due = item.deletion_date <= now
    if item.rule_kind == "global":
        policy = f"The retention policy for {noun}s is {item.rule_retention}"
    else:
        verb = "matched" if due else "matches"
        policy = f"It {verb} the '{item.rule_name}' {item.rule_kind} rule with {item.rule_retention} retention"

    if due:
        return f"{opening} {policy} and is now scheduled for deletion."
    return f"{opening} {policy}, meaning it will be deleted after that period of inactivity."
