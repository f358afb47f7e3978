"""Folds raw upstream records into referral statistics.

The upstream schema is inconsistently documented, so every lookup that
depends on it (who invited a member, who joined through a link) goes through
an ordered table of extractor functions. The first extractor that yields a
usable value wins. Everything here is pure: the same records always produce
an equal SummaryStats.
"""

from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from circlestats.domain.models.common import RawRecord
from circlestats.domain.models.community import (
    BrokerDetail, BrokerShare, InvitationLink, InvitationLinkSummary,
    Member, Person, SummaryStats,
)

UNKNOWN_NAME = "Unknown"

Extractor = Callable[[Mapping[str, Any]], Any]


# --- Field helpers ---

def _text(value: Any) -> str:
    if value is None or isinstance(value, (dict, list)):
        return ""
    return str(value).strip()


def _usable_id(value: Any) -> Optional[str]:
    """Returns the id as a non-empty string, or None if it cannot be one."""
    if isinstance(value, bool):
        return None
    return _text(value) or None


def _optional_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "active")
    return bool(value)


def resolve_display_name(person: Mapping[str, Any]) -> str:
    """name, display_name, first + last name, email, then 'Unknown'."""
    candidates = (
        person.get("name"),
        person.get("display_name"),
        f"{_text(person.get('first_name'))} {_text(person.get('last_name'))}",
        person.get("email"),
    )
    for candidate in candidates:
        name = _text(candidate)
        if name:
            return name
    return UNKNOWN_NAME


def first_match(extractors: Sequence[Extractor], record: Mapping[str, Any]) -> Any:
    """Runs extractors in order and returns the first truthy result."""
    for extract in extractors:
        value = extract(record)
        if value:
            return value
    return None


# --- Inviter resolution ---

def nested_inviter(field: str) -> Extractor:
    """Inviter given as an object, e.g. {"invited_by": {"id": 1, "name": ...}}."""
    def extract(record: Mapping[str, Any]) -> Optional[Person]:
        inviter = record.get(field)
        if not isinstance(inviter, dict):
            return None
        inviter_id = _usable_id(inviter.get("id"))
        if inviter_id is None:
            return None
        return Person(id=inviter_id, name=resolve_display_name(inviter), email=_text(inviter.get("email")))
    extract.__name__ = f"nested_inviter_{field}"
    return extract


def flat_inviter(id_field: str, name_field: str) -> Extractor:
    """Inviter given as sibling fields, e.g. inviter_id / inviter_name."""
    def extract(record: Mapping[str, Any]) -> Optional[Person]:
        inviter_id = _usable_id(record.get(id_field))
        if inviter_id is None:
            return None
        return Person(id=inviter_id, name=_text(record.get(name_field)) or UNKNOWN_NAME)
    extract.__name__ = f"flat_inviter_{id_field}"
    return extract


INVITER_EXTRACTORS: Tuple[Extractor, ...] = (
    nested_inviter("invited_by"),
    nested_inviter("inviter"),
    nested_inviter("referrer"),
    nested_inviter("inviter_user"),
    flat_inviter("inviter_id", "inviter_name"),
    flat_inviter("invited_by_id", "invited_by_name"),
    flat_inviter("referrer_id", "referrer_name"),
)


def resolve_inviter(record: Any) -> Optional[Person]:
    if not isinstance(record, Mapping):
        return None
    return first_match(INVITER_EXTRACTORS, record)


# --- Joined members resolution ---

JOINED_MEMBER_FIELDS = ("members", "joined_members", "users", "invited_users", "used_by", "used_by_users")


def list_field(field: str) -> Extractor:
    def extract(record: Mapping[str, Any]) -> Optional[List[Any]]:
        value = record.get(field)
        return value if isinstance(value, list) and value else None
    extract.__name__ = f"list_field_{field}"
    return extract


JOINED_MEMBER_EXTRACTORS: Tuple[Extractor, ...] = tuple(list_field(f) for f in JOINED_MEMBER_FIELDS)


def resolve_joined_members(record: Mapping[str, Any]) -> List[Any]:
    return first_match(JOINED_MEMBER_EXTRACTORS, record) or []


# --- Normalization ---

def _person(value: Any) -> Optional[Person]:
    if not isinstance(value, dict):
        return None
    person_id = _usable_id(value.get("id"))
    if person_id is None:
        return None
    return Person(id=person_id, name=resolve_display_name(value), email=_text(value.get("email")))


def normalize_member(raw: Any) -> Member:
    """Builds a Member from whatever the upstream put in a member slot."""
    if not isinstance(raw, dict):
        # Some link payloads list bare member ids
        return Member(id=_usable_id(raw) or "", name=UNKNOWN_NAME)

    link = raw.get("invitation_link")
    if isinstance(link, dict):
        link_id = _usable_id(link.get("id"))
    else:
        link_id = _usable_id(raw.get("invitation_link_id"))

    return Member(
        id=_text(raw.get("id")) or _text(raw.get("user_id")),
        name=resolve_display_name(raw),
        email=_text(raw.get("email")),
        created_at=_text(raw.get("created_at")) or _text(raw.get("joined_at")),
        invited_by=resolve_inviter(raw),
        invitation_link_id=link_id,
    )


def normalize_invitation_link(raw: Any) -> InvitationLink:
    """Builds an InvitationLink with defensive defaults for missing fields."""
    record: Mapping[str, Any] = raw if isinstance(raw, dict) else {}
    url = next(
        (_text(record.get(f)) for f in ("url", "invitation_url", "link", "share_url") if _text(record.get(f))),
        "",
    )
    usage_count = next(
        (n for n in (_optional_int(record.get(f)) for f in ("usage_count", "uses_count", "members_count"))
         if n is not None and n >= 0),
        0,
    )
    is_active = record.get("is_active", record.get("active"))
    return InvitationLink(
        id=_text(record.get("id")),
        url=url,
        created_at=_text(record.get("created_at")),
        created_by=_person(record.get("created_by")),
        expires_at=_text(record.get("expires_at")) or None,
        is_active=_as_bool(is_active),
        usage_count=usage_count,
        max_uses=_optional_int(record.get("max_uses")),
        joined_members=tuple(normalize_member(m) for m in resolve_joined_members(record)),
    )


# --- Aggregation ---

def rank_brokers(buckets: Mapping[str, Tuple[str, int]]) -> Tuple[BrokerDetail, ...]:
    """Orders brokers by referral count, ties by first-seen order.

    `buckets` must iterate in first-seen order (dicts do).
    """
    ranked = sorted(
        enumerate(buckets.items()),
        key=lambda item: (-item[1][1][1], item[0]),
    )
    return tuple(
        BrokerDetail(broker_id=broker_id, broker_name=name, referred_count=count)
        for _, (broker_id, (name, count)) in ranked
    )


def aggregate(
    member_records: Sequence[RawRecord],
    invitation_link_records: Sequence[RawRecord] = (),
) -> SummaryStats:
    """Computes SummaryStats from the full member and link record sets.

    Members without a resolvable inviter count towards `total_members` but
    are not attributed to any broker. A broker keeps the name seen on its
    first referral.
    """
    buckets: Dict[str, Tuple[str, int]] = {}
    for record in member_records:
        inviter = resolve_inviter(record)
        if inviter is None:
            continue
        name, count = buckets.get(inviter.id, (inviter.name, 0))
        buckets[inviter.id] = (name, count + 1)

    links = tuple(normalize_invitation_link(r) for r in invitation_link_records)
    return SummaryStats(
        total_members=len(member_records),
        total_brokers=len(buckets),
        total_invitation_links=len(links),
        broker_details=rank_brokers(buckets),
        invitation_links=links,
    )


def broker_shares(stats: SummaryStats) -> List[BrokerShare]:
    """Each broker's referrals as a percentage of all members."""
    total = stats.total_members
    return [
        BrokerShare(broker=b, percentage=(b.referred_count / total * 100) if total else 0.0)
        for b in stats.broker_details
    ]


def summarize_invitation_links(stats: SummaryStats, top: int = 5) -> InvitationLinkSummary:
    """Roll-up of link activity with the best performing links first."""
    links = stats.invitation_links
    active = sum(1 for link in links if link.is_active)
    performing = [link for link in links if link.joined_count > 0]
    ranked = sorted(enumerate(performing), key=lambda item: (-item[1].joined_count, item[0]))
    return InvitationLinkSummary(
        total_links=len(links),
        active_links=active,
        inactive_links=len(links) - active,
        total_members_through_links=sum(link.joined_count for link in links),
        top_links=tuple(link for _, link in ranked[:top]),
    )
