"""Domain models for community members, invitation links and referral stats.

All of these are derived values: they are rebuilt from raw upstream records
on every aggregation and never mutated afterwards.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class Person:
    """A normalized reference to another member (inviter, link creator)."""
    id: str
    name: str
    email: str = ""


@dataclass(frozen=True)
class Member:
    """A community member normalized from an untrusted raw record."""
    id: str
    name: str
    email: str = ""
    created_at: str = ""
    invited_by: Optional[Person] = None
    invitation_link_id: Optional[str] = None


@dataclass(frozen=True)
class BrokerDetail:
    """A member whose invites were used, with the number of referrals."""
    broker_id: str
    broker_name: str
    referred_count: int


@dataclass(frozen=True)
class BrokerShare:
    """A broker's referrals as a percentage of all members."""
    broker: BrokerDetail
    percentage: float


@dataclass(frozen=True)
class InvitationLink:
    """A shareable invite URL and the members that joined through it."""
    id: str
    url: str
    created_at: str = ""
    created_by: Optional[Person] = None
    expires_at: Optional[str] = None
    is_active: bool = False
    usage_count: int = 0
    max_uses: Optional[int] = None
    # Often empty: the upstream schema rarely exposes this relation.
    joined_members: Tuple[Member, ...] = ()

    @property
    def joined_count(self) -> int:
        """Joined members if known, otherwise the upstream usage counter."""
        return len(self.joined_members) or self.usage_count


@dataclass(frozen=True)
class SummaryStats:
    """Aggregate statistics computed from one full record set."""
    total_members: int = 0
    total_brokers: int = 0
    total_invitation_links: int = 0
    broker_details: Tuple[BrokerDetail, ...] = ()
    invitation_links: Tuple[InvitationLink, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class InvitationLinkSummary:
    """Roll-up of the invitation links found in a SummaryStats."""
    total_links: int
    active_links: int
    inactive_links: int
    total_members_through_links: int
    top_links: Tuple[InvitationLink, ...] = field(default_factory=tuple)

    @property
    def average_members_per_link(self) -> float:
        if not self.total_links:
            return 0.0
        return self.total_members_through_links / self.total_links
