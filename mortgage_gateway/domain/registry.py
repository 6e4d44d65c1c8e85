"""Parameter registry - loan policy constants, rate schedule and originator access list"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Protocol, Set

from mortgage_gateway.domain.exceptions import Unauthorized
from mortgage_gateway.domain.interest import EXTENSION_PERIOD
from mortgage_gateway.utils.time_utils import days


class AuthorizationAdapter(Protocol):
    """Decides whether an identity may originate loans"""

    def is_authorized_originator(self, identity: str) -> bool:
        ...


@dataclass(frozen=True)
class PolicyParameters:
    """Global loan policy. Percentages are whole percent, fees per-mille, durations seconds."""

    min_down_payment: int = 3
    max_down_payment: int = 85
    min_duration: int = days(365)
    max_duration: int = days(5475)
    default_fee: int = 25
    max_extensions: int = 3
    extension_period: int = EXTENSION_PERIOD


# Duration-tiered interest schedule: (max duration inclusive, per-mille per year)
RATE_TIERS = [
    (days(365), 25),
    (days(1825), 45),
]
LONG_TERM_RATE = 70


def interest_rate_for(duration: int) -> int:
    """
    Interest rate for a contracted duration.

    Tiers:
    - up to 1 year:  25
    - up to 5 years: 45
    - longer:        70
    """
    for max_duration, rate in RATE_TIERS:
        if duration <= max_duration:
            return rate
    return LONG_TERM_RATE


class ParameterRegistry:
    """
    Policy constants plus the set of identities allowed to originate loans.

    Only the administrator identity may change the originator set. The
    registry is passed to the engine explicitly; there is no global instance.
    """

    def __init__(
        self,
        admin: str,
        originators: Iterable[str] = (),
        policy: PolicyParameters | None = None,
    ):
        self.admin = admin
        self.policy = policy or PolicyParameters()
        self._originators: Set[str] = set(originators)

    def interest_rate_for(self, duration: int) -> int:
        return interest_rate_for(duration)

    def is_authorized_originator(self, identity: str) -> bool:
        return identity in self._originators

    def set_authorized_originator(self, caller: str, identity: str, allowed: bool) -> None:
        """Grant or revoke origination rights. Raises Unauthorized unless caller is the admin."""
        if caller != self.admin:
            raise Unauthorized(f"{caller} is not the registry administrator")

        if allowed:
            self._originators.add(identity)
        else:
            self._originators.discard(identity)

        logging.info(
            "Originator authorization changed",
            extra={"identity": identity, "allowed": allowed, "changed_by": caller},
        )

    def constants(self) -> Dict[str, int]:
        """Policy constants keyed by their canonical names"""
        p = self.policy
        return {
            "MIN_DOWNPAYMENT": p.min_down_payment,
            "MAX_DOWNPAYMENT": p.max_down_payment,
            "MIN_DURATION": p.min_duration,
            "MAX_DURATION": p.max_duration,
            "DEFAULT_FEE": p.default_fee,
            "MAX_EXTENSIONS": p.max_extensions,
            "EXTENSION_PERIOD": p.extension_period,
        }
