"""Record-linkage service response data models.

This module defines data models for token issuance responses, identity
resolution results and pseudonymization pass outcomes.
"""

from collections.abc import Hashable
from dataclasses import dataclass, field
from enum import Enum

from pseudonym_handler.models.patient import IdentifyingData


class TokenPurpose(Enum):
    """Operation a token is requested for."""

    CREATE = "CREATE"
    READ = "READ"


@dataclass
class CreateTokenBatch:
    """Single-use tokens issued for identity submission.

    Attributes:
        use_callback: Whether redemption results are callback-mediated
        token_urls: One token URL per requested record, in request order
    """

    use_callback: bool
    token_urls: list[str] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.token_urls)


@dataclass
class ReadToken:
    """Multi-use token issued for a batch of pseudonyms.

    Attributes:
        url: Read URL; empty when none of the pseudonyms can be read
        invalid_pseudonyms: Pseudonyms the service already knows to be invalid
    """

    url: str
    invalid_pseudonyms: list[str] = field(default_factory=list)

    @property
    def is_readable(self) -> bool:
        return bool(self.url)


@dataclass(frozen=True)
class ResolvedIdentity:
    """Identity recovered for one pseudonym.

    Attributes:
        idat: Reconstructed identifying data
        tentative: Service flag for an ambiguous match
    """

    idat: IdentifyingData
    tentative: bool = False


@dataclass
class DepseudonymizationResult:
    """Result of exchanging pseudonyms for identities.

    Attributes:
        requested: Distinct pseudonyms in first-seen order
        depseudonymized: Pseudonym to resolved identity
        invalid: Pseudonyms reported invalid when the read token was issued
    """

    requested: list[str] = field(default_factory=list)
    depseudonymized: dict[str, ResolvedIdentity] = field(default_factory=dict)
    invalid: list[str] = field(default_factory=list)

    @property
    def unmatched(self) -> list[str]:
        """Pseudonyms that were neither resolved nor reported invalid."""
        invalid = set(self.invalid)
        return [
            pseudonym for pseudonym in self.requested
            if pseudonym not in self.depseudonymized and pseudonym not in invalid
        ]


@dataclass
class PseudonymizationOutcome:
    """Keys produced by one pseudonymization or resolution pass.

    Attributes:
        pseudonymized: Keys that reached PSEUDONYMIZED
        conflicts: Keys left in a failure state (IDAT_INVALID, TOKEN_INVALID, IDAT_CONFLICT)
        failed: Keys whose submission got an undefined response; records untouched
        cancelled: Keys skipped because the caller cancelled; records untouched
    """

    pseudonymized: list[Hashable] = field(default_factory=list)
    conflicts: list[Hashable] = field(default_factory=list)
    failed: list[Hashable] = field(default_factory=list)
    cancelled: list[Hashable] = field(default_factory=list)

    def merge(self, other: "PseudonymizationOutcome") -> "PseudonymizationOutcome":
        """Return a new outcome with other's keys appended to this one."""
        return PseudonymizationOutcome(
            pseudonymized=self.pseudonymized + other.pseudonymized,
            conflicts=self.conflicts + other.conflicts,
            failed=self.failed + other.failed,
            cancelled=self.cancelled + other.cancelled,
        )
