"""Conflict resolver.

Runs exactly one resolution pass over records left in a failure state.
Records whose token is gone are re-tokenized; the others are resubmitted
with the token they retained. Looping until everything resolves is left
to the caller.
"""

import logging
import threading
from collections.abc import Hashable, Iterable
from typing import Optional

from pseudonym_handler.linkage.pseudonymization import PseudonymizationEngine
from pseudonym_handler.models.patient import PatientRecordSet, PatientStatus
from pseudonym_handler.models.responses import PseudonymizationOutcome

logger = logging.getLogger(__name__)


class ConflictResolver:
    """Retries or re-tokenizes records in IDAT_INVALID, TOKEN_INVALID or IDAT_CONFLICT."""

    def __init__(self, engine: PseudonymizationEngine) -> None:
        self.engine = engine

    def resolve(
        self,
        records: PatientRecordSet,
        keys: Iterable[Hashable],
        cancel_event: Optional[threading.Event] = None,
    ) -> PseudonymizationOutcome:
        """Run one resolution pass.

        Args:
            records: Owned record set
            keys: Keys of records in a failure state
            cancel_event: Set by the caller to stop pending redemptions

        Returns:
            Combined outcome of re-tokenization and resubmission

        Raises:
            ValueError: If a key refers to a record that is not in a failure state
            TransportUnavailableError: If the linkage service is unreachable
        """
        retokenize: list[Hashable] = []
        resubmit: list[Hashable] = []

        for key in keys:
            record = records.get(key)
            status = record.status
            if status is PatientStatus.TOKEN_INVALID:
                retokenize.append(key)
            elif status in (PatientStatus.IDAT_CONFLICT, PatientStatus.IDAT_INVALID):
                if record.active_token is None:
                    logger.debug(f"Record {key} in {status.value} holds no token, re-tokenizing")
                    retokenize.append(key)
                else:
                    resubmit.append(key)
            elif status in (
                PatientStatus.CREATED,
                PatientStatus.PSEUDONYMIZED,
                PatientStatus.PROCESSED,
                PatientStatus.NOT_PROCESSED,
                PatientStatus.FOUND,
                PatientStatus.NOT_FOUND,
            ):
                raise ValueError(
                    f"Record {key} is in {status.value}, not a failure state"
                )
            else:
                raise ValueError(f"Unhandled patient status {status!r}")

        logger.info(
            f"Resolving {len(retokenize) + len(resubmit)} record(s): "
            f"{len(retokenize)} re-tokenized, {len(resubmit)} resubmitted"
        )

        outcome = self.engine.create_pseudonyms(records, retokenize, cancel_event)
        return outcome.merge(self.engine.resubmit(records, resubmit, cancel_event))
