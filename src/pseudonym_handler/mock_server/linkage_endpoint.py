"""Mock record-linkage endpoints for testing.

Plays both roles the client talks to: the token broker (token issuing and
medical data storage) and the linkage service (token redemption). All state
lives in memory and is lost on restart.

Redemption semantics:
    - create tokens are single-use; they survive 400 and 409 answers
    - read tokens are multi-use until they expire
    - an exact identity match reuses the existing pseudonym
    - same lastname and birthdate with a different firstname is a conflict
      (409) unless the submission carries sureness, which issues a new
      tentative pseudonym
"""

import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from flask import Blueprint, Response, jsonify, request

from .config import MockServerConfig

API_VERSION_HEADER = "mainzellisteApiVersion"

CREATE = "create"
READ = "read"

# Create Blueprint
linkage_bp = Blueprint("linkage", __name__)

linkage_logger = logging.getLogger("pseudonym_handler.mock_server.linkage")

# Store config reference
_config: MockServerConfig | None = None


@dataclass
class MockToken:
    """Token issued by the mock broker."""

    token_id: str
    kind: str
    issued_at: float
    pseudonyms: list[str] = field(default_factory=list)


@dataclass
class MockPatient:
    """Identity registered with the mock linkage service."""

    pseudonym: str
    firstname: str
    lastname: str
    birthdate: date
    tentative: bool = False


class LinkageState:
    """In-memory tokens, patients and medical data. Thread-safe."""

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.tokens: dict[str, MockToken] = {}
        self.patients: dict[str, MockPatient] = {}
        # Callback token id -> pseudonym it stands for
        self.aliases: dict[str, str] = {}
        self.mdat: dict[str, str] = {}

    def reset(self) -> None:
        with self.lock:
            self.tokens.clear()
            self.patients.clear()
            self.aliases.clear()
            self.mdat.clear()

    def issue_token(self, kind: str, pseudonyms: Optional[list[str]] = None) -> MockToken:
        with self.lock:
            token = MockToken(
                token_id=uuid.uuid4().hex,
                kind=kind,
                issued_at=time.monotonic(),
                pseudonyms=list(pseudonyms or []),
            )
            self.tokens[token.token_id] = token
            return token

    def lookup_token(self, token_id: Optional[str], kind: str, ttl_seconds: int) -> Optional[MockToken]:
        """Return a live token of the given kind, dropping it if expired."""
        if not token_id:
            return None
        with self.lock:
            token = self.tokens.get(token_id)
            if token is None or token.kind != kind:
                return None
            if ttl_seconds and time.monotonic() - token.issued_at > ttl_seconds:
                del self.tokens[token_id]
                linkage_logger.info(f"Token {token_id} expired")
                return None
            return token

    def revoke_token(self, token_id: str) -> bool:
        with self.lock:
            return self.tokens.pop(token_id, None) is not None

    def revoke_all(self, kind: Optional[str] = None) -> int:
        """Invalidate every token (of one kind); returns the number revoked."""
        with self.lock:
            doomed = [t for t, token in self.tokens.items() if kind is None or token.kind == kind]
            for token_id in doomed:
                del self.tokens[token_id]
            return len(doomed)

    def resolve(self, pseudonym: str) -> Optional[MockPatient]:
        with self.lock:
            return self.patients.get(self.aliases.get(pseudonym, pseudonym))

    def register(
        self,
        firstname: str,
        lastname: str,
        birthdate: date,
        sureness: bool,
    ) -> Optional[MockPatient]:
        """Register an identity; None means it conflicts with an existing patient."""
        with self.lock:
            similar = False
            for patient in self.patients.values():
                if patient.lastname != lastname or patient.birthdate != birthdate:
                    continue
                if patient.firstname == firstname:
                    return patient
                similar = True

            if similar and not sureness:
                return None

            pseudonym = self._new_pseudonym()
            patient = MockPatient(
                pseudonym=pseudonym,
                firstname=firstname,
                lastname=lastname,
                birthdate=birthdate,
                tentative=similar,
            )
            self.patients[pseudonym] = patient
            return patient

    def _new_pseudonym(self) -> str:
        while True:
            pseudonym = uuid.uuid4().hex[:8].upper()
            if pseudonym not in self.patients:
                return pseudonym


_state = LinkageState()


def get_state() -> LinkageState:
    """Return the in-memory state shared by all mock linkage endpoints."""
    return _state


def reset_state() -> None:
    """Forget all tokens, patients and medical data."""
    _state.reset()
    linkage_logger.info("Mock linkage state reset")


def _ttl() -> int:
    return _config.token_ttl_seconds if _config else 0


def _base_url() -> str:
    if _config and _config.public_url:
        return _config.public_url.rstrip("/") + "/"
    return request.host_url


def _token_url(token: MockToken) -> str:
    return f"{_base_url()}patients?tokenId={token.token_id}"


def _error(message: str, status: int) -> tuple[Response, int]:
    linkage_logger.warning(f"{request.method} {request.path} -> {status}: {message}")
    return jsonify({"error": message}), status


def _submitted_identity(form) -> tuple[str, str, date]:
    """Validate submitted identity fields.

    Raises:
        ValueError: If a name is empty or the birthdate is invalid or in the future
    """
    firstname = form.get("vorname", "").strip()
    lastname = form.get("nachname", "").strip()
    if not firstname or not lastname:
        raise ValueError("Field vorname and nachname must not be empty")
    try:
        birthdate = date(
            int(form.get("geburtsjahr", "")),
            int(form.get("geburtsmonat", "")),
            int(form.get("geburtstag", "")),
        )
    except ValueError as e:
        raise ValueError(f"Invalid birthdate: {e}") from e
    if birthdate > date.today():
        raise ValueError("Birthdate lies in the future")
    return firstname, lastname, birthdate


def _created_body(pseudonym: str, tentative: bool) -> list | dict:
    if request.headers.get(API_VERSION_HEADER) == "1.0":
        return {"newId": pseudonym, "tentative": tentative}
    return [{"idType": "pid", "idString": pseudonym, "tentative": tentative}]


@linkage_bp.route("/tokens/addPatient", methods=["POST"])
def issue_create_tokens() -> tuple[Response, int]:
    """Issue one single-use create token per requested record."""
    count = request.get_json(silent=True)
    if isinstance(count, bool) or not isinstance(count, int) or count < 1:
        return _error("Body must be a positive integer token count", 400)

    use_callback = bool(_config and _config.use_callback)
    urls = [_token_url(_state.issue_token(CREATE)) for _ in range(count)]
    linkage_logger.info(f"Issued {count} create token(s) (useCallback={use_callback})")
    return jsonify({"useCallback": use_callback, "urlTokens": urls}), 200


@linkage_bp.route("/tokens/readPatients", methods=["POST"])
def issue_read_token() -> tuple[Response, int]:
    """Issue one read token covering every known pseudonym of the request."""
    pseudonyms = request.get_json(silent=True)
    if not isinstance(pseudonyms, list) or not all(isinstance(p, str) for p in pseudonyms):
        return _error("Body must be a list of pseudonyms", 400)

    valid = [p for p in dict.fromkeys(pseudonyms) if _state.resolve(p) is not None]
    invalid = [p for p in dict.fromkeys(pseudonyms) if p not in valid]

    url = _token_url(_state.issue_token(READ, valid)) if valid else ""
    linkage_logger.info(f"Issued read token for {len(valid)} pseudonym(s), {len(invalid)} invalid")
    return jsonify({"url": url, "invalidPseudonyms": invalid}), 200


@linkage_bp.route("/tokens/<token_id>", methods=["DELETE"])
def revoke_token(token_id: str) -> tuple[Response, int]:
    """Invalidate a token before it is redeemed."""
    if not _state.revoke_token(token_id):
        return _error(f"Unknown token {token_id}", 404)
    linkage_logger.info(f"Revoked token {token_id}")
    return jsonify({"revoked": token_id}), 200


@linkage_bp.route("/patients", methods=["POST"])
def redeem_create_token() -> tuple[Response, int]:
    """Redeem a create token with submitted identifying data."""
    token_id = request.args.get("tokenId")

    if _config and _config.response_delay_ms > 0:
        linkage_logger.debug(f"Simulating network delay: {_config.response_delay_ms}ms")
        time.sleep(_config.response_delay_ms / 1000.0)

    if _config and _config.forced_submission_status is not None:
        return _error("Forced submission status", _config.forced_submission_status)

    with _state.lock:
        token = _state.lookup_token(token_id, CREATE, _ttl())
        if token is None:
            return _error(f"Token {token_id} invalid or expired", 401)

        try:
            firstname, lastname, birthdate = _submitted_identity(request.form)
        except ValueError as e:
            return _error(str(e), 400)

        sureness = request.form.get("sureness", "false").lower() == "true"
        patient = _state.register(firstname, lastname, birthdate, sureness)
        if patient is None:
            return _error("Identity conflicts with an existing patient", 409)

        _state.revoke_token(token.token_id)
        if _config and _config.use_callback:
            _state.aliases[token.token_id] = patient.pseudonym

    linkage_logger.info(f"Token {token_id} redeemed (tentative={patient.tentative})")
    return jsonify(_created_body(patient.pseudonym, patient.tentative)), 201


@linkage_bp.route("/patients", methods=["GET"])
def redeem_read_token() -> tuple[Response, int]:
    """Return the identities a read token covers."""
    token = _state.lookup_token(request.args.get("tokenId"), READ, _ttl())
    if token is None:
        return _error("Read token invalid or expired", 401)

    entries = []
    for pseudonym in token.pseudonyms:
        patient = _state.resolve(pseudonym)
        if patient is None:
            continue
        entries.append({
            "fields": {
                "vorname": patient.firstname,
                "nachname": patient.lastname,
                "geburtstag": f"{patient.birthdate.day:02d}",
                "geburtsmonat": f"{patient.birthdate.month:02d}",
                "geburtsjahr": str(patient.birthdate.year),
            },
            "ids": [{"idType": "pid", "idString": pseudonym, "tentative": patient.tentative}],
        })
    linkage_logger.info(f"Read token {token.token_id} returned {len(entries)} identity(ies)")
    return jsonify(entries), 200


@linkage_bp.route("/patients/send/mdat", methods=["POST"])
def store_mdat() -> tuple[Response, int]:
    """Store medical data for known pseudonyms."""
    entries = request.get_json(silent=True)
    if not isinstance(entries, list):
        return _error("Body must be a list of medical data entries", 400)

    stored: dict[str, bool] = {}
    with _state.lock:
        for entry in entries:
            if not isinstance(entry, dict) or "pseudonym" not in entry:
                return _error(f"Malformed medical data entry: {entry!r}", 400)
            pseudonym = str(entry["pseudonym"])
            known = _state.resolve(pseudonym) is not None
            if known:
                _state.mdat[pseudonym] = str(entry.get("mdat", ""))
            stored[pseudonym] = known
    linkage_logger.info(f"Stored medical data for {sum(stored.values())}/{len(stored)} pseudonym(s)")
    return jsonify(stored), 200


@linkage_bp.route("/patients/request", methods=["POST"])
def request_mdat() -> tuple[Response, int]:
    """Return stored medical data for the requested pseudonyms."""
    pseudonyms = request.get_json(silent=True)
    if not isinstance(pseudonyms, list):
        return _error("Body must be a list of pseudonyms", 400)

    with _state.lock:
        found = [
            {"pseudonym": p, "mdat": _state.mdat[p]}
            for p in dict.fromkeys(str(p) for p in pseudonyms)
            if p in _state.mdat
        ]
    return jsonify(found), 200


def register_linkage_endpoint(app, config: MockServerConfig) -> None:
    """Register the mock linkage endpoints with the Flask app.

    Args:
        app: Flask application instance
        config: Mock server configuration
    """
    global _config
    _config = config

    # Register Blueprint (only if not already registered)
    if linkage_bp.name not in app.blueprints:
        app.register_blueprint(linkage_bp)
        linkage_logger.info("Registered mock linkage endpoints")
    else:
        linkage_logger.debug("Mock linkage endpoints already registered")
