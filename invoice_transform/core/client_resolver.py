"""Client resolution: map a spoken client name to the user's client records.

The client list is re-read from the store on every call and only ever
contains the requesting user's clients. A user with no clients gets an empty
result; a store failure propagates as DataAccessError.
"""

from invoice_transform.core.config import get_settings
from invoice_transform.core.logging import get_logger
from invoice_transform.core.schemas_clients import (
    Client,
    ClientMatch,
    ClientResolution,
    ClientSuggestions,
)
from invoice_transform.core.similarity import (
    POSSIBLE_MATCH_THRESHOLD,
    MatchStrength,
    NameMatcher,
    normalize_name,
)
from invoice_transform.db import clients as clients_db
from invoice_transform.db.store import RecordStore

logger = get_logger(__name__)


def resolve_client(store: RecordStore, user_id: str, spoken_name: str) -> ClientResolution:
    """
    Resolve a spoken name to the single best-matching client.

    Args:
        store: Record store
        user_id: Requesting user
        spoken_name: Client name as transcribed

    Returns:
        ClientResolution. ``client`` is None when the best score is below
        0.3; ``needs_confirmation`` is True for scores in [0.3, 0.7).

    Raises:
        DataAccessError: If the client list cannot be read
    """
    if not normalize_name(spoken_name):
        return ClientResolution()

    clients = clients_db.list_clients(store, user_id)
    if not clients:
        logger.debug(f"No clients on file for user {user_id}")
        return ClientResolution()

    result = NameMatcher().find_best_match(spoken_name, clients)

    if result.matched_item is None:
        logger.info(f"No client match for {spoken_name!r} (best score {result.score:.3f})")
        return ClientResolution(confidence=result.score)

    best = result.all_candidates[0]
    return ClientResolution(
        client=result.matched_item,
        confidence=result.score,
        needs_confirmation=result.needs_confirmation,
        match_strength=MatchStrength.EXACT if best.exact else result.strength,
    )


def suggest_clients(
    store: RecordStore,
    user_id: str,
    spoken_name: str,
    limit: int | None = None,
) -> ClientSuggestions:
    """
    Build a disambiguation list for a spoken name.

    An exact case/whitespace-insensitive name match is reported separately as
    ``exact_match`` (similarity 1) whatever the other scores. The remaining
    clients scoring at least 0.3 are returned best first, truncated to
    ``limit``.

    Raises:
        DataAccessError: If the client list cannot be read
    """
    if not normalize_name(spoken_name):
        return ClientSuggestions(searched_for=spoken_name or "")

    clients = clients_db.list_clients(store, user_id)
    return rank_clients(clients, spoken_name, limit)


def rank_clients(
    clients: list[Client],
    spoken_name: str,
    limit: int | None = None,
) -> ClientSuggestions:
    """Suggestions for ``spoken_name`` over an already loaded client list."""
    if limit is None:
        limit = get_settings().CLIENT_SUGGESTION_LIMIT

    if not clients or not normalize_name(spoken_name):
        return ClientSuggestions(searched_for=spoken_name or "")

    matcher = NameMatcher(min_score=POSSIBLE_MATCH_THRESHOLD)

    exact_match: ClientMatch | None = None
    suggestions: list[ClientMatch] = []

    for scored in matcher.score_corpus(spoken_name, clients):
        if scored.exact and exact_match is None:
            exact_match = ClientMatch.from_client(scored.item, 1.0, exact=True)
            continue
        if scored.score >= matcher.min_score:
            suggestions.append(ClientMatch.from_client(scored.item, scored.score, exact=scored.exact))

    logger.debug(
        f"Suggestions for {spoken_name!r}: exact={exact_match is not None} "
        f"fuzzy={len(suggestions)}"
    )

    return ClientSuggestions(
        suggestions=suggestions[: max(limit, 0)],
        exact_match=exact_match,
        searched_for=spoken_name,
    )
