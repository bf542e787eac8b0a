"""Artist-level diff between the persisted whitelist snapshot and a fetched payload."""

from soulgate.domain.entities import DiffResult, RemotePayload, WhitelistSnapshot


# Hey future me, this is intentionally a pure function - no I/O, no logging, no clock. The sync
# worker decides what to do with the result. Hash equality short-circuits BEFORE touching the
# sets, that's what keeps the hourly background sync basically free.
def diff(previous: WhitelistSnapshot | None, incoming: RemotePayload) -> DiffResult:
    """Compare the stored snapshot with the incoming payload.

    Args:
        previous: Persisted snapshot, None on the very first sync
        incoming: Freshly fetched payload

    Returns:
        DiffResult with added = incoming minus previous and removed = previous
        minus incoming. ``unchanged`` is set only when the content hashes match.
        A new hash over the same artist set yields empty sets with unchanged=False
        so the caller still commits the new hash.
    """
    if previous is None:
        return DiffResult(added=incoming.artist_ids, removed=frozenset(), unchanged=False)

    if previous.content_hash == incoming.content_hash:
        return DiffResult(unchanged=True)

    previous_ids = previous.artist_ids
    incoming_ids = incoming.artist_ids
    return DiffResult(
        added=incoming_ids - previous_ids,
        removed=previous_ids - incoming_ids,
        unchanged=False,
    )
