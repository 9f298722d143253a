# types
from coherence_sim.msi_data_types import (
    CoherenceCmd,
    CacheState,
    Operation,
    TransitionResult,
    SnoopEvent,
)


# ============================================================================
# MSI State Machine - Processor Events
# ============================================================================

def on_processor_event(state: CacheState, operation: Operation) -> TransitionResult:
    """
    MSI state transition for processor-initiated requests.

    Determines the requester's next line state and which bus transaction,
    if any, the request needs. On a miss the caller passes INVALID even if
    the slot holds another block's line.

    State Transition Table:

    Current State | Operation | Next State | Bus Transaction | Notes
    --------------|-----------|------------|-----------------|---------------------------
    INVALID       | READ      | SHARED     | BUS_RD          | Read miss, fetch block
    INVALID       | WRITE     | MODIFIED   | BUS_RDX         | Write miss, fetch + exclusive
    SHARED        | READ      | SHARED     | None            | Read hit
    SHARED        | WRITE     | MODIFIED   | BUS_UPGR        | Upgrade, invalidate others
    MODIFIED      | READ      | MODIFIED   | None            | Read hit
    MODIFIED      | WRITE     | MODIFIED   | None            | Write hit, already exclusive

    Args:
        state: Effective MSI state of the requester's line
        operation: READ or WRITE

    Returns:
        TransitionResult with next_state and optional issue_cmd
    """

    # ---- INVALID State ----
    if state == CacheState.INVALID:
        if operation == Operation.READ:
            return TransitionResult(CacheState.SHARED, CoherenceCmd.BUS_RD)
        return TransitionResult(CacheState.MODIFIED, CoherenceCmd.BUS_RDX)

    # ---- SHARED State ----
    if state == CacheState.SHARED:
        if operation == Operation.READ:
            return TransitionResult(CacheState.SHARED)
        return TransitionResult(CacheState.MODIFIED, CoherenceCmd.BUS_UPGR)

    # ---- MODIFIED State ----
    if state == CacheState.MODIFIED:
        return TransitionResult(CacheState.MODIFIED)

    raise ValueError(f"invalid MSI state {state!r}")


# ============================================================================
# MSI State Machine - Snoop Events
# ============================================================================

def on_snoop_event(state: CacheState, event: SnoopEvent) -> TransitionResult:
    """
    MSI state transition for a line that observes another node's request.

    State Transition Table:

    Current State | Snoop Event | Next State | Flush Data? | Notes
    --------------|-------------|------------|-------------|---------------------------
    INVALID       | Any         | INVALID    | No          | No copy, ignore snoop
    SHARED        | BUS_RD      | SHARED     | No          | Other node reading
    SHARED        | BUS_RDX     | INVALID    | No          | Other node writing
    SHARED        | BUS_UPGR    | INVALID    | No          | Other node upgrading
    MODIFIED      | BUS_RD      | SHARED     | Yes         | Share data, write back
    MODIFIED      | BUS_RDX     | INVALID    | Yes         | Flush and invalidate
    MODIFIED      | BUS_UPGR    | INVALID    | Yes         | Can't happen under MSI; flush anyway

    Args:
        state: Current MSI state of the observing line
        event: Snoop event

    Returns:
        TransitionResult with next_state and flush flag
    """

    # ---- INVALID State ----
    if state == CacheState.INVALID:
        return TransitionResult(CacheState.INVALID)

    # ---- SHARED State ----
    if state == CacheState.SHARED:
        if event == SnoopEvent.BUS_RD:
            return TransitionResult(CacheState.SHARED)
        return TransitionResult(CacheState.INVALID)

    # ---- MODIFIED State ----
    if state == CacheState.MODIFIED:
        if event == SnoopEvent.BUS_RD:
            return TransitionResult(CacheState.SHARED, flush=True)
        # BUS_RDX, or a BUS_UPGR that the invariants rule out: dirty data
        # still has to reach memory before the line goes away
        return TransitionResult(CacheState.INVALID, flush=True)

    raise ValueError(f"invalid MSI state {state!r}")
