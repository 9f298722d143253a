# Text renderings of engine state, in the layout of the old cache dumps.
# Functions return strings; callers decide where they go.

from typing import Iterable, List, Sequence, Tuple

from coherence_sim.address import AddressCodec
from coherence_sim.cache import CacheLineView
from coherence_sim.directory import DirectoryEntryView
from coherence_sim.memory import format_block
from coherence_sim.request_log import LogEntry, RequestLog


def render_cache(node_id: str, views: Sequence[CacheLineView], codec: AddressCodec) -> str:
    lines: List[str] = []
    for view in views:
        tag = codec.format_tag(view.tag) if view.tag is not None else "-"
        lines.append(
            f"  {node_id}:  line={view.index:X}|"
            f" tag={tag:<6}|"
            f" state={view.state.name:<8}|"
            f" dirty={'Y' if view.dirty else 'N'}|"
            f" data={format_block(view.data)}"
        )
    return "\n".join(lines)


def render_directory(node_id: str, rows: Iterable[Tuple[int, DirectoryEntryView]], codec: AddressCodec) -> str:
    rows = list(rows)
    if not rows:
        return f"  Directory {node_id}:  (empty)"

    lines = [f"  Directory {node_id}"]
    for block, view in rows:
        sharers = ", ".join(sorted(view.sharers)) or "-"
        lines.append(
            f"  Directory {node_id}:  addr={codec.format_address(block)}|"
            f" state={view.state.name:<9}|"
            f" sharers={{{sharers}}}"
        )
    return "\n".join(lines)


def render_history(log: RequestLog) -> str:
    if not len(log):
        return "  (no requests)"
    return "\n".join(f"  {pos}: {entry.summary()}" for pos, entry in enumerate(log))


def render_detail(entry: LogEntry) -> str:
    o = entry.outcome
    lines = [
        "===== Request detail =====",
        f"Address: {o.address_text}",
        f"Operation: {o.operation.name.lower()}",
        f"Requester: {o.requester}",
    ]
    if o.owner is not None:
        lines.append(f"Home node: {o.owner}")
    lines.append(f"Cache: {'hit' if o.hit else 'miss'}")
    lines.append(f"Participants: {', '.join(o.participants)}")
    lines.append(f"Data: {format_block(o.data)}")
    lines.append("")
    lines.append("Steps:")
    lines.extend(f"  {i}. {step}" for i, step in enumerate(o.narrative, start=1))
    return "\n".join(lines)
