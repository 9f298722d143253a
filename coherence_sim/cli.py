# external
import argparse
import logging
import sys

# types
from typing import Callable, Dict, List, Optional, TextIO

from pydantic import ValidationError

from coherence_sim import create_engine
from coherence_sim.config import load_config
from coherence_sim.directory_engine import DirectoryEngine
from coherence_sim.display import render_cache, render_detail, render_directory, render_history
from coherence_sim.engine import CoherenceEngine
from coherence_sim.errors import CoherenceError
from coherence_sim.memory import format_block
from coherence_sim.request_parser import parse_request

HELP = """\
commands:
  read  <node> <addr>             e.g. read CPU01 0x010000
  write <node> <addr> <payload>   e.g. write CPU01 0x010000 FFFFFFFFFFFFFFFF
  show [node]                     cache contents
  dir [node]                      directory contents (directory protocol)
  history                         recent requests, newest first
  detail <n>                      steps of history entry n
  reset                           flush dirty lines and clear all caches
  help | quit"""


class Session:
    """Runs text commands against one engine, printing results to `out`."""

    def __init__(self, engine: CoherenceEngine, out: Optional[TextIO] = None) -> None:
        self.engine = engine
        self.out = out if out is not None else sys.stdout
        self.commands: Dict[str, Callable[[List[str]], None]] = {
            "read": self._request,
            "r": self._request,
            "write": self._request,
            "w": self._request,
            "show": self._show,
            "dir": self._dir,
            "history": self._history,
            "detail": self._detail,
            "reset": self._reset,
            "help": self._help,
        }

    def emit(self, text: str) -> None:
        print(text, file=self.out)

    def run_line(self, line: str) -> bool:
        """Execute one command line; returns False when the session should end."""
        line = line.split("#", 1)[0].strip()
        if not line:
            return True

        words = line.split()
        name = words[0].lower()
        if name in ("quit", "exit"):
            return False

        handler = self.commands.get(name)
        if handler is None:
            self.emit(f"error: unknown command {words[0]!r} (try 'help')")
            return True

        try:
            handler(words)
        except CoherenceError as e:
            # request dropped, state untouched
            self.emit(f"error: {e}")
        return True

    def run(self, stream: TextIO) -> None:
        for line in stream:
            if not self.run_line(line):
                break

    # ---- commands ----

    def _request(self, words: List[str]) -> None:
        if len(words) < 3:
            self.emit(f"usage: {words[0]} <node> <addr> [payload]")
            return
        payload_text = words[3] if len(words) > 3 else None
        request = parse_request(words[2], words[0], payload_text, words[1].upper(), self.engine.config)
        outcome = self.engine.submit(request)

        entry = self.engine.log.latest()
        self.emit(entry.summary())
        for step in outcome.narrative:
            self.emit(f"  - {step}")
        self.emit(f"  data: {format_block(outcome.data)}")

    def _nodes(self, words: List[str]) -> List[str]:
        if len(words) > 1:
            node_id = words[1].upper()
            self.engine.snapshot(node_id)  # raises UnknownNode
            return [node_id]
        return list(self.engine.node_ids)

    def _show(self, words: List[str]) -> None:
        for node_id in self._nodes(words):
            self.emit(render_cache(node_id, self.engine.snapshot(node_id), self.engine.codec))

    def _dir(self, words: List[str]) -> None:
        if not isinstance(self.engine, DirectoryEngine):
            self.emit("error: the snoop protocol keeps no directory")
            return
        for node_id in self._nodes(words):
            self.emit(render_directory(node_id, self.engine.directory_snapshot(node_id), self.engine.codec))

    def _history(self, words: List[str]) -> None:
        self.emit(render_history(self.engine.log))

    def _detail(self, words: List[str]) -> None:
        try:
            entry = self.engine.log.get(int(words[1]))
        except (IndexError, ValueError):
            self.emit("error: detail needs a history position, see 'history'")
            return
        self.emit(render_detail(entry))

    def _reset(self, words: List[str]) -> None:
        self.engine.reset()
        self.emit("system reset")

    def _help(self, words: List[str]) -> None:
        self.emit(HELP)


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="coherence-sim",
        description="Directory and snoop MSI cache coherence simulator",
    )
    ap.add_argument("script", nargs="?", help="command file to replay (default: read stdin)")
    ap.add_argument("--protocol", choices=["directory", "snoop"], default=None)
    ap.add_argument("--nodes", type=int, default=None, help="number of nodes (power of two)")
    ap.add_argument("--history", type=int, default=None, help="request log length")
    ap.add_argument("--owner-mapping", choices=["high_bits", "interleaved"], default=None)
    ap.add_argument("--log-level", default="WARNING", help="DEBUG, INFO, WARNING, ...")
    return ap


def main(argv: Optional[List[str]] = None, out: Optional[TextIO] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = load_config(
            protocol=args.protocol,
            num_nodes=args.nodes,
            history_limit=args.history,
            owner_mapping=args.owner_mapping,
        )
    except ValidationError as e:
        print(f"error: bad configuration\n{e}", file=sys.stderr)
        return 2

    session = Session(create_engine(config), out=out)

    if args.script:
        try:
            with open(args.script, encoding="utf-8") as fh:
                session.run(fh)
        except OSError as e:
            print(f"error: cannot read {args.script}: {e}", file=sys.stderr)
            return 1
        return 0

    if sys.stdin.isatty():
        session.emit(f"{config.protocol.value} protocol, nodes: {' '.join(config.node_ids)}; 'help' lists commands")
    session.run(sys.stdin)
    return 0
