"""Command-line tool that prints selected fields of a replay file."""

from __future__ import annotations

import sys
from typing import Callable, Sequence

from osrkit.osr import OsrError, OsuReplay, parse_osr, replay_frame_csv

__all__ = ["HELP", "main"]

HELP = (
    "Usage: osr_tools <FILE> [OPTION]\n"
    "\n"
    "Options:\n"
    "  --csv                   Outputs csv-formatted frames to stdout\n"
    "  --mods                  Show mods used\n"
    "  --username              Show username\n"
    "  --hash                  Show replay md5hash\n"
    "  --beatmap-hash          Show beatmap hash\n"
    "  --count-300             Show 300 count\n"
    "  --count-100             Show 100 count\n"
    "  --count-50              Show 50 count\n"
    "  --count-miss            Show miss count\n"
    "  --score                 Show score\n"
    "  --max-combo             Show max combo\n"
)


def _unsigned(value: int) -> int:
    return int(value) & 0xFFFFFFFF


# Field reports in the order they are printed.
_REPORTS: dict[str, Callable[[OsuReplay], str]] = {
    "--mods": lambda r: f"mods: 0x{_unsigned(r.mod_bitfield):X}",
    "--username": lambda r: f"username: {r.username}",
    "--hash": lambda r: f"hash: {r.md5hash}",
    "--beatmap-hash": lambda r: f"beatmap hash: {r.beatmap_hash}",
    "--count-300": lambda r: f"300s: {_unsigned(r.count300)}",
    "--count-100": lambda r: f"100s: {_unsigned(r.count100)}",
    "--count-50": lambda r: f"50s: {_unsigned(r.count50)}",
    "--count-miss": lambda r: f"misses: {_unsigned(r.count_miss)}",
    "--score": lambda r: f"score: {_unsigned(r.total_score)}",
    "--max-combo": lambda r: f"max combo: {_unsigned(r.max_combo)}",
}

_FLAGS = frozenset({"--csv", *_REPORTS})


def main(argv: Sequence[str] | None = None) -> int:
    """Run the tool; returns the process exit status."""
    args = list(sys.argv[1:] if argv is None else argv)
    err = sys.stderr
    if len(args) < 2:
        err.write("Missing arguments...\n")
        err.write(HELP)
        return 1

    fname, *flags = args
    try:
        handle = open(fname, "rb")
    except OSError:
        err.write(f"ERROR:Failed to open file:{fname}\n")
        return 1

    with handle:
        unknown = next((flag for flag in flags if flag not in _FLAGS), None)
        if unknown is not None:
            err.write(f"ERROR:Unknown flag:{unknown}\n")
            err.write(HELP)
            return 1
        try:
            replay = parse_osr(handle)
        except OsrError as exc:
            err.write(f"ERROR:Could not parse osr:{fname}:{exc.message}\n")
            return 1

    chosen = set(flags)
    out = sys.stdout
    if "--csv" in chosen:
        replay_frame_csv(out, replay, True)
    for flag, report in _REPORTS.items():
        if flag in chosen:
            out.write(report(replay) + "\n")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())