from __future__ import annotations
import argparse, json, sys, time

import structlog

from app.logging_config import configure_logging, structlog_diagnostics
from app.scanner.buffer import KeystrokeBuffer
from app.scanner.settings import resolve_settings
from app.scanner.stats import burst_stats
from app.scanner.validator import validate

def _add_tolerances(p: argparse.ArgumentParser) -> None:
    p.add_argument("--wait-tolerance", type=float, default=20, help="max ms between presses of one scan")
    p.add_argument("--variation-tolerance", type=float, default=3, help="max ms drift from the running average")
    p.add_argument("--idle-window", type=float, default=250, help="ms after the first press before a burst is judged")
    p.add_argument("--debug", action="store_true", help="log diagnostics for rejected bursts")
    p.add_argument("--json", action="store_true", help="JSON log lines instead of console format")

def _settings(args, **extra):
    return resolve_settings(
        wait_tolerance=args.wait_tolerance,
        variation_tolerance=args.variation_tolerance,
        idle_window=args.idle_window,
        on_debug=structlog_diagnostics() if args.debug else None,
        **extra,
    )

def _parse_times(raw: str):
    try:
        return [float(x) for x in raw.split(",") if x.strip()]
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected comma-separated numbers, got {raw!r}")

def cmd_listen(args) -> int:
    from app.controller.runner import ScanRuntime

    def on_scan(code: str) -> None:
        print(code, flush=True)

    rt = ScanRuntime(settings=_settings(args, on_scan=on_scan), track_focus=not args.no_focus)
    rt.start()
    try:
        while True:
            time.sleep(0.5)
    except KeyboardInterrupt:
        pass
    finally:
        rt.stop()
    return 0

def cmd_replay(args) -> int:
    from app.controller.replay import ReplayFormatError, read_jsonl, replay_keystrokes

    try:
        if args.file == "-":
            records = read_jsonl(sys.stdin)
        else:
            with open(args.file, "r", encoding="utf-8") as fp:
                records = read_jsonl(fp)
    except (OSError, ReplayFormatError) as e:
        print(f"replay: {e}", file=sys.stderr)
        return 2

    for ev in replay_keystrokes(records, settings=_settings(args)):
        print(json.dumps(ev.to_record(), ensure_ascii=False))
    return 0

def cmd_check(args) -> int:
    try:
        buf = KeystrokeBuffer.of(list(args.chars), args.times)
    except ValueError as e:
        print(f"check: {e}", file=sys.stderr)
        return 2

    verdict = validate(buf, _settings(args))
    out = {
        "accepted": verdict.accepted,
        "code": verdict.code,
        "reason": verdict.reason,
        "kept": verdict.kept,
        "detail": verdict.detail,
        "stats": burst_stats(buf.timestamps()).as_features(),
    }
    print(json.dumps(out, ensure_ascii=False, indent=2))
    return 0

def main(argv=None) -> int:
    ap = argparse.ArgumentParser(prog="kwd", description="Keyboard-wedge scanner detector")
    sub = ap.add_subparsers(dest="cmd", required=True)

    p_listen = sub.add_parser("listen", help="Watch the keyboard and print accepted scans")
    _add_tolerances(p_listen)
    p_listen.add_argument("--no-focus", action="store_true", help="do not reset bursts on focus change")

    p_replay = sub.add_parser("replay", help="Replay a JSONL keystroke capture ('-' for stdin)")
    p_replay.add_argument("file")
    _add_tolerances(p_replay)

    p_check = sub.add_parser("check", help="Validate one burst")
    p_check.add_argument("--chars", required=True)
    p_check.add_argument("--times", required=True, type=_parse_times, help="comma-separated ms timestamps")
    _add_tolerances(p_check)

    args = ap.parse_args(argv)
    configure_logging(debug=args.debug, json=args.json)
    structlog.get_logger().debug("cli.start", cmd=args.cmd)

    if args.cmd == "listen":
        return cmd_listen(args)
    if args.cmd == "replay":
        return cmd_replay(args)
    return cmd_check(args)

if __name__ == "__main__":
    sys.exit(main())
