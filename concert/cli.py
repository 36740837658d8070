"""
concert - keep TLS certificates for catalog-tagged services valid.

Exit codes:
  0 = clean shutdown, or --once with every domain handled
  1 = startup failure (storage, identity, registration)
  2 = --once finished with failed domains or an aborted pass
  3 = configuration error
"""

from __future__ import annotations
import argparse
import signal
import sys
import textwrap

from concert.config import ConfigError, load_config
from concert.logger import LEVELS, get_logger, set_level
from concert.service import Concert, StartupError

log = get_logger("concert.CLI")


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="concert",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        description="Issue and renew TLS certificates for services tagged concert-<domain>.",
        epilog=textwrap.dedent("""\
        Examples:
          concert --config concert.yml
          concert --config concert.yml --once
          CONCERT_LOG_LEVEL=DEBUG concert --config concert.yml
        """),
    )
    ap.add_argument("--config", default="concert.yml", help="Path to deployment config YAML")
    ap.add_argument("--once", action="store_true", help="Run a single reconcile pass and exit")
    ap.add_argument("--log-level", type=str.upper, choices=LEVELS, help="Override the configured log level")
    return ap


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    try:
        cfg = load_config(args.config)
    except ConfigError as ex:
        log.error(f"[CONFIG] {ex}")
        return 3
    set_level(args.log_level or cfg.log_level)

    concert = Concert(cfg)

    try:
        if args.once:
            result = concert.reconcile_once()
            return 0 if result.ok else 2

        signal.signal(signal.SIGINT, lambda *_: concert.stop())
        signal.signal(signal.SIGTERM, lambda *_: concert.stop())
        concert.run()
    except StartupError as ex:
        log.error(f"[STARTUP] {ex}")
        return 1
    finally:
        concert.shutdown()
    return 0


if __name__ == "__main__":
    sys.exit(main())
