import argparse
import logging

from scoresync.config import load_settings
from scoresync.worker import run_check_once, run_forever


def _setup_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )


def main() -> int:
    parser = argparse.ArgumentParser(description="scoresync: live score sync scheduler")
    parser.add_argument("--once", action="store_true", help="Run single sync cycle and exit")
    parser.add_argument("--force", action="store_true", help="Skip the tournament hours check (with --once)")
    args = parser.parse_args()

    _setup_logging()
    settings = load_settings()

    try:
        if args.once:
            report = run_check_once(settings, force=args.force)
            logging.getLogger(__name__).info(
                "Cycle finished: ran=%s synced=%d/%d", report.ran, report.succeeded, report.total
            )
            return 0

        run_forever(settings)
        return 0

    except Exception as e:
        logging.getLogger(__name__).error("scoresync stopped with an error (%s: %s)", type(e).__name__, e)
        raise


if __name__ == "__main__":
    raise SystemExit(main())
