"""Vault Guardian - Entry Point.

Reviews the stop-loss triggers of watched vaults every check interval and
logs anything that would block or endanger them.
"""

import logging
import signal
import sys
from typing import Optional

from .config import settings
from .monitor import VaultMonitor

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler(sys.stdout),
    ],
)

logger = logging.getLogger(__name__)

# Global monitor instance for signal handling
monitor: Optional[VaultMonitor] = None


def signal_handler(signum, frame):
    """Handle shutdown signals gracefully."""
    logger.info(f"Received signal {signum}, shutting down...")
    if monitor:
        monitor.stop()
    sys.exit(0)


def main():
    """Main entry point."""
    global monitor

    logger.info("=" * 60)
    logger.info("VAULT GUARDIAN")
    logger.info("=" * 60)

    logger.info(f"Redis: {settings.redis_host}:{settings.redis_port} (prefix {settings.redis_key_prefix})")
    logger.info(f"Watched vaults: {len(settings.watched_vault_list)}")
    logger.info(f"Check interval: {settings.check_interval_seconds}s")
    logger.info(f"Min offset above liquidation: {settings.min_col_ratio_trigger_offset}%")
    logger.info(f"Next ratio offset: {settings.next_coll_ratio_offset}%")

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    monitor = VaultMonitor()

    try:
        monitor.start()
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)
    finally:
        if monitor:
            monitor.stop()


if __name__ == "__main__":
    main()
