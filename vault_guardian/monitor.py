"""Vault Guardian - periodic stop-loss review of watched vaults.

Every check interval the monitor re-reads each watched vault from Redis,
rebuilds its stop-loss metadata at the current price and logs any blocking
errors or warnings for the trigger that is live on chain.
"""

import logging
import time
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .config import Settings, settings as default_settings
from .metadata import TriggerMetadata, ValidationResult, compute_trigger_metadata
from .models import PositionData, VaultProtocol
from .protocols import get_adapter, token_from_market
from .redis_client import RedisClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VaultReport:
    protocol: VaultProtocol
    owner: str
    market_id: str
    position: PositionData
    metadata: TriggerMetadata
    validation: Optional[ValidationResult]


class VaultMonitor:
    """Recomputes trigger metadata for watched vaults on every price tick."""

    # Consecutive loop errors before logging that vaults are unmonitored.
    _ERROR_ALERT_THRESHOLD = 5

    def __init__(self, redis_client: Optional[RedisClient] = None, config: Optional[Settings] = None):
        self.config = config or default_settings
        self.redis = redis_client or RedisClient()
        self._running = False

    def start(self):
        """Connect and start monitoring."""
        logger.info("Starting Vault Guardian")
        self.redis.connect()
        self._running = True
        self._run_monitoring_loop()

    def stop(self):
        """Stop monitoring and release the Redis connection. Idempotent."""
        if not self._running and self.redis.client is None:
            return
        logger.info("Stopping Vault Guardian...")
        self._running = False
        self.redis.close()
        logger.info("Vault Guardian shutdown complete")

    def _run_monitoring_loop(self):
        logger.info(f"Starting monitoring loop (interval: {self.config.check_interval_seconds}s)")

        consecutive_errors = 0

        while self._running:
            try:
                self.check_all_vaults()

                if consecutive_errors > 0:
                    logger.info(f"Monitoring loop recovered after {consecutive_errors} consecutive error(s)")
                consecutive_errors = 0

            except Exception as e:
                consecutive_errors += 1
                logger.error(
                    f"Error in monitoring loop (consecutive: {consecutive_errors}): {e}",
                    exc_info=True,
                )
                if consecutive_errors == self._ERROR_ALERT_THRESHOLD:
                    logger.critical(
                        f"Vault Guardian: {consecutive_errors} consecutive monitoring failures. "
                        f"Stop-loss levels are not being reviewed. Last error: {e}"
                    )

            time.sleep(self.config.check_interval_seconds)

    def check_all_vaults(self) -> List[VaultReport]:
        watched: List[Tuple[str, str, str]] = self.config.watched_vault_list
        if not watched:
            logger.debug("No vaults to monitor")
            return []

        reports = []
        for protocol, owner, market_id in watched:
            try:
                report = self.check_vault(VaultProtocol(protocol), owner, market_id)
            except Exception as e:
                logger.error(f"Error checking {protocol} vault {owner}/{market_id}: {e}", exc_info=True)
                continue
            if report is not None:
                reports.append(report)

        logger.info(f"Checked {len(reports)}/{len(watched)} vaults")
        return reports

    def check_vault(self, protocol: VaultProtocol, owner: str, market_id: str) -> Optional[VaultReport]:
        """Build the metadata for one vault and log what blocks its stop-loss."""
        adapter = get_adapter(protocol)
        token = token_from_market(market_id)

        price = self.redis.get_market_price(token)
        if price is None:
            logger.warning(f"{market_id}: no price for {token}, skipping {owner}")
            return None

        raw = self.redis.get_native_position(protocol, owner)
        if raw is None:
            logger.warning(f"{market_id}: no {protocol.value} position for {owner}")
            return None

        position = adapter.to_position_data(adapter.parse_native(raw), price)
        triggers = self.redis.get_trigger_states(owner, defaults=adapter.default_trigger_states())
        metadata = compute_trigger_metadata(adapter, position, triggers, config=self.config)

        validation = None
        stop_loss = triggers.stop_loss
        if stop_loss.is_trigger_enabled:
            validation = metadata.validation.validate(stop_loss.stop_loss_level)
            if validation.active_errors:
                logger.warning(f"{market_id} {owner}: stop-loss errors {list(validation.active_errors)}")
            if validation.active_warnings:
                logger.info(f"{market_id} {owner}: stop-loss warnings {list(validation.active_warnings)}")
            if not metadata.values.slider_min <= stop_loss.stop_loss_level <= metadata.values.slider_max:
                logger.warning(
                    f"{market_id} {owner}: stop-loss {stop_loss.stop_loss_level}% outside "
                    f"[{metadata.values.slider_min}, {metadata.values.slider_max}]"
                )
        elif position.has_debt:
            logger.info(
                f"{market_id} {owner}: no stop-loss; suggested level "
                f"{metadata.values.initial_sl_ratio_when_trigger_doesnt_exist}%"
            )

        return VaultReport(
            protocol=protocol,
            owner=owner,
            market_id=market_id,
            position=position,
            metadata=metadata,
            validation=validation,
        )
