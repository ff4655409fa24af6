"""
Main agent application.
"""
import sys
import time
import logging
import signal

from shared.codec import encode, key_hint
from shared.logging_utils import setup_logging
from agent.src.config import load_config, get_or_create_agent_id
from agent.src.link import LinkManager
from agent.src.sampler import Sampler

# Global flag for graceful shutdown
running = True


def signal_handler(signum, frame):
    """Handle shutdown signals."""
    global running
    logging.info(f"Received signal {signum}, shutting down...")
    running = False


def run_once(sampler: Sampler, link: LinkManager, encryption_key) -> bool:
    """
    One tick: sample, encode, send.

    Returns:
        True if a frame reached the collector
    """
    logger = logging.getLogger(__name__)

    snapshot = sampler.sample()
    if snapshot is None:
        logger.warning("Failed to collect metrics")
        return False

    frame = encode(snapshot, encryption_key)
    if not link.send(frame):
        logger.warning("Metrics dropped, will retry next tick")
        return False

    logger.debug(f"Sent {len(frame)} byte frame: cpu={snapshot.cpu_usage:.1f}%")
    return True


def main():
    """Main agent loop."""
    global running

    try:
        config = load_config()
    except (ValueError, TypeError) as e:
        print(f"Error loading configuration: {e}")
        sys.exit(1)

    logger = setup_logging(
        config.logging.level,
        config.logging.file,
        config.logging.max_size_mb,
        config.logging.backup_count
    )
    logger.info("Fleet Monitor Agent starting...")

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        agent_id = get_or_create_agent_id(config.agent.id_file)
    except OSError as e:
        logger.error(f"Failed to load or create agent id: {e}")
        sys.exit(1)

    encryption_key = config.collector.encryption_key or None
    logger.info(f"Agent ID: {agent_id}")
    logger.info(f"Collector: {config.collector.url}")
    if encryption_key:
        logger.info(f"Frames encrypted with key {key_hint(encryption_key)}")
    else:
        logger.warning("No encryption key configured, frames are sent as plaintext")

    sampler = Sampler(agent_id, disk_path=config.monitoring.disk_path)
    link = LinkManager(
        config.collector.url,
        handshake_timeout=config.collector.handshake_timeout,
        probe_timeout=config.collector.probe_timeout
    )

    logger.info(f"Starting metric collection (interval: {config.monitoring.interval}s)")

    # A slow send delays the next tick rather than queueing frames
    while running:
        try:
            run_once(sampler, link, encryption_key)
        except Exception as e:
            logger.error(f"Unexpected error in main loop: {e}", exc_info=True)

        time.sleep(config.monitoring.interval)

    link.close()
    logger.info("Agent stopped")
    sys.exit(0)


if __name__ == "__main__":
    main()
