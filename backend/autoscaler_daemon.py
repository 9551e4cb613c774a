import sys
import queue
import signal
import logging
import traceback

from backend.cloud_saver import CloudSaver
from backend.config import load_config
from cloud.errors import ConfigError
from cloud.logging_config import LogConfig, setup_logging


class Daemon:
    """Runs one CloudSaver until SIGINT/SIGTERM."""

    def __init__(self, saver: CloudSaver):
        self.saver = saver
        self.configurations = queue.Queue()
        self.shutdown_requested = False
        self.tick_count = 0

    def signal_handler(self, sig, frame):
        """Handle shutdown signals gracefully."""
        logging.info("Shutdown signal received, stopping after the current step...")
        self.shutdown_requested = True

    def run(self, poll_seconds=1.0):
        signal.signal(signal.SIGINT, self.signal_handler)
        signal.signal(signal.SIGTERM, self.signal_handler)

        try:
            self.saver.init()
            self.saver.provide(self.configurations)

            print(f"\n🚀 Cloud saver daemon started")
            print(f"   Window: {self.saver.window_size:.0f} seconds")
            print(f"   Threshold: {self.saver.traffic_threshold} req/min")
            print(f"   Dry run: {self.saver.dry_run}")
            print(f"\nPress Ctrl+C to stop\n")

            while not self.shutdown_requested and self.saver.running:
                try:
                    self.configurations.get(timeout=poll_seconds)
                except queue.Empty:
                    continue
                self.tick_count += 1
                logging.info(f"Tick #{self.tick_count} completed")
        finally:
            self.saver.stop()

        logging.info("Cloud saver daemon stopped")
        print("\n✅ Cloud saver daemon stopped gracefully")


def main(environ=None):
    try:
        config = load_config(environ)
    except ConfigError as e:
        print(f"ERROR: invalid configuration: {e}", file=sys.stderr)
        return 2

    log_config = LogConfig(debug=config.debug, log_file=config.log_file)
    setup_logging(log_config)

    try:
        saver = CloudSaver(config, log_config=log_config)
        Daemon(saver).run()
    except ConfigError as e:
        logging.error(f"Invalid configuration: {e}")
        return 2
    except Exception as e:
        logging.error(f"Fatal error: {e}")
        logging.error(traceback.format_exc())
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
