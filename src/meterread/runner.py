"""meterread server runner."""

import logging
from pathlib import Path

import uvicorn

from meterread.api.server import create_app
from meterread.config_yaml import YAMLConfig
from meterread.inference import load_models
from meterread.models import AppConfig
from meterread.reader import MeterReader, ReadingSession

logger = logging.getLogger(__name__)


def setup_logging(level: int = logging.INFO) -> None:
    """Configure root logging once for the process."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def build_reader(config: AppConfig) -> MeterReader:
    """Load models and wrap them in a MeterReader."""
    classifier, detector = load_models(config.models)
    reader = MeterReader(classifier, detector, config)
    if not reader.is_ready:
        logger.warning("Models not ready; read requests will answer 'not_ready'")
    return reader


class MeterReadServer:
    """meterread HTTP server."""

    def __init__(self, config_path: Path | None = None):
        """Initialize server.

        Args:
            config_path: Optional custom config file path
        """
        self.yaml_config = YAMLConfig(config_path)
        self.config: AppConfig | None = None
        self.reader: MeterReader | None = None
        self.session = ReadingSession()

    def run(self) -> int:
        """Run the server until interrupted.

        Returns:
            Exit code (0 for success)
        """
        setup_logging()

        logger.info("meterread server")
        logger.info("=" * 40)

        # Load configuration
        try:
            self.config = self.yaml_config.load()
        except Exception as e:
            logger.error(f"Failed to load config: {e}")
            return 1

        self.reader = build_reader(self.config)
        app = create_app(self.reader, self.session, self.yaml_config)

        server_config = self.config.server
        logger.info(f"API server starting on {server_config.host}:{server_config.port}")
        try:
            uvicorn.run(
                app,
                host=server_config.host,
                port=server_config.port,
                log_level="warning",
            )
        except KeyboardInterrupt:
            logger.info("Interrupted by user")

        logger.info("Goodbye!")
        return 0


def run_server(config_path: Path | None = None) -> int:
    """Run meterread server.

    Args:
        config_path: Optional custom config file path

    Returns:
        Exit code
    """
    server = MeterReadServer(config_path)
    return server.run()
