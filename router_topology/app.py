import logging
from typing import Optional

from dash import Dash

from .callbacks import CallbackRegistrar
from .config import TopologyConfig
from .data_source import DashboardApiClient, RefreshGate
from .layout import LayoutBuilder
from .pipeline import TopologyPipeline

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT)


def create_app(config: Optional[TopologyConfig] = None) -> Dash:
    """Build the Dash app; raises ConfigurationError before anything is wired."""
    config = (config or TopologyConfig.from_env()).validate()
    configure_logging(config.log_level)

    # Initialize Dash app
    app = Dash(__name__, suppress_callback_exceptions=True)
    app.title = "Router Network Topology"

    pipeline = TopologyPipeline(config)
    client = DashboardApiClient(config.api_base_url, timeout=config.request_timeout_s)

    # Layout
    layout_builder = LayoutBuilder(config, pipeline)
    app.layout = layout_builder.create_layout(app)

    # Callbacks
    callback_registrar = CallbackRegistrar(app, pipeline, client, RefreshGate())
    callback_registrar.register_callbacks()

    logger.info(
        "Topology dashboard ready: source=%s mode=%s max_nodes=%d refresh=%dms",
        config.api_base_url,
        config.performance_mode,
        config.max_visible_nodes,
        config.refresh_interval_ms,
    )
    app.topology_config = config
    return app


app = create_app()

# Exposes the underlying Flask server for Gunicorn (or similar).
server = app.server


def main() -> None:
    config = app.topology_config
    app.run(host=config.host, port=config.port, debug=config.debug)


if __name__ == "__main__":
    main()
