from .config import ConfigurationError, TopologyConfig
from .graph_builder import GraphModelBuilder
from .interaction import InteractionController, ViewState
from .layout_engine import LayoutEngine
from .pipeline import RefreshInputs, TopologyPipeline
from .priority import PriorityFilter

__all__ = [
    "ConfigurationError",
    "GraphModelBuilder",
    "InteractionController",
    "LayoutEngine",
    "PriorityFilter",
    "RefreshInputs",
    "TopologyConfig",
    "TopologyPipeline",
    "ViewState",
]
