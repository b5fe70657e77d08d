from .types import Connector, ConnectorContext, ConnectorResult
from .semrush import SemrushConnector
from .similarweb import SimilarwebConnector
from .serpapi import SerpApiConnector
from .aggregator import CONNECTORS, ConnectorAggregator, build_connectors, summarize
from .processors import PROCESSORS, priority_level, upsert

__all__ = [
    "Connector",
    "ConnectorContext",
    "ConnectorResult",
    "SemrushConnector",
    "SimilarwebConnector",
    "SerpApiConnector",
    "CONNECTORS",
    "ConnectorAggregator",
    "build_connectors",
    "summarize",
    "PROCESSORS",
    "priority_level",
    "upsert",
]
