"""FlowSync: message classification, task decomposition and voice briefings."""

__version__ = "0.1.0"
