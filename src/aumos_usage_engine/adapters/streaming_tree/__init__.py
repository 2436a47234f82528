"""Streaming (Hoeffding) tree classifier.

- StreamingTree: incrementally grown tree with drift-triggered reset
- TreeNode: leaf statistics, split search and (de)serialisation
"""

from aumos_usage_engine.adapters.streaming_tree.bounds import entropy, hoeffding_bound
from aumos_usage_engine.adapters.streaming_tree.node import SplitCandidate, TreeNode
from aumos_usage_engine.adapters.streaming_tree.tree import StreamingTree

__all__ = [
    "SplitCandidate",
    "StreamingTree",
    "TreeNode",
    "entropy",
    "hoeffding_bound",
]
