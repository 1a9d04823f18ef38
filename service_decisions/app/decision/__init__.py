"""
Caller-facing decision evaluation.

Provides the evaluator facade, the caller-owned decision cache used for
attribution and the plugin registry.
"""

from .cache import DecisionCache
from .evaluator import DecisionEvaluator
from .plugins import PluginManager

__all__ = ["DecisionCache", "DecisionEvaluator", "PluginManager"]
