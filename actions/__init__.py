"""
Browser actions for workflow nodes.

build_action() turns node properties into a typed action;
ActionDispatcher executes it against a run's browser session.
"""

from .builder import ACTION_NAMES, action_name, build_action
from .dispatcher import ActionDispatcher

__all__ = [
    'ACTION_NAMES',
    'ActionDispatcher',
    'action_name',
    'build_action'
]
