"""
parrot — a chat bot that learns how each member of a chat talks and
occasionally says something they never said, but could have.
"""

from parrot.brain import Brain, UserName
from parrot.chains import MultiOrderChain, SnapshotError, tokenize

__version__ = "0.1.0"

__all__ = ["Brain", "UserName", "MultiOrderChain", "SnapshotError", "tokenize"]
