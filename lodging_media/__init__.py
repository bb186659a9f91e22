"""
lodging-media - media asset pipeline for the hospitality booking backend.

Uploads photos to an object store with resized renditions, stages them
before their owner exists, promotes them to a permanent prefix, and
cleans up after partial failures.
"""

__version__ = "0.1.0"
