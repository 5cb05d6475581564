# -*- coding: utf-8 -*-

"""
Stream a DynamoDB table export from S3 into a bounded pipeline buffer,
with lease based partition coordination and resumable checkpoints.
"""

from ._version import __version__

__short_description__ = "Checkpointed, lease coordinated streaming loader for database exports."
__license__ = "MIT"
