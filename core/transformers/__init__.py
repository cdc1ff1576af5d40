#!/usr/bin/env python3
"""
DocShift entity transformers, one per legacy collection group.

TRANSFORMER_ORDER is the dependency order used by the orchestrator:
principals and roles first, then everything that references them.
"""

from core.transformers.base import EntityTransformer, TransformResult
from core.transformers.user_transformer import UserTransformer
from core.transformers.role_transformer import RoleTransformer
from core.transformers.activity_log_transformer import ActivityLogTransformer
from core.transformers.misc_transformer import (
    AfkStatusTransformer,
    ForumMessageTransformer,
    ResetHistoryTransformer,
    VoiceChannelMappingTransformer,
)

TRANSFORMER_ORDER = (
    UserTransformer,
    RoleTransformer,
    ActivityLogTransformer,
    ResetHistoryTransformer,
    AfkStatusTransformer,
    ForumMessageTransformer,
    VoiceChannelMappingTransformer,
)

GROUP_NAMES = tuple(transformer.group for transformer in TRANSFORMER_ORDER)


def build_transformers(tx_manager, clock=None):
    """Instantiate every transformer in dependency order"""
    return [transformer(tx_manager, clock=clock) for transformer in TRANSFORMER_ORDER]


__all__ = [
    'EntityTransformer',
    'TransformResult',
    'UserTransformer',
    'RoleTransformer',
    'ActivityLogTransformer',
    'ResetHistoryTransformer',
    'AfkStatusTransformer',
    'ForumMessageTransformer',
    'VoiceChannelMappingTransformer',
    'TRANSFORMER_ORDER',
    'GROUP_NAMES',
    'build_transformers',
]
