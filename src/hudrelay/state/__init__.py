"""State reconstruction layer.

This package is the single place where relayed topic payloads are mapped to
vehicle-state fields and merged into the record rendering reads.
"""

from hudrelay.state.fields import FIELD_TABLE, FieldKind, TopicField
from hudrelay.state.reducer import StateReducer

__all__ = ["FIELD_TABLE", "FieldKind", "StateReducer", "TopicField"]
