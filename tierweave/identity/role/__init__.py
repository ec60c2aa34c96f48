from tierweave.core.exceptions import InvalidPolicy

from ._models import (
    EC2_PRINCIPAL,
    Effect,
    PolicyStatement,
    RolePolicy,
    discovery_statement,
    trust_document,
)
from .builder import RoleBuilder

__all__ = [
    "EC2_PRINCIPAL",
    "Effect",
    "InvalidPolicy",
    "PolicyStatement",
    "RoleBuilder",
    "RolePolicy",
    "discovery_statement",
    "trust_document",
]
