"""Core data models for the identifier graph builder."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple, Union

from pydantic import BaseModel, Field


class NodeKind(Enum):
    """Role of an identifier node. The value is the encoded kind code."""
    ROOT = 0
    PARAM = 1
    IMPORT = 2
    VAR = 3
    CALL = 4
    ID = 5

    @property
    def code(self) -> int:
        return self.value


class Relation(Enum):
    """Label of a directed edge. The value is the encoded relation code."""
    DEPENDS_ON = 0
    PARAMETER = 1
    TYPE = 2
    DEFINES = 3
    CALLS = 4
    SCOPE = 5
    ARG = 6
    RELATED_TO = 7
    CONTAINS = 8

    @property
    def code(self) -> int:
        return self.value


class ReferenceKind(str, Enum):
    """How an argument or assigned value refers to another identifier."""
    CALL = "call"
    VAR = "var"


# (name, declared type or None)
TypedName = Tuple[str, Optional[str]]

# (name, reference kind)
Reference = Tuple[str, ReferenceKind]


@dataclass(frozen=True)
class IdentifierNode:
    """Represents one identifier (or the method itself) in a method graph."""
    label: str
    kind: NodeKind
    sequence_id: int

    @property
    def key(self) -> Tuple[str, NodeKind]:
        return (self.label, self.kind)


@dataclass(frozen=True)
class RelationEdge:
    """Represents a directed, labeled arc between two identifier nodes."""
    source: IdentifierNode
    target: IdentifierNode
    relation: Relation

    def __str__(self) -> str:
        return f"{self.source.label} --{self.relation.name}-> {self.target.label}"


@dataclass
class MethodFacts:
    """Relation views extracted from one method declaration."""
    name: str
    exceptions: List[str] = field(default_factory=list)
    parameters: List[TypedName] = field(default_factory=list)
    variables: List[TypedName] = field(default_factory=list)
    casts: List[Tuple[str, str]] = field(default_factory=list)
    calls: List[str] = field(default_factory=list)
    call_var_dependency: List[Tuple[str, str]] = field(default_factory=list)
    call_scopes: List[Tuple[str, str]] = field(default_factory=list)
    call_arguments: List[Tuple[str, Reference]] = field(default_factory=list)
    var_assigns: List[Tuple[str, Reference]] = field(default_factory=list)


class CorpusRecord(BaseModel):
    """One record of a line-delimited JSON corpus."""
    code: str = Field(..., description="Java source of a method or compilation unit")
    id: Optional[Union[str, int]] = Field(default=None, description="Record identifier, textual or numeric")
    path: Optional[str] = Field(default=None, description="Source path the record was harvested from")

    @property
    def origin(self) -> str:
        if self.path:
            return self.path
        if self.id is not None and self.id != "":
            return str(self.id)
        return "<corpus>"
