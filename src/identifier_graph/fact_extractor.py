"""Fact extraction engine for method identifier graphs."""

import re
from typing import List, Optional, Tuple

from tree_sitter import Node

from .java_parser import (
    ASSIGNMENT_EXPRESSION,
    CAST_EXPRESSION,
    ENHANCED_FOR_STATEMENT,
    IDENTIFIER,
    LOCAL_DECLARATOR_KINDS,
    METHOD_INVOCATION,
    VARIABLE_DECLARATOR,
    JavaMethod,
    find_first,
    node_text,
    type_token,
)
from .models import MethodFacts, Reference, ReferenceKind, TypedName


# Letter, underscore or currency sign, then letters, digits, underscores or currency signs
_CURRENCY = "$¢-¥₠-⃏"
IDENTIFIER_PATTERN = re.compile(rf"(?:[^\W\d]|[{_CURRENCY}])(?:\w|[{_CURRENCY}])*")

_PARENTHESIZED_RE = re.compile(r"\(.*?\)")


def is_valid_identifier(token: Optional[str]) -> bool:
    """Check whether a token is a syntactically valid identifier."""
    if not token:
        return False
    return IDENTIFIER_PATTERN.fullmatch(token) is not None


def parse_scope_token(scope_text: str) -> str:
    """
    Reduce the textual receiver of a call to its scope token.

    Parenthesized groups are removed first so that the arguments of a previous
    call in a chain are not mistaken for the scope, then the last dot-separated
    segment is kept. This is a textual heuristic, not symbol resolution:
    ``a.b(c).d`` gives ``d`` and ``foo(x).bar(y)`` gives ``bar``.

    Args:
        scope_text: Textual form of the receiver expression

    Returns:
        The scope token, or an empty string when nothing is left
    """
    stripped = _PARENTHESIZED_RE.sub("", scope_text)
    segments = stripped.split(".")
    # trailing empty segments are not segments
    while segments and segments[-1] == "":
        segments.pop()
    if not segments:
        return ""
    return segments[-1]


def call_name(call: Node) -> str:
    return node_text(call.child_by_field_name("name"))


def classify_reference(expression: Node) -> Optional[Reference]:
    """Classify an argument or assigned value as a call or a bare name reference."""
    if expression.type == METHOD_INVOCATION:
        return (call_name(expression), ReferenceKind.CALL)
    if expression.type == IDENTIFIER:
        return (node_text(expression), ReferenceKind.VAR)
    return None


class FactExtractor:
    """
    Extracts typed relation views from a method declaration.

    Each view is a purely syntactic derivation over the method's tree:
    - Thrown exceptions and parameters (name, type) from the declaration
    - Local variables (name, type) and casts (expression, type) from the body
    - Distinct call names, call scopes and call arguments
    - Call/variable dependencies of declarator initializers
    - Assignment target/source pairs

    A missing body never fails: body views are empty.
    """

    def __init__(self, filter_identifiers: bool = True):
        """
        Initialize the fact extractor.

        Args:
            filter_identifiers: Drop relations holding a token that is not a
                valid identifier
        """
        self.filter_identifiers = filter_identifiers

    def extract(self, method: JavaMethod) -> MethodFacts:
        """
        Extract every relation view of a method.

        Args:
            method: Method declaration to analyze

        Returns:
            MethodFacts holding all views
        """
        return MethodFacts(
            name=method.name,
            exceptions=self.retrieve_exceptions(method),
            parameters=self.retrieve_parameters(method),
            variables=self.retrieve_variables(method),
            casts=self.retrieve_casts(method),
            calls=self.retrieve_calls(method),
            call_var_dependency=self.retrieve_call_var_dependency(method),
            call_scopes=self.retrieve_call_scopes(method),
            call_arguments=self.retrieve_call_arguments(method),
            var_assigns=self.retrieve_var_assigns(method),
        )

    def retrieve_exceptions(self, method: JavaMethod) -> List[str]:
        """
        Names from the throws clause, as written.

        Unlike parameter, variable and cast types these are not reduced to a
        type token, so a qualified name such as ``java.io.IOException`` fails
        the identifier filter and is dropped when the filter is on.
        """
        return [e for e in method.thrown_exceptions if self._accept(e)]

    def retrieve_parameters(self, method: JavaMethod) -> List[TypedName]:
        """(name, type) pairs of the parameters, in declaration order."""
        return [p for p in method.parameters if self._accept(*p)]

    def retrieve_variables(self, method: JavaMethod) -> List[TypedName]:
        """
        Retrieve all local variables and their types declared in the method body.

        Duplicated names are kept, graph assembly decides which one wins.

        Args:
            method: Method declaration to analyze

        Returns:
            List of (name, type) pairs in source order
        """
        variables = []
        for declarator in method.find_all(*LOCAL_DECLARATOR_KINDS):
            name = node_text(declarator.child_by_field_name("name"))
            var_type = type_token(self._declared_type(declarator))
            if self._accept(name, var_type):
                variables.append((name, var_type))
        return variables

    def retrieve_casts(self, method: JavaMethod) -> List[Tuple[str, str]]:
        """(expression, type) pairs of every cast with a simple type name."""
        casts = []
        for cast in method.find_all(CAST_EXPRESSION):
            cast_types = cast.children_by_field_name("type")
            cast_type = type_token(cast_types[0]) if cast_types else None
            if cast_type is None:
                continue
            expression = node_text(cast.child_by_field_name("value"))
            if self._accept(expression, cast_type):
                casts.append((expression, cast_type))
        return casts

    def retrieve_calls(self, method: JavaMethod) -> List[str]:
        """Distinct call names appearing in the body, in first-seen order."""
        calls = []
        seen = set()
        for call in method.find_all(METHOD_INVOCATION):
            name = call_name(call)
            if name not in seen and self._accept(name):
                seen.add(name)
                calls.append(name)
        return calls

    def retrieve_call_var_dependency(self, method: JavaMethod) -> List[Tuple[str, str]]:
        """
        Retrieve (call, variable) pairs for declarators initialized from a call.

        Only the first call found in the initializer is kept, e.g.
        ``Foo f = a.b().c();`` gives ``(c, f)``.

        Args:
            method: Method declaration to analyze

        Returns:
            List of (call name, variable name) pairs
        """
        dependencies = []
        for declarator in method.find_all(*LOCAL_DECLARATOR_KINDS):
            if declarator.type == ENHANCED_FOR_STATEMENT:
                continue
            call = find_first(declarator.child_by_field_name("value"), METHOD_INVOCATION)
            if call is None:
                continue
            pair = (call_name(call), node_text(declarator.child_by_field_name("name")))
            if self._accept(*pair):
                dependencies.append(pair)
        return dependencies

    def retrieve_call_scopes(self, method: JavaMethod) -> List[Tuple[str, str]]:
        """(call, scope token) pairs for every call with an explicit receiver."""
        scopes = []
        for call in method.find_all(METHOD_INVOCATION):
            receiver = call.child_by_field_name("object")
            if receiver is None:
                continue
            pair = (call_name(call), parse_scope_token(node_text(receiver)))
            if self._accept(*pair):
                scopes.append(pair)
        return scopes

    def retrieve_call_arguments(self, method: JavaMethod) -> List[Tuple[str, Reference]]:
        """(call, (argument, kind)) pairs for call and bare name arguments."""
        arguments = []
        for call in method.find_all(METHOD_INVOCATION):
            name = call_name(call)
            argument_list = call.child_by_field_name("arguments")
            if argument_list is None:
                continue
            for argument in argument_list.named_children:
                reference = classify_reference(argument)
                if reference is not None and self._accept(name, reference[0]):
                    arguments.append((name, reference))
        return arguments

    def retrieve_var_assigns(self, method: JavaMethod) -> List[Tuple[str, Reference]]:
        """(target, (source, kind)) pairs for assignments to a bare name."""
        assigns = []
        for assignment in method.find_all(ASSIGNMENT_EXPRESSION):
            target = assignment.child_by_field_name("left")
            value = assignment.child_by_field_name("right")
            if target is None or value is None or target.type != IDENTIFIER:
                continue
            reference = classify_reference(value)
            if reference is None:
                continue
            target_name = node_text(target)
            if self._accept(target_name, reference[0]):
                assigns.append((target_name, reference))
        return assigns

    def _declared_type(self, declarator: Node) -> Optional[Node]:
        # variable_declarator takes its type from the enclosing declaration
        if declarator.type == VARIABLE_DECLARATOR:
            parent = declarator.parent
            return parent.child_by_field_name("type") if parent is not None else None
        return declarator.child_by_field_name("type")

    def _accept(self, *tokens: Optional[str]) -> bool:
        """Check the present tokens of a relation against the identifier filter."""
        if not self.filter_identifiers:
            return all(token is None or token != "" for token in tokens)
        return all(token is None or is_valid_identifier(token) for token in tokens)
