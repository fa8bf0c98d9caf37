"""Tree-sitter parsing of Java sources into method declarations.

This module is the boundary to the syntax tree. It exposes what fact
extraction needs from a method declaration:
- the method name and its thrown exceptions
- ordered parameters with their declared type token
- the optional body
- a "find all sub-nodes of kind K" query over the body

Note: nothing here resolves symbols. Type tokens are the first simple type
name of the declared type, as written in the source.
"""

import re
from pathlib import Path
from typing import Iterator, List, Optional, Union

import tree_sitter_java
from tree_sitter import Language, Node, Parser, Tree

from .logger import get_logger
from .models import TypedName


JAVA_LANGUAGE = Language(tree_sitter_java.language())

# Node kinds queried by the fact extractor
METHOD_DECLARATION = "method_declaration"
METHOD_INVOCATION = "method_invocation"
CAST_EXPRESSION = "cast_expression"
ASSIGNMENT_EXPRESSION = "assignment_expression"
VARIABLE_DECLARATOR = "variable_declarator"
ENHANCED_FOR_STATEMENT = "enhanced_for_statement"
RESOURCE = "resource"
IDENTIFIER = "identifier"
TYPE_IDENTIFIER = "type_identifier"

LOCAL_DECLARATOR_KINDS = (VARIABLE_DECLARATOR, ENHANCED_FOR_STATEMENT, RESOURCE)

# Inferred local type, has no type token
INFERRED_TYPE = "var"

SNIPPET_CLASS = "__Snippet__"

_WHITESPACE_RE = re.compile(r"\s+")
_DOT_SPACING_RE = re.compile(r"\s*\.\s*")


class JavaParseError(Exception):
    """Raised when a Java source cannot be read or decoded."""


def node_text(node: Optional[Node]) -> str:
    """Textual form of a node with whitespace normalised."""
    if node is None:
        return ""
    text = node.text.decode("utf-8", errors="replace")
    text = _WHITESPACE_RE.sub(" ", text).strip()
    return _DOT_SPACING_RE.sub(".", text)


def iter_preorder(node: Node) -> Iterator[Node]:
    """Iterate over a node and all its descendants in pre-order."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children))


def find_all(node: Optional[Node], *kinds: str) -> List[Node]:
    """Find all nodes of the given kinds under (and including) node, in pre-order."""
    if node is None:
        return []
    wanted = set(kinds)
    return [n for n in iter_preorder(node) if n.type in wanted]


def find_first(node: Optional[Node], *kinds: str) -> Optional[Node]:
    """Find the first node of the given kinds in pre-order."""
    if node is None:
        return None
    wanted = set(kinds)
    for n in iter_preorder(node):
        if n.type in wanted:
            return n
    return None


def type_token(type_node: Optional[Node]) -> Optional[str]:
    """
    Get the declared-type token of a type node.

    The token is the first simple type name in pre-order, so ``List<String>``
    gives ``List`` and ``String[]`` gives ``String``. Primitive types, ``void``
    and the inferred ``var`` type have no token.

    Args:
        type_node: Type node of a declaration or cast

    Returns:
        The type token, or None when the type has no simple name
    """
    if type_node is None:
        return None
    if type_node.type == TYPE_IDENTIFIER and node_text(type_node) == INFERRED_TYPE:
        return None
    simple_name = find_first(type_node, TYPE_IDENTIFIER)
    if simple_name is None:
        return None
    return node_text(simple_name)


class JavaMethod:
    """A method declaration of a parsed Java source."""

    def __init__(self, node: Node):
        self.node = node

    @property
    def name(self) -> str:
        return node_text(self.node.child_by_field_name("name"))

    @property
    def body(self) -> Optional[Node]:
        return self.node.child_by_field_name("body")

    @property
    def parameters(self) -> List[TypedName]:
        """Ordered (name, type token) pairs of the formal parameters."""
        parameters = []
        params_node = self.node.child_by_field_name("parameters")
        if params_node is None:
            return parameters

        for param in params_node.named_children:
            if param.type == "formal_parameter":
                name = node_text(param.child_by_field_name("name"))
                param_type = type_token(param.child_by_field_name("type"))
                parameters.append((name, param_type))
            elif param.type == "spread_parameter":
                # varargs: the name lives in a variable_declarator child
                declarator = None
                declared_type = None
                for child in param.named_children:
                    if child.type == VARIABLE_DECLARATOR:
                        declarator = child
                    elif child.type != "modifiers" and declared_type is None:
                        declared_type = child
                if declarator is not None:
                    name = node_text(declarator.child_by_field_name("name"))
                    parameters.append((name, type_token(declared_type)))

        return parameters

    @property
    def thrown_exceptions(self) -> List[str]:
        for child in self.node.children:
            if child.type == "throws":
                return [node_text(t) for t in child.named_children]
        return []

    def find_all(self, *kinds: str) -> List[Node]:
        """Find all sub-nodes of the given kinds in the method body."""
        return find_all(self.body, *kinds)

    def __repr__(self) -> str:
        return f"JavaMethod({self.name!r})"


class JavaSourceParser:
    """
    Parses Java sources with tree-sitter.

    Example:
        parser = JavaSourceParser()
        for method in parser.parse_methods(source):
            print(method.name, method.parameters)
    """

    def __init__(self):
        """Initialize the parser."""
        self._parser = Parser(JAVA_LANGUAGE)
        self.logger = get_logger()

    def parse(self, source: Union[str, bytes]) -> Tree:
        """
        Parse a Java source.

        Syntax errors do not raise: tree-sitter recovers and marks the
        faulty region with error nodes.

        Args:
            source: Java source text or bytes

        Returns:
            The concrete syntax tree
        """
        if isinstance(source, str):
            source = source.encode("utf-8")
        tree = self._parser.parse(source)
        if tree.root_node.has_error:
            self.logger.debug("Parsed source contains syntax errors")
        return tree

    def parse_methods(self, source: Union[str, bytes]) -> List[JavaMethod]:
        """
        Parse a Java source and return its method declarations in source order.

        Sources holding a bare method (no enclosing class) are parsed again
        inside a synthetic class body.

        Args:
            source: Compilation unit or method snippet

        Returns:
            List of JavaMethod, including methods of nested and anonymous classes
        """
        if isinstance(source, str):
            source = source.encode("utf-8")

        tree = self.parse(source)
        methods = find_all(tree.root_node, METHOD_DECLARATION)

        if not methods or tree.root_node.has_error:
            wrapped = b"class " + SNIPPET_CLASS.encode("ascii") + b" {\n" + source + b"\n}\n"
            wrapped_tree = self.parse(wrapped)
            wrapped_methods = find_all(wrapped_tree.root_node, METHOD_DECLARATION)
            if wrapped_methods and (not methods or not wrapped_tree.root_node.has_error):
                self.logger.debug("Parsed source as a method snippet")
                methods = wrapped_methods

        return [JavaMethod(node) for node in methods]


def read_source(path: Path, encoding: str = "utf-8") -> str:
    """
    Read a Java source file.

    Raises:
        JavaParseError: If the file cannot be read or decoded
    """
    try:
        return Path(path).read_text(encoding=encoding)
    except (OSError, UnicodeDecodeError) as e:
        raise JavaParseError(f"Failed to read {path}: {e}") from e
