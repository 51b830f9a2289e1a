"""
Whitelist check for user-supplied math expressions.

Expressions from configuration files are handed to `sympy.sympify`, which
evaluates them with Python's `eval`. They are therefore checked on the
syntax tree first: only numbers, arithmetic operators, whitelisted names
and calls of whitelisted functions are accepted.
"""
import ast
from typing import Collection

_ALLOWED_NODES = (
    ast.Expression,
    ast.BinOp,
    ast.UnaryOp,
    ast.Add,
    ast.Sub,
    ast.Mult,
    ast.Div,
    ast.Pow,
    ast.USub,
    ast.UAdd,
    ast.Load,
)


def check_expression(text: str, allowed_names: Collection[str]) -> ast.Expression:
    """
    Reject any expression that is not plain arithmetic on allowed names.

    Args:
        text (str): The expression source.
        allowed_names (Collection[str]): Names that may appear as variables,
            constants or called functions.

    Returns:
        ast.Expression: The parsed tree.

    Raises:
        SyntaxError: If the text is not a single Python expression.
        ValueError: If the tree contains anything outside the whitelist.
    """
    tree = ast.parse(text, mode="eval")
    for node in ast.walk(tree):
        if isinstance(node, ast.Constant):
            value = node.value
            if isinstance(value, bool) or not isinstance(value, (int, float, complex)):
                raise ValueError(f"only numeric literals are allowed, got {value!r}")
        elif isinstance(node, ast.Name):
            if node.id not in allowed_names:
                raise ValueError(f"unknown name '{node.id}'")
        elif isinstance(node, ast.Call):
            if not isinstance(node.func, ast.Name) or node.keywords:
                raise ValueError("only plain calls of allowed functions are permitted")
        elif not isinstance(node, _ALLOWED_NODES):
            raise ValueError(f"'{type(node).__name__}' is not allowed in an expression")
    return tree
