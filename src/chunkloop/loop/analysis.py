"""Static analysis of work expressions.

``free_names`` walks an expression's syntax tree and returns every name it
reads that is not bound inside the expression itself, in first-seen order.
Lambda parameters, comprehension targets and ``:=`` targets are bound
names; everything else that is loaded is free.
"""

from __future__ import annotations

import ast
from typing import Union

from chunkloop.core.errors import InvalidLoopError

Expression = Union[str, ast.Expression, ast.expr]


def parse_expression(expr: Expression) -> ast.Expression:
    """Parse ``expr`` into an ``ast.Expression`` node.

    Raises:
        InvalidLoopError: ``expr`` is not a single valid Python expression.
    """
    if isinstance(expr, ast.Expression):
        return expr
    if isinstance(expr, ast.expr):
        return ast.fix_missing_locations(ast.Expression(body=expr))
    if not isinstance(expr, str):
        raise InvalidLoopError(
            f"expression must be source text or an ast node, got {type(expr).__name__}",
            field="expr",
        )
    try:
        return ast.parse(expr.strip(), mode="eval")
    except SyntaxError as exc:
        raise InvalidLoopError(f"invalid expression: {exc.msg}", field="expr", cause=exc) from exc


def expression_source(expr: Expression) -> str:
    """Canonical source text for ``expr``."""
    if isinstance(expr, str):
        parse_expression(expr)
        return expr.strip()
    return ast.unparse(parse_expression(expr).body)


class _FreeNameCollector(ast.NodeVisitor):
    def __init__(self) -> None:
        self.free: dict[str, None] = {}
        self._bound: list[set[str]] = [set()]
        self._comprehension: list[bool] = [False]

    def _is_bound(self, name: str) -> bool:
        return any(name in level for level in self._bound)

    def _bind_target(self, target: ast.AST) -> None:
        for node in ast.walk(target):
            if isinstance(node, ast.Name) and isinstance(node.ctx, ast.Store):
                self._bound[-1].add(node.id)
            elif isinstance(node, (ast.Attribute, ast.Subscript)):
                # `for obj.attr in ...` reads obj
                self.visit(node.value)

    def visit_Name(self, node: ast.Name) -> None:
        if isinstance(node.ctx, ast.Load):
            if not self._is_bound(node.id):
                self.free.setdefault(node.id)
        else:
            self._bound[-1].add(node.id)

    def visit_NamedExpr(self, node: ast.NamedExpr) -> None:
        self.visit(node.value)
        # `:=` inside a comprehension binds in the enclosing function scope
        level = max(i for i, comp in enumerate(self._comprehension) if not comp)
        self._bound[level].add(node.target.id)

    def visit_Lambda(self, node: ast.Lambda) -> None:
        args = node.args
        for default in [*args.defaults, *(d for d in args.kw_defaults if d is not None)]:
            self.visit(default)
        params = {a.arg for a in [*args.posonlyargs, *args.args, *args.kwonlyargs]}
        if args.vararg:
            params.add(args.vararg.arg)
        if args.kwarg:
            params.add(args.kwarg.arg)
        self._bound.append(params)
        self._comprehension.append(False)
        self.visit(node.body)
        self._bound.pop()
        self._comprehension.pop()

    def _visit_comprehension(self, generators: list[ast.comprehension], *elts: ast.AST) -> None:
        # The first iterable is evaluated in the enclosing scope.
        self.visit(generators[0].iter)
        self._bound.append(set())
        self._comprehension.append(True)
        for position, generator in enumerate(generators):
            if position:
                self.visit(generator.iter)
            self._bind_target(generator.target)
            for condition in generator.ifs:
                self.visit(condition)
        for elt in elts:
            self.visit(elt)
        self._bound.pop()
        self._comprehension.pop()

    def visit_ListComp(self, node: ast.ListComp) -> None:
        self._visit_comprehension(node.generators, node.elt)

    def visit_SetComp(self, node: ast.SetComp) -> None:
        self._visit_comprehension(node.generators, node.elt)

    def visit_GeneratorExp(self, node: ast.GeneratorExp) -> None:
        self._visit_comprehension(node.generators, node.elt)

    def visit_DictComp(self, node: ast.DictComp) -> None:
        self._visit_comprehension(node.generators, node.key, node.value)


def free_names(expr: Expression) -> list[str]:
    """Names read by ``expr`` that the expression does not bind itself.

    Example:
        >>> free_names("f(x) + sum(y * k for y in ys)")
        ['f', 'x', 'sum', 'ys', 'k']
    """
    collector = _FreeNameCollector()
    collector.visit(parse_expression(expr))
    return list(collector.free)


__all__ = ["Expression", "parse_expression", "expression_source", "free_names"]
