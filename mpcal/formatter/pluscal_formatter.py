"""
Renders ASTs as C-syntax PlusCal text: the flat algorithm produced by the
expansion pass, and the archetype and mapping-macro declarations of Modular
PlusCal.
"""

from typing import List

from mpcal.ast.classes import *
from mpcal.exceptions import ErrorCode, ModularPlusCalError

INDENT = "    "

# Builtins written as prefix operators rather than applied like functions.
PREFIX_OPERATORS = {"SUBSET", "UNION", "DOMAIN"}
WORD_UNARY_OPERATORS = {"UNCHANGED", "ENABLED"}


class PlusCalFormatter:
    def format(self, node: ASTNode) -> str:
        if isinstance(node, PlusCalAlgorithm):
            return self.format_algorithm(node)
        if isinstance(node, (ModularPlusCalBlock, Instance)):
            raise ModularPlusCalError(ErrorCode.UNSUPPORTED_FORMAT, node.span, node=type(node).__name__, reason="its printed syntax is not defined")
        if isinstance(node, Archetype):
            return "\n".join(self._archetype_lines(node, 0))
        if isinstance(node, MappingMacro):
            return "\n".join(self._mapping_macro_lines(node, 0))
        if isinstance(node, Procedure):
            return "\n".join(self._procedure_lines(node, 0))
        if isinstance(node, Process):
            return "\n".join(self._process_lines(node, 0))
        if isinstance(node, (ModuleInstance, OperatorDefinition)):
            return self.format_unit(node)
        if isinstance(node, Variable):
            return self.format_variable(node)
        if isinstance(node, (Assignment, If, While, Either, With, Await, Print, Assert, Label, Call, Return, Skip, Goto, Yield)):
            return "\n".join(self._statement_lines(node, 0))
        return self.format_expression(node)

    # --- Declarations ---

    def format_algorithm(self, algorithm: PlusCalAlgorithm) -> str:
        lines = []
        if algorithm.constants:
            lines.append("CONSTANTS " + ", ".join(c.name for c in algorithm.constants))
        lines.extend(self.format_unit(unit) for unit in algorithm.units)
        if lines:
            lines.append("")

        lines.append(f"--algorithm {algorithm.name} {{")
        if algorithm.variables:
            lines.append(f"{INDENT}variables " + ", ".join(self.format_variable(v) for v in algorithm.variables) + ";")
        for procedure in algorithm.procedures:
            lines.append("")
            lines.extend(self._procedure_lines(procedure, 1))
        for process in algorithm.processes:
            lines.append("")
            lines.extend(self._process_lines(process, 1))
        lines.append("}")
        return "\n".join(lines)

    def format_unit(self, unit: TlaUnit) -> str:
        if isinstance(unit, OperatorDefinition):
            params = f"({', '.join(unit.params)})" if unit.params else ""
            return f"{unit.name}{params} == {self.format_expression(unit.body)}"
        text = f"INSTANCE {unit.module_name}"
        if unit.remappings:
            text += " WITH " + ", ".join(f"{r.from_name} <- {self.format_expression(r.to)}" for r in unit.remappings)
        if unit.name:
            text = f"{unit.name} == {text}"
        if unit.local:
            text = f"LOCAL {text}"
        return text

    def format_variable(self, variable: Variable) -> str:
        operator = "\\in" if variable.is_set else "="
        return f"{variable.name} {operator} {self.format_expression(variable.value)}"

    def _variables_line(self, variables: List[Variable], depth: int) -> List[str]:
        if not variables:
            return []
        return [f"{INDENT * (depth + 1)}variables " + ", ".join(self.format_variable(v) for v in variables) + ";"]

    def _params(self, params: List[Parameter]) -> str:
        return ", ".join(("ref " if p.ref else "") + p.name for p in params)

    def _procedure_lines(self, procedure: Procedure, depth: int) -> List[str]:
        lines = [f"{INDENT * depth}procedure {procedure.name}({self._params(procedure.params)})"]
        lines.extend(self._variables_line(procedure.variables, depth))
        return lines + self._block_lines(procedure.body, depth)

    def _process_lines(self, process: Process, depth: int) -> List[str]:
        operator = "\\in" if process.self_kind == "set" else "="
        lines = [f"{INDENT * depth}process ({process.name} {operator} {self.format_expression(process.self_value)})"]
        lines.extend(self._variables_line(process.variables, depth))
        return lines + self._block_lines(process.body, depth)

    def _archetype_lines(self, archetype: Archetype, depth: int) -> List[str]:
        lines = [f"{INDENT * depth}archetype {archetype.name}({self._params(archetype.params)})"]
        lines.extend(self._variables_line(archetype.variables, depth))
        return lines + self._block_lines(archetype.body, depth)

    def _mapping_macro_lines(self, macro: MappingMacro, depth: int) -> List[str]:
        pad = INDENT * (depth + 1)
        lines = [f"{INDENT * depth}mapping macro {macro.name} {{", f"{pad}read {{"]
        lines.extend(self._statements_lines(macro.read_body, depth + 2))
        lines.extend([f"{pad}}}", f"{pad}write {{"])
        lines.extend(self._statements_lines(macro.write_body, depth + 2))
        lines.extend([f"{pad}}}", f"{INDENT * depth}}}"])
        return lines

    def _block_lines(self, statements: List[Statement], depth: int) -> List[str]:
        return [f"{INDENT * depth}{{"] + self._statements_lines(statements, depth + 1) + [f"{INDENT * depth}}}"]

    # --- Statements ---

    def _statements_lines(self, statements: List[Statement], depth: int) -> List[str]:
        lines = []
        for stmt in statements:
            lines.extend(self._statement_lines(stmt, depth))
        return lines

    def _statement_lines(self, stmt: Statement, depth: int) -> List[str]:
        pad = INDENT * depth
        if isinstance(stmt, Assignment):
            return [pad + " || ".join(self._assignment_pair(pair) for pair in stmt.pairs) + ";"]
        if isinstance(stmt, If):
            lines = [f"{pad}if ({self.format_expression(stmt.condition)}) {{"] + self._statements_lines(stmt.then_body, depth + 1)
            if stmt.else_body:
                lines += [f"{pad}}} else {{"] + self._statements_lines(stmt.else_body, depth + 1)
            return lines + [f"{pad}}}"]
        if isinstance(stmt, While):
            return [f"{pad}while ({self.format_expression(stmt.condition)}) {{"] + self._statements_lines(stmt.body, depth + 1) + [f"{pad}}}"]
        if isinstance(stmt, Either):
            lines = []
            for index, branch in enumerate(stmt.branches):
                opener = f"{pad}either {{" if index == 0 else f"{pad}}} or {{"
                lines += [opener] + self._statements_lines(branch, depth + 1)
            return lines + [f"{pad}}}"]
        if isinstance(stmt, With):
            bindings = ", ".join(self._with_binding(b) for b in stmt.bindings)
            return [f"{pad}with ({bindings}) {{"] + self._statements_lines(stmt.body, depth + 1) + [f"{pad}}}"]
        if isinstance(stmt, Await):
            return [f"{pad}await {self.format_expression(stmt.condition)};"]
        if isinstance(stmt, Print):
            return [f"{pad}print {self.format_expression(stmt.value)};"]
        if isinstance(stmt, Assert):
            return [f"{pad}assert {self.format_expression(stmt.condition)};"]
        if isinstance(stmt, Label):
            return [f"{pad}{stmt.name}:"]
        if isinstance(stmt, Call):
            args = ", ".join(("ref " if a.ref else "") + self.format_expression(a.value) for a in stmt.args)
            return [f"{pad}call {stmt.procedure}({args});"]
        if isinstance(stmt, Return):
            return [f"{pad}return;"]
        if isinstance(stmt, Skip):
            return [f"{pad}skip;"]
        if isinstance(stmt, Goto):
            return [f"{pad}goto {stmt.target};"]
        if isinstance(stmt, Yield):
            return [f"{pad}yield {self.format_expression(stmt.value)};"]
        raise ModularPlusCalError(ErrorCode.UNSUPPORTED_FORMAT, stmt.span, node=type(stmt).__name__, reason="it is not a statement")

    def _with_binding(self, binding: WithBinding) -> str:
        operator = "\\in" if binding.is_set else "="
        return f"{binding.name} {operator} {self.format_expression(binding.value)}"

    def _assignment_pair(self, pair: AssignmentPair) -> str:
        target = self.format_expression(pair.lhs.variable)
        target += "".join(f"[{self.format_expression(index)}]" for index in pair.lhs.indices)
        return f"{target} := {self.format_expression(pair.rhs)}"

    # --- Expressions ---

    def format_expression(self, expr: Expression) -> str:
        if isinstance(expr, Identifier):
            return expr.name
        if isinstance(expr, NumberLiteral):
            return str(expr.value)
        if isinstance(expr, StringLiteral):
            escaped = expr.value.replace("\\", "\\\\").replace('"', '\\"')
            return f'"{escaped}"'
        if isinstance(expr, BooleanLiteral):
            return "TRUE" if expr.value else "FALSE"
        if isinstance(expr, WrittenValue):
            return "$value"
        if isinstance(expr, MappedVariable):
            return "$variable"
        if isinstance(expr, RecordConstructor):
            return "[" + ", ".join(f"{e.name} |-> {self.format_expression(e.value)}" for e in expr.entries) + "]"
        if isinstance(expr, FunctionApply):
            return f"{self._operand(expr.function)}[{self._list(expr.args)}]"
        if isinstance(expr, OperatorCall):
            if expr.name in PREFIX_OPERATORS and len(expr.args) == 1:
                return f"{expr.name} {self._operand(expr.args[0])}"
            return f"{expr.name}({self._list(expr.args)})" if expr.args else expr.name
        if isinstance(expr, SetConstructor):
            return "{" + self._list(expr.items) + "}"
        if isinstance(expr, TupleLiteral):
            return "<<" + self._list(expr.items) + ">>"
        if isinstance(expr, Quantified):
            bounds = ", ".join(f"{', '.join(b.names)} \\in {self.format_expression(b.domain)}" for b in expr.bounds)
            return f"{expr.quantifier} {bounds} : {self.format_expression(expr.body)}"
        if isinstance(expr, BinaryOp):
            return f"{self._operand(expr.lhs)} {expr.operator} {self._operand(expr.rhs)}"
        if isinstance(expr, UnaryOp):
            separator = " " if expr.operator in WORD_UNARY_OPERATORS else ""
            return f"{expr.operator}{separator}{self._operand(expr.operand)}"
        if isinstance(expr, Except):
            updates = ", ".join("!" + "".join(f"[{self.format_expression(p)}]" for p in u.path) + f" = {self.format_expression(u.value)}" for u in expr.updates)
            return f"[{self.format_expression(expr.function)} EXCEPT {updates}]"
        if isinstance(expr, RequiredAction):
            return f"<<{self.format_expression(expr.body)}>>_{self._operand(expr.vars)}"
        if isinstance(expr, InstanceReference):
            args = f"({self._list(expr.args)})" if expr.args else ""
            return f"{expr.prefix}!{expr.name}{args}"
        raise ModularPlusCalError(ErrorCode.UNSUPPORTED_FORMAT, expr.span, node=type(expr).__name__, reason="it is not an expression")

    def _list(self, items: List[Expression]) -> str:
        return ", ".join(self.format_expression(item) for item in items)

    def _operand(self, expr: Expression) -> str:
        text = self.format_expression(expr)
        if isinstance(expr, (BinaryOp, Quantified)) or (isinstance(expr, UnaryOp) and expr.operator in WORD_UNARY_OPERATORS):
            return f"({text})"
        return text


def format_pluscal(node: ASTNode) -> str:
    """Renders `node` as C-syntax PlusCal."""
    return PlusCalFormatter().format(node)
