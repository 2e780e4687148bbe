class ASTNode:
    # Optional source line (1-based). Parser sets this.
    line: int | None = None


class Text:
    # Entry of the program's text pool (explicit or implicit).
    def __init__(self, name, value, string_type=None, is_global=False):
        self.name = name
        self.value = value
        self.string_type = string_type
        self.is_global = is_global


class Program(ASTNode):
    def __init__(self, statements, texts=None):
        self.statements = statements
        self.texts = texts if texts is not None else []  # implicit texts, discovery order


class Identifier(ASTNode):
    def __init__(self, value, token=None):
        self.value = value
        self.token = token
        if token is not None:
            self.line = token.line


class ScriptStatement(ASTNode):
    def __init__(self, name, body, is_global=True):
        self.name = name  # Identifier, or None for an inline mapscripts script
        self.body = body
        self.is_global = is_global


class Block(ASTNode):
    def __init__(self, statements):
        self.statements = statements


class Command(ASTNode):
    def __init__(self, name, args):
        self.name = name  # Identifier
        self.args = args  # list[str]


class Raw(ASTNode):
    def __init__(self, value, is_global=False):
        self.value = value
        self.is_global = is_global


class TextStatement(ASTNode):
    def __init__(self, name, value, string_type=None, is_global=True):
        self.name = name
        self.value = value
        self.string_type = string_type
        self.is_global = is_global


class MovementStatement(ASTNode):
    def __init__(self, name, commands, is_global=True):
        self.name = name
        self.commands = commands  # list[str], repeats already expanded
        self.is_global = is_global


class MartStatement(ASTNode):
    def __init__(self, name, items, is_global=True):
        self.name = name
        self.items = items
        self.is_global = is_global


class BinaryExpression(ASTNode):
    def __init__(self, left, op, right):
        self.left = left
        self.op = op  # "&&" or "||"
        self.right = right

    def __str__(self):
        return f"({self.left}) {self.op} ({self.right})"


class OperatorExpression(ASTNode):
    def __init__(self, kind, operand, operator, comparison_value):
        self.kind = kind  # "flag" or "var"
        self.operand = operand
        self.operator = operator
        self.comparison_value = comparison_value

    def __str__(self):
        return f"{self.kind}({self.operand}) {self.operator} {self.comparison_value}"


class ConditionExpression(ASTNode):
    def __init__(self, expression, body):
        self.expression = expression
        self.body = body


class If(ASTNode):
    def __init__(self, consequence, elif_consequences=None, else_block=None):
        self.consequence = consequence
        self.elif_consequences = elif_consequences if elif_consequences is not None else []
        self.else_block = else_block


class While(ASTNode):
    def __init__(self, consequence):
        self.consequence = consequence


class DoWhile(ASTNode):
    def __init__(self, consequence):
        self.consequence = consequence


class Break(ASTNode):
    def __init__(self):
        # index into the resolver's ScopeArena
        self.target = None


class Continue(ASTNode):
    def __init__(self):
        self.target = None


class SwitchCase(ASTNode):
    def __init__(self, value, body, is_default=False):
        self.value = value
        self.body = body
        self.is_default = is_default


class Switch(ASTNode):
    def __init__(self, operand, cases):
        self.operand = operand
        self.cases = cases  # declaration order, default included

    @property
    def default_case(self):
        for case in self.cases:
            if case.is_default:
                return case
        return None


class MapScript(ASTNode):
    def __init__(self, type, name=None, script=None):
        self.type = type
        self.name = name      # symbol name, or None when inline
        self.script = script  # ScriptStatement | None


class TableMapScriptEntry(ASTNode):
    def __init__(self, condition, comparison, name=None, script=None):
        self.condition = condition
        self.comparison = comparison
        self.name = name
        self.script = script


class TableMapScript(ASTNode):
    def __init__(self, type, entries):
        self.type = type
        self.entries = entries


class MapScriptsStatement(ASTNode):
    def __init__(self, name, map_scripts, table_map_scripts, is_global=True):
        self.name = name
        self.map_scripts = map_scripts
        self.table_map_scripts = table_map_scripts
        self.is_global = is_global

    def inline_scripts(self):
        # (type, index or None, script) for every inline script, in source order
        for ms in self.map_scripts:
            if ms.script is not None:
                yield ms.type, None, ms.script
        for table in self.table_map_scripts:
            for i, entry in enumerate(table.entries):
                if entry.script is not None:
                    yield table.type, i, entry.script
