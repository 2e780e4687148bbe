from output import OutputProgram, Label, CommandUnit, Jump, ConditionalJump, RawUnit, DataBlock
from ast_nodes import (
    Program, Text, Identifier, ScriptStatement, Block, Command, Raw,
    TextStatement, MovementStatement, MartStatement, MapScriptsStatement,
    BinaryExpression, OperatorExpression,
    If, While, DoWhile, Break, Continue, Switch,
)
from context import CompileContext
from errors import CompileError, DuplicateTextName, UnresolvedLabel
from lexer import Lexer
from parser import parse_program
from resolver import Resolver


NEGATED_VAR_OPERATORS = {
    "==": "!=",
    "!=": "==",
    "<": ">=",
    ">=": "<",
    ">": "<=",
    "<=": ">",
}

TERMINATING_COMMANDS = ("end", "return", "goto")


class Compiler:
    def __init__(self, context=None):
        self.context = context if context is not None else CompileContext()
        self.out = OutputProgram()
        self.arena = None
        self.jump_targets = {}  # arena index -> {"break": label, "continue": label}
        self.script_name = None

    def emit(self, unit, node=None):
        return self.out.emit(unit, getattr(node, "line", None))

    def new_label(self):
        return self.context.new_label(self.script_name)

    def compile(self, program, arena):
        # entry point
        if not isinstance(program, Program):
            raise Exception("Compiler expects a Program node at the top")
        self.arena = arena
        self.reserve_names(program)

        for stmt in program.statements:
            self.compile_top_level(stmt)

        self.compile_texts(program)
        return self.out

    def reserve_names(self, program):
        # generated labels must step around every declared name
        for stmt in program.statements:
            name = getattr(stmt, "name", None)
            if isinstance(name, Identifier):
                self.context.reserve(name.value)
        for text in program.texts:
            self.context.reserve(text.name)

    # -------- top level --------
    def compile_top_level(self, node):
        if isinstance(node, ScriptStatement):
            self.compile_script(node.name.value, node)
            return

        if isinstance(node, Raw):
            self.emit(RawUnit(node.value, node.is_global), node)
            return

        if isinstance(node, TextStatement):
            # texts go to the pool at the end of the output
            return

        if isinstance(node, MovementStatement):
            self.emit(DataBlock("movement", node.name.value, list(node.commands), node.is_global), node)
            return

        if isinstance(node, MartStatement):
            self.emit(DataBlock("mart", node.name.value, list(node.items), node.is_global), node)
            return

        if isinstance(node, MapScriptsStatement):
            self.compile_mapscripts(node)
            return

        raise Exception(f"Unknown top-level node: {node.__class__.__name__}")

    def compile_script(self, name, node):
        self.script_name = name
        self.emit(Label(name, node.is_global), node)
        self.compile_block(node.body)

        # falling off the end of a script must stop the interpreter
        last = self.out.last_unit()
        terminated = isinstance(last, Jump) or (
            isinstance(last, CommandUnit) and last.name in TERMINATING_COMMANDS
        )
        if not terminated:
            self.emit(CommandUnit("end"), node)
        self.out.scripts.append(name)
        self.script_name = None

    def compile_mapscripts(self, node):
        name = node.name.value
        rows = []
        tables = []
        promoted = []  # (label, ScriptStatement)

        for map_script in node.map_scripts:
            if map_script.script is not None:
                label = self.context.claim(f"{name}_{map_script.type}")
                promoted.append((label, map_script.script))
            else:
                label = map_script.name
            rows.append((map_script.type, label))

        for table in node.table_map_scripts:
            table_label = self.context.claim(f"{name}_{table.type}")
            rows.append((table.type, table_label))
            table_rows = []
            for i, entry in enumerate(table.entries):
                if entry.script is not None:
                    label = self.context.claim(f"{table_label}_{i}")
                    promoted.append((label, entry.script))
                else:
                    label = entry.name
                table_rows.append((entry.condition, entry.comparison, label))
            tables.append((DataBlock("mapscripts_table", table_label, table_rows), table))

        self.emit(DataBlock("mapscripts", name, rows, node.is_global), node)
        for block, table in tables:
            self.emit(block, table)
        for label, script in promoted:
            self.compile_script(label, script)

    def compile_texts(self, program):
        # explicit texts as declared, then implicit texts in discovery order
        pool = []
        for stmt in program.statements:
            if isinstance(stmt, TextStatement):
                pool.append((Text(stmt.name.value, stmt.value, stmt.string_type, stmt.is_global), stmt.line))
        for text in program.texts:
            pool.append((text, None))

        seen = set()
        for text, line in pool:
            if text.name in seen:
                raise DuplicateTextName(f"duplicate text name '{text.name}'", line)
            seen.add(text.name)
            self.emit(DataBlock("text", text.name, [text.value], text.is_global, text.string_type))
            self.out.texts.append(text.name)

    # -------- statements --------
    def compile_block(self, block):
        for stmt in block.statements:
            self.compile_stmt(stmt)

    def compile_stmt(self, node):
        if isinstance(node, Command):
            self.emit(CommandUnit(node.name.value, node.args), node)
            return

        if isinstance(node, If):
            self.compile_if(node)
            return

        if isinstance(node, While):
            self.compile_while(node)
            return

        if isinstance(node, DoWhile):
            self.compile_do_while(node)
            return

        if isinstance(node, Switch):
            self.compile_switch(node)
            return

        if isinstance(node, Break):
            self.emit(Jump(self.jump_target(node, "break")), node)
            return

        if isinstance(node, Continue):
            self.emit(Jump(self.jump_target(node, "continue")), node)
            return

        if isinstance(node, Block):
            self.compile_block(node)
            return

        raise Exception(f"Unknown statement node: {node.__class__.__name__}")

    def jump_target(self, node, kind):
        targets = self.jump_targets.get(node.target) if node.target is not None else None
        if targets is None or kind not in targets:
            raise UnresolvedLabel(f"{kind} has no resolved target label", node.line)
        return targets[kind]

    def register_targets(self, node, labels):
        index = self.arena.index_of(node) if self.arena is not None else None
        if index is not None:
            self.jump_targets[index] = labels

    def compile_if(self, node):
        # Layout:
        #   <cond 1 jumps to body_1 when true>
        #   <cond n jumps to body_n when true>
        #   <else body>
        #   goto end
        # body_1: ... goto end
        # body_n: ... goto end
        # end:
        end_label = self.new_label()

        bodies = []
        for consequence in [node.consequence] + node.elif_consequences:
            body_label = self.new_label()
            self.branch(consequence.expression, body_label, True)
            bodies.append((body_label, consequence.body))

        if node.else_block is not None:
            self.compile_block(node.else_block)
        self.emit(Jump(end_label), node)

        for body_label, body in bodies:
            self.emit(Label(body_label), body)
            self.compile_block(body)
            self.emit(Jump(end_label), body)

        self.emit(Label(end_label), node)

    def compile_while(self, node):
        test_label = self.new_label()
        end_label = self.new_label()
        self.register_targets(node, {"break": end_label, "continue": test_label})

        self.emit(Label(test_label), node)
        self.branch(node.consequence.expression, end_label, False)
        self.compile_block(node.consequence.body)
        self.emit(Jump(test_label), node)
        self.emit(Label(end_label), node)

    def compile_do_while(self, node):
        body_label = self.new_label()
        test_label = self.new_label()
        end_label = self.new_label()
        # continue re-evaluates the condition instead of re-running the body
        self.register_targets(node, {"break": end_label, "continue": test_label})

        self.emit(Label(body_label), node)
        self.compile_block(node.consequence.body)
        self.emit(Label(test_label), node.consequence)
        self.branch(node.consequence.expression, body_label, True)
        self.emit(Label(end_label), node)

    def compile_switch(self, node):
        case_labels = [self.new_label() for _case in node.cases]
        end_label = self.new_label()
        self.register_targets(node, {"break": end_label})

        default_label = end_label
        for case, label in zip(node.cases, case_labels):
            if case.is_default:
                default_label = label
                continue
            self.emit(ConditionalJump("var", node.operand, "==", case.value, label), case)
        self.emit(Jump(default_label), node)

        # no fallthrough: every case body ends by jumping to end
        for case, label in zip(node.cases, case_labels):
            self.emit(Label(label), case)
            self.compile_block(case.body)
            self.emit(Jump(end_label), case)

        self.emit(Label(end_label), node)

    # -------- conditions --------
    def branch(self, expr, target, jump_if):
        # Emit code that jumps to target when expr evaluates to jump_if,
        # and falls through otherwise.
        if isinstance(expr, OperatorExpression):
            operator, value = expr.operator, expr.comparison_value
            if not jump_if:
                operator, value = self.negate(expr)
            self.emit(ConditionalJump(expr.kind, expr.operand, operator, value, target), expr)
            return

        if isinstance(expr, BinaryExpression):
            if expr.op == "&&":
                if not jump_if:
                    # either side false skips
                    self.branch(expr.left, target, False)
                    self.branch(expr.right, target, False)
                    return
                skip_label = self.new_label()
                self.branch(expr.left, skip_label, False)
                self.branch(expr.right, target, True)
                self.emit(Label(skip_label), expr)
                return

            if expr.op == "||":
                if jump_if:
                    # either side true takes the jump
                    self.branch(expr.left, target, True)
                    self.branch(expr.right, target, True)
                    return
                skip_label = self.new_label()
                self.branch(expr.left, skip_label, True)
                self.branch(expr.right, target, False)
                self.emit(Label(skip_label), expr)
                return

            raise Exception(f"Unknown boolean operator: {expr.op}")

        raise Exception(f"Unknown condition node: {expr.__class__.__name__}")

    def negate(self, expr):
        if expr.kind == "flag":
            return "==", "FALSE" if expr.comparison_value == "TRUE" else "TRUE"
        if expr.operator not in NEGATED_VAR_OPERATORS:
            raise Exception(f"Unknown operator: {expr.operator}")
        return NEGATED_VAR_OPERATORS[expr.operator], expr.comparison_value


def compile_source(source):
    """Run the whole pipeline on one file's text.

    Returns (output, errors): an OutputProgram and [] on success, or None and
    a non-empty list of line-numbered messages.
    """
    context = CompileContext()
    program, errors = parse_program(Lexer(source), context)
    if errors:
        return None, errors

    try:
        arena = Resolver().resolve(program)
        output = Compiler(context).compile(program, arena)
    except CompileError as e:
        return None, [str(e)]
    return output, []
