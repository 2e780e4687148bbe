from ast_nodes import (
    ScriptStatement, MapScriptsStatement, Block, Command, If, While, DoWhile, Switch, Break, Continue,
)
from errors import UnboundBreak, UnboundContinue


class ScopeArena:
    """Loops and switches that a break/continue can target.

    Break and Continue nodes store the index of their target here rather
    than the node itself, so a loop never holds a cycle through its own body.
    """

    def __init__(self):
        self.constructs = []
        self._index = {}  # id(node) -> index

    def add(self, node):
        key = id(node)
        if key in self._index:
            return self._index[key]
        self.constructs.append(node)
        self._index[key] = len(self.constructs) - 1
        return self._index[key]

    def index_of(self, node):
        return self._index.get(id(node))

    def node_at(self, index):
        return self.constructs[index]

    def __len__(self):
        return len(self.constructs)


class Resolver:
    def __init__(self):
        self.arena = ScopeArena()
        self.break_stack = []     # While, DoWhile, Switch
        self.continue_stack = []  # While, DoWhile

    def resolve(self, program):
        for stmt in program.statements:
            if isinstance(stmt, ScriptStatement):
                self.resolve_block(stmt.body)
            elif isinstance(stmt, MapScriptsStatement):
                for _type, _i, script in stmt.inline_scripts():
                    self.resolve_block(script.body)
        return self.arena

    def resolve_block(self, block):
        for stmt in block.statements:
            self.resolve_stmt(stmt)

    def resolve_stmt(self, node):
        if isinstance(node, Command):
            return

        if isinstance(node, If):
            self.resolve_block(node.consequence.body)
            for elif_consequence in node.elif_consequences:
                self.resolve_block(elif_consequence.body)
            if node.else_block is not None:
                self.resolve_block(node.else_block)
            return

        if isinstance(node, (While, DoWhile)):
            index = self.arena.add(node)
            self.break_stack.append(index)
            self.continue_stack.append(index)
            self.resolve_block(node.consequence.body)
            self.continue_stack.pop()
            self.break_stack.pop()
            return

        if isinstance(node, Switch):
            # switch takes break but lets continue through to the enclosing loop
            index = self.arena.add(node)
            self.break_stack.append(index)
            for case in node.cases:
                self.resolve_block(case.body)
            self.break_stack.pop()
            return

        if isinstance(node, Break):
            if not self.break_stack:
                raise UnboundBreak("break used outside of a loop or switch", node.line)
            node.target = self.break_stack[-1]
            return

        if isinstance(node, Continue):
            if not self.continue_stack:
                raise UnboundContinue("continue used outside of a loop", node.line)
            node.target = self.continue_stack[-1]
            return

        if isinstance(node, Block):
            self.resolve_block(node)
            return

        raise Exception(f"Unknown statement node: {node.__class__.__name__}")