from ast_nodes import (
    Program, Identifier, ScriptStatement, Block, Command, Raw,
    TextStatement, MovementStatement, MartStatement,
    BinaryExpression, OperatorExpression, ConditionExpression,
    If, While, DoWhile, Break, Continue, Switch, SwitchCase,
    MapScript, TableMapScript, TableMapScriptEntry, MapScriptsStatement,
)
from context import CompileContext
from errors import (
    CompileError,
    ScriptSyntaxError,
    UnterminatedBlock,
    UnterminatedArgumentList,
    DuplicateDefaultCase,
    InvalidConditionOperator,
    InvalidFlagComparisonValue,
)


VAR_OPERATORS = ("GT", "GTE", "LT", "LTE", "EQ", "NEQ")


class Parser:
    def __init__(self, lexer, context=None):
        self.lexer = lexer
        self.context = context if context is not None else CompileContext()
        self.current_token = self.lexer.get_next_token()
        self.next_token = self.lexer.get_next_token()

    # move to next token, but only if it matches what we expect
    def eat(self, token_type):
        if self.current_token.type == token_type:
            self.current_token = self.next_token
            self.next_token = self.lexer.get_next_token()
        else:
            tok = self.current_token
            raise ScriptSyntaxError.at(f"Expected {token_type}, got {tok.type}", tok)

    def advance(self):
        self.eat(self.current_token.type)

    def error_here(self, message, error_cls=ScriptSyntaxError):
        raise error_cls.at(message, self.current_token)

    def expect_close(self, token_type, open_tok, what):
        # a missing closer at EOF is reported at the opener
        if self.current_token.type == "EOF":
            if token_type == "RBRACE":
                raise UnterminatedBlock.at(f"missing closing curly brace for {what}", open_tok)
            raise UnterminatedArgumentList.at(f"missing closing parenthesis for {what}", open_tok)
        self.eat(token_type)

    # ---------- TOP LEVEL ----------
    def parse(self):
        statements = []

        while self.current_token.type != "EOF":
            statements.append(self.top_level_statement())

        return Program(statements, list(self.context.implicit_texts))

    def top_level_statement(self):
        tok = self.current_token
        if tok.type == "SCRIPT":
            return self.script_statement()
        if tok.type in ("RAW", "RAWGLOBAL"):
            return self.raw_statement()
        if tok.type == "TEXT":
            return self.text_statement()
        if tok.type == "MOVEMENT":
            return self.movement_statement()
        if tok.type == "MART":
            return self.mart_statement()
        if tok.type == "MAPSCRIPTS":
            return self.mapscripts_statement()

        self.error_here(f"could not parse top-level statement for '{tok.value}'")

    def scope_modifier(self, default=True):
        # optional (local) / (global) after a declaration keyword
        if self.current_token.type != "LPAREN":
            return default
        open_tok = self.current_token
        self.eat("LPAREN")
        if self.current_token.type not in ("LOCAL", "GLOBAL"):
            self.error_here(f"scope must be 'local' or 'global', got '{self.current_token.value}'")
        is_global = self.current_token.type == "GLOBAL"
        self.advance()
        self.expect_close("RPAREN", open_tok, "scope modifier")
        return is_global

    def identifier(self, what):
        tok = self.current_token
        if tok.type != "IDENT":
            self.error_here(f"expected name for {what}, got '{tok.value}'")
        self.eat("IDENT")
        return Identifier(tok.value, tok)

    def script_statement(self):
        tok = self.current_token
        self.eat("SCRIPT")
        is_global = self.scope_modifier(default=True)
        name = self.identifier("script")
        if self.current_token.type != "LBRACE":
            self.error_here(f"missing opening curly brace for script '{name.value}'")
        body = self.block()
        node = ScriptStatement(name, body, is_global)
        node.line = tok.line
        return node

    def raw_statement(self):
        tok = self.current_token
        self.advance()
        if self.current_token.type != "RAWSTRING":
            self.error_here(f"{tok.value} statement expects a raw string literal")
        value = self.current_token.value
        self.eat("RAWSTRING")
        node = Raw(value, is_global=(tok.type == "RAWGLOBAL"))
        node.line = tok.line
        return node

    def text_statement(self):
        tok = self.current_token
        self.eat("TEXT")
        is_global = self.scope_modifier(default=True)
        name = self.identifier("text")
        open_tok = self.current_token
        self.eat("LBRACE")
        if self.current_token.type != "STRING":
            self.error_here(f"text '{name.value}' expects a string literal")
        str_tok = self.current_token
        self.eat("STRING")
        self.expect_close("RBRACE", open_tok, f"text '{name.value}'")
        node = TextStatement(name, str_tok.value, str_tok.prefix, is_global)
        node.line = tok.line
        return node

    def movement_statement(self):
        tok = self.current_token
        self.eat("MOVEMENT")
        is_global = self.scope_modifier(default=True)
        name = self.identifier("movement")
        open_tok = self.current_token
        self.eat("LBRACE")

        commands = []
        while self.current_token.type != "RBRACE":
            if self.current_token.type == "EOF":
                self.expect_close("RBRACE", open_tok, f"movement '{name.value}'")
            if self.current_token.type in ("COMMA", "SEMICOLON"):
                self.advance()
                continue
            if self.current_token.type != "IDENT":
                self.error_here(f"invalid movement command '{self.current_token.value}'")
            command = self.current_token.value
            self.eat("IDENT")

            count = 1
            if self.current_token.type == "MUL":
                self.eat("MUL")
                count_tok = self.current_token
                if count_tok.type != "INT":
                    self.error_here("movement repeat count must be an integer")
                self.eat("INT")
                try:
                    count = int(count_tok.value, 0)
                except ValueError:
                    raise ScriptSyntaxError.at(f"invalid movement repeat count '{count_tok.value}'", count_tok)
            commands.extend([command] * count)

        self.eat("RBRACE")
        node = MovementStatement(name, commands, is_global)
        node.line = tok.line
        return node

    def mart_statement(self):
        tok = self.current_token
        self.eat("MART")
        is_global = self.scope_modifier(default=True)
        name = self.identifier("mart")
        open_tok = self.current_token
        self.eat("LBRACE")

        items = []
        while self.current_token.type != "RBRACE":
            if self.current_token.type == "EOF":
                self.expect_close("RBRACE", open_tok, f"mart '{name.value}'")
            if self.current_token.type in ("COMMA", "SEMICOLON"):
                self.advance()
                continue
            if self.current_token.type != "IDENT":
                self.error_here(f"invalid mart item '{self.current_token.value}'")
            items.append(self.current_token.value)
            self.eat("IDENT")

        self.eat("RBRACE")
        node = MartStatement(name, items, is_global)
        node.line = tok.line
        return node

    def mapscripts_statement(self):
        # mapscripts Name {
        #     TYPE: Symbol
        #     TYPE { ...inline script... }
        #     TYPE [ VAR, value: Symbol   VAR, value { ... } ]
        # }
        tok = self.current_token
        self.eat("MAPSCRIPTS")
        is_global = self.scope_modifier(default=True)
        name = self.identifier("mapscripts")
        open_tok = self.current_token
        self.eat("LBRACE")

        map_scripts = []
        tables = []
        while self.current_token.type != "RBRACE":
            if self.current_token.type == "EOF":
                self.expect_close("RBRACE", open_tok, f"mapscripts '{name.value}'")
            type_tok = self.current_token
            if type_tok.type != "IDENT":
                self.error_here(f"invalid map script type '{type_tok.value}'")
            self.eat("IDENT")

            if self.current_token.type == "COLON":
                self.eat("COLON")
                symbol = self.identifier(f"map script '{type_tok.value}'")
                entry = MapScript(type_tok.value, name=symbol.value)
            elif self.current_token.type == "LBRACE":
                entry = MapScript(type_tok.value, script=self.inline_script(type_tok))
            elif self.current_token.type == "LBRACKET":
                table = TableMapScript(type_tok.value, self.map_script_table())
                table.line = type_tok.line
                tables.append(table)
                continue
            else:
                self.error_here(f"expected ':', '{{' or '[' after map script type '{type_tok.value}'")
            entry.line = type_tok.line
            map_scripts.append(entry)

        self.eat("RBRACE")
        node = MapScriptsStatement(name, map_scripts, tables, is_global)
        node.line = tok.line
        return node

    def map_script_table(self):
        open_tok = self.current_token
        self.eat("LBRACKET")
        entries = []
        while self.current_token.type != "RBRACKET":
            if self.current_token.type == "EOF":
                raise UnterminatedBlock.at("missing closing bracket for map script table", open_tok)
            entry_tok = self.current_token
            condition = self.collect_until(("COMMA",), open_tok, "map script table entry")
            if not condition:
                self.error_here("missing condition for map script table entry")
            self.eat("COMMA")
            comparison = self.collect_until(("COLON", "LBRACE"), open_tok, "map script table entry")
            if not comparison:
                self.error_here("missing comparison value for map script table entry")

            if self.current_token.type == "COLON":
                self.eat("COLON")
                symbol = self.identifier("map script table entry")
                entry = TableMapScriptEntry(condition, comparison, name=symbol.value)
            else:
                entry = TableMapScriptEntry(condition, comparison, script=self.inline_script(entry_tok))
            entry.line = entry_tok.line
            entries.append(entry)

        self.eat("RBRACKET")
        return entries

    def inline_script(self, tok):
        body = self.block()
        script = ScriptStatement(None, body, is_global=False)
        script.line = tok.line
        return script

    def collect_until(self, stop_types, open_tok, what):
        # flatten tokens up to (not including) a depth-0 stop token
        parts = []
        depth = 0
        while not (self.current_token.type in stop_types and depth == 0):
            tok = self.current_token
            if tok.type == "EOF":
                raise UnterminatedArgumentList.at(f"unexpected end of input in {what}", open_tok)
            if tok.type == "LPAREN":
                depth += 1
            elif tok.type == "RPAREN":
                if depth == 0:
                    self.error_here(f"unexpected ')' in {what}")
                depth -= 1
            parts.append(tok.value)
            self.advance()
        return " ".join(parts)

    # ---------- STATEMENTS ----------
    def block(self):
        open_tok = self.current_token
        self.eat("LBRACE")

        statements = []
        while self.current_token.type != "RBRACE":
            if self.current_token.type == "EOF":
                raise UnterminatedBlock.at("missing closing curly brace for block statement", open_tok)
            stmt = self.statement()
            if stmt is not None:
                statements.append(stmt)

        self.eat("RBRACE")
        node = Block(statements)
        node.line = open_tok.line
        return node

    def statement(self):
        tok = self.current_token

        # stray separators are allowed between statements
        if tok.type == "SEMICOLON":
            self.eat("SEMICOLON")
            return None

        if tok.type == "IDENT":
            return self.command_statement()
        if tok.type == "IF":
            return self.if_statement()
        if tok.type == "ELIF":
            self.error_here("elif used without a preceding if")
        if tok.type == "ELSE":
            self.error_here("else used without a preceding if")
        if tok.type == "WHILE":
            return self.while_statement()
        if tok.type == "DO":
            return self.do_while_statement()
        if tok.type == "SWITCH":
            return self.switch_statement()
        if tok.type in ("CASE", "DEFAULT"):
            self.error_here(f"{tok.value} used outside of a switch statement")

        if tok.type == "BREAK":
            self.eat("BREAK")
            self.skip_semicolon()
            node = Break()
            node.line = tok.line
            return node

        if tok.type == "CONTINUE":
            self.eat("CONTINUE")
            self.skip_semicolon()
            node = Continue()
            node.line = tok.line
            return node

        self.error_here(f"could not parse statement for '{tok.value}'")

    def skip_semicolon(self):
        if self.current_token.type == "SEMICOLON":
            self.eat("SEMICOLON")

    def command_statement(self):
        name_tok = self.current_token
        self.eat("IDENT")
        name = Identifier(name_tok.value, name_tok)

        args = []
        if self.current_token.type == "LPAREN":
            args = self.command_args(name_tok)
        self.skip_semicolon()

        node = Command(name, args)
        node.line = name_tok.line
        return node

    def command_args(self, name_tok):
        self.eat("LPAREN")

        args = []
        parts = []
        depth = 0
        while not (self.current_token.type == "RPAREN" and depth == 0):
            tok = self.current_token
            if tok.type == "EOF":
                raise UnterminatedArgumentList.at(
                    f"missing closing parenthesis for command '{name_tok.value}'", name_tok)

            if tok.type == "COMMA" and depth == 0:
                args.append(" ".join(parts))
                parts = []
            elif tok.type == "LPAREN":
                depth += 1
                parts.append(tok.value)
            elif tok.type == "RPAREN":
                depth -= 1
                parts.append(tok.value)
            elif tok.type == "STRING":
                # inline string -> implicit text, referenced by its label
                parts.append(self.context.add_implicit_text(tok.value, tok.prefix))
            else:
                parts.append(tok.value)
            self.advance()

        self.eat("RPAREN")
        if parts:
            args.append(" ".join(parts))
        return args

    def if_statement(self):
        # Grammar:
        #   IF (cond) block (ELIF (cond) block)* (ELSE block)?
        tok = self.current_token
        self.eat("IF")
        consequence = self.condition_consequence(tok)

        elifs = []
        while self.current_token.type == "ELIF":
            elif_tok = self.current_token
            self.eat("ELIF")
            elifs.append(self.condition_consequence(elif_tok))

        else_block = None
        if self.current_token.type == "ELSE":
            self.eat("ELSE")
            if self.current_token.type != "LBRACE":
                self.error_here("missing opening curly brace of else statement")
            else_block = self.block()

        node = If(consequence, elifs, else_block)
        node.line = tok.line
        return node

    def while_statement(self):
        tok = self.current_token
        self.eat("WHILE")
        node = While(self.condition_consequence(tok))
        node.line = tok.line
        return node

    def do_while_statement(self):
        tok = self.current_token
        self.eat("DO")
        if self.current_token.type != "LBRACE":
            self.error_here("missing opening curly brace of do statement")
        body = self.block()

        if self.current_token.type != "WHILE":
            self.error_here("missing while condition after do block")
        while_tok = self.current_token
        self.eat("WHILE")
        expression = self.condition(while_tok)
        self.skip_semicolon()

        consequence = ConditionExpression(expression, body)
        consequence.line = while_tok.line
        node = DoWhile(consequence)
        node.line = tok.line
        return node

    def switch_statement(self):
        tok = self.current_token
        self.eat("SWITCH")
        if self.current_token.type != "LPAREN":
            self.error_here("missing opening parenthesis of switch statement")
        open_tok = self.current_token
        self.eat("LPAREN")

        # switch (var(VAR_X)) and switch (VAR_X) are both accepted
        if self.current_token.type == "VAR" and self.next_token.type == "LPAREN":
            self.eat("VAR")
            var_open = self.current_token
            self.eat("LPAREN")
            operand = self.collect_until(("RPAREN",), var_open, "switch operand")
            self.expect_close("RPAREN", var_open, "switch operand")
        else:
            operand = self.collect_until(("RPAREN",), open_tok, "switch operand")
        if not operand:
            self.error_here("missing operand of switch statement")
        self.expect_close("RPAREN", open_tok, "switch statement")

        if self.current_token.type != "LBRACE":
            self.error_here("missing opening curly brace of switch statement")
        brace_tok = self.current_token
        self.eat("LBRACE")

        cases = []
        has_default = False
        while self.current_token.type != "RBRACE":
            case_tok = self.current_token
            if case_tok.type == "EOF":
                raise UnterminatedBlock.at("missing closing curly brace for switch statement", brace_tok)

            if case_tok.type == "CASE":
                self.eat("CASE")
                value = self.collect_until(("COLON",), case_tok, "case value")
                if not value:
                    self.error_here("missing value for case")
                self.eat("COLON")
                case = SwitchCase(value, self.case_body(case_tok, brace_tok))
            elif case_tok.type == "DEFAULT":
                if has_default:
                    raise DuplicateDefaultCase.at("multiple 'default' cases found in switch statement", case_tok)
                has_default = True
                self.eat("DEFAULT")
                if self.current_token.type != "COLON":
                    self.error_here("missing ':' after default")
                self.eat("COLON")
                case = SwitchCase(None, self.case_body(case_tok, brace_tok), is_default=True)
            else:
                self.error_here(f"invalid token '{case_tok.value}' in switch statement, expected case or default")

            case.line = case_tok.line
            cases.append(case)

        self.eat("RBRACE")
        node = Switch(operand, cases)
        node.line = tok.line
        return node

    def case_body(self, case_tok, brace_tok):
        # runs until the next case/default or the switch's closing brace
        statements = []
        while self.current_token.type not in ("CASE", "DEFAULT", "RBRACE"):
            if self.current_token.type == "EOF":
                raise UnterminatedBlock.at("missing closing curly brace for switch statement", brace_tok)
            stmt = self.statement()
            if stmt is not None:
                statements.append(stmt)
        node = Block(statements)
        node.line = case_tok.line
        return node

    # ---------- CONDITIONS ----------
    def condition_consequence(self, tok):
        if self.current_token.type != "LPAREN":
            self.error_here(f"missing opening parenthesis of {tok.value} statement")
        expression = self.condition(tok)
        if self.current_token.type != "LBRACE":
            self.error_here(f"missing opening curly brace of {tok.value} statement")
        body = self.block()
        node = ConditionExpression(expression, body)
        node.line = tok.line
        return node

    def condition(self, tok):
        if self.current_token.type != "LPAREN":
            self.error_here(f"missing opening parenthesis of {tok.value} condition")
        open_tok = self.current_token
        self.eat("LPAREN")
        expression = self.boolean_expression()
        self.expect_close("RPAREN", open_tok, f"{tok.value} condition")
        return expression

    # boolean_expression -> term ((&& | ||) term)*, left-associative
    def boolean_expression(self):
        node = self.boolean_term()
        while self.current_token.type in ("AND", "OR"):
            op_tok = self.current_token
            self.advance()
            right = self.boolean_term()
            node = BinaryExpression(node, op_tok.value, right)
            node.line = op_tok.line
        return node

    def boolean_term(self):
        tok = self.current_token
        if tok.type in ("FLAG", "VAR"):
            return self.operator_expression()

        if tok.type == "LPAREN":
            self.eat("LPAREN")
            node = self.boolean_expression()
            self.expect_close("RPAREN", tok, "condition")
            return node

        self.error_here(f"invalid condition '{tok.value}', expected flag(...) or var(...)")

    def operator_expression(self):
        kind_tok = self.current_token
        kind = kind_tok.value
        self.advance()

        if self.current_token.type != "LPAREN":
            self.error_here(f"missing opening parenthesis for condition operator '{kind}'")
        open_tok = self.current_token
        self.eat("LPAREN")
        if self.current_token.type == "RPAREN":
            self.error_here(f"missing value for condition operator '{kind}'")
        operand = self.collect_until(("RPAREN",), open_tok, f"{kind} operand")
        self.expect_close("RPAREN", open_tok, f"condition operator '{kind}'")

        if kind == "var":
            operator, value = self.var_comparison(kind_tok)
        else:
            operator, value = self.flag_comparison()

        node = OperatorExpression(kind, operand, operator, value)
        node.line = kind_tok.line
        return node

    def var_comparison(self, kind_tok):
        op_tok = self.current_token
        if op_tok.type not in VAR_OPERATORS:
            raise InvalidConditionOperator.at(f"invalid condition operator '{op_tok.value}'", op_tok)
        self.advance()

        if self.current_token.type in ("RPAREN", "AND", "OR"):
            self.error_here("missing comparison value for condition")
        value = self.collect_until(("RPAREN", "AND", "OR"), kind_tok, "condition")
        return op_tok.value, value

    def flag_comparison(self):
        op_tok = self.current_token
        if op_tok.type != "EQ":
            raise InvalidConditionOperator.at(
                f"invalid condition operator '{op_tok.value}'. Only '==' is allowed.", op_tok)
        self.advance()

        value_tok = self.current_token
        if value_tok.type in ("RPAREN", "AND", "OR"):
            self.error_here("missing comparison value for condition")
        if value_tok.type not in ("TRUE", "FALSE"):
            raise InvalidFlagComparisonValue.at(
                f"invalid flag comparison value '{value_tok.value}'. Only 'TRUE' and 'FALSE' are allowed.",
                value_tok)
        self.advance()
        return op_tok.value, value_tok.value


def parse_program(lexer, context=None):
    """Parse a whole file. Returns (program, errors).

    Parsing stops at the first violation; on failure the program is None and
    errors holds one line-numbered message.
    """
    try:
        parser = Parser(lexer, context)
        program = parser.parse()
    except CompileError as e:
        return None, [str(e)]
    return program, []
